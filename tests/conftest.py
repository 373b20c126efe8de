"""
Register pytest plugins, fixtures, and hooks to be used during test execution.

Settings are read when ``pms`` is first imported, so the test environment is
set here before any fixture module pulls in the application.
"""

import os
import sys
from pathlib import Path

THIS_DIR = Path(__file__).parent
TESTS_DIR_PARENT = (THIS_DIR / "..").resolve()

# add the parent directory of tests/ to PYTHONPATH
# so that we can use "from tests.<module> import ..." in our tests and fixtures
sys.path.insert(0, str(TESTS_DIR_PARENT))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_DB", "false")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("PROGRESS_TIMEZONE", "UTC")
os.environ.setdefault("RATE_LIMIT", "10000/minute")
os.environ.setdefault("LOG_LEVEL", "WARNING")

pytest_plugins = [
    # Application, database and storage
    "tests.fixtures.app_fixtures",
    # Users, customers, projects and tasks created through the API
    "tests.fixtures.project_fixtures",
]
