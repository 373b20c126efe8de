"""
Write helpers shared by the services.

Every mutating request runs in the request's session; ``write`` commits it
once the block finishes and turns store failures into the stable error codes.
A failed block is rolled back, which undoes every row the block touched.
"""
from contextlib import contextmanager

import structlog
from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PROJECT_VERSION_CONFLICT, UPDATE_FAILED, conflict, server_error


log = structlog.get_logger(__name__)


@contextmanager
def write(db: Session, failure: str = UPDATE_FAILED, event: str = "write_failed", **context):
    try:
        yield
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except StaleDataError:
        db.rollback()
        log.warning("project_version_conflict", **context)
        raise conflict(PROJECT_VERSION_CONFLICT)
    except SQLAlchemyError as e:
        db.rollback()
        log.error(event, error=str(e), **context)
        raise server_error(failure)
