"""
Local filesystem storage under ``FILES_DIR``.

Keys are relative paths such as ``users/<id>/<imageId>.png``. Writes go to a
temporary file next to the target and are moved into place with an atomic
rename, so a reader never sees a partial file and the last writer wins.
"""
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Optional

from .provider import StorageProvider


class LocalStorageProvider(StorageProvider):
    """Local filesystem storage provider."""

    def __init__(self, base_dir: str = "./files"):
        self.base_dir = Path(base_dir)

    def _get_path(self, key: str) -> Optional[Path]:
        """Filesystem path for a key, or None when the key tries to leave the base directory."""
        clean_key = key.replace("\\", "/").lstrip("/")
        parts = [p for p in clean_key.split("/") if p and p != "."]
        if not parts or any(p == ".." for p in parts):
            return None
        return self.base_dir.joinpath(*parts)

    def save(self, key: str, stream: BinaryIO) -> None:
        path = self._get_path(key)
        if path is None:
            raise ValueError(f"invalid storage key: {key}")
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as f:
                shutil.copyfileobj(stream, f)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def path(self, key: str) -> Optional[Path]:
        path = self._get_path(key)
        if path is None or not path.is_file():
            return None
        return path

    def delete_dir(self, prefix: str) -> None:
        path = self._get_path(prefix)
        if path is not None and path.is_dir():
            shutil.rmtree(path)
