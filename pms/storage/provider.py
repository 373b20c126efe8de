from pathlib import Path
from typing import BinaryIO, Optional


class StorageProvider:
    """Keyed file storage for images and report documentation."""

    def save(self, key: str, stream: BinaryIO) -> None:
        raise NotImplementedError

    def path(self, key: str) -> Optional[Path]:
        """Readable local path for ``key``, or None when nothing is stored there."""
        raise NotImplementedError

    def delete_dir(self, prefix: str) -> None:
        raise NotImplementedError
