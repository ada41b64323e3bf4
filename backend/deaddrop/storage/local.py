import logging
import os
from typing import Iterator

from deaddrop.storage.base import CHUNK_SIZE, BlobNotFoundError, DeleteResult, StorageGateway

logger = logging.getLogger(__name__)


class LocalStorage(StorageGateway):
    """Stores blobs as plain files under a root directory."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _path(self, key: str) -> str:
        path = os.path.abspath(os.path.join(self.root, key))
        if not path.startswith(self.root + os.sep):
            raise ValueError(f"Invalid storage key: {key}")
        return path

    def is_configured(self) -> bool:
        try:
            os.makedirs(self.root, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create storage path %s: %s", self.root, e)
            return False
        return os.access(self.root, os.W_OK)

    def put(self, key: str, data: bytes, mime_type: str) -> str:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp_path = path + ".part"
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
        return key

    def get_stream(self, key: str) -> Iterator[bytes]:
        # Opened eagerly so the blob may be unlinked while the stream is served
        try:
            file_like = open(self._path(key), mode="rb")
        except FileNotFoundError:
            raise BlobNotFoundError(key)

        def iterfile():
            with file_like:
                while chunk := file_like.read(CHUNK_SIZE):
                    yield chunk

        return iterfile()

    def delete(self, key: str) -> DeleteResult:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            return DeleteResult(success=True)
        except (OSError, ValueError) as e:
            return DeleteResult(success=False, error=str(e))
        return DeleteResult(success=True)
