from dataclasses import dataclass
from typing import Iterator, Optional

CHUNK_SIZE = 1024 * 1024 # 1MB


class BlobNotFoundError(Exception):
    pass


@dataclass(frozen=True)
class DeleteResult:
    success: bool
    error: Optional[str] = None


class StorageGateway:
    """
    Durable bytes keyed by storage key.

    Blobs are written once and deleted once; rows in the metadata store own
    their lifecycle. `delete` never raises, it reports failure instead.
    """

    def is_configured(self) -> bool:
        raise NotImplementedError

    def put(self, key: str, data: bytes, mime_type: str) -> str:
        raise NotImplementedError

    def get_stream(self, key: str) -> Iterator[bytes]:
        raise NotImplementedError

    def delete(self, key: str) -> DeleteResult:
        raise NotImplementedError

    def read_all(self, key: str) -> bytes:
        return b"".join(self.get_stream(key))
