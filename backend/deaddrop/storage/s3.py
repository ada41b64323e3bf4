import io
import logging
from typing import Iterator

from minio import Minio
from minio.error import S3Error

from deaddrop.storage.base import CHUNK_SIZE, BlobNotFoundError, DeleteResult, StorageGateway

logger = logging.getLogger(__name__)


class S3Storage(StorageGateway):
    """S3 compatible bucket (MinIO, Cloudflare R2, AWS)."""

    def __init__(self, endpoint: str, access_key: str, secret_key: str, bucket: str, secure: bool = True):
        self.bucket = bucket
        self.client = None
        if endpoint and access_key and secret_key:
            self.client = Minio(
                endpoint,
                access_key=access_key,
                secret_key=secret_key,
                secure=secure,
            )
        else:
            logger.warning("S3 credentials missing. Storage will not work.")

    def is_configured(self) -> bool:
        return self.client is not None and bool(self.bucket)

    def put(self, key: str, data: bytes, mime_type: str) -> str:
        self.client.put_object(
            self.bucket,
            key,
            io.BytesIO(data),
            length=len(data),
            content_type=mime_type,
        )
        return key

    def get_stream(self, key: str) -> Iterator[bytes]:
        try:
            response = self.client.get_object(self.bucket, key)
        except S3Error as e:
            if e.code == "NoSuchKey":
                raise BlobNotFoundError(key) from e
            raise

        def iterobject():
            try:
                yield from response.stream(CHUNK_SIZE)
            finally:
                response.close()
                response.release_conn()

        return iterobject()

    def delete(self, key: str) -> DeleteResult:
        try:
            self.client.remove_object(self.bucket, key)
        except Exception as e: # urllib3 transport errors are not S3Error
            return DeleteResult(success=False, error=str(e))
        return DeleteResult(success=True)
