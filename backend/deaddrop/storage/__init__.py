from deaddrop.core.config import settings
from deaddrop.storage.base import BlobNotFoundError, DeleteResult, StorageGateway


def create_storage() -> StorageGateway:
    if settings.STORAGE_BACKEND == "s3":
        from deaddrop.storage.s3 import S3Storage

        return S3Storage(
            settings.S3_ENDPOINT,
            settings.S3_ACCESS_KEY,
            settings.S3_SECRET_KEY,
            settings.S3_BUCKET,
            secure=settings.S3_SECURE,
        )

    from deaddrop.storage.local import LocalStorage

    return LocalStorage(settings.UPLOAD_DIR)


__all__ = ["BlobNotFoundError", "DeleteResult", "StorageGateway", "create_storage"]
