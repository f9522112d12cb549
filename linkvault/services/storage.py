import logging
from pathlib import Path
from typing import BinaryIO, Iterator

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from linkvault.config import Settings, get_settings

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class StorageService:
    """Blob store for uploaded file payloads, addressed by a key derived from the content id."""

    def upload(self, *, key: str, file_obj: BinaryIO, content_type: str) -> None:
        raise NotImplementedError

    def stream(self, key: str) -> Iterator[bytes]:
        """Open the blob and return an iterator over its bytes.

        Raises FileNotFoundError up front when the blob is gone, so callers can
        react before a response has started.
        """
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove the blob. A blob that is already gone is not an error."""
        raise NotImplementedError


class LocalStorageService(StorageService):
    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.root / Path(key).name

    def upload(self, *, key: str, file_obj: BinaryIO, content_type: str) -> None:
        with self._path(key).open("wb") as out:
            while chunk := file_obj.read(CHUNK_SIZE):
                out.write(chunk)

    def stream(self, key: str) -> Iterator[bytes]:
        handle = self._path(key).open("rb")
        return self._iter_file(handle)

    @staticmethod
    def _iter_file(handle: BinaryIO) -> Iterator[bytes]:
        with handle:
            while chunk := handle.read(CHUNK_SIZE):
                yield chunk

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def _create_client(settings: Settings):
    session = boto3.session.Session(
        aws_access_key_id=settings.aws_access_key_id,
        aws_secret_access_key=settings.aws_secret_access_key,
        region_name=settings.aws_region,
    )
    return session.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url,
        config=Config(signature_version="s3v4"),
    )


class S3StorageService(StorageService):
    def __init__(self, settings: Settings, client=None):
        self.client = client or _create_client(settings)
        self.bucket = settings.s3_bucket_name

    @staticmethod
    def _object_key(key: str) -> str:
        return f"uploads/{key}"

    def upload(self, *, key: str, file_obj: BinaryIO, content_type: str) -> None:
        self.client.upload_fileobj(
            Fileobj=file_obj,
            Bucket=self.bucket,
            Key=self._object_key(key),
            ExtraArgs={"ContentType": content_type},
        )

    def stream(self, key: str) -> Iterator[bytes]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=self._object_key(key))
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise FileNotFoundError(key) from exc
            raise
        return response["Body"].iter_chunks(chunk_size=CHUNK_SIZE)

    def delete(self, key: str) -> None:
        # delete_object succeeds for keys that do not exist
        self.client.delete_object(Bucket=self.bucket, Key=self._object_key(key))


def build_storage(settings: Settings) -> StorageService:
    backend = settings.storage_backend.lower().strip()
    if backend in ("", "local"):
        return LocalStorageService(settings.upload_dir)
    if backend == "s3":
        if not settings.s3_bucket_name:
            raise RuntimeError("S3_BUCKET_NAME is required for the s3 storage backend")
        return S3StorageService(settings)
    raise RuntimeError(f"Unknown storage backend: {settings.storage_backend}")


_storage: StorageService | None = None


def get_storage_service() -> StorageService:
    global _storage
    if _storage is None:
        _storage = build_storage(get_settings())
        logger.info("Using %s", type(_storage).__name__)
    return _storage
