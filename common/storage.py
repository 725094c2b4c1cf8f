import asyncio
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from common.config import WorkerConfig

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------
# CONDITIONAL IMPORTS
# Cloud SDKs are only needed by the backend that is actually configured.
# ------------------------------------------------------------------------------

# 1. Google Cloud Storage SDK
try:
    from google.cloud import storage as gcs
except ImportError:
    gcs = None

# 2. Azure Blob Storage SDK
try:
    from azure.storage.blob import BlobServiceClient, PublicAccess
except ImportError:
    BlobServiceClient = None
    PublicAccess = None


# ------------------------------------------------------------------------------
# CAPABILITY INTERFACE
# The pipeline only sees these three coroutines. Each one either completes or
# raises; partial objects are the backend's problem to avoid.
# ------------------------------------------------------------------------------

class ObjectStore(ABC):

    @abstractmethod
    async def download(self, bucket: str, key: str, destination: Path) -> None:
        """Fetches bucket/key into the local file `destination`."""

    @abstractmethod
    async def upload(self, bucket: str, source: Path, key: str) -> None:
        """Stores the local file `source` as bucket/key."""

    @abstractmethod
    async def make_public(self, bucket: str, key: str) -> None:
        """Marks an uploaded object publicly readable. Idempotent."""


# ------------------------------------------------------------------------------
# GOOGLE CLOUD STORAGE (GCS)
# Used when STORAGE_BACKEND="gcp". The SDK is blocking, so calls run in a thread.
# ------------------------------------------------------------------------------

class GCSObjectStore(ObjectStore):

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        """Returns an authenticated GCS client, created on first use."""
        if self._client is None:
            if not gcs:
                raise RuntimeError("google-cloud-storage library is not installed.")
            self._client = gcs.Client()
        return self._client

    def _blob(self, bucket: str, key: str):
        return self.client.bucket(bucket).blob(key)

    async def download(self, bucket: str, key: str, destination: Path) -> None:
        blob = self._blob(bucket, key)
        await asyncio.to_thread(blob.download_to_filename, str(destination))
        logger.info(f"gs://{bucket}/{key} downloaded to {destination}.")

    async def upload(self, bucket: str, source: Path, key: str) -> None:
        blob = self._blob(bucket, key)
        await asyncio.to_thread(blob.upload_from_filename, str(source))
        logger.info(f"{source} uploaded to gs://{bucket}/{key}")

    async def make_public(self, bucket: str, key: str) -> None:
        blob = self._blob(bucket, key)
        await asyncio.to_thread(blob.make_public)
        logger.info(f"gs://{bucket}/{key} is now publicly readable")


# ------------------------------------------------------------------------------
# AZURE BLOB STORAGE
# Used when STORAGE_BACKEND="azure". Buckets map to containers.
# ------------------------------------------------------------------------------

class AzureBlobObjectStore(ObjectStore):

    def __init__(self, connection_string: Optional[str] = None, client=None):
        self._connection_string = connection_string
        self._client = client

    @property
    def client(self):
        """Creates a BlobServiceClient using the connection string."""
        if self._client is None:
            if not BlobServiceClient:
                raise RuntimeError("azure-storage-blob library is not installed.")
            if not self._connection_string:
                raise ValueError("AZURE_STORAGE_CONNECTION_STRING env var is missing.")
            self._client = BlobServiceClient.from_connection_string(self._connection_string)
        return self._client

    def _download_blob(self, container: str, key: str, destination: Path) -> None:
        blob_client = self.client.get_container_client(container).get_blob_client(key)
        with open(destination, "wb") as f:
            blob_client.download_blob().readinto(f)

    def _upload_blob(self, container: str, source: Path, key: str) -> None:
        blob_client = self.client.get_container_client(container).get_blob_client(key)
        with open(source, "rb") as data:
            blob_client.upload_blob(data, overwrite=True)

    def _set_container_public(self, container: str) -> None:
        # Azure has no per-blob ACL; anonymous read is granted on the container.
        container_client = self.client.get_container_client(container)
        policy = container_client.get_container_access_policy()
        if policy.get("public_access") == PublicAccess.BLOB:
            return
        # Setting access replaces the stored policies, so hand the existing ones back.
        identifiers = {
            identifier.id: identifier.access_policy
            for identifier in policy.get("signed_identifiers") or []
        }
        container_client.set_container_access_policy(signed_identifiers=identifiers, public_access=PublicAccess.BLOB)

    async def download(self, bucket: str, key: str, destination: Path) -> None:
        await asyncio.to_thread(self._download_blob, bucket, key, destination)
        logger.info(f"az://{bucket}/{key} downloaded to {destination}.")

    async def upload(self, bucket: str, source: Path, key: str) -> None:
        await asyncio.to_thread(self._upload_blob, bucket, source, key)
        logger.info(f"{source} uploaded to az://{bucket}/{key}")

    async def make_public(self, bucket: str, key: str) -> None:
        await asyncio.to_thread(self._set_container_public, bucket)
        logger.info(f"az://{bucket}/{key} is now publicly readable")


# ------------------------------------------------------------------------------
# LOCAL FILESYSTEM
# Used when STORAGE_BACKEND="local". Each bucket is a directory under `root`.
# ------------------------------------------------------------------------------

class LocalObjectStore(ObjectStore):

    def __init__(self, root: Path):
        self.root = Path(root)

    def object_path(self, bucket: str, key: str) -> Path:
        return self.root / bucket / key

    def _copy_atomic(self, source: Path, target: Path) -> None:
        # Write next to the target and rename, so readers never see half a file.
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
        os.close(fd)
        try:
            shutil.copyfile(source, tmp_name)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def download(self, bucket: str, key: str, destination: Path) -> None:
        source = self.object_path(bucket, key)
        if not source.is_file():
            raise FileNotFoundError(f"No such object: {bucket}/{key}")
        await asyncio.to_thread(self._copy_atomic, source, Path(destination))
        logger.info(f"{source} copied to {destination}.")

    async def upload(self, bucket: str, source: Path, key: str) -> None:
        target = self.object_path(bucket, key)
        await asyncio.to_thread(self._copy_atomic, Path(source), target)
        logger.info(f"{source} uploaded to {target}")

    async def make_public(self, bucket: str, key: str) -> None:
        if not self.object_path(bucket, key).is_file():
            raise FileNotFoundError(f"No such object: {bucket}/{key}")
        logger.debug(f"Local object {bucket}/{key} needs no visibility change")


# ------------------------------------------------------------------------------
# FACTORY
# Routes on STORAGE_BACKEND the way the rest of the worker is configured.
# ------------------------------------------------------------------------------

def create_object_store(config: WorkerConfig) -> ObjectStore:
    if config.storage_backend == "gcp":
        return GCSObjectStore()
    elif config.storage_backend == "azure":
        if not config.azure_connection_string:
            raise ValueError("AZURE_STORAGE_CONNECTION_STRING env var is required for Azure backend")
        return AzureBlobObjectStore(config.azure_connection_string)
    elif config.storage_backend == "local":
        return LocalObjectStore(config.local_storage_root)
    else:
        raise RuntimeError(f"Unsupported STORAGE_BACKEND: {config.storage_backend}")
