from unittest.mock import MagicMock

import pytest
from azure.storage.blob import PublicAccess

from common.config import WorkerConfig
from common.storage import (
    AzureBlobObjectStore,
    GCSObjectStore,
    LocalObjectStore,
    create_object_store,
)


class TestLocalObjectStore:

    @pytest.mark.unit
    async def test_download(self, tmp_path):
        store = LocalObjectStore(tmp_path / "buckets")
        obj = store.object_path("raw", "clip1.mp4")
        obj.parent.mkdir(parents=True)
        obj.write_bytes(b"raw")

        await store.download("raw", "clip1.mp4", tmp_path / "clip1.mp4")

        assert (tmp_path / "clip1.mp4").read_bytes() == b"raw"

    @pytest.mark.unit
    async def test_download_missing_object(self, tmp_path):
        store = LocalObjectStore(tmp_path / "buckets")

        with pytest.raises(FileNotFoundError):
            await store.download("raw", "clip1.mp4", tmp_path / "clip1.mp4")

        assert not (tmp_path / "clip1.mp4").exists()

    @pytest.mark.unit
    async def test_upload_and_make_public(self, tmp_path):
        store = LocalObjectStore(tmp_path / "buckets")
        source = tmp_path / "processed-clip1.mp4"
        source.write_bytes(b"encoded")

        await store.upload("processed", source, "processed-clip1.mp4")
        await store.make_public("processed", "processed-clip1.mp4")

        target = store.object_path("processed", "processed-clip1.mp4")
        assert target.read_bytes() == b"encoded"
        assert [p.name for p in target.parent.iterdir()] == ["processed-clip1.mp4"]

    @pytest.mark.unit
    async def test_make_public_missing_object(self, tmp_path):
        store = LocalObjectStore(tmp_path / "buckets")

        with pytest.raises(FileNotFoundError):
            await store.make_public("processed", "processed-clip1.mp4")


class TestGCSObjectStore:

    @pytest.mark.unit
    async def test_calls_blob_api(self, tmp_path):
        client = MagicMock()
        blob = client.bucket.return_value.blob.return_value
        store = GCSObjectStore(client=client)

        await store.download("raw", "clip1.mp4", tmp_path / "clip1.mp4")
        await store.upload("processed", tmp_path / "processed-clip1.mp4", "processed-clip1.mp4")
        await store.make_public("processed", "processed-clip1.mp4")

        blob.download_to_filename.assert_called_once_with(str(tmp_path / "clip1.mp4"))
        blob.upload_from_filename.assert_called_once_with(str(tmp_path / "processed-clip1.mp4"))
        blob.make_public.assert_called_once_with()
        client.bucket.assert_any_call("raw")
        client.bucket.assert_any_call("processed")

    @pytest.mark.unit
    async def test_sdk_errors_propagate(self, tmp_path):
        client = MagicMock()
        client.bucket.return_value.blob.return_value.download_to_filename.side_effect = LookupError("404")
        store = GCSObjectStore(client=client)

        with pytest.raises(LookupError):
            await store.download("raw", "clip1.mp4", tmp_path / "clip1.mp4")


class TestAzureBlobObjectStore:

    @pytest.mark.unit
    async def test_upload_overwrites(self, tmp_path):
        client = MagicMock()
        blob_client = client.get_container_client.return_value.get_blob_client.return_value
        source = tmp_path / "processed-clip1.mp4"
        source.write_bytes(b"encoded")
        store = AzureBlobObjectStore(client=client)

        await store.upload("processed", source, "processed-clip1.mp4")

        client.get_container_client.assert_called_with("processed")
        assert blob_client.upload_blob.call_args.kwargs == {"overwrite": True}

    @pytest.mark.unit
    async def test_make_public_keeps_stored_access_policies(self):
        client = MagicMock()
        container_client = client.get_container_client.return_value
        read_only = MagicMock(id="read-only")
        container_client.get_container_access_policy.return_value = {
            "public_access": None,
            "signed_identifiers": [read_only],
        }
        store = AzureBlobObjectStore(client=client)

        await store.make_public("processed", "processed-clip1.mp4")

        container_client.set_container_access_policy.assert_called_once_with(
            signed_identifiers={"read-only": read_only.access_policy},
            public_access=PublicAccess.BLOB,
        )

    @pytest.mark.unit
    async def test_make_public_skips_already_public_container(self):
        client = MagicMock()
        container_client = client.get_container_client.return_value
        container_client.get_container_access_policy.return_value = {
            "public_access": "blob",
            "signed_identifiers": [MagicMock(id="read-only")],
        }
        store = AzureBlobObjectStore(client=client)

        await store.make_public("processed", "processed-clip1.mp4")
        await store.make_public("processed", "processed-clip2.mp4")

        container_client.set_container_access_policy.assert_not_called()

    @pytest.mark.unit
    def test_missing_connection_string(self):
        store = AzureBlobObjectStore()

        with pytest.raises(ValueError, match="AZURE_STORAGE_CONNECTION_STRING"):
            store.client


class TestFactory:

    @pytest.mark.unit
    def test_backends(self, tmp_path):
        assert isinstance(create_object_store(WorkerConfig(storage_backend="gcp")), GCSObjectStore)
        assert isinstance(
            create_object_store(WorkerConfig(storage_backend="local", local_storage_root=tmp_path)),
            LocalObjectStore,
        )
        assert isinstance(
            create_object_store(WorkerConfig(storage_backend="azure", azure_connection_string="UseDevelopmentStorage=true")),
            AzureBlobObjectStore,
        )

    @pytest.mark.unit
    def test_azure_requires_connection_string(self):
        with pytest.raises(ValueError):
            create_object_store(WorkerConfig(storage_backend="azure"))

    @pytest.mark.unit
    def test_unknown_backend(self):
        with pytest.raises(RuntimeError, match="Unsupported STORAGE_BACKEND"):
            create_object_store(WorkerConfig(storage_backend="ftp"))
