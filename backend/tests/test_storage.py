import io

import pytest
from botocore.stub import Stubber

from filerelay.core.config import Settings
from filerelay.main import create_app, purge_orphaned_blobs
from filerelay.services.storage import (
    LocalStorageService,
    StorageService,
    build_storage_service,
)


@pytest.mark.asyncio
async def test_local_save_open_and_delete(settings):
    storage = LocalStorageService(settings)
    key = storage.generate_blob_key()

    blob = await storage.save_upload(key, io.BytesIO(b"hello world"))
    assert blob.key == key
    assert blob.size == 11

    path = storage.open_for_download(key)
    assert path.read_bytes() == b"hello world"
    chunks = await storage.open_stream(key)
    assert b"".join(chunks) == b"hello world"

    await storage.delete_object(key)
    await storage.delete_object(key)
    with pytest.raises(FileNotFoundError):
        storage.open_for_download(key)


def test_local_rejects_keys_outside_upload_dir(settings):
    storage = LocalStorageService(settings)
    with pytest.raises(ValueError):
        storage.open_for_download("../outside")
    with pytest.raises(ValueError):
        storage.open_for_download("nested/key")


@pytest.mark.asyncio
async def test_local_purge_only_removes_blob_names(settings):
    storage = LocalStorageService(settings)
    for _ in range(2):
        (storage.base_path / storage.generate_blob_key()).write_bytes(b"leftover")
    (storage.base_path / "notes.txt").write_bytes(b"keep")
    (storage.base_path / ("A" * 32)).write_bytes(b"keep")

    await purge_orphaned_blobs(storage)
    assert sorted(p.name for p in storage.base_path.iterdir()) == ["A" * 32, "notes.txt"]
    assert await storage.purge() == 0


@pytest.mark.asyncio
async def test_lifespan_purges_orphans(tmp_path):
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir()
    (upload_dir / ("0" * 32)).write_bytes(b"old")
    (upload_dir / "pyproject.toml").write_bytes(b"unrelated")
    settings = Settings(UPLOAD_DIR=str(upload_dir), PURGE_ON_STARTUP=True)

    app = create_app(settings)
    async with app.router.lifespan_context(app):
        assert app.state.scheduler.running
        assert len(app.state.relay_service.registry) == 0
        assert [p.name for p in upload_dir.iterdir()] == ["pyproject.toml"]
    assert not app.state.scheduler.running


def test_build_storage_service_selects_backend(settings):
    assert isinstance(build_storage_service(settings), LocalStorageService)
    s3_settings = settings.model_copy(update={"storage_backend": "s3", "s3_region": "us-east-1"})
    storage = build_storage_service(s3_settings)
    assert type(storage) is StorageService
    assert storage.generate_blob_key().startswith("uploads/")


@pytest.fixture
def s3_storage():
    settings = Settings(
        STORAGE_BACKEND="s3",
        S3_REGION="us-east-1",
        S3_BUCKET_UPLOADS="relay-test",
        S3_ACCESS_KEY="test",
        S3_SECRET_KEY="test",
    )
    return StorageService(settings)


@pytest.mark.asyncio
async def test_s3_delete_object(s3_storage):
    with Stubber(s3_storage.client) as stubber:
        stubber.add_response(
            "delete_object",
            {},
            {"Bucket": "relay-test", "Key": "uploads/abc"},
        )
        await s3_storage.delete_object("uploads/abc")
        stubber.assert_no_pending_responses()


@pytest.mark.asyncio
async def test_s3_missing_object_is_file_not_found(s3_storage):
    with Stubber(s3_storage.client) as stubber:
        stubber.add_client_error(
            "get_object",
            service_error_code="NoSuchKey",
            http_status_code=404,
            expected_params=None,
        )
        with pytest.raises(FileNotFoundError):
            await s3_storage.open_stream("uploads/missing")


@pytest.mark.asyncio
async def test_s3_purge_only_removes_blob_keys(s3_storage):
    a, b = "a" * 32, "b" * 32
    with Stubber(s3_storage.client) as stubber:
        stubber.add_response(
            "list_objects_v2",
            {
                "Contents": [
                    {"Key": f"uploads/{a}"},
                    {"Key": "uploads/notes.txt"},
                    {"Key": f"uploads/{b}"},
                ],
                "IsTruncated": False,
            },
            {"Bucket": "relay-test", "Prefix": "uploads/"},
        )
        stubber.add_response(
            "delete_objects",
            {"Deleted": [{"Key": f"uploads/{a}"}, {"Key": f"uploads/{b}"}]},
            None,
        )
        assert await s3_storage.purge() == 2
        stubber.assert_no_pending_responses()


@pytest.mark.asyncio
async def test_s3_save_upload(s3_storage):
    key = s3_storage.generate_blob_key()
    with Stubber(s3_storage.client) as stubber:
        stubber.add_response("put_object", {"ETag": '"etag"'}, None)
        blob = await s3_storage.save_upload(key, io.BytesIO(b"payload"))
        stubber.assert_no_pending_responses()

    assert blob.key == key
    assert blob.size == 7
    assert s3_storage.owns_key(key)
    assert not s3_storage.owns_key("uploads/notes.txt")
    assert not s3_storage.owns_key(key.removeprefix("uploads/"))
