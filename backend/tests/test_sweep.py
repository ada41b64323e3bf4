import base64

from deaddrop import crud
from deaddrop.core.config import settings
from deaddrop.models.file import FileRecord
from deaddrop.models.share import Share, ShareContent
from deaddrop.models.upload_session import UploadSession
from deaddrop.services import DownloadController, ShareController, UploadController
from deaddrop.services.sweep import sweep

PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\n").decode()


def make_file(db, storage, hasher, clock, **kwargs) -> str:
    uploads = UploadController(db, storage, hasher, clock=clock)
    ticket = uploads.initiate(filename="a.txt", size=1, **kwargs)
    uploads.store_content(ticket.code, b"x")
    uploads.complete(ticket.code)
    return ticket.code


def test_sweep_with_nothing_expired(db, storage, hasher, clock):
    make_file(db, storage, hasher, clock, expiry_minutes=60)
    stats = sweep(db, storage, now=clock())
    assert stats.model_dump() == {
        "files": 0,
        "upload_sessions": 0,
        "shares": 0,
        "download_tokens": 0,
        "storage_failed": 0,
    }


def test_sweep_removes_every_kind_of_expired_resource(db, storage, hasher, clock):
    code = make_file(db, storage, hasher, clock, expiry_minutes=10, max_downloads=-1)
    DownloadController(db, storage, hasher, clock=clock).request_download(code)
    abandoned = UploadController(db, storage, hasher, clock=clock).initiate(filename="b.txt", size=1)
    ShareController(db, storage, hasher, clock=clock).create(type="paste", content="x", expiry_minutes=10)
    ShareController(db, storage, hasher, clock=clock).create(
        type="image", content=PNG_DATA_URL, expiry_minutes=10
    )

    clock.advance(minutes=settings.UPLOAD_SESSION_TTL_MINUTES + 1)
    stats = sweep(db, storage, now=clock())

    assert stats.download_tokens == 1
    assert stats.upload_sessions == 1
    assert stats.files == 1
    assert stats.shares == 2
    assert stats.storage_failed == 0
    assert db.query(FileRecord).count() == 0
    assert db.query(UploadSession).filter(UploadSession.code == abandoned.code).count() == 0
    assert db.query(Share).count() == 0
    assert db.query(ShareContent).count() == 0
    assert storage.blobs == {}


def test_sweep_removes_exhausted_files(db, storage, hasher, clock):
    code = make_file(db, storage, hasher, clock, max_downloads=1)
    record = crud.file.get_by_code(db, code=code)
    crud.file.update_download_count(db, id=record.id, expected_count=0, next_count=1, now=clock())

    stats = sweep(db, storage, now=clock())

    assert stats.files == 1
    assert crud.file.get_by_code(db, code=code) is None


def test_blob_failure_is_counted_and_row_stays_deleted(db, storage, hasher, clock):
    code = make_file(db, storage, hasher, clock, expiry_minutes=1)
    storage_key = crud.file.get_by_code(db, code=code).storage_key
    storage.fail_deletes = True

    clock.advance(minutes=2)
    stats = sweep(db, storage, now=clock())

    assert stats.files == 1
    assert stats.storage_failed == 1
    assert crud.file.get_by_code(db, code=code) is None
    assert storage_key in storage.blobs

    # A later run does not resurrect or retry the row
    storage.fail_deletes = False
    assert sweep(db, storage, now=clock()).files == 0


def test_metadata_is_deleted_before_blob(db, session_factory, storage, hasher, clock):
    code = make_file(db, storage, hasher, clock, expiry_minutes=1)
    rows_seen_at_blob_delete = []
    original_delete = storage.delete

    def observing_delete(key):
        check = session_factory()
        try:
            rows_seen_at_blob_delete.append(check.query(FileRecord).filter(FileRecord.code == code).count())
        finally:
            check.close()
        return original_delete(key)

    storage.delete = observing_delete
    clock.advance(minutes=2)
    sweep(db, storage, now=clock())

    assert rows_seen_at_blob_delete == [0]


def test_sweep_is_bounded_by_batch_size(db, storage, hasher, clock):
    for _ in range(3):
        make_file(db, storage, hasher, clock, expiry_minutes=1)
    clock.advance(minutes=2)

    assert sweep(db, storage, now=clock(), batch_size=2).files == 2
    assert sweep(db, storage, now=clock(), batch_size=2).files == 1
    assert settings.SWEEP_BATCH_SIZE == 100


def test_stale_batch_does_not_delete_a_reserved_session(db, storage, hasher, clock, monkeypatch):
    from deaddrop.services import uploads as uploads_module

    monkeypatch.setattr(uploads_module, "generate_file_code", lambda: "55555555")
    uploads = UploadController(db, storage, hasher, clock=clock)
    uploads.initiate(filename="a.txt", size=1)
    clock.advance(minutes=settings.UPLOAD_SESSION_TTL_MINUTES + 1)

    batch = [row.code for row in crud.upload_session.get_expired_batch(db, now=clock(), limit=10)]
    assert crud.upload_session.delete_expired(db, codes=batch, now=clock())[0] == 1

    # The code is free again and a new upload claims it
    uploads.initiate(filename="b.txt", size=1)

    deleted, keys = crud.upload_session.delete_expired(db, codes=batch, now=clock())
    assert (deleted, keys) == (0, [])
    live = crud.upload_session.get(db, id="55555555")
    assert live is not None
    assert live.original_name == "b.txt"


def test_sweep_deletes_blobs_only_for_removed_sessions(db, storage, hasher, clock):
    uploads = UploadController(db, storage, hasher, clock=clock)
    expired = uploads.initiate(filename="a.txt", size=1)
    uploads.store_content(expired.code, b"x")
    clock.advance(minutes=settings.UPLOAD_SESSION_TTL_MINUTES + 1)
    live = uploads.initiate(filename="b.txt", size=1)
    uploads.store_content(live.code, b"y")

    stats = sweep(db, storage, now=clock())

    assert stats.upload_sessions == 1
    assert len(storage.deleted) == 1
    assert crud.upload_session.get(db, id=live.code) is not None
    assert list(storage.blobs.values()) == [b"y"]


def test_resources_at_their_expiry_instant_are_kept(db, storage, hasher, clock):
    make_file(db, storage, hasher, clock, expiry_minutes=5)
    clock.advance(minutes=5)

    assert sweep(db, storage, now=clock()).files == 0
