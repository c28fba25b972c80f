import pytest

from storage import AttachmentRejected, LocalFileStorage


@pytest.fixture
def storage(tmp_path):
    return LocalFileStorage(tmp_path, allowed_types=["image/jpeg", "application/pdf"], max_bytes=1024)


def test_upload_writes_file_and_describes_it(storage, tmp_path):
    attachment = storage.upload("../../boleto.PDF", "application/pdf", b"%PDF-1.4 data")

    assert attachment.name == "boleto.PDF"
    assert attachment.mime_type == "application/pdf"
    assert attachment.size == len(b"%PDF-1.4 data")
    assert attachment.storage_key.endswith(".pdf")
    assert attachment.url == f"/files/{attachment.storage_key}"
    assert (tmp_path / attachment.storage_key).read_bytes() == b"%PDF-1.4 data"


def test_rejects_type_and_size(storage):
    with pytest.raises(AttachmentRejected):
        storage.upload("notes.txt", "text/plain", b"hello")
    with pytest.raises(AttachmentRejected):
        storage.upload("big.jpg", "image/jpeg", b"x" * 2048)


def test_upload_many_is_all_or_nothing(storage, tmp_path):
    with pytest.raises(AttachmentRejected):
        storage.upload_many([
            ("ok.jpg", "image/jpeg", b"jpeg"),
            ("bad.exe", "application/octet-stream", b"MZ"),
        ])
    assert list(tmp_path.iterdir()) == []


def test_delete_removes_file_and_ignores_missing(storage, tmp_path):
    attachment = storage.upload("photo.jpg", "image/jpeg", b"jpeg")
    storage.delete_many([attachment.storage_key, "already-gone.pdf"])
    assert not (tmp_path / attachment.storage_key).exists()


def test_path_for_rejects_nested_keys(storage):
    with pytest.raises(ValueError):
        storage.path_for("../secret.pdf")
