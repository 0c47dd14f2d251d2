import pytest

from config.settings import settings
from services.document_service import DocumentStorage, UploadedFile
from services.exceptions import ValidationError


@pytest.fixture
def storage(tmp_path):
    return DocumentStorage(str(tmp_path), "/uploads/")


def test_store_images_keeps_order(storage, tmp_path):
    files = [UploadedFile(f"doc{i}.JPG", f"content-{i}".encode()) for i in range(3)]

    urls = storage.store_images(files)

    assert len(urls) == 3
    assert all(url.startswith("/uploads/document_") and url.endswith(".jpg") for url in urls)
    stored = [(tmp_path / url.rsplit("/", 1)[-1]).read_bytes() for url in urls]
    assert stored == [b"content-0", b"content-1", b"content-2"]


def test_unknown_extension_saved_as_jpg(storage):
    [url] = storage.store_images([UploadedFile("scan.exe", b"x")])
    assert url.endswith(".jpg")


def test_too_many_documents(storage, tmp_path):
    files = [UploadedFile(f"{i}.jpg", b"x") for i in range(settings.max_document_images + 1)]

    with pytest.raises(ValidationError):
        storage.store_images(files)
    assert list(tmp_path.iterdir()) == []


def test_file_too_large(storage, monkeypatch):
    monkeypatch.setattr(settings, "max_file_size", 4)

    with pytest.raises(ValidationError) as exc:
        storage.store_images([UploadedFile("big.jpg", b"12345")])
    assert exc.value.field == "documents"


def test_discard_removes_files(storage, tmp_path):
    urls = storage.store_images([UploadedFile("a.png", b"a"), UploadedFile("b.png", b"b")])

    storage.discard(urls)

    assert list(tmp_path.iterdir()) == []
