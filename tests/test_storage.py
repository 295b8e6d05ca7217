import pytest

from hoa_tracker.services.storage import StoredFileNotFound, photo_path


def test_photo_path_layout():
    assert photo_path("acme", "IMG 001.jpg", timestamp_ms=1700000000000) == "violations/acme/1700000000000_IMG_001.jpg"
    assert photo_path("acme", "../../etc/passwd", timestamp_ms=1) == "violations/acme/1_passwd"
    assert photo_path("acme", "", timestamp_ms=1) == "violations/acme/1_photo"


def test_local_storage_round_trip(storage):
    stored = storage.save_violation_photo("acme", "boat.jpg", b"jpeg-bytes", "image/jpeg")

    assert stored.relative_path.startswith("violations/acme/")
    assert stored.public_url.endswith(stored.relative_path)
    assert stored.public_url.startswith("http://localhost:8000/uploads/")

    retrieved = storage.retrieve_file(stored.public_url)
    assert retrieved.content == b"jpeg-bytes"
    assert retrieved.content_type == "image/jpeg"

    storage.delete_file(stored.public_url)
    with pytest.raises(StoredFileNotFound):
        storage.retrieve_file(stored.relative_path)
