import datetime

from filenfs.filesystem.common import clean_remote, LockIndex, to_datetime


def test_lock_index():
    index = LockIndex()

    with index.lock("a"):
        with index.lock("b"):
            with index.lock("c"):
                assert index.lock_count == 3

        assert index.lock_count == 1

    assert index.lock_count == 0


def test_lock_index_released_on_error():
    index = LockIndex()

    try:
        with index.lock("a"):
            raise ValueError()
    except ValueError:
        pass

    assert index.lock_count == 0

    with index.lock("a"):
        assert index.lock_count == 1


def test_clean_remote():
    assert clean_remote("") == ""
    assert clean_remote("/") == ""
    assert clean_remote("docs") == "docs"
    assert clean_remote("/docs/") == "docs"
    assert clean_remote("//docs//readme.txt") == "docs/readme.txt"
    assert clean_remote("docs/./a/../readme.txt") == "docs/readme.txt"


def test_clean_remote_stays_below_root():
    assert clean_remote("..") == ""
    assert clean_remote("../../etc") == "etc"


def test_to_datetime():
    dt = to_datetime(0.0)

    assert dt == datetime.datetime(1970, 1, 1, tzinfo=datetime.timezone.utc)
    assert dt.tzinfo is not None
