import pytest

from lnxvfs.utils import SingleOrShared, align_down, align_up, create_file


@pytest.mark.parametrize(
    ("value", "align", "expected"),
    [(0, 4, 0), (1, 4, 4), (2, 4, 4), (3, 4, 4), (4, 4, 4), (4096, 4096, 4096)],
)
def test_align_up(value, align, expected):
    assert align_up(value, align) == expected


@pytest.mark.parametrize(
    ("value", "align", "expected"),
    [(0, 4, 0), (1, 4, 0), (4, 4, 4), (5, 4, 4)],
)
def test_align_down(value, align, expected):
    assert align_down(value, align) == expected


def test_single_or_shared():
    single = SingleOrShared(123)
    assert not single.is_shared
    shared1 = single.share()
    shared2 = single.share()
    assert single.is_shared
    assert shared1 == shared2
    assert shared1 is shared2


def test_single_or_shared_shares_same_object():
    payload = [1, 2, 3]
    holder = SingleOrShared(payload)
    assert holder.share() is payload
    assert holder.share() is payload


def test_single_or_shared_none_variant_raises():
    single = SingleOrShared()
    with pytest.raises(RuntimeError, match="variant should never be hit"):
        single.share()


def test_create_file_helper(tmp_path):
    fp = tmp_path / "test1"
    with create_file(fp, True) as f:
        f.write(b"abc")
    assert fp.read_bytes() == b"abc"

    with pytest.raises(FileExistsError):
        create_file(fp, False)

    with create_file(fp, True) as f:
        f.seek(0)
        assert f.read() == b"abc"


def test_create_file_new_is_read_write(tmp_path):
    fp = tmp_path / "fresh"
    with create_file(fp, False) as f:
        f.write(b"hello")
        f.seek(0)
        assert f.read() == b"hello"
    assert fp.exists()