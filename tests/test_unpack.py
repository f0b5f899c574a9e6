import os
import stat
import tempfile

import pytest

from prisma_runtime import binaries, platform
from prisma_runtime.unpack import unpack


@pytest.fixture
def temp_root(monkeypatch, tmp_path):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


def test_unpack_writes_data(temp_root):
    path = unpack(b"engine-bytes", "darwin", "v1")
    with open(path, "rb") as handle:
        assert handle.read() == b"engine-bytes"


def test_unpack_location(temp_root):
    path = unpack(b"x", "debian-openssl-1.1.x", "v1")
    assert os.path.dirname(path) == binaries.global_unpack_dir("v1")
    expected_name = platform.check_for_extension(
        platform.name(), "prisma-query-engine-debian-openssl-1.1.x"
    )
    assert os.path.basename(path) == expected_name
    assert path.startswith(str(temp_root))


def test_unpack_does_not_overwrite(temp_root):
    first = unpack(b"first", "darwin", "v1")
    second = unpack(b"second", "darwin", "v1")
    assert first == second
    with open(second, "rb") as handle:
        assert handle.read() == b"first"


def test_unpack_is_executable(temp_root):
    path = unpack(b"x", "darwin", "v2")
    assert stat.S_IMODE(os.stat(path).st_mode) & stat.S_IXUSR == stat.S_IXUSR


def test_unpack_versions_are_separate(temp_root):
    a = unpack(b"a", "darwin", "v1")
    b = unpack(b"b", "darwin", "v2")
    assert a != b
    with open(b, "rb") as handle:
        assert handle.read() == b"b"