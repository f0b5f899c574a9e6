import gzip
import os
import re
import stat
import tempfile

import pytest
import responses

from prisma_runtime import binaries, platform

PAYLOAD = b"\x7fELF fake engine binary"


@pytest.fixture
def mock():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as requests_mock:
        yield requests_mock


def _mock_all(mock, status=200, body=None):
    mock.add(
        responses.GET,
        re.compile(r".*"),
        body=gzip.compress(PAYLOAD) if body is None else body,
        status=status,
    )


def test_fetch(tmp_path, mock):
    _mock_all(mock)
    binaries.fetch_native(str(tmp_path))

    cli = tmp_path / platform.check_for_extension(platform.name(), binaries.prisma_cli_name())
    assert cli.read_bytes() == PAYLOAD
    for engine in binaries.ENGINES:
        path = binaries.get_engine_path(str(tmp_path), engine.name, platform.binary_platform_name())
        assert open(path, "rb").read() == PAYLOAD
    assert len(mock.calls) == 1 + len(binaries.ENGINES)


def test_fetch_with_cache(tmp_path, mock):
    _mock_all(mock)
    binaries.fetch_native(str(tmp_path))
    first = len(mock.calls)

    binaries.fetch_native(str(tmp_path))
    path = binaries.download_engine("query-engine", str(tmp_path))
    assert open(path, "rb").read() == PAYLOAD
    assert len(mock.calls) == first


def test_fetch_relative_dir():
    with pytest.raises(binaries.BinariesError) as info:
        binaries.fetch_native(".")
    assert str(info.value) == "toDir must be absolute"


def test_fetch_empty_dir():
    with pytest.raises(binaries.BinariesError) as info:
        binaries.fetch_native("")
    assert str(info.value) == "toDir must be provided"


def test_download_http_error(tmp_path, mock):
    _mock_all(mock, status=404, body=b"missing")
    with pytest.raises(binaries.BinariesError) as info:
        binaries.download("https://example.com/file.gz", str(tmp_path / "file"))
    assert "received code 404" in str(info.value)
    assert not (tmp_path / "file").exists()


def test_download_not_gzip(tmp_path, mock):
    _mock_all(mock, body=b"plain text, not gzip")
    with pytest.raises(binaries.BinariesError):
        binaries.download("https://example.com/file.gz", str(tmp_path / "file"))
    assert not (tmp_path / "file").exists()


def test_download_creates_parent_dirs(tmp_path, mock):
    _mock_all(mock)
    target = tmp_path / "a" / "b" / "engine"
    binaries.download("https://example.com/file.gz", str(target))
    assert target.read_bytes() == PAYLOAD
    assert stat.S_IMODE(target.stat().st_mode) & stat.S_IXUSR == stat.S_IXUSR


def test_fetch_engine_uses_musl_for_linux(tmp_path, mock):
    _mock_all(mock)
    binaries.fetch_engine(str(tmp_path), "query-engine", "linux")
    assert mock.calls[0].request.url.endswith("/linux-musl/query-engine.gz")
    path = binaries.get_engine_path(str(tmp_path), "query-engine", "linux")
    assert open(path, "rb").read() == PAYLOAD


def test_fetch_engine_cached(tmp_path, mock):
    path = binaries.get_engine_path(str(tmp_path), "query-engine", "darwin")
    os.makedirs(os.path.dirname(path))
    with open(path, "wb") as handle:
        handle.write(b"cached")
    binaries.fetch_engine(str(tmp_path), "query-engine", "darwin")
    assert len(mock.calls) == 0
    assert open(path, "rb").read() == b"cached"


def test_download_engine_returns_path(tmp_path, mock):
    _mock_all(mock)
    path = binaries.download_engine("prisma-fmt", str(tmp_path))
    assert path == binaries.get_engine_path(str(tmp_path), "prisma-fmt", platform.binary_platform_name())
    assert open(path, "rb").read() == PAYLOAD


def test_get_engine_path():
    path = binaries.get_engine_path("/x", "query-engine", "darwin")
    assert path == f"/x/{binaries.ENGINE_VERSION}/prisma-query-engine-darwin"


def test_get_engine_path_windows():
    path = binaries.get_engine_path("/x", "query-engine", "windows")
    assert path.endswith("prisma-query-engine-windows.exe")


def test_prisma_cli_name():
    cli = binaries.prisma_cli_name()
    assert cli.startswith("prisma-cli-")
    assert cli.endswith(platform.name())


def test_global_dirs(monkeypatch, tmp_path):
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    temp = binaries.global_temp_dir("1.2.3")
    assert temp == str(tmp_path / "prisma" / "binaries" / "engines" / "1.2.3")
    assert binaries.global_unpack_dir("1.2.3") == os.path.join(temp, "unpacked", "v2")


def test_global_cache_dir():
    cache = binaries.global_cache_dir()
    assert cache.endswith(os.path.join("prisma", "binaries", "cli", binaries.PRISMA_VERSION))
    assert os.path.isabs(cache)