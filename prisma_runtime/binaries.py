"""Locate, download and cache the Prisma CLI and engine binaries."""

from __future__ import annotations

import logging
import os
import tempfile
import time
import zlib
from dataclasses import dataclass
from pathlib import Path

import platformdirs
import requests

from . import platform

logger = logging.getLogger(__name__)

PRISMA_VERSION = "3.7.0"
ENGINE_VERSION = "8746e055198f517658c08a0c426c7eec87f5a85f"

# Both URL templates can be overridden through the environment as a fallback.
PRISMA_URL = os.environ.get(
    "PRISMA_CLI_URL", "https://prisma-photongo.s3-eu-west-1.amazonaws.com/%s-%s-%s.gz"
)
ENGINE_URL = os.environ.get("PRISMA_ENGINE_URL", "https://binaries.prisma.sh/all_commits/%s/%s/%s.gz")

_BASE_DIR = os.path.join("prisma", "binaries")
_CHUNK_SIZE = 64 * 1024


class BinariesError(Exception):
    """Raised when a binary cannot be located or downloaded."""


@dataclass(frozen=True)
class Engine:
    """An engine binary and the environment variable that overrides its path."""

    name: str
    env: str


ENGINES = (
    Engine("query-engine", "PRISMA_QUERY_ENGINE_BINARY"),
    Engine("migration-engine", "PRISMA_MIGRATION_ENGINE_BINARY"),
    Engine("introspection-engine", "PRISMA_INTROSPECTION_ENGINE_BINARY"),
    Engine("prisma-fmt", "PRISMA_FMT_BINARY"),
)


def prisma_cli_name() -> str:
    """Return the file name of the CLI binary for this platform."""
    return f"prisma-cli-{platform.name()}"


def global_temp_dir(version: str) -> str:
    """Return the directory in the global temp dir where engines live."""
    temp = tempfile.gettempdir()
    logger.debug("temp dir: %s", temp)
    return os.path.join(temp, _BASE_DIR, "engines", version)


def global_unpack_dir(version: str) -> str:
    """Return the directory where bundled engines are unpacked."""
    return os.path.join(global_temp_dir(version), "unpacked", "v2")


def global_cache_dir() -> str:
    """Return the user cache directory where the CLI lives."""
    cache = platformdirs.user_cache_dir()
    logger.debug("global cache dir: %s", cache)
    return os.path.join(cache, _BASE_DIR, "cli", PRISMA_VERSION)


def get_engine_path(directory: str, engine: str, binary_name: str) -> str:
    """Return the local path of an engine binary for the given platform."""
    return platform.check_for_extension(
        binary_name, os.path.join(directory, ENGINE_VERSION, f"prisma-{engine}-{binary_name}")
    )


def fetch_engine(to_dir: str, engine_name: str, binary_platform_name: str) -> None:
    """Download one engine for an explicit platform unless it is cached."""
    logger.debug("checking %s...", engine_name)

    to = get_engine_path(to_dir, engine_name, binary_platform_name)
    remote_name = "linux-musl" if binary_platform_name == "linux" else binary_platform_name
    url = platform.check_for_extension(
        binary_platform_name, ENGINE_URL % (ENGINE_VERSION, remote_name, engine_name)
    )
    logger.debug("download url %s", url)

    if os.path.exists(to):
        logger.debug("%s is cached", to)
        return

    logger.debug("%s is missing, downloading...", engine_name)
    try:
        download(url, to)
    except BinariesError as exc:
        raise BinariesError(f"could not download {url} to {to}: {exc}") from exc
    logger.debug("%s done", engine_name)


def fetch_native(to_dir: str) -> None:
    """Fetch the CLI and all engines needed for the generator into to_dir."""
    if not to_dir:
        raise BinariesError("toDir must be provided")
    if not os.path.isabs(to_dir):
        raise BinariesError("toDir must be absolute")

    try:
        download_cli(to_dir)
        for engine in ENGINES:
            download_engine(engine.name, to_dir)
    except BinariesError as exc:
        raise BinariesError(f"could not download engines: {exc}") from exc


def download_cli(to_dir: str) -> None:
    """Download the CLI binary into to_dir unless it is cached."""
    os_name = platform.name()
    cli = prisma_cli_name()
    to = platform.check_for_extension(os_name, os.path.join(to_dir, cli))
    url = platform.check_for_extension(os_name, PRISMA_URL % ("prisma-cli", PRISMA_VERSION, os_name))

    logger.debug("ensuring CLI %s from %s to %s", cli, url, to)

    if os.path.exists(to):
        logger.debug("prisma cli is cached")
        return

    logger.info("prisma cli doesn't exist, fetching... (this might take a few minutes)")
    try:
        download(url, to)
    except BinariesError as exc:
        raise BinariesError(f"could not download {url} to {to}: {exc}") from exc
    logger.info("prisma cli fetched successfully.")


def download_engine(name: str, to_dir: str) -> str:
    """Download an engine for this platform unless cached; return its path."""
    binary_name = platform.binary_platform_name()
    logger.debug("checking %s...", name)

    to = get_engine_path(to_dir, name, binary_name)
    url = platform.check_for_extension(binary_name, ENGINE_URL % (ENGINE_VERSION, binary_name, name))
    logger.debug("download url %s", url)

    if os.path.exists(to):
        logger.debug("%s is cached", to)
        return to

    logger.debug("%s is missing, downloading...", name)
    started = time.monotonic()
    try:
        download(url, to)
    except BinariesError as exc:
        raise BinariesError(f"could not download {url} to {to}: {exc}") from exc
    logger.debug("download() took %.3fs", time.monotonic() - started)
    logger.debug("%s done", name)
    return to


def download(url: str, to: str) -> None:
    """Download a gzip-compressed file, decompress it and store it executable at to."""
    target = Path(to)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise BinariesError(f"could not run MkdirAll on path {to}: {exc}") from exc

    # write to a temp file first so a broken download never looks cached
    dest = target.with_name(target.name + ".tmp")

    try:
        response = requests.get(url, stream=True, timeout=(30, 300))
    except requests.RequestException as exc:
        raise BinariesError(f"could not get {url}: {exc}") from exc

    with response:
        if response.status_code != 200:
            raise BinariesError(f"received code {response.status_code} from {url}: {response.text}")

        decompressor = zlib.decompressobj(16 + zlib.MAX_WBITS)
        try:
            with open(dest, "wb") as out:
                os.chmod(dest, 0o777)
                for chunk in response.iter_content(_CHUNK_SIZE):
                    out.write(decompressor.decompress(chunk))
                out.write(decompressor.flush())
        except zlib.error as exc:
            raise BinariesError(f"could not copy {url}: {exc}") from exc
        except (OSError, requests.RequestException) as exc:
            raise BinariesError(f"could not copy {url}: {exc}") from exc

        if not decompressor.eof:
            raise BinariesError("could not create gzip reader: unexpected EOF")

    try:
        os.replace(dest, target)
        os.chmod(target, 0o777)
    except OSError as exc:
        raise BinariesError(f"copy temp file: {exc}") from exc