"""Detect the host platform and pick the matching engine binary name."""

from __future__ import annotations

import functools
import re
import subprocess
import sys

_ID_PATTERN = re.compile(r'^ID="?([^"\n]*)"?', re.MULTILINE)
_ID_LIKE_PATTERN = re.compile(r'^ID_LIKE="?([^"\n]*)"?', re.MULTILINE)
_OPENSSL_PATTERN = re.compile(r"^OpenSSL\s(\d+\.\d+)\.\d+")

_OS_RELEASE = "/etc/os-release"


def name() -> str:
    """Return the operating system name: "linux", "darwin", "windows", ..."""
    if sys.platform.startswith("win"):
        return "windows"
    if sys.platform.startswith("linux"):
        return "linux"
    if sys.platform.startswith("freebsd"):
        return "freebsd"
    return sys.platform


@functools.lru_cache(maxsize=None)
def binary_platform_name() -> str:
    """Return the engine platform name, e.g. "darwin" or "debian-openssl-1.1.x"."""
    platform = name()
    if platform != "linux":
        return platform

    distro = _linux_distro()
    if distro == "alpine":
        return "linux-musl"

    return f"{distro}-openssl-{_openssl_version()}"


def check_for_extension(platform: str, path: str) -> str:
    """Add the .exe extension on windows (".gz" becomes ".exe.gz")."""
    if platform != "windows":
        return path
    if ".gz" in path:
        return path.replace(".gz", ".exe.gz", 1)
    return path + ".exe"


def _linux_distro() -> str:
    try:
        with open(_OS_RELEASE, encoding="utf-8", errors="replace") as handle:
            content = handle.read()
    except OSError:
        return "debian"
    return parse_linux_distro(content)


def parse_linux_distro(text: str) -> str:
    """Map the contents of /etc/os-release to "alpine", "rhel" or "debian"."""
    id_match = _ID_PATTERN.search(text)
    id_like_match = _ID_LIKE_PATTERN.search(text)
    distro_id = id_match.group(1) if id_match else ""
    id_like = id_like_match.group(1) if id_like_match else ""

    if distro_id == "alpine":
        return "alpine"

    if any(family in id_like for family in ("centos", "fedora", "rhel")) or distro_id == "fedora":
        return "rhel"

    # debian-like systems and anything unknown both resolve to debian
    return "debian"


def _openssl_version() -> str:
    try:
        completed = subprocess.run(
            ["openssl", "version", "-v"],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            check=False,
        )
    except OSError:
        return ""
    return parse_openssl_version(completed.stdout.decode("utf-8", errors="replace"))


def parse_openssl_version(text: str) -> str:
    """Return the OpenSSL version without the patch level, e.g. "1.1.x"."""
    match = _OPENSSL_PATTERN.match(text)
    if match:
        return match.group(1) + ".x"
    return "1.1.x"