"""Write a bundled query engine binary into the global unpack directory."""

from __future__ import annotations

import logging
import os
import time

from . import binaries, platform

logger = logging.getLogger(__name__)


def unpack(data: bytes, name: str, version: str) -> str:
    """Write the engine bytes unless already unpacked; return the engine path."""
    started = time.monotonic()

    file_name = f"prisma-query-engine-{name}"
    temp_dir = binaries.global_unpack_dir(version)
    target = platform.check_for_extension(platform.name(), os.path.join(temp_dir, file_name))

    os.makedirs(temp_dir, exist_ok=True)

    if os.path.exists(target):
        logger.debug("query engine exists, not unpacking. %.3fs", time.monotonic() - started)
        return target

    with open(target, "wb") as handle:
        handle.write(data)
    os.chmod(target, 0o777)

    logger.debug("unpacked at %s in %.3fs", target, time.monotonic() - started)
    return target