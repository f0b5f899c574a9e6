"""Run the Prisma CLI with the engines it needs."""

from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Sequence

from . import binaries, platform
from .binaries import BinariesError

logger = logging.getLogger(__name__)


def build_env(directory: str) -> dict[str, str]:
    """Return the environment for the CLI, pointing every engine into directory."""
    env = dict(os.environ)
    env["PRISMA_HIDE_UPDATE_MESSAGE"] = "true"
    env["PRISMA_CLI_QUERY_ENGINE_TYPE"] = "binary"

    binary_name = platform.check_for_extension(platform.name(), platform.binary_platform_name())

    for engine in binaries.ENGINES:
        override = os.environ.get(engine.env, "")
        if override:
            logger.debug("overriding %s to %s", engine.name, override)
            env[engine.env] = override
        else:
            env[engine.env] = os.path.join(
                directory, binaries.ENGINE_VERSION, f"prisma-{engine.name}-{binary_name}"
            )

    return env


def run(arguments: Sequence[str], output: bool = False) -> None:
    """Run the Prisma CLI with the given arguments, fetching binaries first.

    With output set, the CLI writes to this process's stdout and stderr;
    otherwise its output is discarded.
    """
    arguments = list(arguments)
    logger.debug("running cli with args %s", arguments)

    directory = binaries.global_cache_dir()

    try:
        binaries.fetch_native(directory)
    except BinariesError as exc:
        raise BinariesError(f"could not fetch binaries: {exc}") from exc

    prisma = platform.check_for_extension(
        platform.name(), os.path.join(directory, binaries.prisma_cli_name())
    )
    logger.debug("running %s %s", prisma, arguments)

    stream = None if output else subprocess.DEVNULL
    try:
        completed = subprocess.run(
            [prisma, *arguments],
            env=build_env(directory),
            stdout=stream,
            stderr=stream,
            check=False,
        )
    except OSError as exc:
        raise RuntimeError(f"could not run {arguments}: {exc}") from exc

    if completed.returncode != 0:
        raise RuntimeError(f"could not run {arguments}: exit status {completed.returncode}")