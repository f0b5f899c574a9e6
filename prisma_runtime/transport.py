"""Raw HTTP requests to an engine and free port lookup."""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import Callable

import requests

from .protocol import EngineError

logger = logging.getLogger(__name__)


class SchemaNotFoundError(EngineError):
    """Raised on a 404 response: the remote side does not know the schema."""

    def __init__(self, message: str = "not found; re-upload schema") -> None:
        super().__init__(message)


def request(
    session: requests.Session,
    method: str,
    url: str,
    payload: bytes,
    apply: Callable[[requests.Request], None] | None = None,
) -> bytes:
    """Send payload to url and return the response body.

    apply may adjust the request (headers and the like) before it is sent.
    """
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug("prisma engine payload: `%s`", payload)

    prepared_request = requests.Request(method, url, data=payload)
    if apply is not None:
        apply(prepared_request)

    started = time.monotonic()
    try:
        response = session.send(session.prepare_request(prepared_request))
    except requests.RequestException as exc:
        raise EngineError(f"raw post: {exc}") from exc

    with response:
        request_duration = time.monotonic() - started
        logger.debug("[timing] query engine raw request took %.6fs", request_duration)

        try:
            body = response.content
        except requests.RequestException as exc:
            raise EngineError(f"raw read: {exc}") from exc

        if response.status_code == 404:
            logger.debug("status not found with response body %s", body)
            raise SchemaNotFoundError()

        if response.status_code not in (200, 201):
            raise EngineError(
                f"http status code {response.status_code} with response "
                f"{body.decode('utf-8', errors='replace')}"
            )

        if logger.isEnabledFor(logging.DEBUG):
            _log_elapsed(response.headers.get("X-Elapsed"), request_duration)

    return body


def _log_elapsed(elapsed_raw: str | None, request_duration: float) -> None:
    if not elapsed_raw:
        return
    try:
        elapsed = int(elapsed_raw) / 1_000_000
    except ValueError:
        elapsed = 0.0
    logger.debug("[timing] elapsed: %.6fs", elapsed)
    diff = request_duration - elapsed
    logger.debug("[timing] just http: %.6fs", diff)
    if request_duration > 0:
        logger.debug("[timing] http percentage: %.2f%%", diff / request_duration * 100)


def get_port() -> str:
    """Return a currently free TCP port on localhost, as a string."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.bind(("localhost", 0))
        port = listener.getsockname()[1]
    return str(port)