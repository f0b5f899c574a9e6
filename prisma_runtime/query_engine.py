"""The local query engine: find the binary, run it and send it queries."""

from __future__ import annotations

import json
import logging
import os
import signal
import subprocess
import time
from collections.abc import Callable
from typing import Any

import requests
from dotenv import load_dotenv

from . import binaries, platform, transport
from .protocol import Engine, EngineError, parse_response, result_or_raise

logger = logging.getLogger(__name__)

_ENGINE_PREFIX = "prisma-query-engine-"
_ENV_FILES = ("e2e.env", os.path.join("db", "e2e.env"), os.path.join("prisma", "e2e.env"))


def _encode(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class QueryEngine(Engine):
    """Runs the query engine binary as a child process and talks to it over HTTP."""

    readiness_attempts = 100
    retry_delay = 0.1
    parse_retry_delay = 0.05

    def __init__(self, schema: str, has_binary_targets: bool = False) -> None:
        self.schema = schema
        # set by generated code when binaryTargets were given, so binaries are expected locally
        self.has_binary_targets = has_binary_targets
        self.session = requests.Session()
        self.url = ""
        self.process: subprocess.Popen[bytes] | None = None
        self.disconnected = False

    def name(self) -> str:
        return "query-engine"

    def replace_schema(self, replace: Callable[[str], str]) -> None:
        """Replace the schema with what replace returns for it (deprecated)."""
        self.schema = replace(self.schema)

    # -- queries ---------------------------------------------------------

    def do(self, payload: Any) -> Any:
        """Send one query and return its result."""
        started = time.monotonic()
        try:
            body = self.request("POST", "/", payload)
        except EngineError as exc:
            raise EngineError(f"request failed: {exc}") from exc
        logger.debug("[timing] query engine request took %.6fs", time.monotonic() - started)

        started = time.monotonic()
        result = result_or_raise(body)
        logger.debug("[timing] request unmarshaling took %.6fs", time.monotonic() - started)
        return result

    def batch(self, payload: Any) -> Any:
        """Send a batch of queries and return the decoded response."""
        try:
            body = self.request("POST", "/", payload)
        except EngineError as exc:
            raise EngineError(f"request failed: {exc}") from exc
        try:
            return json.loads(body)
        except ValueError as exc:
            raise EngineError(f"json unmarshal: {exc}") from exc

    def request(self, method: str, path: str, payload: Any) -> bytes:
        """Send payload as JSON to the engine and return the raw response body."""
        if self.disconnected:
            logger.info(
                "A query was executed after Disconnect() was called. "
                "Make sure to not send any queries after disconnecting the client."
            )
            raise EngineError("client is disconnected")

        try:
            request_body = json.dumps(payload, default=_encode).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EngineError(f"payload marshal: {exc}") from exc

        def set_content_type(req: requests.Request) -> None:
            req.headers["content-type"] = "application/json"

        return transport.request(self.session, method, self.url + path, request_body, set_content_type)

    # -- lifecycle -------------------------------------------------------

    def connect(self) -> None:
        """Find the engine binary, start it and wait until it answers."""
        logger.debug("ensure query engine binary...")
        for env_file in _ENV_FILES:
            load_dotenv(env_file)

        started = time.monotonic()
        try:
            file = self.ensure()
        except EngineError as exc:
            raise EngineError(f"ensure: {exc}") from exc

        try:
            self.spawn(file)
        except EngineError as exc:
            raise EngineError(f"spawn: {exc}") from exc

        logger.debug("connecting took %.3fs", time.monotonic() - started)
        logger.debug("connected.")

    def disconnect(self) -> None:
        """Stop the engine process; later queries are refused."""
        self.disconnected = True
        logger.debug("disconnecting...")

        if self.process is None:
            raise EngineError("engine is not running")

        if platform.name() == "windows":
            try:
                self.process.kill()
            except OSError as exc:
                raise EngineError(f"kill process: {exc}") from exc
            return

        try:
            self.process.send_signal(signal.SIGINT)
        except OSError as exc:
            raise EngineError(f"send signal: {exc}") from exc

        returncode = self.process.wait()
        if returncode not in (0, -signal.SIGINT):
            raise EngineError(f"wait for process: exit status {returncode}")

        logger.debug("disconnected.")

    def ensure(self) -> str:
        """Return the path of a query engine binary of the expected version."""
        started = time.monotonic()

        binaries_path = binaries.global_unpack_dir(binaries.ENGINE_VERSION)
        os_name = platform.name()
        binary_name = platform.check_for_extension(os_name, os_name)
        exact_binary_name = platform.check_for_extension(os_name, platform.binary_platform_name())

        local_path = os.path.join(".", _ENGINE_PREFIX + binary_name)
        local_exact_path = os.path.join(".", _ENGINE_PREFIX + exact_binary_name)
        global_path = os.path.join(binaries_path, _ENGINE_PREFIX + binary_name)
        global_exact_path = os.path.join(binaries_path, _ENGINE_PREFIX + exact_binary_name)

        logger.debug("expecting local query engine `%s` or `%s`", local_path, local_exact_path)
        logger.debug("expecting global query engine `%s` or `%s`", global_path, global_exact_path)

        file = ""
        # a custom engine given through the environment skips the version check
        force_version = True

        override = os.environ.get("PRISMA_QUERY_ENGINE_BINARY", "")
        if override:
            logger.debug("PRISMA_QUERY_ENGINE_BINARY is defined, using %s", override)
            if not os.path.exists(override):
                raise EngineError(
                    "PRISMA_QUERY_ENGINE_BINARY was provided, "
                    f"but no query engine was found at {override}"
                )
            file = override
            force_version = False

        if os.path.exists(local_exact_path):
            logger.debug("exact query engine found in working directory")
            file = local_exact_path
        elif os.path.exists(local_path):
            logger.debug("query engine found in working directory")
            file = local_path

        if os.path.exists(global_exact_path):
            logger.debug("exact query engine found in global path")
            file = global_exact_path
        elif os.path.exists(global_path):
            logger.debug("query engine found in global path")
            file = global_path

        if not file:
            raise EngineError("no binary found ")

        version_started = time.monotonic()
        try:
            completed = subprocess.run([file, "--version"], stdout=subprocess.PIPE, check=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise EngineError(f"version check failed: {exc}") from exc
        logger.debug("version check took %.3fs", time.monotonic() - version_started)

        output = completed.stdout.decode("utf-8", errors="replace")
        version = output.replace("query-engine", "", 1).strip()
        if version != binaries.ENGINE_VERSION:
            message = (
                f"expected query engine version `{binaries.ENGINE_VERSION}` but got `{version}`\n"
                "Did you forget to run `go run github.com/prisma/prisma-client-go generate`?"
            )
            if force_version:
                raise EngineError(message)
            logger.info("%s, ignoring since custom query engine was provided", message)

        logger.debug("using query engine at %s", file)
        logger.debug("ensure query engine took %.3fs", time.monotonic() - started)
        return file

    def spawn(self, file: str) -> None:
        """Start the engine binary on a free port and wait until it is ready."""
        try:
            port = transport.get_port()
        except OSError as exc:
            raise EngineError(f"get free port: {exc}") from exc

        logger.debug("running query-engine on port %s", port)
        self.url = f"http://localhost:{port}"

        env = dict(os.environ)
        env.update(
            {
                "PRISMA_DML": self.schema,
                "RUST_LOG": "error",
                "RUST_LOG_FORMAT": "json",
                "PRISMA_CLIENT_ENGINE_TYPE": "binary",
            }
        )
        if logger.isEnabledFor(logging.DEBUG):
            env["PRISMA_LOG_QUERIES"] = "y"
            env["RUST_LOG"] = "info"

        logger.debug("starting engine...")
        try:
            self.process = subprocess.Popen([file, "-p", port, "--enable-raw-queries"], env=env)
        except OSError as exc:
            raise EngineError(f"start command: {exc}") from exc

        logger.debug("connecting to engine...")
        self._wait_until_ready()

    def _wait_until_ready(self) -> None:
        connect_error: Exception | None = None
        gql_errors = None

        for _ in range(self.readiness_attempts):
            try:
                body = self.request("GET", "/status", {})
            except EngineError as exc:
                connect_error = exc
                logger.debug("could not connect; retrying...")
                time.sleep(self.retry_delay)
                continue

            try:
                response = parse_response(body)
            except EngineError as exc:
                connect_error = exc
                logger.debug("could not unmarshal response; retrying...")
                time.sleep(self.parse_retry_delay)
                continue

            if response.errors is not None:
                gql_errors = response.errors
                logger.debug("could not connect due to gql errors; retrying...")
                time.sleep(self.parse_retry_delay)
                continue

            connect_error = None
            gql_errors = None
            break

        if connect_error is not None:
            raise EngineError(f"readiness query error: {connect_error}") from connect_error
        if gql_errors is not None:
            raise EngineError(f"readiness gql errors: {[str(error) for error in gql_errors]}")