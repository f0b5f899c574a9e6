"""An engine that sends queries to a remote data proxy instead of a local binary."""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import posixpath
import time
from typing import Any
from urllib.parse import parse_qs, urlsplit

import requests

from . import binaries, transport
from .protocol import Engine, EngineError, result_or_raise
from .transport import SchemaNotFoundError

logger = logging.getLogger(__name__)


def _encode(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_schema(schema: str) -> str:
    """Return the schema, followed by a newline, encoded as standard base64."""
    return base64.b64encode((schema + "\n").encode("utf-8")).decode("ascii")


def hash_schema(schema: str) -> str:
    """Return the hex SHA-256 of the base64-encoded schema."""
    return hashlib.sha256(encode_schema(schema).encode("ascii")).hexdigest()


def get_cloud_uri(host: str, schema_hash: str) -> str:
    """Return the remote base URI for a schema hash on the given host."""
    return "https://" + posixpath.normpath(posixpath.join(host, binaries.PRISMA_VERSION, schema_hash))


class DataProxyEngine(Engine):
    """Sends queries over HTTPS to a data proxy, uploading the schema as needed."""

    def __init__(self, schema: str, connection_url: str) -> None:
        self.schema = schema
        # the datasource url; the api key is taken from it
        self.connection_url = connection_url
        self.session = requests.Session()
        self.url = ""
        self.api_key = ""

    def name(self) -> str:
        return "data-proxy"

    def connect(self) -> None:
        """Read the api key from the connection string and upload the schema."""
        schema_hash = hash_schema(self.schema)
        logger.debug("local schema hash %s", schema_hash)
        logger.debug("parsing connection string from database url %s", self.connection_url)

        try:
            parts = urlsplit(self.connection_url)
            host = parts.netloc
        except ValueError as exc:
            raise EngineError(f"parse prisma string: {exc}") from exc

        self.api_key = parse_qs(parts.query, keep_blank_values=True).get("api_key", [""])[0]
        if not self.api_key:
            raise EngineError("could not parse api key from data proxy prisma connection string")

        self.url = get_cloud_uri(host, schema_hash)
        logger.debug("using %s as remote URI", self.url)

        try:
            self.upload_schema()
        except EngineError as exc:
            raise EngineError(f"upload schema: {exc}") from exc

    def upload_schema(self) -> str:
        """Upload the encoded schema; return the schema hash the remote side reports."""
        logger.debug("uploading schema...")
        try:
            body = self._request("PUT", "/schema", encode_schema(self.schema).encode("ascii"))
        except EngineError as exc:
            raise EngineError(f"put schema: {exc}") from exc
        logger.debug("schema upload response: %s", body)

        try:
            response = json.loads(body)
        except ValueError as exc:
            raise EngineError(f"schema response err: {exc}") from exc
        if not isinstance(response, dict):
            raise EngineError(f"schema response err: expected an object, got {response!r}")

        remote_hash = response.get("schemaHash") or ""
        logger.debug("remote schema hash %s", remote_hash)
        logger.debug("schema upload done.")
        return remote_hash

    def disconnect(self) -> None:
        """Nothing to release: the proxy holds no local resources."""

    def do(self, payload: Any) -> Any:
        """Send one query and return its result."""
        started = time.monotonic()
        data = self._marshal(payload)
        try:
            body = self._retryable_request("POST", "/graphql", data)
        except EngineError as exc:
            raise EngineError(f"request failed: {exc}") from exc
        logger.debug("[timing] query engine request took %.6fs", time.monotonic() - started)

        started = time.monotonic()
        result = result_or_raise(body)
        logger.debug("[timing] request unmarshal took %.6fs", time.monotonic() - started)
        return result

    def batch(self, payload: Any) -> Any:
        """Send a batch of queries and return the decoded response."""
        data = self._marshal(payload)
        try:
            body = self._retryable_request("POST", "/graphql", data)
        except EngineError as exc:
            raise EngineError(f"request failed: {exc}") from exc
        try:
            return json.loads(body)
        except ValueError as exc:
            raise EngineError(f"json unmarshal: {exc}") from exc

    @staticmethod
    def _marshal(payload: Any) -> bytes:
        try:
            return json.dumps(payload, default=_encode).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EngineError(f"payload marshal: {exc}") from exc

    def _request(self, method: str, path: str, payload: bytes) -> bytes:
        logger.debug("requesting %s", self.url + path)

        def authorize(req: requests.Request) -> None:
            req.headers["Authorization"] = f"Bearer {self.api_key}"

        return transport.request(self.session, method, self.url + path, payload, authorize)

    def _retryable_request(self, method: str, path: str, payload: bytes) -> bytes:
        try:
            return self._request(method, path, payload)
        except SchemaNotFoundError:
            logger.debug("got status not found in data proxy request; re-uploading schema")
        try:
            self.upload_schema()
        except EngineError as exc:
            raise EngineError(f"upload schema after 400 request: {exc}") from exc
        logger.debug("schema re-upload succeeded")
        return self._request(method, path, payload)