"""Wire types of the query engine protocol and the engine interface."""

from __future__ import annotations

import abc
import json
from dataclasses import dataclass, field
from typing import Any

INTERNAL_UPDATE_NOT_FOUND_MESSAGE = (
    "Error occurred during query execution:\n"
    "InterpretationError(\"Error for binding '0'\", "
    "Some(QueryGraphBuilderError(RecordNotFound(\"Record to update not found.\"))))"
)
INTERNAL_DELETE_NOT_FOUND_MESSAGE = (
    "Error occurred during query execution:\n"
    "InterpretationError(\"Error for binding '0'\", "
    "Some(QueryGraphBuilderError(RecordNotFound(\"Record to delete does not exist.\"))))"
)

_NOT_FOUND_MESSAGES = frozenset(
    {INTERNAL_UPDATE_NOT_FOUND_MESSAGE, INTERNAL_DELETE_NOT_FOUND_MESSAGE}
)


class EngineError(Exception):
    """Raised when talking to an engine fails."""


class RecordNotFoundError(EngineError):
    """Raised when the record to update or delete does not exist."""

    def __init__(self, message: str = "ErrNotFound") -> None:
        super().__init__(message)


@dataclass
class GQLError:
    """An error reported by the engine; it names the message field "error"."""

    message: str = ""
    path: list[str] = field(default_factory=list)
    extensions: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> GQLError:
        if not isinstance(raw, dict):
            raise EngineError(f"json unmarshal: expected an error object, got {raw!r}")
        return cls(
            message=raw.get("error") or "",
            path=list(raw.get("path") or []),
            extensions=raw.get("query"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "path": self.path, "query": self.extensions}

    def __str__(self) -> str:
        return self.message


def _parse_errors(raw: Any) -> list[GQLError] | None:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise EngineError(f"json unmarshal: expected a list of errors, got {raw!r}")
    return [GQLError.from_dict(item) for item in raw]


@dataclass
class GQLResponse:
    """A single GraphQL response; errors is None when the engine sent none."""

    data: dict[str, Any] = field(default_factory=dict)
    errors: list[GQLError] | None = None
    extensions: dict[str, Any] | None = None

    @property
    def result(self) -> Any:
        return self.data.get("result")

    @classmethod
    def from_dict(cls, raw: Any) -> GQLResponse:
        if not isinstance(raw, dict):
            raise EngineError(f"json unmarshal: expected a response object, got {raw!r}")
        data = raw.get("data")
        if data is not None and not isinstance(data, dict):
            raise EngineError(f"json unmarshal: expected a data object, got {data!r}")
        return cls(
            data=data or {},
            errors=_parse_errors(raw.get("errors")),
            extensions=raw.get("extensions"),
        )


@dataclass
class GQLBatchResponse:
    """The response to a batch request."""

    errors: list[GQLError] | None = None
    result: list[GQLResponse] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: Any) -> GQLBatchResponse:
        if not isinstance(raw, dict):
            raise EngineError(f"json unmarshal: expected a response object, got {raw!r}")
        return cls(
            errors=_parse_errors(raw.get("errors")),
            result=[GQLResponse.from_dict(item) for item in raw.get("batchResult") or []],
        )


@dataclass
class GQLRequest:
    """The payload of one GraphQL query."""

    query: str
    variables: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"query": self.query, "variables": self.variables}


@dataclass
class GQLBatchRequest:
    """The payload of several GraphQL queries sent together."""

    batch: list[GQLRequest] = field(default_factory=list)
    transaction: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch": [item.to_dict() for item in self.batch],
            "transaction": self.transaction,
        }


def parse_response(body: bytes | str) -> GQLResponse:
    """Decode a raw engine response body."""
    try:
        raw = json.loads(body)
    except ValueError as exc:
        raise EngineError(f"json unmarshal: {exc}") from exc
    return GQLResponse.from_dict(raw)


def result_or_raise(body: bytes | str) -> Any:
    """Return the result of a response body, raising on engine errors."""
    response = parse_response(body)

    if response.errors:
        first = response.errors[0]
        if first.message in _NOT_FOUND_MESSAGES:
            raise RecordNotFoundError()
        raise EngineError(f"pql error: {first.message}")

    if "result" not in response.data:
        raise EngineError("json unmarshal: response has no result")
    return response.result


class Engine(abc.ABC):
    """An engine that executes queries."""

    @abc.abstractmethod
    def connect(self) -> None:
        """Make the engine ready to accept queries."""

    @abc.abstractmethod
    def disconnect(self) -> None:
        """Release the engine."""

    @abc.abstractmethod
    def do(self, payload: Any) -> Any:
        """Send one query and return its result."""

    @abc.abstractmethod
    def batch(self, payload: Any) -> Any:
        """Send a batch of queries and return the decoded response."""

    @abc.abstractmethod
    def name(self) -> str:
        """Return the engine's name."""