"""Typed extraction of query-string and JSON-body parameters."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, List, Optional, Sequence, TypeVar

from werkzeug.datastructures import MultiDict

from .errors import RequestError
from .schemas import Validator, Verdict

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Decoder = Callable[[Any], Any]

_UNPARSED = object()


def identity(value: T) -> T:
    return value


def decode_json(value: Any) -> Any:
    """Decode a JSON-stringified field; already-decoded values pass through."""
    if isinstance(value, (str, bytes, bytearray)):
        return json.loads(value)
    return value


class RequestParameters:
    """Query and body accessors for a single request.

    The body is parsed lazily, at most once, the first time a body field is
    requested.
    """

    def __init__(self, query: Optional[MultiDict] = None, body: bytes = b"") -> None:
        self.query = query if query is not None else MultiDict()
        self._raw_body = body
        self._body: Any = _UNPARSED

    def require_string(self, name: str) -> str:
        value = self.query.get(name)
        if not value:
            raise RequestError.missing_parameter(name)
        return value

    def optional_enum(self, name: str, default: str, allowed: Sequence[str]) -> str:
        value = self.query.get(name) or default
        if value not in allowed:
            raise RequestError.invalid_parameter(name)
        return value

    def optional_array(self, name: str, decode: Decoder, validate: Validator) -> List[Any]:
        return [self._checked(name, raw, decode, validate) for raw in self.query.getlist(name)]

    def require_body_field(self, name: str, decode: Decoder, validate: Validator) -> Any:
        body = self._parsed_body()
        if name not in body:
            raise RequestError.missing_parameter(name)
        return self._checked(name, body[name], decode, validate)

    def _parsed_body(self) -> dict:
        if self._body is _UNPARSED:
            try:
                self._body = json.loads(self._raw_body or b"")
            except (ValueError, RecursionError):
                self._body = None
        if not isinstance(self._body, dict):
            raise RequestError.malformed_request_body()
        return self._body

    @staticmethod
    def _checked(name: str, raw: Any, decode: Decoder, validate: Validator) -> Any:
        try:
            value = decode(raw)
        except (TypeError, ValueError, RecursionError) as exc:
            LOGGER.debug("Parameter %s failed to decode: %s", name, exc)
            raise RequestError.invalid_parameter(name) from exc
        verdict: Verdict = validate(value)
        if not verdict.valid:
            LOGGER.debug("Parameter %s rejected: %s", name, verdict.reason)
            raise RequestError.invalid_parameter(name)
        return value
