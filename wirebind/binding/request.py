"""Request assembly for the marshalling driver."""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any
from urllib.parse import quote

from .types import OperationDescriptor, Placeholder

QueryParams = tuple[tuple[str, str | None], ...]


def render_query(params: QueryParams) -> str:
    """Form-encode parameters; None values render as bare keys."""
    parts = []
    for name, value in params:
        if value is None:
            parts.append(quote(name, safe=""))
        else:
            parts.append(f"{quote(name, safe='')}={quote(value, safe='')}")
    return "&".join(parts)


@dataclass(frozen=True, slots=True)
class Request:
    """A wire-ready request.

    Query parameters form an ordered multimap; a None value is a bare key
    taken from a static query literal in the URI template.
    """

    operation: str
    method: str
    path: str
    query: QueryParams
    headers: Mapping[str, str]
    body: bytes | None = None

    @property
    def query_string(self) -> str:
        return render_query(self.query)

    @property
    def uri(self) -> str:
        """Path plus query string."""
        query = self.query_string
        return f"{self.path}?{query}" if query else self.path

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def query_values(self, name: str) -> list[str | None]:
        return [value for key, value in self.query if key == name]

    def json(self) -> Any:
        """Decode a JSON body."""
        if self.body is None:
            return None
        return json.loads(self.body)


def _header_key(headers: Mapping[str, str], name: str) -> str | None:
    """Key under which `name` is stored, ignoring case."""
    lowered = name.lower()
    for key in headers:
        if key.lower() == lowered:
            return key
    return None


def _static_query(literal: str) -> list[tuple[str, str | None]]:
    params: list[tuple[str, str | None]] = []
    for part in literal.split("&"):
        if not part:
            continue
        name, sep, value = part.partition("=")
        params.append((name, value if sep else None))
    return params


class RequestBuilder:
    """Accumulates the parts of one request.

    Owned by a single marshalling call and finalized once with build().
    """

    def __init__(self, operation: OperationDescriptor) -> None:
        self.operation = operation
        self.method = operation.http_method
        self._template = operation.path_template
        self._placeholders: dict[str, Placeholder] = {p.name: p for p in operation.placeholders}
        self._path_values: dict[str, str] = {}
        self.query: list[tuple[str, str | None]] = _static_query(operation.static_query)
        self.headers: dict[str, str] = {}
        self.payload: dict[str, Any] = {}
        self._built = False

    def set_path_param(self, name: str, text: str) -> None:
        placeholder = self._placeholders.get(name)
        if placeholder is None:
            raise ValueError(f"Request URI {self._template} has no placeholder {{{name}}}")
        if not text:
            raise ValueError(f"Path label {name} must not be empty")
        safe = "/~" if placeholder.greedy else "~"
        self._path_values[name] = quote(text, safe=safe)

    def add_query_param(self, name: str, text: str) -> None:
        self.query.append((name, text))

    def set_header(self, name: str, text: str) -> None:
        existing = _header_key(self.headers, name)
        if existing is not None:
            del self.headers[existing]
        self.headers[name] = text

    def unresolved_placeholders(self) -> list[str]:
        return [name for name in self._placeholders if name not in self._path_values]

    def path(self) -> str:
        path = self._template
        for name, value in self._path_values.items():
            greedy = self._placeholders[name].greedy
            path = path.replace(f"{{{name}{'+' if greedy else ''}}}", value)
        return path

    def build(self, body: bytes | None, content_type: str | None = None) -> Request:
        """Finalize into an immutable Request."""
        if self._built:
            raise RuntimeError("Request has already been built")
        unresolved = self.unresolved_placeholders()
        if unresolved:
            raise ValueError(f"Unresolved path labels: {', '.join(unresolved)}")

        headers = dict(self.headers)
        if body is not None:
            if content_type is not None and _header_key(headers, "Content-Type") is None:
                headers["Content-Type"] = content_type
            length = _header_key(headers, "Content-Length")
            if length is not None:
                del headers[length]
            headers["Content-Length"] = str(len(body))

        self._built = True
        return Request(
            operation=self.operation.name,
            method=self.method,
            path=self.path(),
            query=tuple(self.query),
            headers=MappingProxyType(headers),
            body=body,
        )
