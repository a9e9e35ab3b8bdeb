"""Runtime descriptors for wire bindings.

These frozen dataclasses describe where each field of a shape lives on the
wire and how it is encoded. They are built once (at import time or when a
catalog is loaded) and shared by every marshall/unmarshall call.
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any


class WireLocation(StrEnum):
    """Where a bound field lives on a request or response."""

    PAYLOAD = "payload"
    QUERY_PARAM = "query"
    HEADER = "header"
    PATH_PARAM = "path"
    STATUS_CODE = "status"


class WireKind(StrEnum):
    """Wire type tags understood by the codec registry."""

    STRING = "string"
    INTEGER = "integer"
    LONG = "long"
    DOUBLE = "double"
    BOOLEAN = "boolean"
    DATE = "timestamp"
    BLOB = "blob"
    LIST = "list"
    MAP = "map"
    STRUCTURED = "structure"


class TimestampFormat(StrEnum):
    """Date encodings. Always explicit per binding, never inferred."""

    ISO8601 = "iso8601"
    UNIX_SECONDS = "unix"
    UNIX_MILLIS = "unix_millis"
    RFC822 = "rfc822"


class Protocol(StrEnum):
    """Outer envelope rules applied by the marshalling driver."""

    REST_JSON = "rest-json"
    REST_XML = "rest-xml"
    AWS_JSON = "aws-json"
    QUERY = "query"


SCALAR_KINDS = frozenset(
    [
        WireKind.STRING,
        WireKind.INTEGER,
        WireKind.LONG,
        WireKind.DOUBLE,
        WireKind.BOOLEAN,
        WireKind.DATE,
        WireKind.BLOB,
    ]
)


@dataclass(frozen=True, slots=True)
class WireType:
    """Describes the wire encoding of a value.

    - DATE carries its timestamp_format.
    - LIST carries the element type, MAP the value type (keys are strings).
    - STRUCTURED carries a shape source: a ShapeDescriptor, a Structured
      subclass, or a zero-argument callable returning a ShapeDescriptor.
      Callables allow recursive and forward-referenced shapes.
    """

    kind: WireKind
    timestamp_format: TimestampFormat | None = None
    element: "WireType | None" = None
    shape_source: Any = None

    def __post_init__(self) -> None:
        if self.kind == WireKind.DATE and self.timestamp_format is None:
            raise ValueError("timestamp wire type requires an explicit format")
        if self.kind in (WireKind.LIST, WireKind.MAP) and self.element is None:
            raise ValueError(f"{self.kind} wire type requires an element type")
        if self.kind == WireKind.STRUCTURED and self.shape_source is None:
            raise ValueError("structure wire type requires a shape")

    @property
    def is_scalar(self) -> bool:
        return self.kind in SCALAR_KINDS

    @property
    def shape(self) -> "ShapeDescriptor":
        """The resolved shape of a STRUCTURED wire type."""
        return resolve_shape(self.shape_source)

    def __str__(self) -> str:
        if self.kind == WireKind.DATE:
            return f"timestamp({self.timestamp_format})"
        if self.kind in (WireKind.LIST, WireKind.MAP):
            return f"{self.kind}<{self.element}>"
        if self.kind == WireKind.STRUCTURED:
            return self.shape.name
        return str(self.kind)


STRING = WireType(WireKind.STRING)
INTEGER = WireType(WireKind.INTEGER)
LONG = WireType(WireKind.LONG)
DOUBLE = WireType(WireKind.DOUBLE)
BOOLEAN = WireType(WireKind.BOOLEAN)
BLOB = WireType(WireKind.BLOB)


def date(timestamp_format: TimestampFormat | str) -> WireType:
    """Date wire type with an explicit format."""
    return WireType(WireKind.DATE, timestamp_format=TimestampFormat(timestamp_format))


def list_of(element: WireType) -> WireType:
    return WireType(WireKind.LIST, element=element)


def map_of(value: WireType) -> WireType:
    return WireType(WireKind.MAP, element=value)


def structure(shape_source: Any) -> WireType:
    return WireType(WireKind.STRUCTURED, shape_source=shape_source)


# Locations that carry wire text rather than a document
_TEXT_LOCATIONS = frozenset(
    [WireLocation.PATH_PARAM, WireLocation.QUERY_PARAM, WireLocation.HEADER]
)


@dataclass(frozen=True, slots=True)
class BindingDescriptor:
    """Describes where a single field lives on the wire.

    Args:
        location: Request/response part holding the value.
        name: Wire name (JSON key, query parameter, header, path label).
        wire_type: Encoding of the value.
        required: Absent values fail marshalling instead of being skipped.
        idempotency_token: Absent values are filled with a fresh token.
        explicit_payload: The value is the entire request/response body.
        greedy: Path label that may span several segments (`{Key+}`).
    """

    location: WireLocation
    name: str
    wire_type: WireType
    required: bool = False
    idempotency_token: bool = False
    explicit_payload: bool = False
    greedy: bool = False

    def __post_init__(self) -> None:
        kind = self.wire_type.kind
        if self.location in _TEXT_LOCATIONS and kind == WireKind.STRUCTURED:
            raise ValueError(f"{self.name}: structures cannot be bound to {self.location}")
        if self.location == WireLocation.PATH_PARAM and not self.wire_type.is_scalar:
            raise ValueError(f"{self.name}: path labels must be scalars")
        if self.location == WireLocation.STATUS_CODE and kind != WireKind.INTEGER:
            raise ValueError(f"{self.name}: status code must be an integer")
        if self.greedy and self.location != WireLocation.PATH_PARAM:
            raise ValueError(f"{self.name}: only path labels can be greedy")
        if self.explicit_payload and self.location != WireLocation.PAYLOAD:
            raise ValueError(f"{self.name}: explicit payload must be bound to the payload")
        if self.idempotency_token and kind != WireKind.STRING:
            raise ValueError(f"{self.name}: idempotency tokens must be strings")


@dataclass(frozen=True, slots=True)
class FieldBinding:
    """Associates a member (attribute or mapping key) with its binding."""

    member: str
    binding: BindingDescriptor


def _index_payload(fields: tuple[FieldBinding, ...]) -> Mapping[str, FieldBinding]:
    index: dict[str, FieldBinding] = {}
    for fb in fields:
        if fb.binding.location != WireLocation.PAYLOAD or fb.binding.explicit_payload:
            continue
        if fb.binding.name in index:
            raise ValueError(f"Duplicate payload name {fb.binding.name}")
        index[fb.binding.name] = fb
    return MappingProxyType(index)


@dataclass(frozen=True, slots=True)
class ShapeDescriptor:
    """The binding table of a shape.

    Fields are kept in declaration order; marshalling visits them in that
    order. `factory` builds the parsed value from member keyword arguments.
    """

    name: str
    fields: tuple[FieldBinding, ...]
    factory: Callable[..., Any] = field(default=dict, compare=False)
    _payload_index: Mapping[str, FieldBinding] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        members = [fb.member for fb in self.fields]
        if len(set(members)) != len(members):
            raise ValueError(f"{self.name} declares a member twice")
        explicit = [fb for fb in self.fields if fb.binding.explicit_payload]
        if len(explicit) > 1:
            raise ValueError(f"{self.name} has more than one explicit payload member")
        object.__setattr__(self, "_payload_index", _index_payload(self.fields))

    def payload_field(self, wire_name: str) -> FieldBinding | None:
        """Look up a payload binding by its exact wire name."""
        return self._payload_index.get(wire_name)

    def fields_at(self, location: WireLocation) -> tuple[FieldBinding, ...]:
        return tuple(fb for fb in self.fields if fb.binding.location == location)

    @property
    def explicit_payload_field(self) -> FieldBinding | None:
        for fb in self.fields:
            if fb.binding.explicit_payload:
                return fb
        return None

    @property
    def has_payload_members(self) -> bool:
        return any(fb.binding.location == WireLocation.PAYLOAD for fb in self.fields)


def resolve_shape(source: Any) -> ShapeDescriptor:
    """Resolve a STRUCTURED wire type's shape source to a descriptor."""
    if isinstance(source, ShapeDescriptor):
        return source
    if isinstance(source, type) and hasattr(source, "shape"):
        shape = source.shape()
    elif callable(source):
        shape = source()
    else:
        raise TypeError(f"Cannot resolve shape from {source!r}")

    if not isinstance(shape, ShapeDescriptor):
        raise TypeError(f"Shape source {source!r} did not produce a ShapeDescriptor")
    return shape


_PLACEHOLDER = re.compile(r"\{([^{}+]+)(\+?)\}")


@dataclass(frozen=True, slots=True)
class Placeholder:
    """A `{name}` or greedy `{name+}` label in a request URI template."""

    name: str
    greedy: bool


@dataclass(frozen=True, slots=True)
class OperationDescriptor:
    """Describes one API operation and the protocol used to envelope it."""

    name: str
    protocol: Protocol
    request_uri: str = "/"
    http_method: str = "POST"
    operation_identifier: str | None = None
    has_payload_members: bool = True
    has_explicit_payload_member: bool = False
    service_name: str | None = None
    api_version: str | None = None
    xml_root: str | None = None

    def __post_init__(self) -> None:
        if not self.request_uri.startswith("/"):
            raise ValueError(f"{self.name}: request URI must start with '/'")
        if self.protocol in (Protocol.AWS_JSON, Protocol.QUERY) and not self.operation_identifier:
            raise ValueError(f"{self.name}: {self.protocol} requires an operation identifier")
        if self.protocol == Protocol.QUERY and not self.api_version:
            raise ValueError(f"{self.name}: query protocol requires an API version")

    @property
    def path_template(self) -> str:
        return self.request_uri.partition("?")[0]

    @property
    def static_query(self) -> str:
        return self.request_uri.partition("?")[2]

    @property
    def placeholders(self) -> tuple[Placeholder, ...]:
        return tuple(
            Placeholder(name=m.group(1), greedy=bool(m.group(2)))
            for m in _PLACEHOLDER.finditer(self.path_template)
        )
