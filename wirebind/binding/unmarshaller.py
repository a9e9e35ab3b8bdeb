"""Response parsing driver.

Rebuilds typed values from a token stream by recursive descent. Each call
frame stands for one state of the parse: expecting a value start, inside
an object (reading field names), inside an array (reading elements), or
expecting a scalar. Unknown field names are skipped together with their
whole value, so newer service responses keep parsing.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .codecs import DEFAULT_REGISTRY, WireTypeRegistry
from .config import DEFAULT_UNMARSHALLER_CONFIG, UnmarshallerConfig
from .serialization import InvalidArgument
from .tokens import (
    ParseError,
    Token,
    TokenKind,
    TokenStream,
    json_tokens,
)
from .types import ShapeDescriptor, WireKind, WireLocation, WireType

logger = logging.getLogger(__name__)

# Token kinds each scalar wire kind accepts
_ACCEPTED_TOKENS = {
    WireKind.STRING: frozenset([TokenKind.VALUE_STRING]),
    WireKind.INTEGER: frozenset([TokenKind.VALUE_NUMBER]),
    WireKind.LONG: frozenset([TokenKind.VALUE_NUMBER]),
    WireKind.DOUBLE: frozenset([TokenKind.VALUE_NUMBER, TokenKind.VALUE_STRING]),
    WireKind.BOOLEAN: frozenset([TokenKind.VALUE_TRUE, TokenKind.VALUE_FALSE]),
    WireKind.DATE: frozenset([TokenKind.VALUE_NUMBER, TokenKind.VALUE_STRING]),
    WireKind.BLOB: frozenset([TokenKind.VALUE_STRING]),
}


def _as_stream(tokens: TokenStream | Iterable[Token] | str | bytes) -> TokenStream:
    if isinstance(tokens, TokenStream):
        return tokens
    if isinstance(tokens, (str, bytes, bytearray)):
        return TokenStream(json_tokens(tokens))
    return TokenStream(tokens)


class ResponseUnmarshaller:
    """Parses one token stream. Owned by a single unmarshall call."""

    def __init__(
        self,
        tokens: TokenStream | Iterable[Token],
        *,
        registry: WireTypeRegistry = DEFAULT_REGISTRY,
        config: UnmarshallerConfig = DEFAULT_UNMARSHALLER_CONFIG,
    ) -> None:
        self.tokens = _as_stream(tokens)
        self.registry = registry
        self.config = config
        self.skipped_fields = 0
        self._depth = 0

    def _enter(self) -> None:
        self._depth += 1
        if self._depth > self.config.max_depth:
            raise ParseError(f"Nesting exceeds {self.config.max_depth} levels")

    def _leave(self) -> None:
        self._depth -= 1

    def read_shape(self, shape: ShapeDescriptor) -> Any:
        """Read one object (or null) as an instance of `shape`."""
        token = self.tokens.next()
        if token.kind == TokenKind.VALUE_NULL:
            return None
        return self._read_object(token, shape)

    def _read_object(self, start: Token, shape: ShapeDescriptor) -> Any:
        if start.kind != TokenKind.START_OBJECT:
            raise ParseError(f"Expected start-object for {shape.name} but found {start.kind}")

        self._enter()
        values: dict[str, Any] = {}
        while True:
            token = self.tokens.next()
            if token.kind == TokenKind.END_OBJECT:
                break
            if token.kind != TokenKind.FIELD_NAME:
                raise ParseError(f"Expected field name in {shape.name} but found {token.kind}")

            fb = shape.payload_field(token.value)
            if fb is None:
                logger.debug("Skipping unknown field %s in %s", token.value, shape.name)
                self.skip_value()
                self.skipped_fields += 1
                continue

            try:
                value = self.read_value(fb.binding.wire_type)
            except ParseError as e:
                raise ParseError(f"{shape.name}.{fb.binding.name}: {e}") from e
            if value is not None:
                values[fb.member] = value
        self._leave()

        return shape.factory(**values)

    def read_value(self, wire_type: WireType) -> Any:
        """Read the next value according to `wire_type`. null reads as None."""
        token = self.tokens.next()
        if token.kind == TokenKind.VALUE_NULL:
            return None

        kind = wire_type.kind
        if kind == WireKind.STRUCTURED:
            return self._read_object(token, wire_type.shape)
        if kind == WireKind.LIST:
            return self._read_list(token, wire_type.element)
        if kind == WireKind.MAP:
            return self._read_map(token, wire_type.element)

        accepted = _ACCEPTED_TOKENS.get(kind)
        if not token.is_scalar or (accepted is not None and token.kind not in accepted):
            raise ParseError(f"Expected {kind} value but found {token.kind}")
        return self.registry.decode(token.value, wire_type)

    def _read_list(self, start: Token, element: WireType) -> list[Any]:
        if start.kind != TokenKind.START_ARRAY:
            raise ParseError(f"Expected start-array but found {start.kind}")

        self._enter()
        items = []
        while True:
            token = self.tokens.peek()
            if token is not None and token.kind == TokenKind.END_ARRAY:
                self.tokens.next()
                break
            items.append(self.read_value(element))
        self._leave()
        return items

    def _read_map(self, start: Token, value_type: WireType) -> dict[str, Any]:
        if start.kind != TokenKind.START_OBJECT:
            raise ParseError(f"Expected start-object for map but found {start.kind}")

        self._enter()
        entries: dict[str, Any] = {}
        while True:
            token = self.tokens.next()
            if token.kind == TokenKind.END_OBJECT:
                break
            if token.kind != TokenKind.FIELD_NAME:
                raise ParseError(f"Expected map key but found {token.kind}")
            entries[token.value] = self.read_value(value_type)
        self._leave()
        return entries

    def skip_value(self) -> None:
        """Consume one value: a scalar or a whole nested object/array."""
        token = self.tokens.next()
        if token.is_scalar:
            return
        if token.kind not in (TokenKind.START_OBJECT, TokenKind.START_ARRAY):
            raise ParseError(f"Expected a value but found {token.kind}")

        depth = 1
        while depth:
            token = self.tokens.next()
            if token.kind in (TokenKind.START_OBJECT, TokenKind.START_ARRAY):
                depth += 1
            elif token.kind in (TokenKind.END_OBJECT, TokenKind.END_ARRAY):
                depth -= 1

    def read_shape_list(self, shape: ShapeDescriptor) -> list[Any]:
        token = self.tokens.next()
        if token.kind != TokenKind.START_ARRAY:
            raise ParseError(f"Expected start-array but found {token.kind}")

        self._enter()
        items = []
        while True:
            token = self.tokens.next()
            if token.kind == TokenKind.END_ARRAY:
                break
            if token.kind == TokenKind.VALUE_NULL:
                items.append(None)
            else:
                items.append(self._read_object(token, shape))
        self._leave()
        return items

    def expect_end(self) -> None:
        """Fail if tokens remain after the top-level value."""
        extra = self.tokens.peek()
        if extra is not None:
            raise ParseError(f"Unexpected {extra.kind} after end of value")


def unmarshall(
    tokens: TokenStream | Iterable[Token],
    shape: ShapeDescriptor,
    *,
    registry: WireTypeRegistry = DEFAULT_REGISTRY,
    config: UnmarshallerConfig = DEFAULT_UNMARSHALLER_CONFIG,
) -> Any:
    """Parse one `shape` value from a token stream.

    Raises:
        InvalidArgument: If tokens or shape is None.
        ParseError: If the stream is malformed, truncated or mistyped.
    """
    if tokens is None or shape is None:
        raise InvalidArgument("Invalid argument passed to unmarshall(...)")

    parser = ResponseUnmarshaller(tokens, registry=registry, config=config)
    result = parser.read_shape(shape)
    parser.expect_end()
    logger.debug(
        "Unmarshalled %s from %d tokens (%d unknown fields skipped)",
        shape.name,
        parser.tokens.consumed,
        parser.skipped_fields,
    )
    return result


def unmarshall_list(
    tokens: TokenStream | Iterable[Token],
    shape: ShapeDescriptor,
    *,
    registry: WireTypeRegistry = DEFAULT_REGISTRY,
    config: UnmarshallerConfig = DEFAULT_UNMARSHALLER_CONFIG,
) -> list[Any]:
    """Parse a JSON array of `shape` values from a token stream."""
    if tokens is None or shape is None:
        raise InvalidArgument("Invalid argument passed to unmarshall(...)")

    parser = ResponseUnmarshaller(tokens, registry=registry, config=config)
    result = parser.read_shape_list(shape)
    parser.expect_end()
    logger.debug("Unmarshalled %d %s values", len(result), shape.name)
    return result


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """The parts of a transport response the parsing driver reads."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


def split_header_list(text: str, separator: str = ",") -> list[str]:
    """Split a list-valued header, honouring double-quoted items."""
    items: list[str] = []
    current: list[str] = []
    quoted = False
    escaped = False
    for ch in text:
        if escaped:
            current.append(ch)
            escaped = False
        elif quoted and ch == "\\":
            escaped = True
        elif ch == '"':
            quoted = not quoted
        elif ch == separator and not quoted:
            items.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    if quoted:
        raise ParseError(f"Unterminated quoted header item in {text!r}")
    items.append("".join(current).strip())
    return items


def _header_value(
    response: HttpResponse, name: str, wire_type: WireType, parser: ResponseUnmarshaller
) -> Any:
    registry = parser.registry
    if wire_type.kind == WireKind.MAP:
        prefix = name.lower()
        return {
            key[len(prefix):]: registry.decode(value, wire_type.element)
            for key, value in response.headers.items()
            if key.lower().startswith(prefix)
        } or None

    text = response.header(name)
    if text is None:
        return None
    if wire_type.kind == WireKind.LIST:
        items = split_header_list(text, parser.config.header_list_separator)
        return [registry.decode(item, wire_type.element) for item in items]
    return registry.decode(text, wire_type)


def unmarshall_response(
    response: HttpResponse,
    shape: ShapeDescriptor,
    *,
    registry: WireTypeRegistry = DEFAULT_REGISTRY,
    config: UnmarshallerConfig = DEFAULT_UNMARSHALLER_CONFIG,
) -> Any:
    """Parse a whole response: headers, status code and JSON body.

    Raises:
        InvalidArgument: If response or shape is None.
        ParseError: If any part cannot be decoded.
    """
    if response is None or shape is None:
        raise InvalidArgument("Invalid argument passed to unmarshall(...)")

    parser = ResponseUnmarshaller((), registry=registry, config=config)
    values: dict[str, Any] = {}

    for fb in shape.fields:
        binding = fb.binding
        try:
            if binding.location == WireLocation.HEADER:
                value = _header_value(response, binding.name, binding.wire_type, parser)
            elif binding.location == WireLocation.STATUS_CODE:
                value = response.status_code
            else:
                continue
        except ParseError as e:
            raise ParseError(f"{shape.name}.{binding.name}: {e}") from e
        if value is not None:
            values[fb.member] = value

    explicit = shape.explicit_payload_field
    if explicit is not None:
        kind = explicit.binding.wire_type.kind
        if kind == WireKind.BLOB:
            values[explicit.member] = bytes(response.body)
        elif kind == WireKind.STRING:
            try:
                values[explicit.member] = response.body.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ParseError(f"{shape.name}.{explicit.binding.name}: {e}") from e
        elif response.body.strip():
            parser = ResponseUnmarshaller(
                json_tokens(response.body), registry=registry, config=config
            )
            value = parser.read_value(explicit.binding.wire_type)
            parser.expect_end()
            if value is not None:
                values[explicit.member] = value
    elif shape.has_payload_members and response.body.strip():
        body = unmarshall(json_tokens(response.body), shape, registry=registry, config=config)
        for fb in shape.fields if body is not None else ():
            if fb.binding.location == WireLocation.PAYLOAD:
                if isinstance(body, Mapping):
                    value = body.get(fb.member)
                else:
                    value = getattr(body, fb.member)
                if value is not None:
                    values[fb.member] = value

    return shape.factory(**values)
