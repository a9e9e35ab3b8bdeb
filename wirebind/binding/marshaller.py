"""Request marshalling driver.

Walks (value, binding) pairs in declaration order and writes each value
into the request part named by its binding. The operation's protocol only
decides the outer envelope (JSON body, XML document or form body) in
finish(); per-field dispatch is the same for every protocol.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

import xmltodict

from .codecs import DEFAULT_REGISTRY, WireTypeRegistry
from .config import DEFAULT_MARSHALLER_CONFIG, MarshallerConfig
from .request import Request, RequestBuilder, render_query
from .serialization import InvalidArgument, as_structured
from .types import (
    BindingDescriptor,
    OperationDescriptor,
    Protocol,
    ShapeDescriptor,
    WireKind,
    WireLocation,
    WireType,
)

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
AMZ_JSON_CONTENT_TYPE = "application/x-amz-json-{version}"
XML_CONTENT_TYPE = "application/xml"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded; charset=utf-8"
BINARY_CONTENT_TYPE = "application/octet-stream"
TEXT_CONTENT_TYPE = "text/plain"


class MarshallError(RuntimeError):
    """Raised when a field cannot be marshalled.

    `field` is the dotted wire path of the offending field (None when the
    failure is not tied to one field). The cause is chained.
    """

    def __init__(self, field: str | None, message: str) -> None:
        self.field = field
        if field:
            message = f"Unable to marshall {field}: {message}"
        super().__init__(message)


class _MapValue(dict):
    """JSON object built from a MAP binding (XML and form bodies treat it as entries)."""


def _scalar_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _xml_tree(value: Any) -> Any:
    if isinstance(value, _MapValue):
        return {
            "entry": [{"key": k, "value": _xml_tree(v)} for k, v in value.items() if v is not None]
        }
    if isinstance(value, dict):
        return {k: _xml_tree(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return {"member": [_xml_tree(v) for v in value if v is not None]}
    return _scalar_text(value)


def _flatten(prefix: str, value: Any, out: list[tuple[str, str | None]]) -> None:
    """Flatten a payload tree into Query protocol parameters."""
    if value is None:
        return
    if isinstance(value, _MapValue):
        for i, (key, item) in enumerate(value.items(), start=1):
            out.append((f"{prefix}.entry.{i}.key", key))
            _flatten(f"{prefix}.entry.{i}.value", item, out)
    elif isinstance(value, dict):
        for key, item in value.items():
            _flatten(f"{prefix}.{key}" if prefix else key, item, out)
    elif isinstance(value, list):
        if not value:
            out.append((prefix, ""))
        for i, item in enumerate(value, start=1):
            _flatten(f"{prefix}.member.{i}", item, out)
    else:
        out.append((prefix, _scalar_text(value)))


class RequestMarshaller:
    """Writes bound values into one request under construction.

    A marshaller is owned by a single marshall call. Structured values call
    back into marshall() from their marshall_self(), which is how nesting
    composes without this class knowing concrete shapes.
    """

    def __init__(
        self,
        operation: OperationDescriptor,
        *,
        registry: WireTypeRegistry = DEFAULT_REGISTRY,
        config: MarshallerConfig = DEFAULT_MARSHALLER_CONFIG,
    ) -> None:
        self.operation = operation
        self.registry = registry
        self.config = config
        self._builder = RequestBuilder(operation)
        self._targets: list[dict[str, Any]] = [self._builder.payload]
        self._names: list[str] = []
        self._explicit: tuple[Any, BindingDescriptor] | None = None
        self._finished = False

    @property
    def depth(self) -> int:
        """Nesting depth of the structure currently being written."""
        return len(self._targets) - 1

    def _field_path(self, binding: BindingDescriptor) -> str:
        return ".".join([*self._names, binding.name])

    def marshall(self, value: Any, binding: BindingDescriptor) -> None:
        """Write one bound value. Absent (None) values leave no trace.

        Raises:
            MarshallError: If the value cannot be encoded.
        """
        if self._finished:
            raise MarshallError(binding.name, "request has already been finished")

        if value is None:
            if binding.idempotency_token:
                value = self.config.idempotency_token_factory()
                logger.debug("Generated idempotency token for %s", self._field_path(binding))
            elif binding.required:
                raise MarshallError(self._field_path(binding), "required value is absent")
            else:
                return

        try:
            self._dispatch(value, binding)
        except MarshallError:
            raise
        except Exception as e:
            raise MarshallError(self._field_path(binding), str(e)) from e

    def _dispatch(self, value: Any, binding: BindingDescriptor) -> None:
        location = binding.location
        if self.depth > 0 and location != WireLocation.PAYLOAD:
            raise ValueError(f"{location} bindings are not allowed inside nested structures")

        if location == WireLocation.PATH_PARAM:
            text = self.registry.encode(value, binding.wire_type)
            self._builder.set_path_param(binding.name, text)
        elif location == WireLocation.QUERY_PARAM:
            self._marshall_query(value, binding)
        elif location == WireLocation.HEADER:
            self._marshall_header(value, binding)
        elif location == WireLocation.STATUS_CODE:
            logger.debug("Status code binding %s has no request representation", binding.name)
        elif binding.explicit_payload:
            if self.depth > 0:
                raise ValueError("explicit payload members are only allowed at the top level")
            self._explicit = (value, binding)
        else:
            encoded = self._json_value(value, binding.wire_type, binding.name)
            self._targets[-1][binding.name] = encoded

    def _marshall_query(self, value: Any, binding: BindingDescriptor) -> None:
        wire_type = binding.wire_type
        if wire_type.kind == WireKind.LIST:
            for item in self._items(value):
                if item is not None:
                    self._builder.add_query_param(binding.name, self._text(item, wire_type.element))
        elif wire_type.kind == WireKind.MAP:
            # Each map entry becomes its own parameter
            for key, item in value.items():
                if item is None:
                    continue
                if wire_type.element.kind == WireKind.LIST:
                    element_type = wire_type.element.element
                    for element in self._items(item):
                        self._builder.add_query_param(key, self._text(element, element_type))
                else:
                    self._builder.add_query_param(key, self._text(item, wire_type.element))
        else:
            self._builder.add_query_param(binding.name, self.registry.encode(value, wire_type))

    def _marshall_header(self, value: Any, binding: BindingDescriptor) -> None:
        wire_type = binding.wire_type
        if wire_type.kind == WireKind.LIST:
            separator = self.config.header_list_separator
            items = [
                self._header_item(self._text(v, wire_type.element))
                for v in self._items(value)
                if v is not None
            ]
            self._builder.set_header(binding.name, separator.join(items))
        elif wire_type.kind == WireKind.MAP:
            # Prefix headers: binding name + map key
            for key, item in value.items():
                if item is not None:
                    text = self._text(item, wire_type.element)
                    self._builder.set_header(binding.name + key, text)
        else:
            self._builder.set_header(binding.name, self.registry.encode(value, wire_type))

    def _header_item(self, text: str) -> str:
        if self.config.header_list_separator in text or '"' in text:
            escaped = text.replace("\\", "\\\\").replace('"', '\\"')
            return f'"{escaped}"'
        return text

    def _items(self, value: Any) -> Iterable[Any]:
        if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
            raise TypeError(f"Expected a list, got {type(value).__name__}")
        return value

    def _text(self, value: Any, wire_type: WireType | None) -> str:
        if wire_type is None or not wire_type.is_scalar:
            raise TypeError("only scalar elements can be bound outside the payload")
        return self.registry.encode(value, wire_type)

    def _json_value(self, value: Any, wire_type: WireType, name: str) -> Any:
        kind = wire_type.kind

        if kind == WireKind.STRUCTURED:
            structured = as_structured(value, wire_type.shape)
            obj: dict[str, Any] = {}
            self._targets.append(obj)
            self._names.append(name)
            try:
                structured.marshall_self(self)
            finally:
                self._targets.pop()
                self._names.pop()
            return obj

        if kind == WireKind.LIST:
            value = self._items(value)
            return [
                None if item is None else self._json_value(item, wire_type.element, f"{name}[{i}]")
                for i, item in enumerate(value)
            ]

        if kind == WireKind.MAP:
            if not isinstance(value, Mapping):
                raise TypeError(f"Expected a mapping, got {type(value).__name__}")
            result = _MapValue()
            for key, item in value.items():
                if not isinstance(key, str):
                    raise TypeError(f"Map keys must be strings, got {type(key).__name__}")
                if item is None:
                    result[key] = None
                else:
                    result[key] = self._json_value(item, wire_type.element, f"{name}.{key}")
            return result

        return self.registry.encode_json(value, wire_type)

    # Envelope

    def _explicit_body(self) -> tuple[bytes, str]:
        value, binding = self._explicit
        wire_type = binding.wire_type
        try:
            if wire_type.kind == WireKind.BLOB:
                if isinstance(value, str):
                    value = value.encode("utf-8")
                if not isinstance(value, (bytes, bytearray, memoryview)):
                    raise TypeError(f"Expected bytes, got {type(value).__name__}")
                return bytes(value), BINARY_CONTENT_TYPE
            if wire_type.kind == WireKind.STRING:
                return self.registry.encode(value, wire_type).encode("utf-8"), TEXT_CONTENT_TYPE
            tree = self._json_value(value, wire_type, binding.name)
        except MarshallError:
            raise
        except Exception as e:
            raise MarshallError(binding.name, str(e)) from e

        if self.operation.protocol == Protocol.REST_XML:
            root = binding.name
            return self._xml_document(root, tree), XML_CONTENT_TYPE
        return self._json_document(tree), JSON_CONTENT_TYPE

    def _json_document(self, tree: Any) -> bytes:
        return json.dumps(tree, separators=(",", ":"), allow_nan=False).encode("utf-8")

    def _xml_document(self, root: str, tree: dict[str, Any]) -> bytes:
        element = _xml_tree(tree)
        if self.config.xml_namespace:
            element = {"@xmlns": self.config.xml_namespace, **element}
        return xmltodict.unparse({root: element}).encode("utf-8")

    def _envelope(self) -> tuple[bytes | None, str | None]:
        operation = self.operation
        protocol = operation.protocol
        tree = self._builder.payload

        if self._explicit is not None:
            if tree:
                raise MarshallError(
                    self._explicit[1].name,
                    "explicit payload cannot be combined with other payload members",
                )
            return self._explicit_body()

        if protocol == Protocol.AWS_JSON:
            self._builder.set_header("X-Amz-Target", operation.operation_identifier)
            content_type = AMZ_JSON_CONTENT_TYPE.format(version=self.config.json_version)
            return self._json_document(tree), content_type

        if protocol == Protocol.QUERY:
            params: list[tuple[str, str | None]] = [
                ("Action", operation.operation_identifier),
                ("Version", operation.api_version),
            ]
            _flatten("", tree, params)
            return render_query(tuple(params)).encode("utf-8"), FORM_CONTENT_TYPE

        if protocol == Protocol.REST_XML:
            if not tree:
                return None, None
            root = operation.xml_root or f"{operation.name}Request"
            return self._xml_document(root, tree), XML_CONTENT_TYPE

        if tree:
            return self._json_document(tree), JSON_CONTENT_TYPE
        if operation.has_payload_members and self.config.empty_rest_json_body:
            return b"{}", JSON_CONTENT_TYPE
        return None, None

    def finish(self) -> Request:
        """Finalize the request. The marshaller cannot be used afterwards."""
        if self._finished:
            raise MarshallError(None, "request has already been finished")

        unresolved = self._builder.unresolved_placeholders()
        if unresolved:
            raise MarshallError(unresolved[0], "no value bound to path label")

        try:
            body, content_type = self._envelope()
        except MarshallError:
            raise
        except Exception as e:
            message = f"Unable to serialize {self.operation.protocol} body: {e}"
            raise MarshallError(None, message) from e

        request = self._builder.build(body, content_type)
        self._finished = True
        logger.debug(
            "Marshalled %s %s %s (%d body bytes)",
            self.operation.name,
            request.method,
            request.uri,
            len(body) if body is not None else 0,
        )
        return request


def marshall(
    bindings: Iterable[tuple[Any, BindingDescriptor]],
    operation: OperationDescriptor,
    *,
    registry: WireTypeRegistry = DEFAULT_REGISTRY,
    config: MarshallerConfig = DEFAULT_MARSHALLER_CONFIG,
) -> Request:
    """Marshall an ordered sequence of (value, binding) pairs into a request.

    Raises:
        InvalidArgument: If bindings or operation is None.
        MarshallError: If any field fails to encode.
    """
    if bindings is None or operation is None:
        raise InvalidArgument("Invalid argument passed to marshall(...)")

    logger.debug("Marshalling %s with %s", operation.name, operation.protocol)
    marshaller = RequestMarshaller(operation, registry=registry, config=config)
    for value, binding in bindings:
        marshaller.marshall(value, binding)
    return marshaller.finish()


def marshall_shape(
    value: Any,
    shape: ShapeDescriptor,
    operation: OperationDescriptor,
    *,
    registry: WireTypeRegistry = DEFAULT_REGISTRY,
    config: MarshallerConfig = DEFAULT_MARSHALLER_CONFIG,
) -> Request:
    """Marshall a typed request object (Structured instance or mapping).

    Raises:
        InvalidArgument: If value is None.
        MarshallError: If any field fails to encode.
    """
    if value is None or shape is None or operation is None:
        raise InvalidArgument("Invalid argument passed to marshall(...)")

    try:
        structured = as_structured(value, shape)
    except TypeError as e:
        raise MarshallError(None, str(e)) from e

    logger.debug("Marshalling %s as %s with %s", shape.name, operation.name, operation.protocol)
    marshaller = RequestMarshaller(operation, registry=registry, config=config)
    structured.marshall_self(marshaller)
    return marshaller.finish()
