"""Turns parsed catalogs into engine descriptors."""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

import pydantic

from wirebind.binding import (
    BLOB,
    BOOLEAN,
    DOUBLE,
    INTEGER,
    LONG,
    STRING,
    BindingDescriptor,
    FieldBinding,
    HttpResponse,
    MarshallerConfig,
    OperationDescriptor,
    Protocol,
    Request,
    ShapeDescriptor,
    ShapeValue,
    UnmarshallerConfig,
    WireLocation,
    WireType,
    date,
    list_of,
    map_of,
    marshall_shape,
    structure,
    unmarshall_response,
)

from .parser import ValidationError
from .types import Catalog, CatalogMember, CatalogService, CatalogShape, CatalogType

logger = logging.getLogger(__name__)

_SCALARS = {
    "string": STRING,
    "integer": INTEGER,
    "long": LONG,
    "double": DOUBLE,
    "boolean": BOOLEAN,
    "blob": BLOB,
}

_LOCATIONS = {
    "payload": WireLocation.PAYLOAD,
    "query": WireLocation.QUERY_PARAM,
    "header": WireLocation.HEADER,
    "path": WireLocation.PATH_PARAM,
    "path_greedy": WireLocation.PATH_PARAM,
    "status": WireLocation.STATUS_CODE,
}


@dataclass(frozen=True, slots=True)
class ServiceModel:
    """Immutable binding tables of one service."""

    name: str
    protocol: Protocol
    api_version: str | None
    shapes: Mapping[str, ShapeDescriptor]
    operations: Mapping[str, OperationDescriptor]
    inputs: Mapping[str, str]
    outputs: Mapping[str, str]
    marshaller_config: MarshallerConfig
    unmarshaller_config: UnmarshallerConfig

    def shape(self, name: str) -> ShapeDescriptor:
        try:
            return self.shapes[name]
        except KeyError:
            raise KeyError(f"Unknown shape {name}") from None

    def operation(self, name: str) -> OperationDescriptor:
        try:
            return self.operations[name]
        except KeyError:
            raise KeyError(f"Unknown operation {name}") from None

    def input_shape(self, operation: str) -> ShapeDescriptor | None:
        name = self.inputs.get(self.operation(operation).name)
        return self.shapes[name] if name else None

    def output_shape(self, operation: str) -> ShapeDescriptor | None:
        name = self.outputs.get(self.operation(operation).name)
        return self.shapes[name] if name else None

    def marshall(self, operation: str, values: Mapping[str, Any] | None = None) -> Request:
        """Marshall member values into a request for `operation`."""
        descriptor = self.operation(operation)
        shape = self.input_shape(operation) or ShapeDescriptor(f"{operation}Input", ())
        return marshall_shape(
            ShapeValue(shape, values or {}), shape, descriptor, config=self.marshaller_config
        )

    def unmarshall(self, operation: str, response: HttpResponse) -> Any:
        """Parse a response of `operation` into a dict of member values."""
        shape = self.output_shape(operation)
        if shape is None:
            return {}
        return unmarshall_response(response, shape, config=self.unmarshaller_config)


def _shape_ref(shapes: Mapping[str, ShapeDescriptor], name: str) -> Callable[[], ShapeDescriptor]:
    # Resolved on use so shapes may refer to themselves or to later shapes
    return lambda: shapes[name]


def _wire_type(t: CatalogType, shapes: Mapping[str, ShapeDescriptor]) -> WireType:
    if t.name in _SCALARS:
        return _SCALARS[t.name]
    if t.name == "timestamp":
        return date(t.format)
    if t.name == "list":
        return list_of(_wire_type(t.element, shapes))
    if t.name == "map":
        return map_of(_wire_type(t.element, shapes))
    return structure(_shape_ref(shapes, t.name))


def _binding(member: CatalogMember, shapes: Mapping[str, ShapeDescriptor]) -> BindingDescriptor:
    location = next((a for a in member.annotations if a.name in _LOCATIONS), None)
    flags = {a.name for a in member.annotations}
    name = member.name
    if location is not None and location.argument is not None:
        name = location.argument

    return BindingDescriptor(
        location=_LOCATIONS[location.name] if location else WireLocation.PAYLOAD,
        name=name,
        wire_type=_wire_type(member.type, shapes),
        required="required" in flags,
        idempotency_token="idempotency" in flags,
        explicit_payload="explicit" in flags,
        greedy=location is not None and location.name == "path_greedy",
    )


def _shape(shape: CatalogShape, shapes: Mapping[str, ShapeDescriptor]) -> ShapeDescriptor:
    fields = []
    for member in shape.members:
        try:
            binding = _binding(member, shapes)
        except ValueError as e:
            raise ValidationError(f"{shape.name}.{member.name}: {e}") from e
        fields.append(FieldBinding(member.name, binding))
    try:
        return ShapeDescriptor(name=shape.name, fields=tuple(fields))
    except ValueError as e:
        raise ValidationError(str(e)) from e


def _options(service: CatalogService, *names: str) -> dict[str, Any]:
    return {name: service.option(name) for name in names if service.option(name) is not None}


def build_model(catalog: Catalog) -> ServiceModel:
    """Build the immutable service model of a parsed catalog."""
    service = catalog.service
    protocol = Protocol(service.option("protocol"))
    api_version = service.option("version")

    shapes: dict[str, ShapeDescriptor] = {}
    for shape in catalog.shapes:
        shapes[shape.name] = _shape(shape, shapes)

    operations: dict[str, OperationDescriptor] = {}
    inputs: dict[str, str] = {}
    outputs: dict[str, str] = {}
    for op in catalog.operations:
        input_shape = shapes[op.input] if op.input else None
        identifier = op.target
        if identifier is None and protocol == Protocol.QUERY:
            identifier = op.name

        try:
            operations[op.name] = OperationDescriptor(
                name=op.name,
                protocol=protocol,
                request_uri=op.uri,
                http_method=op.method,
                operation_identifier=identifier,
                has_payload_members=input_shape is not None and input_shape.has_payload_members,
                has_explicit_payload_member=(
                    input_shape is not None and input_shape.explicit_payload_field is not None
                ),
                service_name=service.name,
                api_version=api_version,
                xml_root=op.root,
            )
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if op.input:
            inputs[op.name] = op.input
        if op.output:
            outputs[op.name] = op.output

    marshaller_options = _options(service, "json_version", "xml_namespace", "header_list_separator")
    unmarshaller_options = _options(service, "max_depth", "header_list_separator")

    try:
        marshaller_config = MarshallerConfig(**marshaller_options)
        unmarshaller_config = UnmarshallerConfig(**unmarshaller_options)
    except pydantic.ValidationError as e:
        raise ValidationError(f"Invalid service options: {e}") from e

    logger.debug(
        "Built model for %s: %d shapes, %d operations", service.name, len(shapes), len(operations)
    )
    return ServiceModel(
        name=service.name,
        protocol=protocol,
        api_version=api_version,
        shapes=MappingProxyType(shapes),
        operations=MappingProxyType(operations),
        inputs=MappingProxyType(inputs),
        outputs=MappingProxyType(outputs),
        marshaller_config=marshaller_config,
        unmarshaller_config=unmarshaller_config,
    )
