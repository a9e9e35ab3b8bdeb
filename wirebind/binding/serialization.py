"""Structured values: shapes that marshall their own fields."""

import dataclasses
import types
import typing
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, Self, runtime_checkable

from .types import (
    BindingDescriptor,
    FieldBinding,
    ShapeDescriptor,
    WireLocation,
    WireType,
    structure,
)

if TYPE_CHECKING:
    from .marshaller import RequestMarshaller


class InvalidArgument(ValueError):
    """Raised when a required top-level object is missing."""


@dataclass(frozen=True)
class WireFieldInfo:
    """Binding metadata for a Structured dataclass field."""

    wire_type: WireType
    name: str | None = None  # None = use the member name
    location: WireLocation = WireLocation.PAYLOAD
    required: bool = False
    idempotency_token: bool = False
    explicit_payload: bool = False
    greedy: bool = False

    def binding(self, member: str) -> BindingDescriptor:
        return BindingDescriptor(
            location=self.location,
            name=self.name or member,
            wire_type=self.wire_type,
            required=self.required,
            idempotency_token=self.idempotency_token,
            explicit_payload=self.explicit_payload,
            greedy=self.greedy,
        )


# Sentinel for missing default
_MISSING: Any = object()


def shape_field(
    wire_type: WireType,
    *,
    name: str | None = None,
    location: WireLocation = WireLocation.PAYLOAD,
    required: bool = False,
    idempotency_token: bool = False,
    explicit_payload: bool = False,
    greedy: bool = False,
    default: Any = None,
    default_factory: Any = _MISSING,
) -> Any:
    """Define a Structured field with its wire binding.

    Args:
        wire_type: The wire type (e.g. STRING, list_of(INTEGER)).
        name: Wire name. Defaults to the member name.
        location: Where the field lives on the wire.
        required: Fail marshalling when the value is absent.
        idempotency_token: Fill an absent value with a fresh token.
        explicit_payload: The value is the whole body.
        greedy: Path label spanning several segments.
        default: Default value. None means absent.
        default_factory: Factory function for default value.

    Returns:
        A dataclass field with wirebind metadata attached.
    """
    metadata = {
        "wirebind": WireFieldInfo(
            wire_type, name, location, required, idempotency_token, explicit_payload, greedy
        )
    }

    if default_factory is not _MISSING:
        return field(default_factory=default_factory, metadata=metadata)
    return field(default=default, metadata=metadata)


@runtime_checkable
class StructuredValue(Protocol):
    """A value able to marshall its own nested fields."""

    def marshall_self(self, marshaller: "RequestMarshaller") -> None: ...


def _structured_annotation(annotation: Any) -> type["Structured"] | None:
    """Return the Structured class of `X` or `X | None` annotations."""
    if isinstance(annotation, type) and issubclass(annotation, Structured):
        return annotation
    if typing.get_origin(annotation) in (typing.Union, types.UnionType):
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _structured_annotation(args[0])
    return None


def _build_shape(cls: type["Structured"]) -> ShapeDescriptor:
    if not dataclasses.is_dataclass(cls):
        raise TypeError(f"{cls.__name__} must be a dataclass")

    hints = typing.get_type_hints(cls)
    fields: list[FieldBinding] = []
    for f in dataclasses.fields(cls):
        info = f.metadata.get("wirebind")
        if info is None:
            nested = _structured_annotation(hints.get(f.name))
            if nested is None:
                continue
            info = WireFieldInfo(structure(nested))
        fields.append(FieldBinding(f.name, info.binding(f.name)))

    return ShapeDescriptor(name=cls.__name__, fields=tuple(fields), factory=cls)


class Structured:
    """Base class for shapes declared as dataclasses.

    Subclasses should be @dataclass decorated and define fields using
    shape_field() or annotations naming another Structured class.

    Example:
        @dataclass
        class Counters(Structured):
            total: int | None = shape_field(INTEGER)
            passed: int | None = shape_field(INTEGER)

        @dataclass
        class Test(Structured):
            name: str | None = shape_field(STRING)
            counters: Counters | None = None  # no shape_field needed for structures
    """

    @classmethod
    def shape(cls) -> ShapeDescriptor:
        """The binding table of this class, built on first use."""
        shape = cls.__dict__.get("_wirebind_shape")
        if shape is None:
            shape = _build_shape(cls)
            cls._wirebind_shape = shape
        return shape

    def marshall_self(self, marshaller: "RequestMarshaller") -> None:
        for fb in self.shape().fields:
            marshaller.marshall(getattr(self, fb.member), fb.binding)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> Self:
        """Build an instance from member values, ignoring unknown keys."""
        members = {fb.member for fb in cls.shape().fields}
        return cls(**{k: v for k, v in values.items() if k in members})


@dataclass(frozen=True, slots=True)
class ShapeValue:
    """A mapping of member values paired with its binding table."""

    shape: ShapeDescriptor
    values: Mapping[str, Any]

    def marshall_self(self, marshaller: "RequestMarshaller") -> None:
        for fb in self.shape.fields:
            marshaller.marshall(self.values.get(fb.member), fb.binding)


def as_structured(value: Any, shape: ShapeDescriptor) -> StructuredValue:
    """Expose `value` through the Structured-Value capability."""
    if isinstance(value, StructuredValue):
        return value
    if isinstance(value, Mapping):
        return ShapeValue(shape, value)
    raise TypeError(f"{type(value).__name__} cannot be marshalled as {shape.name}")
