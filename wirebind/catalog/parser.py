"""Binding catalog parser using Lark."""

import os
import re
from dataclasses import dataclass
from typing import Any, TypeVar

from lark import Lark
from lark.exceptions import VisitError
from lark.visitors import Transformer

from .types import (
    FLAG_ANNOTATIONS,
    LOCATION_ANNOTATIONS,
    SCALAR_TYPES,
    SERVICE_OPTIONS,
    TIMESTAMP_FORMATS,
    Catalog,
    CatalogAnnotation,
    CatalogMember,
    CatalogOperation,
    CatalogOption,
    CatalogService,
    CatalogShape,
    CatalogType,
)

_g_parser: Lark | None = None

PROTOCOLS = frozenset(["rest-json", "rest-xml", "aws-json", "query"])

HTTP_METHODS = frozenset(["GET", "PUT", "POST", "DELETE", "PATCH", "HEAD", "OPTIONS"])

_PLACEHOLDER = re.compile(r"\{([^{}+]+)(\+?)\}")


class ValidationError(RuntimeError):
    """Raised when catalog validation fails."""


@dataclass
class _Name:
    value: str


@dataclass
class _String:
    value: str


@dataclass
class _Http:
    method: str
    uri: str


@dataclass
class _Clause:
    """One keyword clause of an operation body."""

    keyword: str
    value: str


T = TypeVar("T")


def _find_many(args: list[Any], class_type: type[T]) -> list[T]:
    return [v for v in args if isinstance(v, class_type)]


def _find_one(args: list[Any], class_type: type[T]) -> T | None:
    found = _find_many(args, class_type)
    if len(found) > 1:
        raise ValidationError(f"Found more than one {class_type.__name__}")
    return found[0] if found else None


class TreeTransformer(Transformer):
    """Transform parse tree into catalog types."""

    def name(self, args: list[Any]) -> _Name:
        return _Name(value=str(args[0]))

    def word(self, args: list[Any]) -> _String:
        return _String(value=str(args[0]))

    def string(self, args: list[Any]) -> _String:
        return _String(value=str(args[0])[1:-1])

    def option(self, args: list[Any]) -> CatalogOption:
        return CatalogOption(name=args[0].value, value=args[1].value)

    def service(self, args: list[Any]) -> CatalogService:
        return CatalogService(name=args[0].value, options=_find_many(args, CatalogOption))

    def timestamp_type(self, args: list[Any]) -> CatalogType:
        return CatalogType(name="timestamp", format=args[0].value)

    def list_type(self, args: list[Any]) -> CatalogType:
        return CatalogType(name="list", element=args[0])

    def map_type(self, args: list[Any]) -> CatalogType:
        return CatalogType(name="map", element=args[0])

    def named_type(self, args: list[Any]) -> CatalogType:
        return CatalogType(name=args[0].value)

    def type(self, args: list[Any]) -> CatalogType:
        return args[0]

    def annotation(self, args: list[Any]) -> CatalogAnnotation:
        argument = args[1].value if len(args) > 1 and args[1] is not None else None
        return CatalogAnnotation(name=args[0].value, argument=argument)

    def member(self, args: list[Any]) -> CatalogMember:
        return CatalogMember(
            name=args[0].value,
            type=args[1],
            annotations=_find_many(args, CatalogAnnotation),
        )

    def shape(self, args: list[Any]) -> CatalogShape:
        return CatalogShape(name=args[0].value, members=_find_many(args, CatalogMember))

    def http(self, args: list[Any]) -> _Http:
        return _Http(method=args[0].value, uri=args[1].value)

    def input(self, args: list[Any]) -> _Clause:
        return _Clause("input", args[0].value)

    def output(self, args: list[Any]) -> _Clause:
        return _Clause("output", args[0].value)

    def target(self, args: list[Any]) -> _Clause:
        return _Clause("target", args[0].value)

    def root(self, args: list[Any]) -> _Clause:
        return _Clause("root", args[0].value)

    def operation(self, args: list[Any]) -> CatalogOperation:
        name = args[0].value
        http = _find_one(args, _Http)
        if http is None:
            raise ValidationError(f"Operation {name} has no http clause")

        clauses: dict[str, str] = {}
        for clause in _find_many(args, _Clause):
            if clause.keyword in clauses:
                raise ValidationError(f"Operation {name} declares {clause.keyword} twice")
            clauses[clause.keyword] = clause.value

        return CatalogOperation(
            name=name,
            method=http.method,
            uri=http.uri,
            input=clauses.get("input"),
            output=clauses.get("output"),
            target=clauses.get("target"),
            root=clauses.get("root"),
        )


def _location_annotation(member: CatalogMember) -> CatalogAnnotation | None:
    found = [a for a in member.annotations if a.name in LOCATION_ANNOTATIONS]
    if len(found) > 1:
        raise ValidationError(f"{member.name} has more than one location annotation")
    return found[0] if found else None


def _validate_type(t: CatalogType, shape_names: set[str], where: str) -> None:
    if t.name == "timestamp":
        if t.format is None:
            raise ValidationError(f"{where}: timestamp requires a format")
        if t.format not in TIMESTAMP_FORMATS:
            raise ValidationError(f"{where}: unknown timestamp format {t.format}")
    elif t.name in ("list", "map"):
        if t.element is None:
            raise ValidationError(f"{where}: {t.name} requires an element type")
        _validate_type(t.element, shape_names, where)
    elif t.name not in SCALAR_TYPES and t.name not in shape_names:
        raise ValidationError(f"{where}: unknown type {t.name}")


def _validate_member(member: CatalogMember, shape_names: set[str], where: str) -> None:
    _validate_type(member.type, shape_names, where)

    seen: set[str] = set()
    for a in member.annotations:
        if a.name not in LOCATION_ANNOTATIONS and a.name not in FLAG_ANNOTATIONS:
            raise ValidationError(f"{where}: unknown annotation @{a.name}")
        if a.name in seen:
            raise ValidationError(f"{where}: duplicate annotation @{a.name}")
        if a.name in FLAG_ANNOTATIONS or a.name == "status":
            if a.argument is not None:
                raise ValidationError(f"{where}: @{a.name} takes no argument")
        seen.add(a.name)

    _location_annotation(member)


def _path_labels(shape: CatalogShape) -> dict[str, bool]:
    """Path label name -> greedy, for the members of `shape`."""
    labels: dict[str, bool] = {}
    for member in shape.members:
        location = _location_annotation(member)
        if location is not None and location.name in ("path", "path_greedy"):
            labels[location.argument or member.name] = location.name == "path_greedy"
    return labels


def _validate_operation(
    op: CatalogOperation, shapes: dict[str, CatalogShape], protocol: str
) -> None:
    if op.method not in HTTP_METHODS:
        raise ValidationError(f"Operation {op.name}: unknown HTTP method {op.method}")
    if not op.uri.startswith("/"):
        raise ValidationError(f"Operation {op.name}: request URI must start with '/'")
    if protocol == "aws-json" and op.target is None:
        raise ValidationError(f"Operation {op.name}: aws-json operations require a target")

    for ref in (op.input, op.output):
        if ref is not None and ref not in shapes:
            raise ValidationError(f"Operation {op.name} references undeclared shape {ref}")

    placeholders = {
        m.group(1): bool(m.group(2)) for m in _PLACEHOLDER.finditer(op.uri.partition("?")[0])
    }
    labels = _path_labels(shapes[op.input]) if op.input else {}

    for label, greedy in labels.items():
        if label not in placeholders:
            raise ValidationError(
                f"Operation {op.name}: path label {label} has no placeholder in {op.uri}"
            )
        if placeholders[label] != greedy:
            raise ValidationError(
                f"Operation {op.name}: greedy mismatch for path label {label} in {op.uri}"
            )
    for placeholder in placeholders:
        if placeholder not in labels:
            raise ValidationError(
                f"Operation {op.name}: placeholder {{{placeholder}}} is not bound by any member"
            )


def validate(catalog: Catalog) -> None:
    """Validate a parsed catalog."""
    service = catalog.service

    for opt in service.options:
        if opt.name not in SERVICE_OPTIONS:
            raise ValidationError(f"Unknown service option {opt.name}")
    protocol = service.option("protocol")
    if protocol is None:
        raise ValidationError(f"Service {service.name} does not declare a protocol")
    if protocol not in PROTOCOLS:
        raise ValidationError(f"Unknown protocol {protocol}")
    if protocol == "query" and service.option("version") is None:
        raise ValidationError("The query protocol requires a service version")

    shapes: dict[str, CatalogShape] = {}
    for shape in catalog.shapes:
        if shape.name in shapes:
            raise ValidationError(f"Shape {shape.name} is declared twice")
        shapes[shape.name] = shape

    shape_names = set(shapes)
    for shape in catalog.shapes:
        members: set[str] = set()
        for member in shape.members:
            if member.name in members:
                raise ValidationError(f"{shape.name}.{member.name} is declared twice")
            members.add(member.name)
            _validate_member(member, shape_names, f"{shape.name}.{member.name}")

    operations: set[str] = set()
    for op in catalog.operations:
        if op.name in operations:
            raise ValidationError(f"Operation {op.name} is declared twice")
        operations.add(op.name)
        _validate_operation(op, shapes, protocol)


def parse(text: str) -> Catalog:
    """Parse and validate a catalog file."""
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/catalog.lark", encoding="utf-8") as f:
            grammar = f.read()
        _g_parser = Lark(grammar)

    tree = _g_parser.parse(text)
    try:
        items = TreeTransformer().transform(tree).children
    except VisitError as e:
        if isinstance(e.orig_exc, ValidationError):
            raise e.orig_exc from e
        raise

    services = _find_many(items, CatalogService)
    if not services:
        raise ValidationError("Catalog does not declare a service")
    if len(services) > 1:
        raise ValidationError("Catalog declares more than one service")

    catalog = Catalog(
        service=services[0],
        shapes=_find_many(items, CatalogShape),
        operations=_find_many(items, CatalogOperation),
    )
    validate(catalog)
    return catalog
