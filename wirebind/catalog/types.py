"""Type definitions for parsed binding catalogs."""

from dataclasses import dataclass

from dataclasses_json import DataClassJsonMixin


@dataclass
class CatalogType(DataClassJsonMixin):
    """A member type as written in the catalog.

    - name is a scalar name, "timestamp", "list", "map" or a shape name.
    - format is set for timestamps only.
    - element is set for list and map types.
    """

    name: str
    format: str | None = None
    element: "CatalogType | None" = None

    def __str__(self) -> str:
        if self.element is not None:
            return f"{self.name}<{self.element}>"
        if self.format is not None:
            return f"{self.name}({self.format})"
        return self.name


@dataclass
class CatalogAnnotation(DataClassJsonMixin):
    """Represents an annotation on a shape member."""

    name: str
    argument: str | None = None


@dataclass
class CatalogMember(DataClassJsonMixin):
    name: str
    type: CatalogType
    annotations: list[CatalogAnnotation]

    def annotation(self, name: str) -> CatalogAnnotation | None:
        for a in self.annotations:
            if a.name == name:
                return a
        return None


@dataclass
class CatalogShape(DataClassJsonMixin):
    name: str
    members: list[CatalogMember]


@dataclass
class CatalogOperation(DataClassJsonMixin):
    """Represents an operation definition."""

    name: str
    method: str
    uri: str
    input: str | None = None
    output: str | None = None
    target: str | None = None
    root: str | None = None


@dataclass
class CatalogOption(DataClassJsonMixin):
    name: str
    value: str


@dataclass
class CatalogService(DataClassJsonMixin):
    """Represents the service block."""

    name: str
    options: list[CatalogOption]

    def option(self, name: str, default: str | None = None) -> str | None:
        for opt in self.options:
            if opt.name == name:
                return opt.value
        return default


@dataclass
class Catalog(DataClassJsonMixin):
    """Represents a complete catalog file."""

    service: CatalogService
    shapes: list[CatalogShape]
    operations: list[CatalogOperation]


SCALAR_TYPES = frozenset(["string", "integer", "long", "double", "boolean", "blob"])

TIMESTAMP_FORMATS = frozenset(["iso8601", "unix", "unix_millis", "rfc822"])

# Annotations that pick the wire location of a member
LOCATION_ANNOTATIONS = frozenset(["payload", "query", "header", "path", "path_greedy", "status"])

FLAG_ANNOTATIONS = frozenset(["explicit", "idempotency", "required"])

SERVICE_OPTIONS = frozenset(
    ["protocol", "version", "json_version", "xml_namespace", "header_list_separator", "max_depth"]
)
