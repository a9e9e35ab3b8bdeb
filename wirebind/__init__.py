"""Wirebind - Binding-table driven marshalling engine for service API clients."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("wirebind")
except PackageNotFoundError:
    __version__ = "(local)"
