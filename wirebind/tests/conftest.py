"""Unit tests configuration file."""

import pytest

from wirebind.binding import INTEGER, STRING, FieldBinding, ShapeDescriptor, structure
from wirebind.binding.types import BindingDescriptor, WireLocation


def pytest_configure(config):
    """Disable verbose output when running tests."""
    terminal = config.pluginmanager.getplugin("terminal")
    if terminal:
        terminal.TerminalReporter.showfspath = False


def payload(name, wire_type, **kwargs):
    return BindingDescriptor(WireLocation.PAYLOAD, name, wire_type, **kwargs)


@pytest.fixture
def counters_shape():
    return ShapeDescriptor(
        "Counters",
        (
            FieldBinding("total", payload("total", INTEGER)),
            FieldBinding("passed", payload("passed", INTEGER)),
        ),
    )


@pytest.fixture
def run_shape(counters_shape):
    return ShapeDescriptor(
        "Run",
        (
            FieldBinding("name", payload("name", STRING)),
            FieldBinding("counters", payload("counters", structure(counters_shape))),
        ),
    )
