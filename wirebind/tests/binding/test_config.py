"""Tests for engine configuration."""

import pydantic
import pytest

from wirebind.binding import MarshallerConfig, UnmarshallerConfig
from wirebind.binding.config import new_idempotency_token


def describe_marshaller_config():
    def has_defaults(expect):
        config = MarshallerConfig()
        expect(config.json_version) == "1.1"
        expect(config.header_list_separator) == ","
        expect(config.empty_rest_json_body) == True
        expect(config.xml_namespace) == None

    def validates_the_json_version():
        with pytest.raises(pydantic.ValidationError):
            MarshallerConfig(json_version="one")

    def is_frozen():
        config = MarshallerConfig()
        with pytest.raises(pydantic.ValidationError):
            config.json_version = "1.0"

    def generates_unique_tokens(expect):
        expect(new_idempotency_token() != new_idempotency_token()) == True
        expect(len(new_idempotency_token())) == 36


def describe_unmarshaller_config():
    def requires_positive_depth():
        with pytest.raises(pydantic.ValidationError):
            UnmarshallerConfig(max_depth=0)
