"""Pydantic configuration models for the marshalling engine.

These are startup objects: build them once and pass them to the drivers.
Descriptors and tokens stay frozen dataclasses for the hot paths.
"""

import uuid
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field


def new_idempotency_token() -> str:
    return str(uuid.uuid4())


class MarshallerConfig(BaseModel):
    """Options for the request marshalling driver.

    Attributes:
        json_version: Version used in the AWS JSON content type
            (`application/x-amz-json-<version>`).
        header_list_separator: Separator used to join list-valued headers.
        empty_rest_json_body: Send `{}` for REST JSON operations that have
            payload members when none of them is set.
        xml_namespace: Optional namespace declared on REST XML root elements.
        idempotency_token_factory: Supplies tokens for absent idempotency
            token members.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    json_version: str = Field(default="1.1", pattern=r"^\d+\.\d+$")
    header_list_separator: str = Field(default=",", min_length=1)
    empty_rest_json_body: bool = True
    xml_namespace: str | None = None
    idempotency_token_factory: Callable[[], str] = Field(default=new_idempotency_token)


class UnmarshallerConfig(BaseModel):
    """Options for the response parsing driver.

    Attributes:
        max_depth: Maximum nesting of objects/arrays accepted while parsing.
        header_list_separator: Separator used to split list-valued headers.
    """

    model_config = ConfigDict(frozen=True)

    max_depth: int = Field(default=64, gt=0)
    header_list_separator: str = Field(default=",", min_length=1)


DEFAULT_MARSHALLER_CONFIG = MarshallerConfig()
DEFAULT_UNMARSHALLER_CONFIG = UnmarshallerConfig()
