"""Scalar encoders and decoders keyed by wire type.

Each codec has three pure functions:

- encode: value -> text, used for query parameters, headers and path labels.
- encode_json: value -> JSON-native value, used for payload bodies.
- decode: token value (text, number or bool) -> typed value.
"""

import base64
import binascii
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from email.utils import format_datetime, parsedate_to_datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

from .tokens import ParseError
from .types import TimestampFormat, WireKind, WireType


class EncodeError(ValueError):
    """Raised when a value cannot be encoded for its wire type."""


class DecodeError(ParseError):
    """Raised when wire text cannot be decoded for its wire type."""


INT32_MIN, INT32_MAX = -(2**31), 2**31 - 1
INT64_MIN, INT64_MAX = -(2**63), 2**63 - 1

# Year is formatted separately, %Y is not zero padded below 1000 on every platform
ISO8601_TIME = "-%m-%dT%H:%M:%S"

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

# Non-finite doubles travel as strings in JSON bodies
_SPECIAL_DOUBLES = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}


def _type_name(value: Any) -> str:
    return type(value).__name__


# Strings


def _encode_string(value: Any, _: WireType) -> str:
    if isinstance(value, Enum):
        value = value.value
    if not isinstance(value, str):
        raise EncodeError(f"Expected str, got {_type_name(value)}")
    return value


def _decode_string(value: Any, _: WireType) -> str:
    if not isinstance(value, str):
        raise DecodeError(f"Expected string, got {_type_name(value)}")
    return value


# Integers


def _int_bounds(wire_type: WireType) -> tuple[int, int]:
    if wire_type.kind == WireKind.INTEGER:
        return INT32_MIN, INT32_MAX
    return INT64_MIN, INT64_MAX


def _encode_int_json(value: Any, wire_type: WireType) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise EncodeError(f"Expected int, got {_type_name(value)}")
    low, high = _int_bounds(wire_type)
    if not low <= value <= high:
        raise EncodeError(f"{value} is out of range for {wire_type.kind}")
    return value


def _encode_int(value: Any, wire_type: WireType) -> str:
    return str(_encode_int_json(value, wire_type))


def _decode_int(value: Any, wire_type: WireType) -> int:
    if isinstance(value, bool):
        raise DecodeError(f"Expected number, got {_type_name(value)}")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        try:
            result = int(value)
        except ValueError as e:
            raise DecodeError(f"Invalid {wire_type.kind} value {value!r}") from e
    else:
        raise DecodeError(f"Expected number, got {_type_name(value)}")

    low, high = _int_bounds(wire_type)
    if not low <= result <= high:
        raise DecodeError(f"{result} is out of range for {wire_type.kind}")
    return result


# Doubles


def _encode_double_json(value: Any, _: WireType) -> float | str:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise EncodeError(f"Expected float, got {_type_name(value)}")
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    return value


def _encode_double(value: Any, wire_type: WireType) -> str:
    return str(_encode_double_json(value, wire_type))


def _decode_double(value: Any, _: WireType) -> float:
    if isinstance(value, bool):
        raise DecodeError(f"Expected number, got {_type_name(value)}")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise DecodeError(f"Expected number, got {_type_name(value)}")
    if value in _SPECIAL_DOUBLES:
        return _SPECIAL_DOUBLES[value]
    try:
        return float(value)
    except ValueError as e:
        raise DecodeError(f"Invalid double value {value!r}") from e


# Booleans


def _encode_bool_json(value: Any, _: WireType) -> bool:
    if not isinstance(value, bool):
        raise EncodeError(f"Expected bool, got {_type_name(value)}")
    return value


def _encode_bool(value: Any, wire_type: WireType) -> str:
    return "true" if _encode_bool_json(value, wire_type) else "false"


def _decode_bool(value: Any, _: WireType) -> bool:
    if isinstance(value, bool):
        return value
    if value == "true":
        return True
    if value == "false":
        return False
    raise DecodeError(f"Invalid boolean value {value!r}")


# Timestamps


def _to_datetime(value: Any) -> datetime:
    """Coerce a caller-supplied timestamp to an aware UTC datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    if isinstance(value, bool):
        raise EncodeError("Expected datetime, got bool")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, UTC)
    if isinstance(value, str):
        try:
            return _to_datetime(datetime.fromisoformat(value))
        except ValueError as e:
            raise EncodeError(f"Invalid timestamp {value!r}") from e
    raise EncodeError(f"Expected datetime, got {_type_name(value)}")


def _epoch_micros(dt: datetime) -> int:
    return (dt - _EPOCH) // timedelta(microseconds=1)


def _epoch_seconds_text(dt: datetime) -> str:
    micros = _epoch_micros(dt)
    if micros % 1_000_000 == 0:
        return str(micros // 1_000_000)
    return format((Decimal(micros) / 1_000_000).normalize(), "f")


def _epoch_millis(dt: datetime) -> int:
    return _epoch_micros(dt) // 1000


def _iso8601_text(dt: datetime) -> str:
    text = f"{dt.year:04d}" + dt.strftime(ISO8601_TIME)
    if dt.microsecond:
        text += f".{dt.microsecond:06d}"
    return text + "Z"


def _encode_date_json(value: Any, wire_type: WireType) -> int | float | str:
    dt = _to_datetime(value)
    fmt = wire_type.timestamp_format

    if fmt == TimestampFormat.ISO8601:
        return _iso8601_text(dt)
    if fmt == TimestampFormat.RFC822:
        return format_datetime(dt.replace(microsecond=0), usegmt=True)
    if fmt == TimestampFormat.UNIX_MILLIS:
        return _epoch_millis(dt)

    text = _epoch_seconds_text(dt)
    return int(text) if dt.microsecond == 0 else float(text)


def _encode_date(value: Any, wire_type: WireType) -> str:
    if wire_type.timestamp_format == TimestampFormat.UNIX_SECONDS:
        return _epoch_seconds_text(_to_datetime(value))
    return str(_encode_date_json(value, wire_type))


def _from_epoch(value: Any, scale: int) -> datetime:
    if isinstance(value, bool):
        raise DecodeError("Expected epoch number, got bool")
    try:
        amount = Decimal(str(value)) if not isinstance(value, Decimal) else value
    except InvalidOperation as e:
        raise DecodeError(f"Invalid epoch value {value!r}") from e
    if not amount.is_finite():
        raise DecodeError(f"Invalid epoch value {value!r}")

    micros = int((amount * 1_000_000 / scale).to_integral_value())
    try:
        return _EPOCH + timedelta(microseconds=micros)
    except OverflowError as e:
        raise DecodeError(f"Epoch value {value!r} is out of range") from e


def _decode_date(value: Any, wire_type: WireType) -> datetime:
    fmt = wire_type.timestamp_format

    if fmt == TimestampFormat.UNIX_SECONDS:
        if not isinstance(value, (int, float, str)):
            raise DecodeError(f"Expected epoch seconds, got {_type_name(value)}")
        return _from_epoch(value, 1)
    if fmt == TimestampFormat.UNIX_MILLIS:
        if not isinstance(value, (int, float, str)):
            raise DecodeError(f"Expected epoch milliseconds, got {_type_name(value)}")
        return _from_epoch(value, 1000)

    if not isinstance(value, str):
        raise DecodeError(f"Expected {fmt} timestamp text, got {_type_name(value)}")

    try:
        if fmt == TimestampFormat.RFC822:
            dt = parsedate_to_datetime(value)
        else:
            dt = datetime.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Invalid {fmt} timestamp {value!r}") from e

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


# Blobs


def _encode_blob(value: Any, _: WireType) -> str:
    if isinstance(value, str):
        value = value.encode("utf-8")
    if not isinstance(value, (bytes, bytearray, memoryview)):
        raise EncodeError(f"Expected bytes, got {_type_name(value)}")
    return base64.b64encode(bytes(value)).decode("ascii")


def _decode_blob(value: Any, _: WireType) -> bytes:
    if not isinstance(value, str):
        raise DecodeError(f"Expected base64 text, got {_type_name(value)}")
    try:
        return base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 data: {e}") from e


@dataclass(frozen=True, slots=True)
class Codec:
    """Encoder/decoder triple for one scalar wire kind."""

    encode: Callable[[Any, WireType], str]
    encode_json: Callable[[Any, WireType], Any]
    decode: Callable[[Any, WireType], Any]


class WireTypeRegistry:
    """Maps scalar wire kinds to codecs.

    Registries are immutable; with_codec() returns a new registry.
    """

    def __init__(self, codecs: Mapping[WireKind, Codec]) -> None:
        self._codecs = MappingProxyType(dict(codecs))

    def kinds(self) -> frozenset[WireKind]:
        return frozenset(self._codecs)

    def with_codec(self, kind: WireKind, codec: Codec) -> "WireTypeRegistry":
        """Return a copy of this registry with `kind` handled by `codec`."""
        return WireTypeRegistry({**self._codecs, kind: codec})

    def _codec(self, wire_type: WireType) -> Codec:
        codec = self._codecs.get(wire_type.kind)
        if codec is None:
            raise EncodeError(f"No codec registered for {wire_type.kind}")
        return codec

    def encode(self, value: Any, wire_type: WireType) -> str:
        """Encode a scalar as wire text."""
        return self._codec(wire_type).encode(value, wire_type)

    def encode_json(self, value: Any, wire_type: WireType) -> Any:
        """Encode a scalar as a JSON-native value."""
        return self._codec(wire_type).encode_json(value, wire_type)

    def decode(self, value: Any, wire_type: WireType) -> Any:
        """Decode a token value or wire text."""
        codec = self._codecs.get(wire_type.kind)
        if codec is None:
            raise DecodeError(f"No codec registered for {wire_type.kind}")
        return codec.decode(value, wire_type)


DEFAULT_REGISTRY = WireTypeRegistry(
    {
        WireKind.STRING: Codec(_encode_string, _encode_string, _decode_string),
        WireKind.INTEGER: Codec(_encode_int, _encode_int_json, _decode_int),
        WireKind.LONG: Codec(_encode_int, _encode_int_json, _decode_int),
        WireKind.DOUBLE: Codec(_encode_double, _encode_double_json, _decode_double),
        WireKind.BOOLEAN: Codec(_encode_bool, _encode_bool_json, _decode_bool),
        WireKind.DATE: Codec(_encode_date, _encode_date_json, _decode_date),
        WireKind.BLOB: Codec(_encode_blob, _encode_blob, _decode_blob),
    }
)


def encode(value: Any, wire_type: WireType) -> str:
    """Encode with the default registry."""
    return DEFAULT_REGISTRY.encode(value, wire_type)


def decode(value: Any, wire_type: WireType) -> Any:
    """Decode with the default registry."""
    return DEFAULT_REGISTRY.decode(value, wire_type)
