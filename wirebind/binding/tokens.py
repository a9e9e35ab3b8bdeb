"""Token streams consumed by the response parsing driver.

A token stream is a lazy, forward-only sequence of structural and scalar
events. Any structured reader can feed the engine by producing these
tokens; two sources are provided here:

- json_tokens(): a streaming tokenizer over JSON text.
- value_tokens(): walks an already decoded value tree (dicts, lists,
  scalars), which lets XML or CBOR readers reuse the engine.
"""

import json
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class ParseError(RuntimeError):
    """Raised when a token stream is malformed, truncated or mistyped."""


class TokenKind(StrEnum):
    START_OBJECT = "start-object"
    END_OBJECT = "end-object"
    START_ARRAY = "start-array"
    END_ARRAY = "end-array"
    FIELD_NAME = "field-name"
    VALUE_STRING = "string"
    VALUE_NUMBER = "number"
    VALUE_TRUE = "true"
    VALUE_FALSE = "false"
    VALUE_NULL = "null"


SCALAR_TOKENS = frozenset(
    [
        TokenKind.VALUE_STRING,
        TokenKind.VALUE_NUMBER,
        TokenKind.VALUE_TRUE,
        TokenKind.VALUE_FALSE,
        TokenKind.VALUE_NULL,
    ]
)


@dataclass(frozen=True, slots=True)
class Token:
    """A single parse event.

    FIELD_NAME and VALUE_STRING carry a str. VALUE_NUMBER carries the raw
    number text (JSON) or the number itself (value trees). Booleans carry
    True/False. Structural tokens carry None.
    """

    kind: TokenKind
    value: Any = None

    @property
    def is_scalar(self) -> bool:
        return self.kind in SCALAR_TOKENS


START_OBJECT = Token(TokenKind.START_OBJECT)
END_OBJECT = Token(TokenKind.END_OBJECT)
START_ARRAY = Token(TokenKind.START_ARRAY)
END_ARRAY = Token(TokenKind.END_ARRAY)
NULL = Token(TokenKind.VALUE_NULL)
TRUE = Token(TokenKind.VALUE_TRUE, True)
FALSE = Token(TokenKind.VALUE_FALSE, False)


class TokenStream:
    """Single-consumer cursor over a token iterator with one token lookahead."""

    def __init__(self, tokens: Iterable[Token]) -> None:
        self._tokens = iter(tokens)
        self._peeked: Token | None = None
        self._consumed = 0

    @property
    def consumed(self) -> int:
        """Number of tokens handed out so far."""
        return self._consumed

    def peek(self) -> Token | None:
        """Return the next token without consuming it, or None at the end."""
        if self._peeked is None:
            self._peeked = next(self._tokens, None)
        return self._peeked

    def next(self) -> Token:
        """Consume the next token.

        Raises:
            ParseError: If the stream is exhausted (truncated input).
        """
        token = self.peek()
        if token is None:
            raise ParseError(f"Unexpected end of token stream after {self._consumed} tokens")
        self._peeked = None
        self._consumed += 1
        return token

    def expect(self, kind: TokenKind) -> Token:
        token = self.next()
        if token.kind != kind:
            raise ParseError(f"Expected {kind} but found {token.kind}")
        return token

    def at_end(self) -> bool:
        return self.peek() is None


_WHITESPACE = re.compile(r"[ \t\n\r]*")
_NUMBER = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][-+]?\d+)?")
_LITERALS = (("true", TRUE), ("false", FALSE), ("null", NULL))

# What the tokenizer accepts next
_VALUE = 0
_VALUE_OR_END = 1  # just after '['
_KEY_OR_END = 2  # just after '{'
_KEY = 3  # after ',' inside an object
_COLON = 4
_COMMA_OR_END = 5
_DONE = 6


def _scan_string(text: str, pos: int) -> tuple[str, int]:
    try:
        return json.decoder.scanstring(text, pos + 1)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON string at offset {pos}: {e.msg}") from e


def json_tokens(source: str | bytes | bytearray | memoryview) -> Iterator[Token]:
    """Lazily tokenize one JSON document.

    Tokens are yielded as soon as they are recognized, so a truncated
    document produces a valid prefix of tokens followed by a ParseError.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        try:
            text = bytes(source).decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"JSON input is not valid UTF-8: {e}") from e
    else:
        text = source

    stack: list[str] = []
    expect = _VALUE
    pos = 0
    end = len(text)

    while True:
        pos = _WHITESPACE.match(text, pos).end()
        if pos >= end:
            if expect != _DONE:
                raise ParseError("Truncated JSON input")
            return
        if expect == _DONE:
            raise ParseError(f"Unexpected data after JSON document at offset {pos}")

        ch = text[pos]

        if expect in (_KEY_OR_END, _KEY):
            if ch == "}" and expect == _KEY_OR_END:
                stack.pop()
                pos += 1
                yield END_OBJECT
                expect = _COMMA_OR_END if stack else _DONE
                continue
            if ch != '"':
                raise ParseError(f"Expected field name at offset {pos}")
            name, pos = _scan_string(text, pos)
            yield Token(TokenKind.FIELD_NAME, name)
            expect = _COLON
            continue

        if expect == _COLON:
            if ch != ":":
                raise ParseError(f"Expected ':' at offset {pos}")
            pos += 1
            expect = _VALUE
            continue

        if expect == _COMMA_OR_END:
            top = stack[-1]
            if ch == ",":
                pos += 1
                expect = _KEY if top == "{" else _VALUE
                continue
            if (top, ch) in (("{", "}"), ("[", "]")):
                stack.pop()
                pos += 1
                yield END_OBJECT if ch == "}" else END_ARRAY
                expect = _COMMA_OR_END if stack else _DONE
                continue
            raise ParseError(f"Expected ',' or closing bracket at offset {pos}")

        # A value is expected
        if ch == "]" and expect == _VALUE_OR_END:
            stack.pop()
            pos += 1
            yield END_ARRAY
            expect = _COMMA_OR_END if stack else _DONE
            continue
        if ch == "{":
            stack.append("{")
            pos += 1
            yield START_OBJECT
            expect = _KEY_OR_END
            continue
        if ch == "[":
            stack.append("[")
            pos += 1
            yield START_ARRAY
            expect = _VALUE_OR_END
            continue

        if ch == '"':
            value, pos = _scan_string(text, pos)
            yield Token(TokenKind.VALUE_STRING, value)
        else:
            for literal, token in _LITERALS:
                if text.startswith(literal, pos):
                    pos += len(literal)
                    yield token
                    break
            else:
                match = _NUMBER.match(text, pos)
                if match is None:
                    raise ParseError(f"Unexpected character {ch!r} at offset {pos}")
                pos = match.end()
                yield Token(TokenKind.VALUE_NUMBER, match.group())

        expect = _COMMA_OR_END if stack else _DONE


def value_tokens(value: Any) -> Iterator[Token]:
    """Tokenize an already decoded value tree."""
    if value is None:
        yield NULL
    elif isinstance(value, bool):
        yield TRUE if value else FALSE
    elif isinstance(value, (int, float)):
        yield Token(TokenKind.VALUE_NUMBER, value)
    elif isinstance(value, str):
        yield Token(TokenKind.VALUE_STRING, value)
    elif isinstance(value, Mapping):
        yield START_OBJECT
        for key, item in value.items():
            if not isinstance(key, str):
                raise ParseError(f"Object keys must be strings, got {type(key).__name__}")
            yield Token(TokenKind.FIELD_NAME, key)
            yield from value_tokens(item)
        yield END_OBJECT
    elif isinstance(value, (list, tuple)):
        yield START_ARRAY
        for item in value:
            yield from value_tokens(item)
        yield END_ARRAY
    else:
        raise ParseError(f"Cannot tokenize value of type {type(value).__name__}")
