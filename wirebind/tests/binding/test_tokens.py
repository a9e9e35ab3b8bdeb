"""Tests for token streams."""

import pytest

from wirebind.binding import ParseError, Token, TokenKind, TokenStream, json_tokens, value_tokens


def kinds(tokens):
    return [t.kind for t in tokens]


def describe_json_tokens():
    def tokenizes_nested_documents(expect):
        tokens = list(json_tokens('{"a": [1, "x", true, null], "b": {}}'))
        expect(kinds(tokens)) == [
            TokenKind.START_OBJECT,
            TokenKind.FIELD_NAME,
            TokenKind.START_ARRAY,
            TokenKind.VALUE_NUMBER,
            TokenKind.VALUE_STRING,
            TokenKind.VALUE_TRUE,
            TokenKind.VALUE_NULL,
            TokenKind.END_ARRAY,
            TokenKind.FIELD_NAME,
            TokenKind.START_OBJECT,
            TokenKind.END_OBJECT,
            TokenKind.END_OBJECT,
        ]
        expect(tokens[1].value) == "a"
        expect(tokens[3].value) == "1"

    def keeps_number_text(expect):
        tokens = list(json_tokens("[12345678901234567890, -1.5e3]"))
        expect(tokens[1].value) == "12345678901234567890"
        expect(tokens[2].value) == "-1.5e3"

    def decodes_escapes(expect):
        tokens = list(json_tokens(b'"caf\\u00e9 \\"quoted\\""'))
        expect(tokens) == [Token(TokenKind.VALUE_STRING, 'café "quoted"')]

    def is_lazy(expect):
        tokens = json_tokens('{"a": 1, oops')
        expect(next(tokens).kind) == TokenKind.START_OBJECT
        expect(next(tokens).value) == "a"
        expect(next(tokens).value) == "1"
        with pytest.raises(ParseError):
            next(tokens)

    def fails_on_truncated_input():
        with pytest.raises(ParseError, match="Truncated"):
            list(json_tokens('{"a": {"b": 1}'))

    def fails_on_trailing_data():
        with pytest.raises(ParseError, match="after JSON document"):
            list(json_tokens("{} {}"))

    def fails_on_trailing_commas():
        with pytest.raises(ParseError):
            list(json_tokens("[1, 2,]"))


def describe_value_tokens():
    def walks_decoded_trees(expect):
        tokens = list(value_tokens({"n": 1.5, "ok": False, "items": ["x"]}))
        expect(kinds(tokens)) == [
            TokenKind.START_OBJECT,
            TokenKind.FIELD_NAME,
            TokenKind.VALUE_NUMBER,
            TokenKind.FIELD_NAME,
            TokenKind.VALUE_FALSE,
            TokenKind.FIELD_NAME,
            TokenKind.START_ARRAY,
            TokenKind.VALUE_STRING,
            TokenKind.END_ARRAY,
            TokenKind.END_OBJECT,
        ]
        expect(tokens[2].value) == 1.5

    def rejects_non_string_keys():
        with pytest.raises(ParseError):
            list(value_tokens({1: "a"}))


def describe_token_stream():
    def peeks_without_consuming(expect):
        stream = TokenStream(json_tokens("[true]"))
        expect(stream.peek().kind) == TokenKind.START_ARRAY
        expect(stream.consumed) == 0
        expect(stream.next().kind) == TokenKind.START_ARRAY
        expect(stream.consumed) == 1

    def fails_when_exhausted(expect):
        stream = TokenStream(json_tokens("1"))
        stream.next()
        expect(stream.at_end()) == True
        with pytest.raises(ParseError, match="Unexpected end"):
            stream.next()

    def checks_expected_kinds():
        stream = TokenStream(json_tokens("[]"))
        with pytest.raises(ParseError, match="Expected start-object"):
            stream.expect(TokenKind.START_OBJECT)
