"""Tests for the response parsing driver."""

import logging
from datetime import UTC, datetime

import pytest

from wirebind.binding import (
    BLOB,
    DOUBLE,
    INTEGER,
    STRING,
    BindingDescriptor,
    FieldBinding,
    HttpResponse,
    InvalidArgument,
    OperationDescriptor,
    ParseError,
    Protocol,
    ShapeDescriptor,
    UnmarshallerConfig,
    WireLocation,
    date,
    json_tokens,
    list_of,
    map_of,
    marshall_shape,
    structure,
    unmarshall,
    unmarshall_list,
    unmarshall_response,
    value_tokens,
)


def bind(location, name, wire_type, **kwargs):
    return BindingDescriptor(WireLocation(location), name, wire_type, **kwargs)


def describe_unmarshall():
    def rebuilds_nested_values(expect, run_shape):
        result = unmarshall(
            json_tokens('{"name": "t", "counters": {"total": 5, "passed": 3}}'), run_shape
        )
        expect(result) == {"name": "t", "counters": {"total": 5, "passed": 3}}

    def parses_back_what_was_marshalled(expect, run_shape):
        value = {"name": "t", "counters": {"total": 5, "passed": 3}}
        op = OperationDescriptor("PutRun", Protocol.REST_JSON, "/runs", "PUT")
        request = marshall_shape(value, run_shape, op)
        expect(unmarshall(json_tokens(request.body), run_shape)) == value

    def accepts_json_text_directly(expect, counters_shape):
        expect(unmarshall('{"total": 1}', counters_shape)) == {"total": 1}

    def skips_unknown_fields_of_any_depth(expect, counters_shape):
        text = '{"extra": {"deep": [1, {"x": [[]]}, "s"]}, "total": 4, "more": null, "passed": 2}'
        expect(unmarshall(text, counters_shape)) == {"total": 4, "passed": 2}

    def matches_field_names_exactly(expect, counters_shape):
        expect(unmarshall('{"Total": 4, "total": 1}', counters_shape)) == {"total": 1}

    def leaves_null_fields_absent(expect, run_shape):
        expect(unmarshall('{"name": null, "counters": null}', run_shape)) == {}

    def returns_none_for_a_null_document(expect, counters_shape):
        expect(unmarshall("null", counters_shape)) == None

    def preserves_list_order(expect):
        shape = ShapeDescriptor(
            "Ids", (FieldBinding("ids", bind("payload", "ids", list_of(STRING))),)
        )
        expect(unmarshall('{"ids": ["c", "a", "b"]}', shape)) == {"ids": ["c", "a", "b"]}

    def reads_maps_with_string_keys(expect):
        shape = ShapeDescriptor(
            "Scores", (FieldBinding("scores", bind("payload", "scores", map_of(DOUBLE))),)
        )
        expect(unmarshall('{"scores": {"a": 1.5, "b": "NaN", "c": 2}}', shape)["scores"]["c"]) == 2.0

    def decodes_scalars_by_wire_type(expect):
        shape = ShapeDescriptor(
            "Scalars",
            (
                FieldBinding("at", bind("payload", "at", date("unix"))),
                FieldBinding("data", bind("payload", "data", BLOB)),
            ),
        )
        result = unmarshall('{"at": 1614834367, "data": "aGk="}', shape)
        expect(result["at"]) == datetime(2021, 3, 4, 5, 6, 7, tzinfo=UTC)
        expect(result["data"]) == b"hi"

    def builds_values_with_the_shape_factory(expect):
        class Counters:
            def __init__(self, total=None, passed=None):
                self.total = total
                self.passed = passed

        shape = ShapeDescriptor(
            "Counters",
            (FieldBinding("total", bind("payload", "total", INTEGER)),),
            factory=Counters,
        )
        result = unmarshall('{"total": 9}', shape)
        expect(isinstance(result, Counters)) == True
        expect(result.total) == 9

    def parses_recursive_shapes(expect):
        shapes = {}
        shapes["Node"] = ShapeDescriptor(
            "Node",
            (
                FieldBinding("name", bind("payload", "name", STRING)),
                FieldBinding("children", bind("payload", "children", list_of(structure(lambda: shapes["Node"])))),
            ),
        )
        result = unmarshall('{"name": "a", "children": [{"name": "b", "children": []}]}', shapes["Node"])
        expect(result) == {"name": "a", "children": [{"name": "b", "children": []}]}

    def reads_decoded_value_trees(expect, run_shape):
        tree = {"name": "t", "counters": {"total": 5}}
        expect(unmarshall(value_tokens(tree), run_shape)) == tree

    def logs_skipped_fields(expect, caplog, counters_shape):
        with caplog.at_level(logging.DEBUG, logger="wirebind.binding.unmarshaller"):
            unmarshall('{"other": 1}', counters_shape)
        expect("Skipping unknown field other in Counters" in caplog.text) == True


def describe_unmarshall_errors():
    def fails_on_truncated_streams(counters_shape):
        with pytest.raises(ParseError):
            unmarshall(json_tokens('{"total": 5'), counters_shape)

    def fails_on_streams_ending_mid_object(counters_shape):
        tokens = list(value_tokens({"total": 5}))[:-1]
        with pytest.raises(ParseError, match="Unexpected end"):
            unmarshall(tokens, counters_shape)

    def fails_on_mistyped_tokens(expect, counters_shape):
        with pytest.raises(ParseError) as e:
            unmarshall('{"total": "5"}', counters_shape)
        expect("Counters.total" in str(e.value)) == True

    def fails_when_a_string_gets_a_number(run_shape):
        with pytest.raises(ParseError, match="Expected string value"):
            unmarshall('{"name": 5}', run_shape)

    def fails_on_invalid_scalars(counters_shape):
        with pytest.raises(ParseError, match="out of range"):
            unmarshall('{"total": 99999999999}', counters_shape)

    def fails_on_bad_base64():
        shape = ShapeDescriptor("Blob", (FieldBinding("data", bind("payload", "data", BLOB)),))
        with pytest.raises(ParseError, match="base64"):
            unmarshall('{"data": "***"}', shape)

    def fails_on_arrays_where_objects_are_expected(counters_shape):
        with pytest.raises(ParseError, match="Expected start-object"):
            unmarshall("[]", counters_shape)

    def fails_on_trailing_tokens(counters_shape):
        tokens = [*value_tokens({"total": 1}), *value_tokens({})]
        with pytest.raises(ParseError, match="after end of value"):
            unmarshall(tokens, counters_shape)

    def limits_nesting_depth():
        shapes = {}
        shapes["Node"] = ShapeDescriptor(
            "Node", (FieldBinding("next", bind("payload", "next", structure(lambda: shapes["Node"]))),)
        )
        text = '{"next": ' * 5 + "{}" + "}" * 5
        with pytest.raises(ParseError, match="Nesting exceeds 3 levels"):
            unmarshall(text, shapes["Node"], config=UnmarshallerConfig(max_depth=3))

    def rejects_missing_arguments(counters_shape):
        with pytest.raises(InvalidArgument):
            unmarshall(None, counters_shape)
        with pytest.raises(InvalidArgument):
            unmarshall("{}", None)


def describe_unmarshall_list():
    def reads_arrays_of_shapes(expect, counters_shape):
        result = unmarshall_list('[{"total": 1}, null, {"passed": 2}]', counters_shape)
        expect(result) == [{"total": 1}, None, {"passed": 2}]

    def fails_on_objects(counters_shape):
        with pytest.raises(ParseError, match="Expected start-array"):
            unmarshall_list("{}", counters_shape)


def describe_unmarshall_response():
    @pytest.fixture
    def shape(counters_shape):
        return ShapeDescriptor(
            "GetRunOutput",
            (
                FieldBinding("status", bind("status", "status", INTEGER)),
                FieldBinding("request_id", bind("header", "X-Request-Id", STRING)),
                FieldBinding("tags", bind("header", "X-Tags", list_of(STRING))),
                FieldBinding("meta", bind("header", "X-Meta-", map_of(STRING))),
                FieldBinding("modified", bind("header", "Last-Modified", date("rfc822"))),
                FieldBinding("counters", bind("payload", "counters", structure(counters_shape))),
            ),
        )

    def fills_every_location(expect, shape):
        response = HttpResponse(
            200,
            {
                "x-request-id": "r-1",
                "X-Tags": 'a, "b,c"',
                "X-Meta-Color": "red",
                "Last-Modified": "Thu, 04 Mar 2021 05:06:07 GMT",
            },
            b'{"counters": {"total": 2}, "unknown": true}',
        )
        expect(unmarshall_response(response, shape)) == {
            "status": 200,
            "request_id": "r-1",
            "tags": ["a", "b,c"],
            "meta": {"Color": "red"},
            "modified": datetime(2021, 3, 4, 5, 6, 7, tzinfo=UTC),
            "counters": {"total": 2},
        }

    def tolerates_empty_bodies(expect, shape):
        expect(unmarshall_response(HttpResponse(204), shape)) == {"status": 204}

    def reads_explicit_blob_payloads(expect):
        shape = ShapeDescriptor(
            "GetObjectOutput",
            (
                FieldBinding("content_type", bind("header", "Content-Type", STRING)),
                FieldBinding("body", bind("payload", "Body", BLOB, explicit_payload=True)),
            ),
        )
        response = HttpResponse(200, {"Content-Type": "image/png"}, b"\x89PNG")
        expect(unmarshall_response(response, shape)) == {
            "content_type": "image/png",
            "body": b"\x89PNG",
        }

    def reads_explicit_structure_payloads(expect, counters_shape):
        shape = ShapeDescriptor(
            "GetCountersOutput",
            (FieldBinding("counters", bind("payload", "Counters", structure(counters_shape), explicit_payload=True)),),
        )
        response = HttpResponse(200, {}, b'{"total": 3}')
        expect(unmarshall_response(response, shape)) == {"counters": {"total": 3}}

    def reports_bad_headers(expect, shape):
        response = HttpResponse(200, {"Last-Modified": "someday"})
        with pytest.raises(ParseError) as e:
            unmarshall_response(response, shape)
        expect("GetRunOutput.Last-Modified" in str(e.value)) == True
