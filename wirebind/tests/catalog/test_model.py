"""Tests for service models built from catalogs."""

import os

import pytest

from wirebind.binding import (
    HttpResponse,
    MarshallError,
    ParseError,
    Protocol,
    TimestampFormat,
    WireKind,
    WireLocation,
)
from wirebind.catalog import ValidationError, build_model, parse

FILE_DIR = os.path.dirname(os.path.realpath(__file__))


@pytest.fixture(scope="module")
def model():
    with open(f"{FILE_DIR}/service.wb", encoding="utf-8") as f:
        return build_model(parse(f.read()))


def describe_build_model():
    def builds_shapes(expect, model):
        suite = model.shape("Suite")
        expect([fb.member for fb in suite.fields]) == ["name", "tests", "children", "tags"]
        expect(suite.payload_field("suiteName").member) == "name"
        expect(suite.fields[1].binding.wire_type.element.shape.name) == "Test"

    def maps_annotations_to_bindings(expect, model):
        request = model.shape("CreateSuiteRequest")
        bindings = {fb.member: fb.binding for fb in request.fields}
        expect(bindings["project"].location) == WireLocation.PATH_PARAM
        expect(bindings["project"].name) == "ProjectId"
        expect(bindings["project"].required) == True
        expect(bindings["dryRun"].location) == WireLocation.QUERY_PARAM
        expect(bindings["traceId"].location) == WireLocation.HEADER
        expect(bindings["clientToken"].idempotency_token) == True
        expect(bindings["suite"].location) == WireLocation.PAYLOAD

    def keeps_timestamp_formats(expect, model):
        started = model.shape("Test").payload_field("started").binding.wire_type
        expect(started.kind) == WireKind.DATE
        expect(started.timestamp_format) == TimestampFormat.UNIX_SECONDS

    def resolves_recursive_shapes(expect, model):
        children = model.shape("Suite").payload_field("children").binding.wire_type
        expect(children.element.shape is model.shape("Suite")) == True

    def builds_operations(expect, model):
        op = model.operation("CreateSuite")
        expect(op.protocol) == Protocol.REST_JSON
        expect(op.http_method) == "POST"
        expect(op.api_version) == "2020-01-01"
        expect(op.service_name) == "testrunner"
        expect(op.has_payload_members) == True

        artifact = model.operation("GetArtifact")
        expect(artifact.has_payload_members) == False
        expect(model.output_shape("GetArtifact").explicit_payload_field.member) == "data"

    def is_immutable(model):
        with pytest.raises(TypeError):
            model.shapes["Other"] = model.shape("Suite")

    def reports_unknown_names(model):
        with pytest.raises(KeyError, match="Unknown operation Nope"):
            model.operation("Nope")
        with pytest.raises(KeyError, match="Unknown shape Nope"):
            model.shape("Nope")

    def rejects_invalid_bindings():
        catalog = parse(
            'service s { protocol = rest-json }\nshape A { x: string }\nshape B { a: A @header("X-A") }'
        )
        with pytest.raises(ValidationError, match="B.a"):
            build_model(catalog)

    def applies_service_options(expect):
        catalog = parse(
            'service s { protocol = aws-json  json_version = 1.0  xml_namespace = "urn:x" }'
        )
        model = build_model(catalog)
        expect(model.marshaller_config.json_version) == "1.0"
        expect(model.marshaller_config.xml_namespace) == "urn:x"

    def applies_parsing_options(expect):
        catalog = parse('service s { protocol = rest-json  max_depth = 8  header_list_separator = ";" }')
        model = build_model(catalog)
        expect(model.unmarshaller_config.max_depth) == 8
        expect(model.unmarshaller_config.header_list_separator) == ";"
        expect(model.marshaller_config.header_list_separator) == ";"

    def rejects_invalid_service_options():
        with pytest.raises(ValidationError, match="Invalid service options"):
            build_model(parse("service s { protocol = aws-json  json_version = latest }"))

    def uses_operation_names_as_query_actions(expect):
        model = build_model(
            parse('service iam { protocol = query  version = "2010-05-08" }\noperation ListUsers { http POST "/" }')
        )
        expect(model.operation("ListUsers").operation_identifier) == "ListUsers"


def describe_model_marshalling():
    def marshalls_operation_inputs(expect, model):
        request = model.marshall(
            "CreateSuite",
            {
                "project": "p 1",
                "dryRun": True,
                "traceId": "t-1",
                "clientToken": "c-1",
                "suite": {
                    "name": "smoke",
                    "tests": [{"name": "boot", "counters": {"total": 2, "passed": 2}, "started": 0}],
                    "tags": {"team": "core"},
                },
            },
        )
        expect(request.method) == "POST"
        expect(request.uri) == "/projects/p%201/suites?dryRun=true"
        expect(request.header("X-Trace-Id")) == "t-1"
        expect(request.json()) == {
            "clientToken": "c-1",
            "suite": {
                "suiteName": "smoke",
                "tests": [{"name": "boot", "counters": {"total": 2, "passed": 2}, "started": 0}],
                "tags": {"team": "core"},
            },
        }

    def fills_idempotency_tokens(expect, model):
        request = model.marshall("CreateSuite", {"project": "p"})
        expect(len(request.json()["clientToken"])) == 36

    def enforces_required_members(model):
        with pytest.raises(MarshallError, match="ProjectId"):
            model.marshall("CreateSuite", {})

    def marshalls_greedy_labels_and_static_queries(expect, model):
        request = model.marshall("GetArtifact", {"key": "logs/run 1.txt", "versions": [3, 1]})
        expect(request.method) == "GET"
        expect(request.uri) == "/artifacts/logs/run%201.txt?download&version=3&version=1"
        expect(request.body) == None


def describe_model_unmarshalling():
    def parses_operation_outputs(expect, model):
        response = HttpResponse(
            201,
            {"X-Request-Id": "r-9"},
            b'{"suite": {"suiteName": "smoke", "children": [{"suiteName": "inner"}], "extra": 1}}',
        )
        expect(model.unmarshall("CreateSuite", response)) == {
            "status": 201,
            "requestId": "r-9",
            "suite": {"name": "smoke", "children": [{"name": "inner"}]},
        }

    def uses_the_service_header_separator(expect):
        model = build_model(
            parse(
                """
                service s { protocol = rest-json  header_list_separator = ";" }
                shape Tagged { tags: list<string> @header("X-Tags") }
                operation Retag { http PUT "/tags"  input Tagged  output Tagged }
                """
            )
        )
        expect(model.marshall("Retag", {"tags": ["a", "b"]}).header("X-Tags")) == "a;b"
        response = HttpResponse(200, {"X-Tags": "a;b"})
        expect(model.unmarshall("Retag", response)) == {"tags": ["a", "b"]}

    def limits_nesting_depth():
        model = build_model(
            parse(
                """
                service s { protocol = rest-json  max_depth = 2 }
                shape Node { next: Node }
                operation Walk { http GET "/"  output Node }
                """
            )
        )
        response = HttpResponse(200, {}, b'{"next": {"next": {"next": {}}}}')
        with pytest.raises(ParseError, match="Nesting exceeds 2 levels"):
            model.unmarshall("Walk", response)

    def parses_explicit_payloads(expect, model):
        response = HttpResponse(200, {"Content-Type": "text/plain"}, b"log line\n")
        expect(model.unmarshall("GetArtifact", response)) == {
            "contentType": "text/plain",
            "data": b"log line\n",
        }
