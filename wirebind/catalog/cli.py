"""Command-line interface for wirebind catalogs."""

from __future__ import annotations

import base64
import json
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

import click
from lark.exceptions import LarkError
from rich.console import Console
from rich.table import Table

from wirebind.binding import (
    HttpResponse,
    InvalidArgument,
    MarshallError,
    ParseError,
    WireLocation,
    unmarshall,
    unmarshall_list,
)
from wirebind.catalog import ValidationError, build_model, parse
from wirebind.catalog.render import render_http, request_to_dict

if TYPE_CHECKING:
    from wirebind.catalog.model import ServiceModel

_ENGINE_ERRORS = (LarkError, ValidationError, MarshallError, ParseError, InvalidArgument)


def _load_model(catalog_file: str) -> ServiceModel:
    with open(catalog_file, encoding="utf-8") as f:
        text = f.read()
    try:
        return build_model(parse(text))
    except (LarkError, ValidationError) as e:
        raise click.ClickException(f"{catalog_file}: {e}") from e


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bytes):
        return base64.b64encode(value).decode("ascii")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _parse_headers(headers: tuple[str, ...]) -> dict[str, str]:
    parsed = {}
    for header in headers:
        name, sep, value = header.partition(":")
        if not sep:
            raise click.BadParameter(
                f"Expected 'Name: value', got {header!r}", param_hint="--header"
            )
        parsed[name.strip()] = value.strip()
    return parsed


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log engine activity to stderr")
def cli(verbose: bool) -> None:
    """Wirebind binding catalog tools."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@cli.command()
@click.option("--catalog", "-c", "catalog_file", required=True, help="Catalog file")
@click.option("--operation", "-o", required=True, help="Operation name")
@click.option("--input", "-i", "input_file", type=click.File("r"), help="JSON member values")
@click.option("--host", default=None, help="Host header to show in the rendered request")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def marshall(
    catalog_file: str, operation: str, input_file: Any, host: str | None, output_json: bool
) -> None:
    """Marshall member values into a request."""
    model = _load_model(catalog_file)
    values = json.load(input_file) if input_file else {}
    if not isinstance(values, dict):
        raise click.ClickException("Input must be a JSON object of member values")

    try:
        request = model.marshall(operation, values)
    except KeyError as e:
        raise click.ClickException(e.args[0]) from e
    except _ENGINE_ERRORS as e:
        raise click.ClickException(str(e)) from e

    if output_json:
        print(json.dumps(request_to_dict(request), indent=2))
    else:
        click.echo(render_http(request, host=host), nl=False)


@cli.command("unmarshall")
@click.option("--catalog", "-c", "catalog_file", required=True, help="Catalog file")
@click.option("--operation", "-o", default=None, help="Operation whose output shape to use")
@click.option("--shape", "-s", default=None, help="Shape name (parses the body only)")
@click.option("--input", "-i", "input_file", type=click.File("rb"), required=True, help="Body")
@click.option("--list", "as_list", is_flag=True, help="Body is a JSON array of the shape")
@click.option("--status", default=200, show_default=True, help="Response status code")
@click.option("--header", "-H", "headers", multiple=True, help="Response header 'Name: value'")
def unmarshall_cmd(
    catalog_file: str,
    operation: str | None,
    shape: str | None,
    input_file: Any,
    as_list: bool,
    status: int,
    headers: tuple[str, ...],
) -> None:
    """Parse a response body into member values (printed as JSON)."""
    if (operation is None) == (shape is None):
        raise click.UsageError("Give exactly one of --operation or --shape")

    model = _load_model(catalog_file)
    body = input_file.read()

    try:
        if shape is not None:
            descriptor = model.shape(shape)
            reader = unmarshall_list if as_list else unmarshall
            result = reader(body, descriptor, config=model.unmarshaller_config)
        else:
            descriptor = model.output_shape(operation)
            if descriptor is None:
                raise click.ClickException(f"Operation {operation} has no output shape")
            response = HttpResponse(status, _parse_headers(headers), body)
            result = model.unmarshall(operation, response)
    except KeyError as e:
        raise click.ClickException(e.args[0]) from e
    except _ENGINE_ERRORS as e:
        raise click.ClickException(str(e)) from e

    print(json.dumps(result, indent=2, default=_json_default))


@cli.command()
@click.option("--catalog", "-c", "catalog_file", required=True, help="Catalog file")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(catalog_file: str, output_json: bool) -> None:
    """Display the operations and shapes of a catalog."""
    model = _load_model(catalog_file)

    if output_json:
        _output_json(model)
    else:
        _output_plain(model)


def _output_json(model: ServiceModel) -> None:
    data: dict[str, Any] = {
        "service": {
            "name": model.name,
            "protocol": str(model.protocol),
            "version": model.api_version,
        },
        "operations": {},
        "shapes": {},
    }

    for name, op in model.operations.items():
        data["operations"][name] = {
            "method": op.http_method,
            "uri": op.request_uri,
            "target": op.operation_identifier,
            "input": model.inputs.get(name),
            "output": model.outputs.get(name),
        }

    for name, shape in model.shapes.items():
        data["shapes"][name] = {
            fb.member: {
                "location": str(fb.binding.location),
                "name": fb.binding.name,
                "type": str(fb.binding.wire_type),
            }
            for fb in shape.fields
        }

    print(json.dumps(data, indent=2))


def _output_plain(model: ServiceModel) -> None:
    """Output catalog info using rich text formatting."""
    console = Console()

    console.print("[bold cyan]Service[/bold cyan]")
    service_table = Table(show_header=False, box=None, padding=(0, 2, 0, 2))
    service_table.add_column("Label", style="dim")
    service_table.add_column("Value", style="white")
    service_table.add_row("Name", model.name)
    service_table.add_row("Protocol", str(model.protocol))
    if model.api_version:
        service_table.add_row("Version", model.api_version)
    console.print(service_table)
    console.print()

    console.print("[bold cyan]Operations[/bold cyan]")
    op_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    op_table.add_column("Name", style="white")
    op_table.add_column("Request", style="yellow")
    op_table.add_column("Input", style="green")
    op_table.add_column("Output", style="green")
    for name, op in model.operations.items():
        op_table.add_row(
            name,
            f"{op.http_method} {op.request_uri}",
            model.inputs.get(name, ""),
            model.outputs.get(name, ""),
        )
    console.print(op_table)
    console.print()

    console.print("[bold cyan]Shapes[/bold cyan]")
    shape_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    shape_table.add_column("Shape", style="white")
    shape_table.add_column("Member", style="white")
    shape_table.add_column("Binding", style="yellow")
    shape_table.add_column("Type", style="dim")
    for name, shape in model.shapes.items():
        for i, fb in enumerate(shape.fields):
            binding = fb.binding
            where = str(binding.location)
            if binding.location != WireLocation.STATUS_CODE:
                where = f"{where} {binding.name}"
            shape_table.add_row(name if i == 0 else "", fb.member, where, str(binding.wire_type))
    console.print(shape_table)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
