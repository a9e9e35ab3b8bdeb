"""Renders marshalled requests for display."""

import base64
from typing import Any

from jinja2 import Environment, PackageLoader

from wirebind.binding import Request

env = Environment(
    loader=PackageLoader("wirebind.catalog", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("request.http.j2")


def _body_text(body: bytes | None) -> str | None:
    if body is None:
        return None
    try:
        return body.decode("utf-8")
    except UnicodeDecodeError:
        return f"<{len(body)} bytes, base64 {base64.b64encode(body).decode('ascii')}>"


def render_http(request: Request, host: str | None = None) -> str:
    """Render a request as HTTP/1.1 message text."""
    return template.render(request=request, host=host, body=_body_text(request.body))


def request_to_dict(request: Request) -> dict[str, Any]:
    """JSON-friendly view of a request."""
    return {
        "operation": request.operation,
        "method": request.method,
        "uri": request.uri,
        "headers": dict(request.headers),
        "body": _body_text(request.body),
    }
