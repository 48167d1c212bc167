# Copyright 2026 Pramod Kumar Voola
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

# -----------------------------------------------------------------------------
# BENI PRODUCTION SERVER - FLASK INTERFACE
# -----------------------------------------------------------------------------
# Responsibility: Serve the artifact tree (dist/) with conditional caching,
# gzip negotiation and a single-page-app fallback.
#
# Per request:
#   1. resolve the path inside the output root (escapes are unmatched)
#   2. unmatched -> index.html (SPA fallback), no index -> 404
#   3. ETag / If-None-Match -> 304 (send_from_directory, conditional=True)
#   4. gzip: precomputed sibling, else streamed on the fly, else identity
#
# The tree is read-only while serving, so requests share nothing else.
# -----------------------------------------------------------------------------

import mimetypes
import os
import posixpath
import sys
from collections.abc import Iterator
from pathlib import Path

from flask import Flask, Response, request, send_from_directory
from rich.console import Console
from rich.panel import Panel
from werkzeug.exceptions import NotFound
from werkzeug.utils import safe_join

from beni.core.compression import GZIP_SUFFIX, is_compressible, stream_gzip
from beni.core.config import load_config
from beni.domain.models import BuildConfiguration

console = Console()

INDEX = "index.html"

IMMUTABLE = "public, max-age=31536000, immutable"
REVALIDATE = "public, max-age=300, must-revalidate"
DEFAULT_CACHE = "public, max-age=3600"

_IMMUTABLE_EXTENSIONS = {
    ".js", ".mjs", ".css",
    ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp", ".avif",
    ".woff", ".woff2", ".ttf", ".otf", ".eot",
}
_DOCUMENT_EXTENSIONS = {".html", ".htm"}


def make_etag(path: Path) -> str:
    """Strong validator token derived from (mtime, size)."""
    stat = path.stat()
    return f"{stat.st_mtime_ns:x}-{stat.st_size:x}"


def cache_control_for(path: Path | str) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in _IMMUTABLE_EXTENSIONS:
        return IMMUTABLE
    if suffix in _DOCUMENT_EXTENSIONS:
        return REVALIDATE
    return DEFAULT_CACHE


def resolve_artifact(root: Path, url_path: str) -> str | None:
    """
    Map a URL path to a file under root.

    Returns:
        The normalized path relative to root, or None when unmatched. A
        directory maps to its index.html. Escapes from root and names the
        OS refuses to stat are unmatched.
    """
    relative = posixpath.normpath(url_path.strip("/") or INDEX)
    for candidate in (relative, posixpath.join(relative, INDEX)):
        full = safe_join(str(root), candidate)
        # os.path.isfile reports OSError/ValueError (e.g. ENAMETOOLONG) as False
        if full is not None and os.path.isfile(full):
            return posixpath.normpath(candidate)
    return None


class _ByteCounter:
    """Wraps a chunk iterator and counts what was actually sent."""

    def __init__(self, chunks: Iterator[bytes]) -> None:
        self._chunks = chunks
        self.total = 0

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._chunks:
            self.total += len(chunk)
            yield chunk


def _log(status: int, size: int, compressed: bool) -> None:
    encoding = "gzip" if compressed else "identity"
    color = "green" if status < 400 else "yellow"
    console.print(
        f"[{color}][SERVE] {request.method} {request.path} {status} {size}B {encoding}[/{color}]"
    )


def _send(root: Path, relative: str, mimetype: str, caching: bool) -> Response:
    """send_from_directory with our validator; caching off disables 304s."""
    return send_from_directory(
        root,
        relative,
        mimetype=mimetype,
        conditional=caching,
        etag=make_etag(root / relative) if caching else False,
    )


def _stream(path: Path, mimetype: str, caching: bool) -> Response:
    """On-the-fly gzip for a compressible artifact without a sibling."""
    counter = _ByteCounter(stream_gzip(path))
    response = Response(counter, mimetype=mimetype)
    response.headers["Content-Encoding"] = "gzip"
    if caching:
        # the gzip representation has its own validator
        response.set_etag(make_etag(path) + "-gzip")
        response.make_conditional(request)
    status, method, url_path = response.status_code, request.method, request.path

    def log_streamed() -> None:
        console.print(
            f"[green][SERVE] {method} {url_path} {status} {counter.total}B gzip[/green]"
        )

    response.call_on_close(log_streamed)
    return response


def serve_artifact(root: Path, relative: str, config: BuildConfiguration) -> Response:
    """Build the response for one existing artifact (relative to root)."""
    prod = config.prod_server
    path = root / relative
    mimetype = mimetypes.guess_type(path.name)[0] or "application/octet-stream"

    response = None
    if prod.compression and request.accept_encodings["gzip"] > 0:
        sibling = relative + GZIP_SUFFIX
        if os.path.isfile(root / sibling):
            response = _send(root, sibling, mimetype, prod.caching)
            if response.status_code != 304:
                response.headers["Content-Encoding"] = "gzip"
            _log(response.status_code, response.content_length or 0, True)
        elif is_compressible(path, config):
            response = _stream(path, mimetype, prod.caching)

    if response is None:
        response = _send(root, relative, mimetype, prod.caching)
        _log(response.status_code, response.content_length or 0, False)

    if prod.caching:
        response.headers["Cache-Control"] = cache_control_for(path)
    if prod.compression:
        response.vary.add("Accept-Encoding")
    return response


def create_app(config: BuildConfiguration) -> Flask:
    """Build the production Flask application over config.output_dir."""
    app = Flask(__name__, static_folder=None)
    app.config["BENI"] = config
    root = config.output_dir.resolve()

    def not_found() -> Response:
        _log(404, 9, False)
        return Response("Not Found", status=404, mimetype="text/plain")

    @app.route("/", defaults={"url_path": ""}, methods=["GET", "HEAD"])
    @app.route("/<path:url_path>", methods=["GET", "HEAD"])
    def serve(url_path: str):
        relative = resolve_artifact(root, url_path) or resolve_artifact(root, INDEX)
        if relative is None:
            return not_found()
        try:
            return serve_artifact(root, relative, config)
        except (NotFound, OSError) as e:
            # the file vanished between resolution and send
            console.print(f"[red][SERVE] Failed to serve {relative}: {e}[/red]")
            return not_found()

    return app


def run_prod_server(root: Path | None = None, config: BuildConfiguration | None = None) -> None:
    """Serve the build output (blocks until interrupted)."""
    config = config or load_config(root or Path.cwd())
    if not config.output_dir.is_dir():
        console.print(
            Panel(
                f"[bold red]Output directory not found:[/bold red] {config.output_dir}\n\n"
                "Run a build first.",
                title="SERVE HALTED",
                border_style="red",
            )
        )
        sys.exit(1)

    prod = config.prod_server
    console.print(
        Panel(
            f"[bold]http://{prod.host}:{prod.port}[/bold]\n"
            f"serving: {config.output_dir}\n"
            f"compression: {'on' if prod.compression else 'off'}  "
            f"caching: {'on' if prod.caching else 'off'}",
            title="BENI PRODUCTION SERVER",
            border_style="green",
        )
    )
    app = create_app(config)
    app.run(host=prod.host, port=prod.port, threaded=True)


if __name__ == "__main__":
    run_prod_server()
