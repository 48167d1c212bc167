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
# BENI DEV SERVER - FASTAPI INTERFACE
# -----------------------------------------------------------------------------
# Serves the raw project with hot reload over WebSockets.
#
# Endpoints:
# - GET /                       : public/index.html or a generated dev document
# - GET /template/{name}        : raw markup of a page template
# - GET /__beni/bundle.js       : runtime + registry of the current templates
# - GET /__beni/runtime/{module}: packaged runtime modules
# - WS  /__beni/ws              : reload channel
# - GET /{path}                 : source / public files
#
# Threading: watchdog callbacks run on the observer thread and only schedule
# coroutines onto the server's event loop (run_coroutine_threadsafe).
# -----------------------------------------------------------------------------

import asyncio
import threading
from contextlib import asynccontextmanager
from pathlib import Path, PurePosixPath

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect, status
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, Response
from fastapi.websockets import WebSocketState
from rich.console import Console
from rich.panel import Panel

from beni.core.builder import (
    ENTRY_SCRIPT,
    RUNTIME_DIR,
    RUNTIME_MODULES,
    render_entry_document,
    render_runtime_bundle,
)
from beni.core.config import load_config
from beni.core.templates import (
    CompileError,
    ComponentDefinition,
    TemplateCompiler,
    TemplateDocument,
)
from beni.core.watcher import SourceWatcher, WatchError, WatchFilter
from beni.domain.models import BuildConfiguration, WatchEvent

console = Console()

NO_CACHE = {"Cache-Control": "no-cache"}
HOT_RELOAD_MODULE = "hot-reload.js"
HOT_RELOAD_SNIPPET = f'<script src="/__beni/runtime/{HOT_RELOAD_MODULE}"></script>\n'


class ConnectionManager:
    """
    Manages the reload WebSocket connections.

    Mutation and iteration of the connection list are serialized by an
    asyncio.Lock; dead connections are pruned lazily during broadcasts.
    """

    def __init__(self) -> None:
        self.active_connections: list[WebSocket] = []
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self.active_connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self.active_connections.append(websocket)
        console.print(f"[cyan][WS] Client connected ({len(self.active_connections)} open)[/cyan]")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self.active_connections:
                self.active_connections.remove(websocket)

    async def broadcast(self, message: dict) -> int:
        """
        Send message to every open connection.

        Returns:
            Number of clients the message was delivered to.
        """
        delivered = 0
        async with self._lock:
            alive: list[WebSocket] = []
            for connection in self.active_connections:
                if not _is_open(connection):
                    continue
                try:
                    await connection.send_json(message)
                except Exception as e:
                    console.print(f"[dim][WS] Dropping dead connection: {e}[/dim]")
                    continue
                alive.append(connection)
                delivered += 1
            self.active_connections = alive
        return delivered


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class TemplateCache:
    """Compiled page templates, keyed by name; cleared on template changes."""

    def __init__(self, templates_dir: Path, compiler: TemplateCompiler) -> None:
        self.templates_dir = templates_dir.resolve()
        self._compiler = compiler
        self._documents: dict[str, TemplateDocument] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def get(self, name: str) -> TemplateDocument | None:
        """
        Return the compiled template, or None when no such file exists.

        Raises:
            CompileError: If the template is malformed.
        """
        with self._lock:
            if name in self._documents:
                return self._documents[name]
            generation = self._generation

        try:
            path = (self.templates_dir / f"{name}.html").resolve()
            if not path.is_relative_to(self.templates_dir) or not path.is_file():
                return None
        except OSError:
            return None
        document = self._compiler.compile(path.read_text(encoding="utf-8"), name)
        with self._lock:
            # an invalidate() during the compile means this source may be stale
            if generation == self._generation:
                self._documents[name] = document
        return document

    def all(self) -> dict[str, TemplateDocument]:
        """Compile every page template (components/ excluded)."""
        documents: dict[str, TemplateDocument] = {}
        if not self.templates_dir.is_dir():
            return documents
        for path in sorted(self.templates_dir.rglob("*.html")):
            relative = path.relative_to(self.templates_dir)
            if relative.parts[0] == "components":
                continue
            name = relative.with_suffix("").as_posix()
            document = self.get(name)
            if document is not None:
                documents[name] = document
        return documents

    def components(self) -> dict[str, ComponentDefinition]:
        """Compile every component under components/ (not cached)."""
        components_dir = self.templates_dir / "components"
        if not components_dir.is_dir():
            return {}
        components: dict[str, ComponentDefinition] = {}
        for path in sorted(components_dir.rglob("*.html")):
            name = path.relative_to(components_dir).with_suffix("").as_posix()
            components[name] = self._compiler.compile_component(
                path.read_text(encoding="utf-8"), name
            )
        return components

    def invalidate(self) -> None:
        with self._lock:
            self._documents.clear()
            self._generation += 1


def inject_hot_reload(markup: str) -> str:
    """Insert the reload client before the last </body> (or append it)."""
    head, sep, tail = markup.rpartition("</body>")
    if not sep:
        return markup + HOT_RELOAD_SNIPPET
    return f"{head}{HOT_RELOAD_SNIPPET}{sep}{tail}"


class DevServer:
    """State shared by the dev routes: config, connections, cache, watcher."""

    def __init__(self, config: BuildConfiguration) -> None:
        self.config = config
        self.root = config.root.resolve()
        self.manager = ConnectionManager()
        self.compiler = TemplateCompiler.from_config(config)
        self.cache = TemplateCache(config.templates_dir, self.compiler)
        self.loop: asyncio.AbstractEventLoop | None = None
        self.watcher: SourceWatcher | None = None

    # -------------------------------------------------------------------------
    # Watching
    # -------------------------------------------------------------------------

    def start_watching(self) -> None:
        self.watcher = SourceWatcher(
            self.root, WatchFilter.from_config(self.config), self.handle_watch_event
        )
        try:
            self.watcher.start()
        except WatchError as e:
            console.print(f"[yellow][DEV] File watching disabled: {e}[/yellow]")
            self.watcher = None

    def stop_watching(self) -> None:
        if self.watcher is not None:
            self.watcher.stop()
            self.watcher = None

    def handle_watch_event(self, event: WatchEvent):
        """
        Observer-thread entry point: one event, one broadcast.

        Returns:
            The concurrent future of the scheduled broadcast (None when no
            loop is running or hot reload is off).
        """
        templates = PurePosixPath(self.config.directories.templates.strip("/"))
        if PurePosixPath(event.path).is_relative_to(templates):
            self.cache.invalidate()
        console.print(f"[cyan][DEV] {event.kind.value}: {event.path}[/cyan]")

        if self.loop is None or not self.config.dev_server.hot_reload:
            return None
        message = event.to_message().model_dump()
        return asyncio.run_coroutine_threadsafe(self.manager.broadcast(message), self.loop)

    # -------------------------------------------------------------------------
    # Files
    # -------------------------------------------------------------------------

    def resolve_file(self, url_path: str) -> Path | None:
        """
        Map a URL path to a file: project root (inside source or public),
        then the public directory. Anything escaping them is unmatched.
        """
        relative = url_path.lstrip("/")
        if not relative:
            return None
        allowed = [self.config.source_dir.resolve(), self.config.public_dir.resolve()]
        candidates = [self.root / relative, self.config.public_dir / relative]
        for candidate in candidates:
            try:
                path = candidate.resolve()
                if any(path.is_relative_to(base) for base in allowed) and path.is_file():
                    return path
            except OSError:
                continue
        return None

    def entry_document(self) -> str:
        index = self.config.public_dir / "index.html"
        if index.is_file():
            return index.read_text(encoding="utf-8")

        styles_dir = (self.config.source_dir / "styles").resolve()
        stylesheets = [
            "/" + path.relative_to(self.root).as_posix()
            for path in sorted(styles_dir.rglob("*.css"))
        ] if styles_dir.is_dir() else []
        stylesheets.extend(self.config.app.css)
        entry = (self.config.source_dir / ENTRY_SCRIPT).resolve()
        scripts = ["/__beni/bundle.js"]
        if entry.is_file() and entry.is_relative_to(self.root):
            scripts.append("/" + entry.relative_to(self.root).as_posix())
        return render_entry_document(f"{self.config.app.title} (dev)", stylesheets, scripts)

    def html_response(self, markup: str) -> HTMLResponse:
        if self.config.dev_server.hot_reload:
            markup = inject_hot_reload(markup)
        return HTMLResponse(markup, headers=NO_CACHE)


def create_app(config: BuildConfiguration, watch: bool = True) -> FastAPI:
    """
    Build the dev FastAPI application for one project.

    Args:
        config: The invocation's BuildConfiguration.
        watch: Start the SourceWatcher in the lifespan.
    """
    server = DevServer(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        server.loop = asyncio.get_running_loop()
        if watch:
            server.start_watching()
        console.print("[green][DEV] Dev server online[/green]")

        yield

        server.stop_watching()
        server.loop = None
        console.print("[yellow][DEV] Dev server shutting down[/yellow]")

    app = FastAPI(title="Beni Dev Server", lifespan=lifespan)
    app.state.server = server

    @app.get("/template/{name:path}")
    def get_template(name: str):
        """Raw markup of a page template."""
        name = name.removesuffix(".html")
        try:
            document = server.cache.get(name)
        except CompileError as e:
            raise HTTPException(status_code=422, detail=str(e))
        if document is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
        return HTMLResponse(document.raw_source, headers=NO_CACHE)

    @app.get("/__beni/bundle.js")
    def get_bundle():
        try:
            templates = server.cache.all()
            components = server.cache.components()
        except CompileError as e:
            raise HTTPException(status_code=422, detail=str(e))
        modules = [(RUNTIME_DIR / name).read_text(encoding="utf-8") for name in RUNTIME_MODULES]
        registry = {
            "templates": {name: doc.to_registry_entry() for name, doc in templates.items()},
            "components": {name: comp.to_registry_entry() for name, comp in components.items()},
        }
        return Response(
            render_runtime_bundle(registry, modules),
            media_type="application/javascript",
            headers=NO_CACHE,
        )

    @app.get("/__beni/runtime/{module}")
    def get_runtime_module(module: str):
        if module not in (*RUNTIME_MODULES, HOT_RELOAD_MODULE):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown module")
        return FileResponse(
            RUNTIME_DIR / module, media_type="application/javascript", headers=NO_CACHE
        )

    @app.websocket("/__beni/ws")
    async def reload_channel(websocket: WebSocket):
        """Reload channel: the server pushes, the client may ping."""
        await server.manager.connect(websocket)
        try:
            while True:
                data = await websocket.receive_text()
                if data == "ping":
                    await websocket.send_json({"type": "pong"})
        except WebSocketDisconnect:
            await server.manager.disconnect(websocket)

    @app.get("/")
    def index():
        return server.html_response(server.entry_document())

    @app.get("/{path:path}")
    def source_file(path: str):
        resolved = server.resolve_file(path)
        if resolved is None:
            return PlainTextResponse("Not found", status_code=404, headers=NO_CACHE)
        if resolved.suffix.lower() in (".html", ".htm"):
            return server.html_response(resolved.read_text(encoding="utf-8"))
        return FileResponse(resolved, headers=NO_CACHE)

    return app


def print_banner(config: BuildConfiguration) -> None:
    """Print the dev server startup banner."""
    dev = config.dev_server
    console.print(
        Panel(
            f"[bold]http://{dev.host}:{dev.port}[/bold]\n"
            f"root: {config.root}\n"
            f"hot reload: {'on' if dev.hot_reload else 'off'}",
            title="BENI DEV SERVER",
            border_style="cyan",
        )
    )


def run_dev_server(root: Path | None = None, config: BuildConfiguration | None = None) -> None:
    """Start the dev server (blocks until interrupted)."""
    import uvicorn

    config = config or load_config(root or Path.cwd())
    app = create_app(config)
    print_banner(config)
    uvicorn.run(app, host=config.dev_server.host, port=config.dev_server.port, log_level="warning")


if __name__ == "__main__":
    run_dev_server()
