"""
Tests for the FastAPI dev server.
"""

import inspect
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.routing import APIRoute
from fastapi.testclient import TestClient
from fastapi.websockets import WebSocketState

from beni.dev_server import (
    HOT_RELOAD_SNIPPET,
    ConnectionManager,
    TemplateCache,
    create_app,
    inject_hot_reload,
)
from beni.core.templates import TemplateCompiler
from beni.domain.models import BuildConfiguration, WatchEvent, WatchEventKind


def make_socket(open_=True, fail=False):
    """A stand-in WebSocket with the attributes ConnectionManager reads."""
    state = WebSocketState.CONNECTED if open_ else WebSocketState.DISCONNECTED
    websocket = MagicMock()
    websocket.client_state = state
    websocket.application_state = state
    websocket.accept = AsyncMock()
    websocket.send_json = AsyncMock(side_effect=RuntimeError("closed") if fail else None)
    return websocket


class _EditingCompiler(TemplateCompiler):
    """Runs a one-shot hook after compiling, while the cache is mid-get()."""

    on_compile = None

    def compile(self, source, name="<template>"):
        document = super().compile(source, name)
        hook, self.on_compile = self.on_compile, None
        if hook is not None:
            hook()
        return document


class TestConnectionManager:
    """Tests for ConnectionManager."""

    @pytest.mark.asyncio
    async def test_connect_accepts_and_registers(self):
        manager = ConnectionManager()
        websocket = make_socket()
        await manager.connect(websocket)
        websocket.accept.assert_awaited_once()
        assert len(manager) == 1

    @pytest.mark.asyncio
    async def test_broadcast_reaches_every_client(self):
        manager = ConnectionManager()
        sockets = [make_socket(), make_socket()]
        for websocket in sockets:
            await manager.connect(websocket)

        delivered = await manager.broadcast({"type": "reload"})

        assert delivered == 2
        for websocket in sockets:
            websocket.send_json.assert_awaited_once_with({"type": "reload"})

    @pytest.mark.asyncio
    async def test_broadcast_prunes_dead_connections(self):
        """A failing or closed socket is dropped without affecting the others."""
        manager = ConnectionManager()
        healthy, failing, closed = make_socket(), make_socket(fail=True), make_socket()
        for websocket in (healthy, failing, closed):
            await manager.connect(websocket)
        closed.client_state = WebSocketState.DISCONNECTED

        delivered = await manager.broadcast({"type": "reload"})

        assert delivered == 1
        assert manager.active_connections == [healthy]
        closed.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_broadcast_without_clients(self):
        assert await ConnectionManager().broadcast({"type": "reload"}) == 0

    @pytest.mark.asyncio
    async def test_disconnect(self):
        manager = ConnectionManager()
        websocket = make_socket()
        await manager.connect(websocket)
        await manager.disconnect(websocket)
        await manager.disconnect(websocket)
        assert len(manager) == 0


class TestTemplateCache:
    def test_get_compiles_and_caches(self, config):
        cache = TemplateCache(config.templates_dir, TemplateCompiler())
        first = cache.get("home")
        assert first is not None
        assert cache.get("home") is first

    def test_invalidate(self, config):
        cache = TemplateCache(config.templates_dir, TemplateCompiler())
        first = cache.get("home")
        cache.invalidate()
        assert cache.get("home") is not first

    def test_paths_outside_templates_rejected(self, config, project):
        (project / "src" / "secret.html").write_text("<p>no</p>")
        cache = TemplateCache(config.templates_dir, TemplateCompiler())
        assert cache.get("../secret") is None
        assert cache.get("missing") is None

    def test_overlong_name_is_missing(self, config):
        cache = TemplateCache(config.templates_dir, TemplateCompiler())
        assert cache.get("a" * 300) is None

    def test_invalidate_during_compile_is_not_lost(self, config):
        """A result compiled before an invalidate() must not be cached."""
        home = config.templates_dir / "home.html"
        compiler = _EditingCompiler()
        cache = TemplateCache(config.templates_dir, compiler)

        def edit():
            home.write_text("<h2>new</h2>")
            cache.invalidate()

        compiler.on_compile = edit
        stale = cache.get("home")

        assert stale.raw_source != "<h2>new</h2>"
        assert cache.get("home").raw_source == "<h2>new</h2>"

    def test_all_excludes_components(self, config):
        cache = TemplateCache(config.templates_dir, TemplateCompiler())
        assert sorted(cache.all()) == ["docs/about", "home"]
        assert list(cache.components()) == ["user-card"]


def test_inject_hot_reload():
    assert inject_hot_reload("<body><p>x</p></body></html>") == (
        f"<body><p>x</p>{HOT_RELOAD_SNIPPET}</body></html>"
    )
    assert inject_hot_reload("<p>x</p>") == f"<p>x</p>{HOT_RELOAD_SNIPPET}"


class TestDevEndpoints:
    """Tests for the dev HTTP routes."""

    @pytest.fixture
    def client(self, config):
        with TestClient(create_app(config, watch=False)) as client:
            yield client

    def test_template_raw_source(self, client, project):
        response = client.get("/template/home")
        assert response.status_code == 200
        assert response.text == (project / "src" / "templates" / "home.html").read_text()
        assert response.headers["cache-control"] == "no-cache"

    def test_template_with_extension_and_nesting(self, client):
        assert client.get("/template/home.html").status_code == 200
        assert "Welcome back" in client.get("/template/docs/about").text

    def test_template_missing(self, client):
        assert client.get("/template/nope").status_code == 404

    def test_template_malformed(self, client, project):
        (project / "src" / "templates" / "broken.html").write_text("{{#if a}}")
        assert client.get("/template/broken").status_code == 422

    def test_bundle(self, client):
        response = client.get("/__beni/bundle.js")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/javascript")
        assert "createRuntime(registry)" in response.text
        assert '"user-card"' in response.text
        assert '"docs/about"' in response.text

    def test_runtime_modules(self, client):
        assert "WebSocket" in client.get("/__beni/runtime/hot-reload.js").text
        assert client.get("/__beni/runtime/unknown.js").status_code == 404

    def test_generated_entry_document(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert '<script src="/__beni/bundle.js"></script>' in response.text
        assert '<script src="/src/app.js"></script>' in response.text
        assert 'href="/src/styles/a-base.css"' in response.text
        assert HOT_RELOAD_SNIPPET in response.text
        assert response.headers["cache-control"] == "no-cache"

    def test_public_index_preferred(self, client, project):
        (project / "public" / "index.html").write_text("<html><body>custom</body></html>")
        response = client.get("/")
        assert response.text == f"<html><body>custom{HOT_RELOAD_SNIPPET}</body></html>"

    def test_source_and_public_files(self, client):
        assert 'template("home")' in client.get("/src/app.js").text
        assert client.get("/robots.txt").text == "User-agent: *\n"

    def test_files_outside_source_and_public(self, client, project):
        (project / "beni.config.yaml").write_text("minify: true\n")
        response = client.get("/beni.config.yaml")
        assert response.status_code == 404
        assert response.text == "Not found"

    def test_missing_file(self, client):
        assert client.get("/src/missing.js").status_code == 404

    def test_overlong_paths_are_not_found(self, client):
        assert client.get("/" + "a" * 300 + ".js").status_code == 404
        assert client.get("/template/" + "a" * 300).status_code == 404

    def test_file_routes_run_in_threadpool(self, config):
        """Routes that read and compile files are plain functions."""
        app = create_app(config, watch=False)
        routes = [route for route in app.routes if isinstance(route, APIRoute)]
        assert {route.path for route in routes} >= {
            "/template/{name:path}",
            "/__beni/bundle.js",
            "/__beni/runtime/{module}",
            "/",
            "/{path:path}",
        }
        for route in routes:
            assert not inspect.iscoroutinefunction(route.endpoint), route.path


class TestHotReload:
    """Tests for watch event -> WebSocket broadcast."""

    def test_change_is_broadcast(self, config):
        app = create_app(config, watch=False)
        server = app.state.server
        with TestClient(app) as client:
            with client.websocket_connect("/__beni/ws") as websocket:
                # pong proves the connection is registered
                websocket.send_text("ping")
                assert websocket.receive_json() == {"type": "pong"}

                future = server.handle_watch_event(
                    WatchEvent(path="src/app.js", kind=WatchEventKind.CHANGED, timestamp=1.5)
                )
                assert future.result(timeout=5) == 1
                assert websocket.receive_json() == {
                    "type": "reload",
                    "file": "src/app.js",
                    "timestamp": 1500,
                }

    def test_no_loop_no_broadcast(self, config):
        server = create_app(config, watch=False).state.server
        event = WatchEvent(path="src/app.js", kind=WatchEventKind.CHANGED)
        assert server.handle_watch_event(event) is None

    def test_hot_reload_off(self, config):
        config = config.model_copy(
            update={"dev_server": config.dev_server.model_copy(update={"hot_reload": False})}
        )
        app = create_app(config, watch=False)
        with TestClient(app) as client:
            assert HOT_RELOAD_SNIPPET not in client.get("/").text
            event = WatchEvent(path="src/app.js", kind=WatchEventKind.CHANGED)
            assert app.state.server.handle_watch_event(event) is None

    def test_template_change_invalidates_cache(self, config, project):
        server = create_app(config, watch=False).state.server
        assert "<h1>" in server.cache.get("home").raw_source

        (project / "src" / "templates" / "home.html").write_text("<h2>{{ title }}</h2>")
        server.handle_watch_event(
            WatchEvent(path="src/templates/home.html", kind=WatchEventKind.CHANGED)
        )
        assert server.cache.get("home").raw_source == "<h2>{{ title }}</h2>"

    def test_dotted_templates_directory_invalidates(self, project):
        config = BuildConfiguration(
            root=project, tools={"provider": "none"}, directories={"templates": "./src/templates"}
        )
        server = create_app(config, watch=False).state.server
        assert "<h1>" in server.cache.get("home").raw_source

        (project / "src" / "templates" / "home.html").write_text("<h2>{{ title }}</h2>")
        server.handle_watch_event(
            WatchEvent(path="src/templates/home.html", kind=WatchEventKind.CHANGED)
        )
        assert server.cache.get("home").raw_source == "<h2>{{ title }}</h2>"
