"""End-to-end tests for the aiohttp application."""

import hashlib
import inspect
from unittest.mock import patch

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer
from twilio.request_validator import RequestValidator

from core.config import LoggingConfig
from core.scope import get_global_scope
from server.app import CONFIG_KEY, create_app, run_server
from tests.conftest import AUTH_TOKEN, write_project


async def _client(config):
    client = TestClient(TestServer(create_app(config)))
    await client.start_server()
    return client


@pytest_asyncio.fixture
async def client(runtime_config):
    client = await _client(runtime_config)
    yield client
    await client.close()


@pytest_asyncio.fixture
async def signed_client(runtime_config):
    config = runtime_config.model_copy(update={"validate_signatures": True})
    client = await _client(config)
    yield client
    await client.close()


class TestFunctionRoutes:
    """Test requests to function routes."""

    @pytest.mark.asyncio
    async def test_scope_initialized_on_startup(self, client):
        scope = get_global_scope()

        assert scope is not None
        assert "hello" in scope.Functions
        assert client.server.app[CONFIG_KEY].url == "http://localhost:3000"

    @pytest.mark.asyncio
    async def test_string_result(self, client):
        resp = await client.get("/hello", params={"name": "Ada"})

        assert resp.status == 200
        assert resp.headers["Content-Type"] == "text/html; charset=utf-8"
        assert await resp.text() == "Ahoy, Ada!"

    @pytest.mark.asyncio
    async def test_form_body_overrides_query(self, client):
        resp = await client.post("/hello?name=query", data={"name": "form"})

        assert await resp.text() == "Ahoy, form!"

    @pytest.mark.asyncio
    async def test_twiml_result(self, client):
        resp = await client.post("/voice")

        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("text/xml")
        text = await resp.text()
        assert "<Say>Hello from localhost:3000</Say>" in text

    @pytest.mark.asyncio
    async def test_structured_result(self, client):
        resp = await client.get("/structured")

        assert resp.status == 418
        assert resp.headers["X-Teapot"] == "yes"
        assert resp.headers["Content-Type"] == "application/json"
        assert await resp.json() == {"data": "Something"}

    @pytest.mark.asyncio
    async def test_returned_object_is_json(self, client):
        resp = await client.get("/data", params={"x": "1"})

        assert resp.status == 200
        assert await resp.json() == {"values": [1, 2, 3], "event": {"x": "1"}}

    @pytest.mark.asyncio
    async def test_raised_exception_returns_traceback(self, client):
        resp = await client.get("/boom")

        assert resp.status == 500
        text = await resp.text()
        assert "Traceback" in text
        assert "ValueError: boom" in text

    @pytest.mark.asyncio
    async def test_callback_error_returns_500(self, client):
        resp = await client.get("/fails")

        assert resp.status == 500
        assert await resp.text() == "bad things happened"

    @pytest.mark.asyncio
    async def test_pending_function_times_out(self, client):
        resp = await client.get("/hangs")

        assert resp.status == 500
        assert "InvocationTimeoutError" in await resp.text()

    @pytest.mark.asyncio
    async def test_runtime_registry_from_function(self, client):
        resp = await client.get("/registry")

        data = await resp.json()
        assert "secret" in data["functions"]
        assert "/note.txt" in data["assets"]
        assert data["note"] == "private note"

    @pytest.mark.asyncio
    async def test_private_function_not_routed(self, client):
        resp = await client.get("/secret")

        assert resp.status == 404

    @pytest.mark.asyncio
    async def test_request_id_header(self, client):
        resp = await client.get("/hello", headers={"X-Request-ID": "abc"})

        assert resp.headers["X-Request-ID"] == "abc"


class TestAssets:
    """Test static asset routes."""

    @pytest.mark.asyncio
    async def test_serves_public_asset(self, client):
        resp = await client.get("/style.css")

        assert resp.status == 200
        assert await resp.text() == "body { color: red; }"

    @pytest.mark.asyncio
    async def test_index_served_at_root(self, client):
        resp = await client.get("/")

        assert resp.status == 200
        assert await resp.text() == "<h1>It works</h1>"

    @pytest.mark.asyncio
    async def test_private_asset_not_served(self, client):
        resp = await client.get("/note.txt")

        assert resp.status == 404


class TestProtectedFunctions:
    """Test signature checks on protected functions."""

    @pytest.mark.asyncio
    async def test_served_without_validation(self, client):
        resp = await client.post("/status", data={"Body": "hi"})

        assert resp.status == 200
        assert await resp.text() == "protected ok"

    @pytest.mark.asyncio
    async def test_missing_signature_rejected(self, signed_client):
        resp = await signed_client.post("/status", data={"Body": "hi"})

        assert resp.status == 401
        assert "X-Twilio-Signature" in await resp.text()

    @pytest.mark.asyncio
    async def test_invalid_signature_rejected(self, signed_client):
        resp = await signed_client.post(
            "/status", data={"Body": "hi"}, headers={"X-Twilio-Signature": "bogus"}
        )

        assert resp.status == 401

    @pytest.mark.asyncio
    async def test_valid_signature_accepted(self, signed_client):
        signature = RequestValidator(AUTH_TOKEN).compute_signature(
            "http://localhost:3000/status", {"Body": "hi"}
        )

        resp = await signed_client.post(
            "/status", data={"Body": "hi"}, headers={"X-Twilio-Signature": signature}
        )

        assert resp.status == 200
        assert await resp.text() == "protected ok"

    @pytest.mark.asyncio
    async def test_public_functions_need_no_signature(self, signed_client):
        resp = await signed_client.get("/hello")

        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_json_body_signed_with_body_hash(self, signed_client):
        body = '{"Body": "hi"}'
        body_hash = hashlib.sha256(body.encode("utf-8")).hexdigest()
        url = f"http://localhost:3000/status?bodySHA256={body_hash}"
        signature = RequestValidator(AUTH_TOKEN).compute_signature(url, {})

        resp = await signed_client.post(
            f"/status?bodySHA256={body_hash}",
            data=body,
            headers={"Content-Type": "application/json", "X-Twilio-Signature": signature},
        )

        assert resp.status == 200
        assert await resp.text() == "protected ok"

    @pytest.mark.asyncio
    async def test_json_body_with_bad_signature_rejected(self, signed_client):
        resp = await signed_client.post(
            "/status", json={"Body": "hi"}, headers={"X-Twilio-Signature": "bogus"}
        )

        assert resp.status == 401

    @pytest.mark.asyncio
    async def test_binary_body_with_body_hash_rejected(self, signed_client):
        resp = await signed_client.post(
            "/status?bodySHA256=abc",
            data=b"\xff\xfe",
            headers={
                "Content-Type": "application/octet-stream",
                "X-Twilio-Signature": "bogus",
            },
        )

        assert resp.status == 401


class TestRouting:
    """Test route resolution between functions and assets."""

    @pytest.mark.asyncio
    async def test_function_wins_over_asset(self, tmp_path, runtime_config):
        (tmp_path / "functions").mkdir(exist_ok=True)
        (tmp_path / "assets").mkdir(exist_ok=True)
        (tmp_path / "functions" / "page.py").write_text(
            "def handler(context, event, callback):\n    callback(None, 'function')\n"
        )
        (tmp_path / "assets" / "page").write_text("asset")
        config = runtime_config.model_copy(update={"base_dir": tmp_path})

        client = await _client(config)
        try:
            resp = await client.get("/page")
            assert await resp.text() == "function"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_function_handlers_are_coroutines(self, runtime_config):
        app = create_app(runtime_config)

        handlers = [
            route.handler
            for route in app.router.routes()
            if route.resource.canonical in ("/hello", "/status", "/structured")
        ]

        assert len(handlers) == 3
        assert all(inspect.iscoroutinefunction(handler) for handler in handlers)


class TestSerializationFailures:
    """Test results that cannot be written to the wire."""

    @pytest.mark.asyncio
    async def test_circular_result_returns_500(self, project_dir, runtime_config):
        write_project(
            project_dir,
            {
                "functions/circular.py": """
                    def handler(context, event, callback):
                        data = {}
                        data["self"] = data
                        callback(None, data)
                """,
            },
        )
        client = await _client(runtime_config)
        try:
            resp = await client.get("/circular", headers={"X-Request-ID": "circ"})

            assert resp.status == 500
            assert resp.headers["X-Request-ID"] == "circ"
            assert "Circular reference" in await resp.text()
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_malformed_structured_headers_return_500(self, project_dir, runtime_config):
        write_project(
            project_dir,
            {
                "functions/badheaders.py": """
                    from types import SimpleNamespace

                    def handler(context, event, callback):
                        callback(None, SimpleNamespace(status_code=200, headers=["bad"], body="x"))
                """,
            },
        )
        client = await _client(runtime_config)
        try:
            resp = await client.get("/badheaders")

            assert resp.status == 500
            assert resp.headers["X-Request-ID"]
            assert "ValueError" in await resp.text()
        finally:
            await client.close()


class TestFunctionLoading:
    """Test where function modules are imported."""

    @pytest.mark.asyncio
    async def test_module_imported_off_the_event_loop(self, project_dir, runtime_config):
        write_project(
            project_dir,
            {
                "functions/where.py": """
                    import threading

                    LOADED_ON_MAIN = threading.current_thread() is threading.main_thread()

                    def handler(context, event, callback):
                        callback(None, {"loaded_on_main": LOADED_ON_MAIN})
                """,
            },
        )
        client = await _client(runtime_config)
        try:
            resp = await client.get("/where")

            assert await resp.json() == {"loaded_on_main": False}
        finally:
            await client.close()


class TestRunServer:
    """Test run_server wiring."""

    def test_configures_logging_from_config(self, runtime_config):
        config = runtime_config.model_copy(
            update={"logging": LoggingConfig(level="DEBUG", pretty=True)}
        )

        with patch("server.app.configure_json_logging") as mock_logging, patch(
            "server.app.web.run_app"
        ) as mock_run_app:
            run_server(config)

        mock_logging.assert_called_once_with(level="DEBUG", pretty=True)
        assert mock_run_app.call_args.kwargs["host"] == "localhost"
        assert mock_run_app.call_args.kwargs["port"] == 3000
