"""Shared fixtures: an on-disk functions project and global scope isolation."""

from pathlib import Path
from textwrap import dedent

import pytest

from core.config import RuntimeConfig
from core.scope import reset_global_scope

ACCOUNT_SID = "ACxxxxx"
AUTH_TOKEN = "xyz"

PROJECT_FILES = {
    "functions/hello.py": """
        def handler(context, event, callback):
            callback(None, f"{context.GREETING}, {event.get('name', 'world')}!")
    """,
    "functions/voice.py": """
        def handler(context, event, callback):
            twiml = Twilio.VoiceResponse()
            twiml.say("Hello from " + context.DOMAIN_NAME)
            callback(None, twiml)
    """,
    "functions/structured.py": """
        async def handler(context, event, callback):
            response = Response()
            response.set_status_code(418)
            response.set_headers({"Content-Type": "application/json", "X-Teapot": "yes"})
            response.set_body({"data": "Something"})
            callback(None, response)
    """,
    "functions/data.py": """
        def handler(context, event, callback):
            return {"values": [1, 2, 3], "event": event}
    """,
    "functions/boom.py": """
        def handler(context, event, callback):
            raise ValueError("boom")
    """,
    "functions/fails.py": """
        def handler(context, event, callback):
            callback("bad things happened")
    """,
    "functions/hangs.py": """
        def handler(context, event, callback):
            pass
    """,
    "functions/status.protected.py": """
        def handler(context, event, callback):
            callback(None, "protected ok")
    """,
    "functions/secret.private.py": """
        def handler(context, event, callback):
            callback(None, "should not be served")
    """,
    "functions/registry.py": """
        def handler(context, event, callback):
            callback(None, {
                "functions": sorted(Runtime.get_functions()),
                "assets": sorted(Runtime.get_assets()),
                "note": Runtime.get_assets()["/note.txt"].open().strip(),
            })
    """,
    "assets/index.html": "<h1>It works</h1>",
    "assets/style.css": "body { color: red; }",
    "assets/note.private.txt": "private note",
}


def write_project(base_dir: Path, files=None) -> Path:
    for relative, content in (files or PROJECT_FILES).items():
        path = base_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dedent(content).lstrip(), encoding="utf-8")
    return base_dir


@pytest.fixture(autouse=True)
def isolated_global_scope():
    """Each test starts and ends without an installed global scope."""
    reset_global_scope()
    yield
    reset_global_scope()


@pytest.fixture
def project_dir(tmp_path):
    return write_project(tmp_path)


@pytest.fixture
def runtime_config(project_dir):
    return RuntimeConfig(
        url="http://localhost:3000",
        base_dir=project_dir,
        env={"ACCOUNT_SID": ACCOUNT_SID, "AUTH_TOKEN": AUTH_TOKEN, "GREETING": "Ahoy"},
        invocation_timeout=0.5,
    )
