"""Test configuration — isolate server state before any package import."""

import os
import tempfile

# Config reads the environment at import time; logs and workspace go to a scratch dir
os.environ["UMCP_HOME"] = tempfile.mkdtemp(prefix="umcp-test-")
for _key in ("OPENAI_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY", "ANTHROPIC_API_KEY",
             "HUGGINGFACE_API_KEY", "UMCP_DISABLED_TOOLS"):
    os.environ.pop(_key, None)

import pytest

from universal_mcp.context import ServerContext
from universal_mcp.registry import ToolRegistry, tool


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")


def echo_tool(**overrides):
    schema = {
        "type": "object",
        "properties": {"message": {"type": "string"}},
        "required": ["message"],
    }
    kwargs = dict(
        name="echo",
        description="Echo a message",
        input_schema=schema,
        fn=lambda args: f"Echo: {args['message']}",
        category="basic",
    )
    kwargs.update(overrides)
    return tool(**kwargs)


@pytest.fixture
def registry():
    return ToolRegistry()


@pytest.fixture
def ctx(tmp_path):
    return ServerContext(workspace_dir=tmp_path / "workspace")
