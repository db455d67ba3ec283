"""Configuration for the universal MCP server"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


def _env_list(name: str) -> list:
    raw = os.environ.get(name, "")
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    # Server identity
    SERVER_NAME = os.environ.get("UMCP_SERVER_NAME", "universal-mcp-server")
    SERVER_VERSION = "1.0.0"
    PROTOCOL_VERSION = "2024-11-05"

    # Capabilities (fixed for the process lifetime)
    ENABLE_TOOLS = _env_flag("UMCP_ENABLE_TOOLS", True)
    ENABLE_RESOURCES = _env_flag("UMCP_ENABLE_RESOURCES", True)
    ENABLE_PROMPTS = _env_flag("UMCP_ENABLE_PROMPTS", False)
    ENABLE_LOGGING = _env_flag("UMCP_ENABLE_LOGGING", False)

    # Paths
    HOME_DIR = Path(os.environ.get("UMCP_HOME", str(Path.home() / ".universal-mcp")))
    LOG_DIR = HOME_DIR / "logs"
    WORKSPACE_DIR = Path(os.environ.get("UMCP_WORKSPACE_DIR", str(HOME_DIR / "workspace")))
    RESOURCES_DIR = Path(os.environ.get("UMCP_RESOURCES_DIR", str(HOME_DIR / "resources")))

    # Logging (NEVER to stdout)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    LOG_FILE = LOG_DIR / "mcp-server.log"
    ERROR_LOG = LOG_DIR / "mcp-errors.log"
    INVOCATION_LOG = LOG_DIR / "invocations.jsonl"

    # Document store
    MONGODB_URI = os.environ.get("MONGODB_URI", "mongodb://localhost:27017/mcp_server")
    MONGODB_DB_NAME = os.environ.get("MONGODB_DB_NAME", "mcp_server")
    MONGODB_TIMEOUT_MS = _env_int("MONGODB_TIMEOUT_MS", 5000)

    # Text generation providers
    DEFAULT_PROVIDER = os.environ.get("UMCP_DEFAULT_PROVIDER", "openai")
    OPENAI_API_KEY = os.environ.get("OPENAI_API_KEY", "")
    OPENAI_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4o-mini")
    OPENAI_MAX_TOKENS = _env_int("OPENAI_MAX_TOKENS", 4096)
    GOOGLE_API_KEY = os.environ.get("GOOGLE_API_KEY", "") or os.environ.get("GEMINI_API_KEY", "")
    GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-1.5-flash")
    GEMINI_MAX_TOKENS = _env_int("GEMINI_MAX_TOKENS", 4096)
    ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
    ANTHROPIC_MODEL = os.environ.get("ANTHROPIC_MODEL", "claude-3-5-haiku-20241022")
    ANTHROPIC_MAX_TOKENS = _env_int("ANTHROPIC_MAX_TOKENS", 4096)
    HUGGINGFACE_API_KEY = os.environ.get("HUGGINGFACE_API_KEY", "")
    HUGGINGFACE_MODEL = os.environ.get("HUGGINGFACE_MODEL", "meta-llama/Llama-2-70b-chat-hf")
    HUGGINGFACE_MAX_TOKENS = _env_int("HUGGINGFACE_MAX_TOKENS", 4096)
    HUGGINGFACE_API_URL = os.environ.get(
        "HUGGINGFACE_API_URL", "https://api-inference.huggingface.co/models"
    )
    PROVIDER_TIMEOUT_S = _env_int("UMCP_PROVIDER_TIMEOUT_S", 60)

    # Tools
    DISABLED_TOOLS = _env_list("UMCP_DISABLED_TOOLS")
    MAX_FILE_BYTES = 5 * 1024 * 1024
    MAX_LIST_ITEMS = 1000
    MAX_RESOURCE_BYTES = 10 * 1024 * 1024

    # Transport
    MAX_MESSAGE_BYTES = _env_int("UMCP_MAX_MESSAGE_BYTES", 4 * 1024 * 1024)
    SHUTDOWN_GRACE_S = _env_int("UMCP_SHUTDOWN_GRACE_S", 30)

    @classmethod
    def ensure_dirs(cls):
        """Create required directories"""
        cls.HOME_DIR.mkdir(parents=True, exist_ok=True)
        cls.LOG_DIR.mkdir(parents=True, exist_ok=True)

    @classmethod
    def capabilities(cls) -> dict:
        return {
            "tools": cls.ENABLE_TOOLS,
            "resources": cls.ENABLE_RESOURCES,
            "prompts": cls.ENABLE_PROMPTS,
            "logging": cls.ENABLE_LOGGING,
        }
