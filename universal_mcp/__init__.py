"""
Universal MCP Server — schema-validated tools over stdio JSON-RPC

No SDK. Tools reach MongoDB and several LLM providers through an explicit
server context.
"""

__version__ = "1.0.0"

from .config import Config
from .context import ServerContext, build_context
from .dispatcher import Dispatcher
from .registry import FunctionHandler, ToolDescriptor, ToolRegistry, tool
from .router import Router, SessionState
from .server import MCPServer
