"""
Filesystem Tool — file operations confined to the workspace directory

One tool, ``filesystem``, with actions read / write / list / info / exists /
delete / mkdir. Paths are relative to the workspace; absolute paths, ``..``
and anything resolving outside the workspace are refused. Files over 5 MB
are not read, and listings stop at 1000 entries.
"""

import asyncio
import functools
import heapq
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from ..config import Config
from ..logger import get_logger

log = get_logger("tools.filesystem")

CATEGORY = "filesystem"

ACTIONS = ["read", "write", "list", "info", "exists", "delete", "mkdir"]
ENCODINGS = ["UTF-8", "ASCII", "ISO-8859-1"]

# ── Tool definitions ─────────────────────────────────────────────────────────

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "filesystem",
        "description": "Safe filesystem operations inside the server workspace: read, write, list, info, exists, delete, mkdir",
        "inputSchema": {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "description": "Operation to perform",
                    "enum": ACTIONS,
                },
                "path": {
                    "type": "string",
                    "description": "Path relative to the workspace ('.' for the workspace itself)",
                    "pattern": r"^[a-zA-Z0-9._/\\-]+$",
                },
                "content": {
                    "type": "string",
                    "description": "Content to write (write only)",
                    "maxLength": Config.MAX_FILE_BYTES,
                },
                "encoding": {
                    "type": "string",
                    "description": "File encoding (default: UTF-8)",
                    "enum": ENCODINGS,
                },
                "recursive": {
                    "type": "boolean",
                    "description": "Recurse into subdirectories (list only)",
                },
            },
            "required": ["action", "path"],
        },
    },
]


# ── Path safety ──────────────────────────────────────────────────────────────

def resolve_safe_path(workspace: Path, relative: str) -> Path:
    """Resolve ``relative`` inside ``workspace``; raise PermissionError otherwise."""
    cleaned = relative.replace("\\", "/").strip()
    if not cleaned:
        raise ValueError("Path must not be empty")
    if cleaned.startswith("/") or ".." in cleaned.split("/"):
        raise PermissionError(f"Path not allowed: {relative}")

    base = workspace.resolve()
    target = (base / cleaned).resolve()
    if target != base and base not in target.parents:
        raise PermissionError(f"Access outside the workspace: {relative}")
    return target


def _relative(workspace: Path, path: Path) -> str:
    rel = path.relative_to(workspace.resolve()).as_posix()
    return rel or "."


def _timestamp(epoch: float) -> str:
    return datetime.fromtimestamp(epoch, timezone.utc).isoformat()


def _describe(workspace: Path, path: Path) -> Dict[str, Any]:
    st = path.stat()
    return {
        "path": _relative(workspace, path),
        "name": path.name,
        "type": "directory" if path.is_dir() else "file",
        "size": st.st_size if path.is_file() else None,
        "modified": _timestamp(st.st_mtime),
    }


# ── Actions (blocking; run in the executor) ──────────────────────────────────

def _read(workspace: Path, path: Path, args: Dict) -> Dict:
    if not path.exists():
        raise FileNotFoundError(f"File not found: {_relative(workspace, path)}")
    if not path.is_file():
        raise IsADirectoryError(f"Not a file: {_relative(workspace, path)}")
    size = path.stat().st_size
    if size > Config.MAX_FILE_BYTES:
        raise ValueError(f"File too large: {size} bytes (max {Config.MAX_FILE_BYTES})")
    encoding = args.get("encoding", "UTF-8")
    return {
        "path": _relative(workspace, path),
        "size": size,
        "encoding": encoding,
        "content": path.read_text(encoding=encoding),
    }


def _write(workspace: Path, path: Path, args: Dict) -> Dict:
    if "content" not in args:
        raise ValueError("The 'write' action requires 'content'")
    if path.is_dir():
        raise IsADirectoryError(f"Path is a directory: {_relative(workspace, path)}")
    encoding = args.get("encoding", "UTF-8")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(args["content"], encoding=encoding)
    log.info(f"Wrote {_relative(workspace, path)}")
    return {
        "path": _relative(workspace, path),
        "size": path.stat().st_size,
        "encoding": encoding,
        "written": True,
    }


def _list(workspace: Path, path: Path, args: Dict) -> Dict:
    if not path.is_dir():
        raise NotADirectoryError(f"Not a directory: {_relative(workspace, path)}")
    walker = path.rglob("*") if args.get("recursive") else path.iterdir()

    # Keep only the first MAX_LIST_ITEMS + 1 paths in sort order while walking
    children = heapq.nsmallest(Config.MAX_LIST_ITEMS + 1, walker)
    truncated = len(children) > Config.MAX_LIST_ITEMS
    entries = [_describe(workspace, child) for child in children[:Config.MAX_LIST_ITEMS]]
    return {
        "path": _relative(workspace, path),
        "entries": entries,
        "count": len(entries),
        "truncated": truncated,
    }


def _info(workspace: Path, path: Path, args: Dict) -> Dict:
    if not path.exists():
        raise FileNotFoundError(f"Path not found: {_relative(workspace, path)}")
    info = _describe(workspace, path)
    st = path.stat()
    info["created"] = _timestamp(st.st_ctime)
    info["readable"] = True
    return info


def _exists(workspace: Path, path: Path, args: Dict) -> Dict:
    kind = None
    if path.is_dir():
        kind = "directory"
    elif path.exists():
        kind = "file"
    return {"path": _relative(workspace, path), "exists": kind is not None, "type": kind}


def _delete(workspace: Path, path: Path, args: Dict) -> Dict:
    if path == workspace.resolve():
        raise PermissionError("Refusing to delete the workspace root")
    if not path.exists():
        raise FileNotFoundError(f"Path not found: {_relative(workspace, path)}")
    rel = _relative(workspace, path)
    if path.is_dir():
        shutil.rmtree(path)
    else:
        path.unlink()
    log.info(f"Deleted {rel}")
    return {"path": rel, "deleted": True}


def _mkdir(workspace: Path, path: Path, args: Dict) -> Dict:
    if path.exists() and not path.is_dir():
        raise FileExistsError(f"A file already exists at {_relative(workspace, path)}")
    created = not path.exists()
    path.mkdir(parents=True, exist_ok=True)
    return {"path": _relative(workspace, path), "created": created}


_ACTIONS = {
    "read": _read,
    "write": _write,
    "list": _list,
    "info": _info,
    "exists": _exists,
    "delete": _delete,
    "mkdir": _mkdir,
}


async def _filesystem(ctx, args: Dict) -> Dict:
    workspace = Path(ctx.workspace_dir)
    workspace.mkdir(parents=True, exist_ok=True)
    action = _ACTIONS[args["action"]]
    target = resolve_safe_path(workspace, args["path"])

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, functools.partial(action, workspace, target, args))
    result["action"] = args["action"]
    return result


HANDLERS = {"filesystem": _filesystem}
