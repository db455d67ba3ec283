"""
Resources — the readable counterpart of the tool registry

Same contract shape as tools: descriptors registered by URI, listed in
insertion order (enabled only), read through a single ``read(uri)``.
URIs that are not registered but use the ``file://`` scheme are served from
the resources directory, confined to it.
"""

import asyncio
import base64
import inspect
import mimetypes
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from urllib.parse import unquote, urlparse

from .errors import InvalidDescriptor, ResourceNotFound
from .logger import get_logger

log = get_logger("resources")

ResourceReader = Callable[[], Union[str, bytes, Awaitable[Union[str, bytes]]]]

_TEXT_MIME_HINTS = ("json", "xml", "yaml", "javascript")


def is_text_mime(mime_type: str) -> bool:
    return mime_type.startswith("text/") or any(h in mime_type for h in _TEXT_MIME_HINTS)


@dataclass(frozen=True)
class ResourceDescriptor:
    uri: str
    name: str
    description: str
    reader: ResourceReader
    mime_type: str = "text/plain"
    category: str = "general"
    enabled: bool = True

    def to_listing(self) -> Dict[str, Any]:
        return {
            "uri": self.uri,
            "name": self.name,
            "description": self.description,
            "mimeType": self.mime_type,
        }


class ResourceRegistry:
    """URI → descriptor mapping plus the read path."""

    def __init__(self, base_dir: Optional[Path] = None, max_bytes: int = 10 * 1024 * 1024):
        self._resources: Dict[str, ResourceDescriptor] = {}
        self._write_lock = threading.Lock()
        self._base_dir = base_dir.resolve() if base_dir else None
        self._max_bytes = max_bytes
        self._reads = 0
        self._errors = 0

    # ── registration ─────────────────────────────────────────────

    def register(self, descriptor: ResourceDescriptor):
        if not isinstance(descriptor.uri, str) or not descriptor.uri.strip():
            raise InvalidDescriptor("Resource URI must be a non-empty string")
        with self._write_lock:
            updated = dict(self._resources)
            updated[descriptor.uri] = descriptor
            self._resources = updated
        log.info(f"Registered resource: {descriptor.uri} ({descriptor.category})")

    def unregister(self, uri: str):
        with self._write_lock:
            if uri not in self._resources:
                return
            updated = dict(self._resources)
            del updated[uri]
            self._resources = updated
        log.info(f"Unregistered resource: {uri}")

    def clear(self):
        with self._write_lock:
            self._resources = {}

    # ── queries ──────────────────────────────────────────────────

    def lookup(self, uri: str) -> Optional[ResourceDescriptor]:
        return self._resources.get(uri)

    def list_all(self) -> List[ResourceDescriptor]:
        listed = [d for d in self._resources.values() if d.enabled]
        listed.extend(self._file_descriptors(exclude={d.uri for d in listed}))
        return listed

    async def list_available(self) -> List[ResourceDescriptor]:
        """list_all() with the resources directory walked in the executor."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.list_all)

    def count(self) -> int:
        """Registered resources only; files are discovered on listing."""
        return sum(1 for d in self._resources.values() if d.enabled)

    def stats(self) -> Dict[str, int]:
        return {"totalReads": self._reads, "totalErrors": self._errors, "resources": self.count()}

    # ── reading ──────────────────────────────────────────────────

    async def read(self, uri: str) -> Dict[str, Any]:
        """Return one MCP content item (``text`` or base64 ``blob``)."""
        self._reads += 1
        start = time.perf_counter()
        try:
            descriptor = self._resources.get(uri)
            if descriptor is not None and descriptor.enabled:
                content = descriptor.reader()
                if inspect.isawaitable(content):
                    content = await content
                item = self._content_item(uri, descriptor.mime_type, content)
            elif uri.startswith("file://"):
                loop = asyncio.get_running_loop()
                item = await loop.run_in_executor(None, self._read_file, uri)
            else:
                raise ResourceNotFound(uri)
        except Exception:
            self._errors += 1
            raise

        log.debug(f"Read {uri} in {(time.perf_counter() - start) * 1000:.1f}ms")
        return item

    @staticmethod
    def _content_item(uri: str, mime_type: str, content: Union[str, bytes]) -> Dict[str, Any]:
        item = {"uri": uri, "mimeType": mime_type}
        if isinstance(content, bytes):
            if is_text_mime(mime_type):
                item["text"] = content.decode("utf-8", errors="replace")
            else:
                item["blob"] = base64.b64encode(content).decode("ascii")
        else:
            item["text"] = content
        return item

    def _resolve_file(self, uri: str) -> Path:
        if self._base_dir is None:
            raise ResourceNotFound(uri)
        relative = unquote(urlparse(uri).path).lstrip("/")
        target = (self._base_dir / relative).resolve()
        if target != self._base_dir and self._base_dir not in target.parents:
            raise ResourceNotFound(uri)
        if not target.is_file():
            raise ResourceNotFound(uri)
        return target

    def _read_file(self, uri: str) -> Dict[str, Any]:
        path = self._resolve_file(uri)
        size = path.stat().st_size
        if size > self._max_bytes:
            raise ValueError(f"Resource too large: {size} bytes (max {self._max_bytes})")
        mime_type = mimetypes.guess_type(path.name)[0] or "text/plain"
        return self._content_item(uri, mime_type, path.read_bytes())

    def _file_descriptors(self, exclude: set) -> List[ResourceDescriptor]:
        if self._base_dir is None or not self._base_dir.is_dir():
            return []
        found = []
        for path in sorted(self._base_dir.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(self._base_dir).as_posix()
            uri = f"file:///{relative}"
            if uri in exclude:
                continue
            found.append(ResourceDescriptor(
                uri=uri,
                name=path.name,
                description=f"File {relative}",
                reader=path.read_bytes,
                mime_type=mimetypes.guess_type(path.name)[0] or "text/plain",
                category="file",
            ))
        return found
