"""
STDIO Transport — newline-delimited JSON-RPC over stdin/stdout

Reads from stdin, writes to stdout.
NEVER pollutes stdout with logs.
Framing lives in protocol.FrameDecoder; this module only moves bytes.
"""

import asyncio
import sys
from typing import Any, BinaryIO, Dict, Optional, Union

from .config import Config
from .logger import get_logger
from .protocol import FrameDecoder, Malformed, encode_message

log = get_logger("transport")


class StdioTransport:
    """Line-oriented stdio transport; writes after close are discarded."""

    def __init__(
        self,
        reader: Optional[asyncio.StreamReader] = None,
        stdout: Optional[BinaryIO] = None,
        max_message_bytes: int = Config.MAX_MESSAGE_BYTES,
    ):
        self._reader = reader
        self._stdout = stdout
        self._max_bytes = max_message_bytes
        self._decoder = FrameDecoder(max_bytes=max_message_bytes)
        self.running = False
        self.messages_in = 0
        self.messages_out = 0
        self.malformed = 0
        self.discarded = 0

    async def start(self):
        """Initialize async stdin reader and direct stdout writer"""
        if self._reader is None:
            loop = asyncio.get_running_loop()
            self._reader = asyncio.StreamReader(limit=self._max_bytes)
            protocol = asyncio.StreamReaderProtocol(self._reader)
            await loop.connect_read_pipe(lambda: protocol, sys.stdin.buffer)

        # Synchronous writes: connect_write_pipe fails when stdout is not a pipe
        if self._stdout is None:
            self._stdout = sys.stdout.buffer
        self.running = True
        log.info("Transport initialized")

    async def read_message(self) -> Optional[Union[Dict[str, Any], Malformed]]:
        """
        Read one framed message from stdin.
        Returns the decoded message, a Malformed marker, or None on EOF.
        """
        if self._reader is None:
            raise RuntimeError("Transport not started")

        while True:
            try:
                raw_bytes = await self._reader.readline()
            except ValueError:
                # Line longer than the stream limit; the reader has dropped it
                self.malformed += 1
                return Malformed(raw="", reason=f"Message exceeds {self._max_bytes} bytes")

            if not raw_bytes:
                leftover = self._decoder.flush()
                if leftover is not None:
                    self.malformed += 1
                return leftover

            try:
                line = raw_bytes.decode("utf-8")
            except UnicodeDecodeError as exc:
                self.malformed += 1
                # Undecodable bytes still leave the id readable
                text = raw_bytes.decode("utf-8", errors="replace")
                return self._decoder.reject(text, f"Invalid UTF-8: {exc}")

            frame = self._decoder.feed(line)
            if frame is None:
                continue
            if isinstance(frame, Malformed):
                self.malformed += 1
            else:
                self.messages_in += 1
            return frame

    async def write_message(self, message: Dict[str, Any]) -> bool:
        """Write one JSON-RPC message to stdout. Returns False if it was discarded."""
        if not self.running or self._stdout is None:
            self.discarded += 1
            log.debug(f"Discarding response id={message.get('id')} — transport closed")
            return False

        raw_bytes = encode_message(message)
        try:
            self._stdout.write(raw_bytes)
            self._stdout.flush()
        except (BrokenPipeError, ValueError, OSError) as exc:
            # Peer went away; nothing else can be delivered
            log.warning(f"stdout closed: {exc}")
            self.running = False
            self.discarded += 1
            return False

        self.messages_out += 1
        return True

    async def close(self):
        self.running = False
        log.info(
            f"Transport closed — in={self.messages_in} out={self.messages_out} "
            f"malformed={self.malformed} discarded={self.discarded}"
        )
