"""
Async RouterOS API session – the upstream connection owned by ConnectionManager.

Surface:
  connect()                       open socket, start receiver, log in
  close()                         intentional shutdown (no close callbacks)
  write(path, params, queries)    run one command, return its !re rows
  on_close(cb) / on_error(cb)     notified once when the link dies on its own

Features:
  - Binary length framing via api_protocol
  - Plain /login with MD5 challenge fallback for pre-6.43 routers
  - Request tags, so late replies never leak into the next command
  - SSL support for port 8729
"""

import asyncio
import logging
import ssl
from typing import Callable, Optional

from .api_protocol import (
    Reply,
    SentenceReader,
    build_sentence,
    command_words,
    md5_challenge_response,
    parse_reply,
)
from .errors import CommandError, RouterConnectionError

log = logging.getLogger("RouterSession")

_RECV_BUF = 65536


class RouterSession:
    """
    Usage:
        session = RouterSession("192.168.88.1", "admin", "", port=8728)
        session.on_close(lambda: print("link lost"))
        await session.connect()
        rows = await session.write("/ip/address/print")
        await session.close()
    """

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        port: int = 8728,
        timeout: float = 10.0,
        use_ssl: bool = False,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout
        self.use_ssl = use_ssl

        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._connected = False
        self._closing = False
        self._send_lock = asyncio.Lock()
        self._tag_counter = 0
        # tag -> asyncio.Queue of Reply
        self._pending: dict[int, asyncio.Queue] = {}
        self._recv_task: Optional[asyncio.Task] = None
        self._sentences = SentenceReader()
        self._close_handlers: list[Callable[[], None]] = []
        self._error_handlers: list[Callable[[Exception], None]] = []

    @classmethod
    def from_config(cls, config) -> "RouterSession":
        return cls(
            host=config.host,
            username=config.username,
            password=config.password,
            port=config.port,
            timeout=config.timeout,
            use_ssl=config.use_ssl,
        )

    # ─── Events ───────────────────────────────────────────────────────────────

    def on_close(self, handler: Callable[[], None]) -> None:
        self._close_handlers.append(handler)

    def on_error(self, handler: Callable[[Exception], None]) -> None:
        self._error_handlers.append(handler)

    def _emit(self, handlers: list, *args) -> None:
        for handler in list(handlers):
            try:
                handler(*args)
            except Exception as e:
                log.error(f"Session event handler {handler!r} failed: {e}")

    # ─── Connection ───────────────────────────────────────────────────────────

    async def connect(self) -> None:
        ssl_ctx = None
        if self.use_ssl:
            ssl_ctx = ssl.create_default_context()
            ssl_ctx.check_hostname = False
            ssl_ctx.verify_mode = ssl.CERT_NONE

        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port, ssl=ssl_ctx),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise RouterConnectionError(
                f"Timed out connecting to {self.host}:{self.port} after {self.timeout:g}s"
            ) from e
        except OSError as e:
            raise RouterConnectionError(f"Cannot connect to {self.host}:{self.port}: {e}") from e

        self._connected = True
        self._closing = False
        self._sentences.reset()
        self._recv_task = asyncio.create_task(self._receiver_loop())

        try:
            await self._login()
        except BaseException:
            await self.close()
            raise

        log.info(f"Logged in to {self.host}:{self.port} as {self.username}")

    async def close(self) -> None:
        self._closing = True
        self._connected = False
        if self._recv_task and not self._recv_task.done():
            self._recv_task.cancel()
            try:
                await self._recv_task
            except asyncio.CancelledError:
                pass
        if self._writer:
            writer, self._writer = self._writer, None
            writer.close()
            await writer.wait_closed()

    @property
    def connected(self) -> bool:
        return self._connected

    # ─── Authentication ───────────────────────────────────────────────────────

    async def _login(self) -> None:
        try:
            _, done = await self._request("/login", {
                "name": self.username,
                "password": self.password,
            })
            challenge = done.get("ret")
            if challenge:
                # Pre-6.43 routers answer the plain login with an MD5 challenge
                await self._request("/login", {
                    "name": self.username,
                    "response": md5_challenge_response(self.password, challenge),
                })
        except CommandError as e:
            raise RouterConnectionError(f"Authentication failed for {self.username}@{self.host}: {e}") from e

    # ─── Command Execution ────────────────────────────────────────────────────

    async def write(
        self,
        path: str,
        params: dict | None = None,
        queries: list[str] | None = None,
    ) -> list[dict]:
        """Execute a command and return all !re rows."""
        rows, _ = await self._request(path, params, queries)
        return rows

    async def _request(
        self,
        path: str,
        params: dict | None = None,
        queries: list[str] | None = None,
    ) -> tuple[list[dict], dict]:
        """Returns (rows, attributes of the closing !done)."""
        writer = self._writer
        if not self._connected or writer is None:
            raise RouterConnectionError("Not connected")

        tag = self._next_tag()
        replies: asyncio.Queue = asyncio.Queue()
        self._pending[tag] = replies

        try:
            async with self._send_lock:
                writer.write(build_sentence(command_words(path, params, queries, tag)))
                await writer.drain()

            rows: list[dict] = []
            trap: Reply | None = None
            while True:
                try:
                    reply = await asyncio.wait_for(replies.get(), timeout=self.timeout)
                except asyncio.TimeoutError:
                    raise CommandError(
                        f"No reply within {self.timeout:g}s", category="timeout", command=path
                    ) from None

                if reply.type == "!re":
                    rows.append(reply.attrs)
                elif reply.type == "!trap":
                    trap = reply
                elif reply.type == "!fatal":
                    raise RouterConnectionError(reply.message or "Connection closed by router")
                elif reply.type == "!done":
                    if trap is not None:
                        raise CommandError(
                            trap.message or str(trap.attrs),
                            category=trap.attrs.get("category", ""),
                            command=path,
                        )
                    return rows, reply.attrs
        except (ConnectionResetError, BrokenPipeError) as e:
            raise RouterConnectionError(f"Connection lost while sending {path}: {e}") from e
        finally:
            self._pending.pop(tag, None)

    # ─── Internal ─────────────────────────────────────────────────────────────

    def _next_tag(self) -> int:
        self._tag_counter = (self._tag_counter + 1) % 65535
        return self._tag_counter

    async def _receiver_loop(self) -> None:
        """Background task: reads bytes, decodes sentences, dispatches by tag."""
        error: Exception | None = None
        try:
            while True:
                chunk = await self._reader.read(_RECV_BUF)
                if not chunk:
                    break
                for words in self._sentences.feed(chunk):
                    self._dispatch(parse_reply(words))
        except asyncio.CancelledError:
            pass
        except Exception as e:
            error = e
            log.warning(f"Receiver loop error: {e}")
        finally:
            self._connected = False
            lost = Reply(type="!fatal", attrs={"message": "Connection lost"})
            for replies in self._pending.values():
                replies.put_nowait(lost)
            if self._sentences.pending:
                log.debug(f"Discarding {self._sentences.pending} bytes of an incomplete sentence")
            if not self._closing:
                log.warning(f"Connection to {self.host}:{self.port} closed")
                # close() will not be called for a link that died on its own
                if self._writer is not None:
                    writer, self._writer = self._writer, None
                    writer.close()
                if error is not None:
                    self._emit(self._error_handlers, error)
                self._emit(self._close_handlers)

    def _dispatch(self, reply: Reply) -> None:
        if reply.tag is not None and reply.tag in self._pending:
            self._pending[reply.tag].put_nowait(reply)
        elif reply.type == "!fatal":
            log.warning(f"Router sent !fatal: {reply.message}")
        else:
            log.debug(f"Untagged reply: {reply}")
