"""Single IRC session used for commit announcements and channel mentions.

Writes from any thread go through one lock, so concurrent webhook handlers
never interleave partial lines on the socket. A dropped session is reopened
every reconnect_delay seconds until close() is called.
"""

from __future__ import annotations

import logging
import socket
import threading
from dataclasses import dataclass
from typing import Callable

from .settings import IRC_CHANNEL, IRC_NICK, IRC_PORT, IRC_RECONNECT_DELAY_SEC, IRC_SERVER

logger = logging.getLogger("tracker-hook.irc")

Responder = Callable[[str], str | None]


class IrcError(Exception):
    pass


@dataclass(frozen=True)
class IrcMessage:
    prefix: str
    command: str
    params: tuple[str, ...]

    @property
    def sender(self) -> str:
        return self.prefix.split("!", 1)[0]


def parse_irc_line(line: str) -> IrcMessage | None:
    line = line.rstrip("\r\n")
    if line.startswith("@"):
        # IRCv3 message tags are not used.
        _, _, line = line.partition(" ")
    if not line:
        return None

    prefix = ""
    if line.startswith(":"):
        prefix, _, line = line[1:].partition(" ")

    trailing = None
    if " :" in line:
        line, trailing = line.split(" :", 1)
    elif line.startswith(":"):
        line, trailing = "", line[1:]

    parts = line.split()
    if not parts:
        return None
    params = parts[1:]
    if trailing is not None:
        params.append(trailing)
    return IrcMessage(prefix=prefix, command=parts[0].upper(), params=tuple(params))


def _one_line(text: str) -> str:
    return " ".join(text.splitlines()).strip()


class IrcBot:
    def __init__(
        self,
        server: str = IRC_SERVER,
        port: int = IRC_PORT,
        nick: str = IRC_NICK,
        channel: str = IRC_CHANNEL,
        responder: Responder | None = None,
        timeout: float = 30.0,
        reconnect_delay: float = IRC_RECONNECT_DELAY_SEC,
    ) -> None:
        self.server = server
        self.port = port
        self.nick = nick
        self.channel = channel
        self.responder = responder
        self.timeout = timeout
        self.reconnect_delay = reconnect_delay
        self._sock: socket.socket | None = None
        self._write_lock = threading.Lock()
        self._reader: threading.Thread | None = None
        self.joined = threading.Event()
        self._closing = threading.Event()

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        self._closing.clear()
        self._open()

    def _open(self) -> None:
        logger.info("connecting to irc %s:%s as %s", self.server, self.port, self.nick)
        try:
            sock = socket.create_connection((self.server, self.port), timeout=self.timeout)
        except OSError as exc:
            raise IrcError(f"cannot connect to {self.server}:{self.port}: {exc}") from exc
        self.attach(sock)
        self.send_line(f"NICK {self.nick}")
        self.send_line(f"USER {self.nick} 0 * :{self.nick}")

    def attach(self, sock: socket.socket) -> None:
        """Adopt an already-connected socket and start reading from it."""
        self._sock = sock
        self.joined.clear()
        self._reader = threading.Thread(target=self._read_loop, args=(sock,), name="irc-reader", daemon=True)
        self._reader.start()

    def wait_joined(self, timeout: float) -> bool:
        return self.joined.wait(timeout)

    def send_line(self, line: str) -> None:
        sock = self._sock
        if sock is None:
            raise IrcError("not connected to irc")
        data = (_one_line(line) + "\r\n").encode("utf-8")
        with self._write_lock:
            try:
                sock.sendall(data)
            except OSError as exc:
                self._drop(sock)
                raise IrcError(f"irc write failed: {exc}") from exc

    def msg(self, target: str, text: str) -> None:
        self.send_line(f"PRIVMSG {target} :{_one_line(text)}")

    def announce(self, text: str) -> None:
        self.msg(self.channel, text)

    def close(self) -> None:
        self._closing.set()
        sock = self._sock
        if sock is None:
            return
        try:
            self.send_line("QUIT :bye")
        except IrcError as exc:
            logger.debug("irc quit not sent err=%s", exc)
        self._drop(sock)

    def _drop(self, sock: socket.socket) -> None:
        if self._sock is sock:
            self._sock = None
            self.joined.clear()
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()

    def _read_loop(self, sock: socket.socket) -> None:
        buffer = b""
        while self._sock is sock:
            try:
                chunk = sock.recv(4096)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._sock is sock:
                    logger.warning("irc read failed err=%s", exc)
                break
            if not chunk:
                if self._sock is sock:
                    logger.warning("irc connection closed by %s", self.server)
                break
            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for raw in lines:
                try:
                    self.handle_line(raw.decode("utf-8", errors="replace"))
                except IrcError as exc:
                    logger.warning("irc reply failed err=%s", exc)
        lost = self._sock is sock
        self._drop(sock)
        if lost and not self._closing.is_set():
            self._reconnect()

    def _reconnect(self) -> None:
        """Reopen the session every reconnect_delay seconds until it works or close() is called."""
        while not self._closing.wait(self.reconnect_delay):
            try:
                self._open()
            except IrcError as exc:
                logger.warning("irc reconnect failed err=%s; retrying in %ss", exc, self.reconnect_delay)
                continue
            return

    def handle_line(self, line: str) -> None:
        message = parse_irc_line(line)
        if message is None:
            return

        if message.command == "PING":
            token = message.params[-1] if message.params else ""
            self.send_line(f"PONG :{token}")
        elif message.command == "001":
            self.send_line(f"JOIN {self.channel}")
        elif message.command == "JOIN":
            if message.sender == self.nick and message.params and message.params[0].lower() == self.channel.lower():
                logger.info("joined %s", self.channel)
                self.joined.set()
        elif message.command == "PRIVMSG" and len(message.params) >= 2:
            self._on_privmsg(message)

    def _on_privmsg(self, message: IrcMessage) -> None:
        target, text = message.params[0], message.params[1]
        if target.lower() != self.channel.lower() or self.responder is None:
            return
        if f"{self.nick}:" not in text:
            return
        reply = self.responder(text)
        if reply:
            self.msg(self.channel, f"{message.sender}: {reply}")
