from __future__ import annotations

import random
import socket
import threading

import pytest

from tracker_hook.eightball import ANSWERS, EightBall
from tracker_hook.irc import IrcBot, IrcError, IrcMessage, parse_irc_line


class _Peer:
    """Server side of a socketpair, reading CRLF lines sent by the bot."""

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self.sock.settimeout(5)
        self.buffer = b""

    def send(self, line: str) -> None:
        self.sock.sendall((line + "\r\n").encode("utf-8"))

    def readline(self) -> str:
        while b"\r\n" not in self.buffer:
            chunk = self.sock.recv(4096)
            if not chunk:
                raise EOFError
            self.buffer += chunk
        line, self.buffer = self.buffer.split(b"\r\n", 1)
        return line.decode("utf-8")


@pytest.fixture
def session():
    ours, theirs = socket.socketpair()
    bot = IrcBot(server="irc.test", nick="SunlightBot", channel="#sunlightlabs", responder=lambda _text: "Outlook good")
    bot.attach(ours)
    peer = _Peer(theirs)
    yield bot, peer
    bot.close()
    theirs.close()


def test_parse_privmsg_with_prefix_and_trailing() -> None:
    msg = parse_irc_line(":luigi!~l@host PRIVMSG #sunlightlabs :SunlightBot: will it build?\r\n")
    assert msg == IrcMessage("luigi!~l@host", "PRIVMSG", ("#sunlightlabs", "SunlightBot: will it build?"))
    assert msg.sender == "luigi"


def test_parse_ping_and_numeric() -> None:
    assert parse_irc_line("PING :irc.test") == IrcMessage("", "PING", ("irc.test",))
    assert parse_irc_line(":irc.test 001 SunlightBot :Welcome") == IrcMessage(
        "irc.test", "001", ("SunlightBot", "Welcome")
    )


def test_parse_skips_tags_and_blank_lines() -> None:
    assert parse_irc_line("") is None
    assert parse_irc_line("@time=2020 :n!u@h JOIN #c").command == "JOIN"


def test_ping_is_answered(session) -> None:
    bot, peer = session
    peer.send("PING :irc.test")
    assert peer.readline() == "PONG :irc.test"


def test_welcome_joins_channel_and_join_echo_marks_joined(session) -> None:
    bot, peer = session
    peer.send(":irc.test 001 SunlightBot :Welcome")
    assert peer.readline() == "JOIN #sunlightlabs"
    peer.send(":SunlightBot!~b@host JOIN #sunlightlabs")
    assert bot.wait_joined(5)


def test_announce_writes_one_privmsg_line(session) -> None:
    bot, peer = session
    bot.announce("\x02bridge\x02 line one\nline two (Luigi) https://bit.ly/x")
    assert peer.readline() == "PRIVMSG #sunlightlabs :\x02bridge\x02 line one line two (Luigi) https://bit.ly/x"


def test_mention_gets_a_reply_addressed_to_sender(session) -> None:
    bot, peer = session
    peer.send(":luigi!~l@host PRIVMSG #sunlightlabs :SunlightBot: ship it?")
    assert peer.readline() == "PRIVMSG #sunlightlabs :luigi: Outlook good"


def test_other_channel_messages_are_ignored(session) -> None:
    bot, peer = session
    peer.send(":luigi!~l@host PRIVMSG #sunlightlabs :no mention here")
    peer.send(":luigi!~l@host PRIVMSG SunlightBot :SunlightBot: private")
    peer.send("PING :marker")
    assert peer.readline() == "PONG :marker"


def test_concurrent_announcements_do_not_interleave(session) -> None:
    bot, peer = session
    texts = [f"commit {i} " + "x" * 2000 for i in range(8)]
    threads = [threading.Thread(target=bot.announce, args=(t,)) for t in texts]
    for t in threads:
        t.start()

    received = {peer.readline() for _ in texts}
    for t in threads:
        t.join()

    assert received == {f"PRIVMSG #sunlightlabs :{t}" for t in texts}


def test_announce_without_connection_raises() -> None:
    bot = IrcBot(server="irc.test", nick="SunlightBot", channel="#c")
    with pytest.raises(IrcError):
        bot.announce("hello")


def test_eightball_answers_from_classic_list() -> None:
    ball = EightBall(random.Random(4))
    answers = {ball("SunlightBot: ?") for _ in range(50)}
    assert answers <= set(ANSWERS)
    assert len(ANSWERS) == 20


def test_dropped_session_reconnects_and_rejoins() -> None:
    listener = socket.create_server(("127.0.0.1", 0))
    listener.settimeout(5)
    port = listener.getsockname()[1]
    ours, theirs = socket.socketpair()
    bot = IrcBot(server="127.0.0.1", port=port, nick="SunlightBot", channel="#sunlightlabs", reconnect_delay=0.05)
    try:
        bot.attach(ours)
        theirs.close()

        conn, _ = listener.accept()
        peer = _Peer(conn)
        assert peer.readline() == "NICK SunlightBot"
        assert peer.readline() == "USER SunlightBot 0 * :SunlightBot"
        peer.send(":irc.test 001 SunlightBot :Welcome back")
        assert peer.readline() == "JOIN #sunlightlabs"
        peer.send(":SunlightBot!~b@host JOIN #sunlightlabs")
        assert bot.wait_joined(5)

        bot.announce("hello again")
        assert peer.readline() == "PRIVMSG #sunlightlabs :hello again"
    finally:
        bot.close()
        listener.close()


def test_close_stops_reconnecting() -> None:
    listener = socket.create_server(("127.0.0.1", 0))
    listener.settimeout(0.5)
    ours, theirs = socket.socketpair()
    bot = IrcBot(server="127.0.0.1", port=listener.getsockname()[1], channel="#c", reconnect_delay=0.05)
    try:
        bot.attach(ours)
        bot.close()
        theirs.close()
        with pytest.raises(socket.timeout):
            listener.accept()
        assert not bot.connected
    finally:
        listener.close()
