"""GitHub push webhook receiver.

POST /   GitHub push payload (form-encoded `payload=` or raw JSON)
GET  /   usage hint
GET  /healthz
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlsplit

from .config import ConfigError, load_projects
from .dispatcher import PushDispatcher, parse_push_payload
from .eightball import EightBall
from .irc import IrcBot, IrcError
from .settings import CONFIG_FILE, HOST, PORT, STORY_KEYWORD, WEBHOOK_SECRET, setup_logging
from .shortener import BitlyShortener
from .tracker import TrackerClient

logger = logging.getLogger("tracker-hook")

USAGE_TEXT = "Have your github webhook point here; bridge works automatically via POST"
IRC_JOIN_TIMEOUT_SEC = 30


def verify_signature(secret: str, body: bytes, signature_header: str) -> bool:
    if not secret:
        return False
    if not signature_header.startswith("sha256="):
        return False
    expected = "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature_header)


def decode_body(body: bytes, content_type: str) -> Any:
    """Return the decoded push payload; raises ValueError on garbage."""
    text = body.decode("utf-8")
    if content_type.split(";", 1)[0].strip().lower() == "application/x-www-form-urlencoded":
        fields = parse_qs(text)
        if "payload" not in fields:
            raise ValueError("form body missing payload field")
        text = fields["payload"][0]
    return json.loads(text)


class HookServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address: tuple[str, int], dispatcher: PushDispatcher, webhook_secret: str = "") -> None:
        super().__init__(address, Handler)
        self.dispatcher = dispatcher
        self.webhook_secret = webhook_secret


class Handler(BaseHTTPRequestHandler):
    server: HookServer

    def log_message(self, fmt: str, *args: Any) -> None:
        logger.info("http %s - %s", self.address_string(), fmt % args)

    def _respond(self, code: HTTPStatus, payload: dict[str, Any]) -> None:
        data = json.dumps(payload).encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _respond_text(self, code: HTTPStatus, text: str) -> None:
        data = text.encode("utf-8")
        self.send_response(code)
        self.send_header("Content-Type", "text/plain; charset=utf-8")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def do_GET(self) -> None:  # noqa: N802
        path = urlsplit(self.path).path
        if path == "/":
            self._respond_text(HTTPStatus.OK, USAGE_TEXT)
            return
        if path == "/healthz":
            self._respond(HTTPStatus.OK, {"ok": True})
            return
        self._respond(HTTPStatus.NOT_FOUND, {"ok": False, "error": "not found"})

    def do_POST(self) -> None:  # noqa: N802
        if urlsplit(self.path).path != "/":
            self._respond(HTTPStatus.NOT_FOUND, {"ok": False, "error": "not found"})
            return

        try:
            length = int(self.headers.get("Content-Length", "0"))
        except ValueError:
            length = -1
        if length < 0:
            self._respond(HTTPStatus.BAD_REQUEST, {"ok": False, "error": "bad Content-Length"})
            return
        body = self.rfile.read(length)
        evt = self.headers.get("X-GitHub-Event", "")

        secret = self.server.webhook_secret
        if secret and not verify_signature(secret, body, self.headers.get("X-Hub-Signature-256", "")):
            self._respond(HTTPStatus.UNAUTHORIZED, {"ok": False, "error": "bad signature"})
            return

        if evt and evt != "push":
            self._respond(HTTPStatus.OK, {"ok": True, "ignored": f"event {evt}"})
            return

        try:
            payload = decode_body(body, self.headers.get("Content-Type", ""))
            push = parse_push_payload(payload)
        except (UnicodeDecodeError, ValueError) as exc:
            self._respond(HTTPStatus.BAD_REQUEST, {"ok": False, "error": str(exc)})
            return

        matched = self.server.dispatcher.process(push)
        self._respond(
            HTTPStatus.OK,
            {
                "ok": True,
                "repository": push.repository_url,
                "matched": matched,
                "message": f"Processed {matched} commits for stories",
            },
        )


def main() -> None:
    setup_logging()
    try:
        projects = load_projects(CONFIG_FILE)
    except ConfigError as exc:
        logger.error("Failed to startup: %s", exc)
        logger.error(
            "Ensure %s exists with 'github_url', 'tracker_api_token' and 'tracker_project_id' set for each project.",
            CONFIG_FILE,
        )
        raise SystemExit(1) from exc

    bot = IrcBot(responder=EightBall())
    try:
        bot.connect()
    except IrcError as exc:
        logger.error("Failed to startup: %s", exc)
        raise SystemExit(1) from exc
    if not bot.wait_joined(IRC_JOIN_TIMEOUT_SEC):
        logger.warning("not joined to %s after %ss; announcements may be dropped", bot.channel, IRC_JOIN_TIMEOUT_SEC)

    dispatcher = PushDispatcher(
        projects,
        notifier=bot,
        shortener=BitlyShortener(),
        tracker=TrackerClient(),
        keyword=STORY_KEYWORD,
    )
    server = HookServer((HOST, PORT), dispatcher, WEBHOOK_SECRET)
    logger.info("Tracker hook listening on http://%s:%s/", HOST, PORT)
    logger.info("Health endpoint: http://%s:%s/healthz", HOST, PORT)
    logger.info("Config file: %s (%s tracked repositories)", CONFIG_FILE, len(projects))
    if not WEBHOOK_SECRET:
        logger.warning("GITHUB_WEBHOOK_SECRET is empty; webhook signatures are not checked.")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("shutting down")
    finally:
        server.server_close()
        bot.close()


if __name__ == "__main__":
    main()
