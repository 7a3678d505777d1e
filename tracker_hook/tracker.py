"""Pivotal Tracker REST client: story comments and state changes."""

from __future__ import annotations

import json
from typing import Any
from urllib import error, request

from .config import TrackerCredentials
from .settings import TRACKER_API_URL, TRACKER_TIMEOUT_SEC


class TrackerError(Exception):
    pass


class TrackerClient:
    def __init__(self, api_url: str = TRACKER_API_URL, timeout: int = TRACKER_TIMEOUT_SEC) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def story_url(self, project_id: str, story_id: str, extra_path: str = "") -> str:
        return f"{self.api_url}/projects/{project_id}/stories/{story_id}{extra_path}"

    def _send(self, method: str, url: str, token: str, payload: dict[str, Any]) -> dict[str, Any]:
        data = json.dumps(payload).encode("utf-8")
        req = request.Request(url, data=data, method=method)
        req.add_header("Accept", "application/json")
        req.add_header("Content-Type", "application/json")
        req.add_header("X-TrackerToken", token)
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8")
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="ignore")
            raise TrackerError(f"{method} {url} failed status={exc.code} body={body[:300]}") from exc
        except (error.URLError, TimeoutError, OSError) as exc:
            raise TrackerError(f"{method} {url} failed: {exc}") from exc
        if not raw.strip():
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise TrackerError(f"{method} {url} returned non-JSON body") from exc

    def post_comment(self, credentials: TrackerCredentials, story_id: str, text: str) -> dict[str, Any]:
        url = self.story_url(credentials.project_id, story_id, "/comments")
        return self._send("POST", url, credentials.api_token, {"text": text})

    def set_state(self, credentials: TrackerCredentials, story_id: str, state: str) -> dict[str, Any]:
        url = self.story_url(credentials.project_id, story_id)
        return self._send("PUT", url, credentials.api_token, {"current_state": state})
