"""Commit URL shortening through bitly."""

from __future__ import annotations

import json
from urllib import error, request

from .settings import BITLY_API_URL, BITLY_TOKEN, SHORTENER_TIMEOUT_SEC


class ShortenerError(Exception):
    pass


class BitlyShortener:
    """Shortens URLs with the bitly v4 API; without a token, URLs pass through."""

    def __init__(
        self,
        token: str = BITLY_TOKEN,
        api_url: str = BITLY_API_URL,
        timeout: int = SHORTENER_TIMEOUT_SEC,
    ) -> None:
        self.token = token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def shorten(self, url: str) -> str:
        if not self.token or not url:
            return url
        data = json.dumps({"long_url": url}).encode("utf-8")
        req = request.Request(f"{self.api_url}/shorten", data=data, method="POST")
        req.add_header("Accept", "application/json")
        req.add_header("Authorization", f"Bearer {self.token}")
        req.add_header("Content-Type", "application/json")
        try:
            with request.urlopen(req, timeout=self.timeout) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except error.HTTPError as exc:
            raise ShortenerError(f"bitly shorten failed status={exc.code} url={url}") from exc
        except (error.URLError, TimeoutError, OSError, json.JSONDecodeError) as exc:
            raise ShortenerError(f"bitly shorten failed url={url}: {exc}") from exc
        link = payload.get("link") if isinstance(payload, dict) else None
        if not link:
            raise ShortenerError(f"bitly response missing link for url={url}")
        return link
