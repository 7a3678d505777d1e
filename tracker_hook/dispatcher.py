"""Push event -> IRC announcements + tracker story comments/state changes.

Flow per push:
- announce every commit to the channel (always, regardless of tracker setup)
- if the repository maps to a tracker project and the ref is tracked, scan
  each commit for [Story###] annotations and comment on / move those stories
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from .annotations import DEFAULT_KEYWORD, scan_annotations
from .config import TrackerCredentials

logger = logging.getLogger("tracker-hook")


class Notifier(Protocol):
    def announce(self, text: str) -> None: ...


class Shortener(Protocol):
    def shorten(self, url: str) -> str: ...


class Tracker(Protocol):
    def post_comment(self, credentials: TrackerCredentials, story_id: str, text: str) -> Any: ...

    def set_state(self, credentials: TrackerCredentials, story_id: str, state: str) -> Any: ...


@dataclass(frozen=True)
class Commit:
    message: str
    author: str
    url: str


@dataclass(frozen=True)
class PushEvent:
    repository_name: str
    repository_url: str
    ref: str
    commits: tuple[Commit, ...]


def parse_push_payload(payload: Any) -> PushEvent:
    if not isinstance(payload, dict):
        raise ValueError("push payload must be a JSON object")
    repo = payload.get("repository")
    if not isinstance(repo, dict) or not repo.get("url"):
        raise ValueError("push payload missing repository url")
    raw_commits = payload.get("commits")
    if not isinstance(raw_commits, list):
        raise ValueError("push payload missing commits")

    commits = []
    for raw in raw_commits:
        if not isinstance(raw, dict):
            raise ValueError("push payload has a malformed commit")
        author = raw.get("author") or {}
        commits.append(
            Commit(
                message=raw.get("message") or "",
                author=(author.get("name") if isinstance(author, dict) else "") or "",
                url=raw.get("url") or "",
            )
        )

    return PushEvent(
        repository_name=repo.get("name") or "",
        repository_url=repo["url"],
        ref=payload.get("ref") or "",
        commits=tuple(commits),
    )


def announcement_text(push: PushEvent, commit: Commit, short_url: str) -> str:
    # \x02 toggles bold on IRC.
    return f"\x02{push.repository_name}\x02 {commit.message} ({commit.author}) {short_url}"


def tracker_comment_text(commit: Commit) -> str:
    return f"Commit: {commit.message} ({commit.author}) - {commit.url}"


class PushDispatcher:
    def __init__(
        self,
        projects: Mapping[str, TrackerCredentials],
        notifier: Notifier,
        shortener: Shortener,
        tracker: Tracker,
        keyword: str = DEFAULT_KEYWORD,
    ) -> None:
        self.projects = projects
        self.notifier = notifier
        self.shortener = shortener
        self.tracker = tracker
        self.keyword = keyword

    def process(self, push: PushEvent) -> int:
        """Handle one push; return how many story annotations were matched."""
        credentials = self.projects.get(push.repository_url)

        for commit in push.commits:
            self._announce(push, commit)

        if credentials is None:
            return 0
        if credentials.ref and push.ref != credentials.ref:
            logger.info("Skipping commits for non-tracked ref %s repo=%s", push.ref, push.repository_url)
            return 0

        matched = 0
        for commit in push.commits:
            matched += self._process_tracker_commit(credentials, commit)
        logger.info("processed push repo=%s ref=%s commits=%s matched=%s", push.repository_url, push.ref, len(push.commits), matched)
        return matched

    def _announce(self, push: PushEvent, commit: Commit) -> None:
        url = commit.url
        try:
            url = self.shortener.shorten(commit.url)
        except Exception as exc:
            logger.warning("failed to shorten url=%s err=%s", commit.url, exc)
        try:
            self.notifier.announce(announcement_text(push, commit, url))
        except Exception as exc:
            logger.warning("failed to announce commit repo=%s url=%s err=%s", push.repository_name, commit.url, exc)

    def _process_tracker_commit(self, credentials: TrackerCredentials, commit: Commit) -> int:
        message = tracker_comment_text(commit)
        matched = 0
        for tag in scan_annotations(message, self.keyword):
            matched += 1
            try:
                self.tracker.post_comment(credentials, tag.story_id, message)
            except Exception as exc:
                logger.warning(
                    "failed to post comment project=%s story=%s err=%s", credentials.project_id, tag.story_id, exc
                )
            if tag.state:
                try:
                    self.tracker.set_state(credentials, tag.story_id, tag.state)
                except Exception as exc:
                    logger.warning(
                        "failed to set state project=%s story=%s state=%s err=%s",
                        credentials.project_id,
                        tag.story_id,
                        tag.state,
                        exc,
                    )
        return matched
