"""Story annotations embedded in commit messages.

    [Story#####]
    [Story##### state:finished]
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator

DEFAULT_KEYWORD = "Story"

# Greedy prefix: the last `state:` on the first matching line wins.
# ASCII only: digits and word characters outside ASCII never form a tag.
STATE_RE = re.compile(r".*state:(\s?\w+)", re.ASCII)


@dataclass(frozen=True)
class AnnotationTag:
    story_id: str
    state: str | None = None


def _tag_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(r"\[" + re.escape(keyword) + r"(\d+)([^\]]*)\]", re.ASCII)


def _state_from_suffix(suffix: str) -> str | None:
    match = STATE_RE.search(suffix)
    if not match:
        return None
    return match.group(1).strip()


class AnnotationScan:
    """Annotation tags of one message, left to right.

    Each iteration rescans the message, so a scan can be walked more than once.
    """

    def __init__(self, message: str, keyword: str = DEFAULT_KEYWORD) -> None:
        self.message = message
        self.keyword = keyword
        self._pattern = _tag_pattern(keyword)

    def __iter__(self) -> Iterator[AnnotationTag]:
        for match in self._pattern.finditer(self.message):
            story_id, suffix = match.groups()
            yield AnnotationTag(story_id=story_id, state=_state_from_suffix(suffix))

    def __repr__(self) -> str:
        return f"AnnotationScan({self.message!r}, keyword={self.keyword!r})"


def scan_annotations(message: str, keyword: str = DEFAULT_KEYWORD) -> AnnotationScan:
    return AnnotationScan(message, keyword)
