"""Load config.yml into the repository -> tracker credentials map.

config.yml is a mapping of project name to settings:

    my-project:
      github_url: https://github.com/org/my-project
      tracker_api_token: abc123
      tracker_project_id: 4242
      ref: refs/heads/master   # optional
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml
from jsonschema import Draft202012Validator

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "config.schema.json"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class TrackerCredentials:
    project_id: str
    api_token: str = field(repr=False)
    ref: str | None = None


def _validator() -> Draft202012Validator:
    with SCHEMA_PATH.open("r", encoding="utf-8") as f:
        return Draft202012Validator(json.load(f))


def build_projects(data: Any) -> Mapping[str, TrackerCredentials]:
    """Validate parsed config data and key the credentials by github_url."""
    if data is None:
        data = {}

    errors = sorted(_validator().iter_errors(data), key=lambda e: list(e.absolute_path))
    if errors:
        first = errors[0]
        path = "/".join(str(p) for p in first.absolute_path) or "<root>"
        raise ConfigError(f"schema error at {path}: {first.message}")

    projects: dict[str, TrackerCredentials] = {}
    for name, project in data.items():
        url = project["github_url"].strip()
        if url in projects:
            raise ConfigError(f"duplicate github_url {url!r} in project {name!r}")
        projects[url] = TrackerCredentials(
            project_id=str(project["tracker_project_id"]),
            api_token=project["tracker_api_token"],
            ref=(project.get("ref") or None),
        )
    return MappingProxyType(projects)


def load_projects(path: Path) -> Mapping[str, TrackerCredentials]:
    if not path.exists():
        raise ConfigError(f"config file missing: {path}")
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"config file {path} is not valid YAML: {exc}") from exc
    return build_projects(data)
