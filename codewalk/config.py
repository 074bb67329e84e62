from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

LOG = logging.getLogger(__name__)

SETTINGS_RELATIVE_PATH = Path(".claude") / "codewalk.local.md"
LOCAL_TRACKING_DIRNAME = ".codewalk"
VALID_STORAGE = {"local", "global"}
FRONTMATTER_STORAGE = "local"

FRONTMATTER_RE = re.compile(r"\A---\r?\n(?P<body>.*?)\r?\n---", re.DOTALL)


@dataclass(frozen=True)
class CodewalkSettings:
    storage: str = "global"
    auto_commit: bool = True
    global_dir: Path = Path("~/.codewalk").expanduser()


def parse_frontmatter(content: str) -> dict[str, Any] | None:
    match = FRONTMATTER_RE.match(content)
    if not match:
        return None
    try:
        data = yaml.safe_load(match.group("body"))
    except yaml.YAMLError as error:
        LOG.warning("Invalid settings frontmatter: %s", error)
        return None
    return data if isinstance(data, dict) else None


def settings_from_mapping(data: dict[str, Any]) -> tuple[CodewalkSettings, list[str]]:
    """Settings from a present frontmatter block.

    Storage is global only when the block says so; a block without a usable
    ``storage`` means the repository keeps its own ``.codewalk`` directory.
    """
    warnings: list[str] = []
    defaults = CodewalkSettings()

    storage = str(data.get("storage", FRONTMATTER_STORAGE)).strip().lower()
    if storage not in VALID_STORAGE:
        warnings.append(f"Unknown storage {storage!r}; using {FRONTMATTER_STORAGE!r}.")
        storage = FRONTMATTER_STORAGE

    auto_commit_raw = data.get("autoCommit", defaults.auto_commit)
    auto_commit = auto_commit_raw if isinstance(auto_commit_raw, bool) else defaults.auto_commit
    if not isinstance(auto_commit_raw, bool):
        warnings.append("autoCommit must be true or false; using true.")

    global_dir_raw = data.get("globalDir")
    global_dir = Path(str(global_dir_raw)).expanduser() if global_dir_raw else defaults.global_dir

    return CodewalkSettings(storage=storage, auto_commit=auto_commit, global_dir=global_dir), warnings


def load_settings(repo_root: Path) -> tuple[CodewalkSettings, list[str]]:
    """Read ``.claude/codewalk.local.md``; defaults when absent or unusable."""
    path = repo_root / SETTINGS_RELATIVE_PATH
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return CodewalkSettings(), []
    except OSError as error:
        return CodewalkSettings(), [f"{path}: unreadable ({error})"]

    data = parse_frontmatter(content)
    if data is None:
        return CodewalkSettings(), [f"{path}: no usable frontmatter; using defaults."]
    settings, warnings = settings_from_mapping(data)
    for warning in warnings:
        LOG.warning("%s: %s", path, warning)
    return settings, [f"{path}: {warning}" for warning in warnings]


def tracking_directory(repo_root: Path, settings: CodewalkSettings) -> Path:
    if settings.storage == "global":
        return settings.global_dir / repo_root.name
    return repo_root / LOCAL_TRACKING_DIRNAME
