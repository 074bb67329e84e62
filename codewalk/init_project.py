from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .config import LOCAL_TRACKING_DIRNAME
from .templates import (
    CLAUDE_MD_MARKER,
    CLAUDE_MD_NAME,
    CLAUDE_MD_SECTION,
    CLAUDE_SETTINGS_RELATIVE_PATH,
    SKILL_RELATIVE_PATH,
    SKILL_TEMPLATE,
    stop_hooks,
)

LOG = logging.getLogger(__name__)

CREATED = "created"
SKIPPED = "skipped"
WARNING = "warning"


@dataclass(frozen=True)
class InitStep:
    status: str
    message: str


def ensure_skill_file(root: Path) -> InitStep:
    path = root / SKILL_RELATIVE_PATH
    if path.exists():
        return InitStep(SKIPPED, f"{SKILL_RELATIVE_PATH} already exists")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(SKILL_TEMPLATE, encoding="utf-8")
    return InitStep(CREATED, f"Created {SKILL_RELATIVE_PATH}")


def ensure_claude_md_section(root: Path) -> InitStep:
    path = root / CLAUDE_MD_NAME
    content = path.read_text(encoding="utf-8") if path.exists() else ""
    if CLAUDE_MD_MARKER in content:
        return InitStep(SKIPPED, f"{CLAUDE_MD_NAME} already references codewalk")
    if content.strip():
        content = content.rstrip("\n") + "\n\n" + CLAUDE_MD_SECTION
    else:
        content = CLAUDE_MD_SECTION
    path.write_text(content, encoding="utf-8")
    return InitStep(CREATED, f"Added codewalk instructions to {CLAUDE_MD_NAME}")


def ensure_tracking_dir(root: Path) -> InitStep:
    path = root / LOCAL_TRACKING_DIRNAME
    if path.is_dir():
        return InitStep(SKIPPED, f"{LOCAL_TRACKING_DIRNAME}/ already exists")
    path.mkdir(parents=True)
    return InitStep(CREATED, f"Created {LOCAL_TRACKING_DIRNAME}/")


def ensure_stop_hook(root: Path) -> InitStep:
    """Merge the Stop hook into the Claude settings, keeping every other key.

    A settings file that is not a JSON object is left untouched.
    """
    path = root / CLAUDE_SETTINGS_RELATIVE_PATH
    settings: dict = {}
    if path.exists():
        try:
            settings = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as error:
            LOG.warning("%s: invalid JSON (%s)", path, error)
            return InitStep(WARNING, f"{CLAUDE_SETTINGS_RELATIVE_PATH} is not valid JSON; left unchanged")
        if not isinstance(settings, dict):
            return InitStep(WARNING, f"{CLAUDE_SETTINGS_RELATIVE_PATH} is not a JSON object; left unchanged")

    hooks = settings.get("hooks") or {}
    if not isinstance(hooks, dict):
        return InitStep(WARNING, f"hooks in {CLAUDE_SETTINGS_RELATIVE_PATH} is not an object; left unchanged")
    if "Stop" in hooks:
        return InitStep(SKIPPED, "Stop hook already configured")

    settings["hooks"] = {**hooks, **stop_hooks()}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
    return InitStep(CREATED, f"Added Stop hook to {CLAUDE_SETTINGS_RELATIVE_PATH}")


def init_project(root: Path) -> list[InitStep]:
    """Set a repository up for tracked agent changes. Safe to run repeatedly."""
    return [
        ensure_skill_file(root),
        ensure_claude_md_section(root),
        ensure_tracking_dir(root),
        ensure_stop_hook(root),
    ]
