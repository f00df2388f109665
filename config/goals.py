# config/goals.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Reads config/goals.yaml (tag → list of goal lines) and turns the goals for
# a commitment's tags into a short text block. Reminder bodies use it for the
# {{goalsContext}} placeholder and the summarizer gets it as background.
# ============================================================================

from pathlib import Path

import yaml

from config.settings import GOALS_PATH
from utils.logger import logger


def load_goals(path: Path = None) -> dict[str, list[str]]:
    """
    Load the tag → goals mapping.

    A missing or unreadable file means "no goals", never an error: goals
    only decorate reminders and summaries.
    """
    path = Path(path or GOALS_PATH)
    if not path.exists():
        return {}

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warn("Could not read goals file", path=str(path), error=str(e))
        return {}

    if not isinstance(raw, dict):
        logger.warn("Goals file is not a mapping", path=str(path))
        return {}

    goals = {}
    for tag, lines in raw.items():
        if isinstance(lines, str):
            lines = [lines]
        goals[str(tag).lower()] = [str(line) for line in (lines or [])]
    return goals


def get_goals_for_tags(tags: list[str], goals: dict[str, list[str]] = None) -> str:
    """Return a bullet list of goals matching any of the tags, or ''."""
    if not tags:
        return ''
    if goals is None:
        goals = load_goals()

    seen = []
    for tag in tags:
        for line in goals.get(tag.lower(), []):
            if line not in seen:
                seen.append(line)

    if not seen:
        return ''
    return "Relevant goals:\n" + "\n".join(f"- {line}" for line in seen)
