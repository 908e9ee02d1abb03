from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

GLOBAL_CONFIG = Path.home() / ".mentionfield_config.json"

# Private use area code point; no keyboard layout produces it.
DEFAULT_SENTINEL = "\ue000"
DEFAULT_TRIGGER = "@"
DEFAULT_MAX_SUGGESTIONS = 15

# Characters allowed after the trigger while a mention is being typed.
QUERY_CHARACTERS = "A-Za-z가-힣0-9_ "
_QUERY_CHARACTER_RE = re.compile(f"[{QUERY_CHARACTERS}]")


def _is_query_character(char: str) -> bool:
    return char.isalnum() or bool(_QUERY_CHARACTER_RE.fullmatch(char))


@dataclass(frozen=True)
class MentionStyle:
    """Toolkit independent description of how a mention label is drawn."""

    bold: bool = True
    italic: bool = False
    underline: bool = False
    color: Optional[str] = None
    background: Optional[str] = None


@dataclass(frozen=True)
class MentionConfig:
    """Immutable engine configuration, fixed at construction time."""

    sentinel: str = DEFAULT_SENTINEL
    trigger: str = DEFAULT_TRIGGER
    mention_style: MentionStyle = field(default_factory=MentionStyle)
    replace_all_occurrences: bool = False

    def __post_init__(self) -> None:
        if len(self.sentinel) != 1:
            raise ValueError(f"sentinel must be a single character, got {self.sentinel!r}")
        if len(self.trigger) != 1:
            raise ValueError(f"trigger must be a single character, got {self.trigger!r}")
        if self.sentinel == self.trigger:
            raise ValueError("sentinel and trigger must differ")
        if _is_query_character(self.trigger):
            raise ValueError(f"trigger {self.trigger!r} collides with query characters")
        # Every typed copy of the sentinel would be stripped as an orphan.
        if _is_query_character(self.sentinel) or self.sentinel.isspace():
            raise ValueError(f"sentinel {self.sentinel!r} is a typeable character")


def init_settings() -> None:
    GLOBAL_CONFIG.parent.mkdir(parents=True, exist_ok=True)


def _read_global_config() -> dict:
    """Return the parsed global config, or an empty dict on error/missing."""
    if not GLOBAL_CONFIG.exists():
        return {}
    try:
        payload = json.loads(GLOBAL_CONFIG.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError):
        return {}
    return payload if isinstance(payload, dict) else {}


def _update_global_config(updates: dict) -> None:
    payload = _read_global_config()
    payload.update(updates)
    try:
        init_settings()
        GLOBAL_CONFIG.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    except OSError as exc:
        logger.warning("Failed to write %s: %s", GLOBAL_CONFIG, exc)


def load_mention_style() -> MentionStyle:
    """Load the mention style; unknown keys and wrong types fall back to defaults."""
    payload = _read_global_config()
    raw = payload.get("mention_style")
    if not isinstance(raw, dict):
        return MentionStyle()
    defaults = MentionStyle()
    values = {}
    for name in ("bold", "italic", "underline"):
        value = raw.get(name)
        values[name] = value if isinstance(value, bool) else getattr(defaults, name)
    for name in ("color", "background"):
        value = raw.get(name)
        values[name] = value if isinstance(value, str) and value.strip() else None
    return MentionStyle(**values)


def save_mention_style(style: MentionStyle) -> None:
    _update_global_config({"mention_style": asdict(style)})


def load_trigger_character() -> str:
    payload = _read_global_config()
    trigger = payload.get("trigger")
    if isinstance(trigger, str) and len(trigger) == 1:
        return trigger
    return DEFAULT_TRIGGER


def save_trigger_character(trigger: str) -> None:
    _update_global_config({"trigger": trigger})


def load_replace_all_occurrences() -> bool:
    payload = _read_global_config()
    return bool(payload.get("replace_all_occurrences", False))


def save_replace_all_occurrences(enabled: bool) -> None:
    _update_global_config({"replace_all_occurrences": bool(enabled)})


def load_max_suggestions(default: int = DEFAULT_MAX_SUGGESTIONS) -> int:
    payload = _read_global_config()
    value = payload.get("max_suggestions", default)
    try:
        count = int(value)
    except (TypeError, ValueError):
        return default
    return max(1, count)


def save_max_suggestions(count: int) -> None:
    _update_global_config({"max_suggestions": max(1, int(count))})


def load_mention_config() -> MentionConfig:
    """Build a MentionConfig from the saved settings.

    An invalid saved trigger is logged and replaced with the default so a
    broken settings file never prevents the editor from starting.
    """
    style = load_mention_style()
    replace_all = load_replace_all_occurrences()
    trigger = load_trigger_character()
    try:
        return MentionConfig(trigger=trigger, mention_style=style, replace_all_occurrences=replace_all)
    except ValueError as exc:
        logger.warning("Ignoring saved trigger %r: %s", trigger, exc)
        return MentionConfig(mention_style=style, replace_all_occurrences=replace_all)
