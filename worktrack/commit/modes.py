"""Commit mode resolution.

The effective commit policy for a session is derived on every execution
from the session record:

1. An explicit ``commit_mode`` wins. Its serialized settings, if any, are
   merged over the defaults and ``mode`` is forced to the explicit value.
2. Otherwise the legacy ``auto_commit`` flag maps ``True`` to checkpoint
   and ``False`` to disabled.
3. Otherwise checkpoint mode with the default prefix.

Resolution never raises; malformed settings are logged and ignored.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_PREFIX = "checkpoint: "

DEFAULT_STRUCTURED_PROMPT_TEMPLATE = """
When you have finished the requested changes, create a git commit yourself.
- Stage only the files that belong to this change.
- Use a conventional commit message (e.g. "feat: ...", "fix: ...", "refactor: ...").
- Keep the subject line under 72 characters and describe why in the body when useful.
"""


class CommitMode(str, Enum):
    """Commit policy applied after each execution."""

    STRUCTURED = "structured"
    CHECKPOINT = "checkpoint"
    DISABLED = "disabled"


class CommitModeSettings(BaseModel):
    """Effective commit settings.

    Serialized settings use camelCase keys. Keys not declared here are kept
    as mode-specific extension fields.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    mode: CommitMode = Field(default=CommitMode.CHECKPOINT)
    checkpoint_prefix: str = Field(default=DEFAULT_CHECKPOINT_PREFIX)
    structured_prompt_template: Optional[str] = Field(default=None)
    allow_claude_tools: bool = Field(default=False)


class CommitModeSource(Protocol):
    """Session fields consulted by the resolver."""

    commit_mode: Optional[CommitMode]
    commit_mode_settings: Optional[str]
    auto_commit: Optional[bool]


@dataclass
class SettingsParseResult:
    """Outcome of parsing serialized commit mode settings."""

    ok: bool
    values: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


def parse_commit_mode_settings(raw: str | None) -> SettingsParseResult:
    """Parse serialized settings into a plain mapping.

    Args:
        raw: JSON object text as stored on the session

    Returns:
        SettingsParseResult; ok is False when the payload is not a JSON object
    """
    if not raw:
        return SettingsParseResult(ok=True)

    try:
        values = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        return SettingsParseResult(ok=False, error=f"Invalid JSON: {e}")

    if not isinstance(values, dict):
        return SettingsParseResult(
            ok=False, error=f"Expected a JSON object, got {type(values).__name__}"
        )

    return SettingsParseResult(ok=True, values=values)


def default_settings(
    mode: CommitMode = CommitMode.CHECKPOINT,
    checkpoint_prefix: str = DEFAULT_CHECKPOINT_PREFIX,
) -> CommitModeSettings:
    return CommitModeSettings(mode=mode, checkpoint_prefix=checkpoint_prefix)


def resolve_commit_settings(
    session: CommitModeSource | None,
    default_prefix: str = DEFAULT_CHECKPOINT_PREFIX,
) -> CommitModeSettings:
    """Derive the effective commit settings for a session.

    Args:
        session: Session record, or None if the session is unknown
        default_prefix: Checkpoint prefix used when settings do not set one

    Returns:
        CommitModeSettings, never raising
    """
    if session is None:
        logger.debug("No session record, using checkpoint mode")
        return default_settings(checkpoint_prefix=default_prefix)

    explicit_mode = getattr(session, "commit_mode", None)
    if explicit_mode:
        try:
            mode = CommitMode(explicit_mode)
        except ValueError:
            logger.error(f"Unknown commit mode {explicit_mode!r}, using checkpoint mode")
            return default_settings(checkpoint_prefix=default_prefix)

        settings = default_settings(mode, default_prefix)
        raw = getattr(session, "commit_mode_settings", None)
        parsed = parse_commit_mode_settings(raw)
        if not parsed.ok:
            logger.error(f"Failed to parse commit mode settings: {parsed.error}")
            return settings

        merged = {**settings.model_dump(), **parsed.values, "mode": mode}
        # Drop snake_case defaults the payload overrides with camelCase keys
        for name, info in CommitModeSettings.model_fields.items():
            if info.alias and info.alias != name and info.alias in parsed.values:
                merged.pop(name, None)
        try:
            settings = CommitModeSettings.model_validate(merged)
        except ValidationError as e:
            logger.error(f"Invalid commit mode settings: {e}")
            return default_settings(mode, default_prefix)

        logger.debug(f"Resolved commit settings: {settings.model_dump(mode='json')}")
        return settings

    auto_commit = getattr(session, "auto_commit", None)
    if auto_commit is not None:
        mode = CommitMode.CHECKPOINT if auto_commit else CommitMode.DISABLED
        logger.debug(f"Using legacy auto_commit={auto_commit} -> {mode.value}")
        return default_settings(mode, default_prefix)

    return default_settings(checkpoint_prefix=default_prefix)


def build_structured_prompt(prompt: str, settings: CommitModeSettings) -> str:
    """Append commit instructions to an agent prompt in structured mode.

    Other modes return the prompt unchanged.
    """
    if settings.mode != CommitMode.STRUCTURED:
        return prompt

    template = settings.structured_prompt_template or DEFAULT_STRUCTURED_PROMPT_TEMPLATE
    return f"{prompt.rstrip()}\n\n{template.strip()}\n"
