"""Runtime configuration for the routing pipeline.

Architectural role:
    Centralizes feature switches and limits consumed by
    `chatroute.core.engine.MessageRouter` and the default
    `ConversationStore` it builds.

Resolution:
    `load_dotenv()` runs at import time so a local `.env` file can provide
    values. `PipelineSettings.from_env()` reads the process environment at
    call time; invalid values fall back to the documented default.

Variables:
    DIALECT_MIRRORING_LEVEL  off | light | medium      (default: light)
    SMALLTALK_STABILIZER     include stabilizer block   (default: true)
    WEB_RESEARCH_ENABLED     QUESTION may go to web     (default: false)
    SPELL_CORRECT_ENABLED    conservative typo fixing   (default: true)
    MAX_CONTEXT_TOKENS       input budget               (default: 32000)
    SESSION_TTL_SECONDS      idle session expiry        (default: 1800)
    PREF_TTL_SECONDS         preference expiry          (default: 3600)
    MAX_SESSIONS             session LRU bound          (default: 10000)
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


logger = logging.getLogger(__name__)


DIALECT_LEVELS = ("off", "light", "medium")
TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default

    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False

    logger.warning("Invalid boolean for %s=%r, using %s", name, raw, default)
    return default


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default

    try:
        value = int(raw.strip())
    except ValueError:
        logger.warning("Invalid integer for %s=%r, using %s", name, raw, default)
        return default

    if value < minimum:
        logger.warning("%s=%d is below %d, using %s", name, value, minimum, default)
        return default
    return value


def _env_choice(name: str, default: str, choices) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default

    value = raw.strip().lower()
    if value not in choices:
        logger.warning("Invalid value for %s=%r, using %s", name, raw, default)
        return default
    return value


@dataclass(frozen=True)
class PipelineSettings:
    dialect_mirroring_level: str = "light"
    smalltalk_stabilizer: bool = True
    web_research_enabled: bool = False
    spell_correct_enabled: bool = True
    max_context_tokens: int = 32000
    session_ttl_seconds: int = 1800
    pref_ttl_seconds: int = 3600
    max_sessions: int = 10000

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        """Build settings from the current process environment."""
        return cls(
            dialect_mirroring_level=_env_choice("DIALECT_MIRRORING_LEVEL", "light", DIALECT_LEVELS),
            smalltalk_stabilizer=_env_bool("SMALLTALK_STABILIZER", True),
            web_research_enabled=_env_bool("WEB_RESEARCH_ENABLED", False),
            spell_correct_enabled=_env_bool("SPELL_CORRECT_ENABLED", True),
            max_context_tokens=_env_int("MAX_CONTEXT_TOKENS", 32000),
            session_ttl_seconds=_env_int("SESSION_TTL_SECONDS", 1800),
            pref_ttl_seconds=_env_int("PREF_TTL_SECONDS", 3600),
            max_sessions=_env_int("MAX_SESSIONS", 10000),
        )
