"""
Engine configuration and difficulty presets.

The defaults below are what a fresh Engine uses.  A JSON file with any subset
of the EngineConfig field names can override them:

    {"enumeration_ceiling": 200000, "feedback_mode": "count"}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Optional, Union

from .errors import InvalidParameters

logger = logging.getLogger(__name__)


# Feedback granularity of a test (see Session.test)
FEEDBACK_PER_RULE = "per_rule"
FEEDBACK_COUNT = "count"
FEEDBACK_MODES = (FEEDBACK_PER_RULE, FEEDBACK_COUNT)


@dataclass(frozen=True)
class Difficulty:
    """Knobs the generator's heuristic respects.

    min_coverage_pct: a rule is only eligible when strictly more than this
        percentage of the code space satisfies it.  Higher values keep only
        weak rules, so more of them are needed.
    sample_size: candidate rules drawn per step; the one that shrinks the
        remaining candidates the most is kept.  1 means plain random choice.
    max_rules: an attempt whose rule set grows past this size is restarted.
    """
    name: str
    min_coverage_pct: int = 10
    sample_size: int = 3
    max_rules: int = 16


DIFFICULTY_PRESETS: Dict[str, Difficulty] = {
    "easy": Difficulty("easy", min_coverage_pct=0, sample_size=8, max_rules=12),
    "normal": Difficulty("normal", min_coverage_pct=10, sample_size=3, max_rules=16),
    "hard": Difficulty("hard", min_coverage_pct=25, sample_size=1, max_rules=24),
}


def resolve_difficulty(value: Union[str, int, Difficulty, None], default: str = "normal") -> Difficulty:
    """Turn a preset name, a coverage percentage or a Difficulty into a Difficulty."""
    if value is None:
        value = default
    if isinstance(value, Difficulty):
        return value
    if isinstance(value, bool):
        raise InvalidParameters(f"Invalid difficulty: {value!r}")
    if isinstance(value, int):
        pct = max(0, min(100, value))
        return replace(DIFFICULTY_PRESETS["normal"], name=f"{pct}%", min_coverage_pct=pct)
    if isinstance(value, str):
        key = value.strip().lower()
        if key in DIFFICULTY_PRESETS:
            return DIFFICULTY_PRESETS[key]
        if key.rstrip("%").isdigit():
            return resolve_difficulty(int(key.rstrip("%")))
    raise InvalidParameters(
        f"Unknown difficulty {value!r}; expected one of {sorted(DIFFICULTY_PRESETS)} or a percentage"
    )


@dataclass(frozen=True)
class EngineConfig:
    """Process-wide engine settings."""
    enumeration_ceiling: int = 1_000_000
    max_attempts: int = 50
    max_samples: int = 200
    feedback_mode: str = FEEDBACK_PER_RULE
    default_difficulty: str = "normal"
    max_sum_columns: int = 3
    session_ttl_seconds: Optional[float] = 3600.0
    mask_cache_bytes: int = 64 * 1024 * 1024

    def __post_init__(self):
        if self.enumeration_ceiling < 4:
            raise InvalidParameters("enumeration_ceiling must be at least 4")
        if self.max_attempts < 1 or self.max_samples < 1:
            raise InvalidParameters("max_attempts and max_samples must be positive")
        if self.feedback_mode not in FEEDBACK_MODES:
            raise InvalidParameters(
                f"feedback_mode must be one of {FEEDBACK_MODES}, got {self.feedback_mode!r}"
            )
        if self.max_sum_columns < 1:
            raise InvalidParameters("max_sum_columns must be at least 1")
        if self.session_ttl_seconds is not None and self.session_ttl_seconds <= 0:
            raise InvalidParameters("session_ttl_seconds must be positive or null")
        if self.mask_cache_bytes < 0:
            raise InvalidParameters("mask_cache_bytes must not be negative")
        resolve_difficulty(self.default_difficulty)

    @classmethod
    def from_dict(cls, data: Dict) -> EngineConfig:
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidParameters(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> EngineConfig:
        path = Path(path)
        logger.info(f"Loading engine configuration from {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidParameters(f"Cannot read configuration file {path}: {e}") from e
        if not isinstance(data, dict):
            raise InvalidParameters(f"Configuration file {path} does not contain an object")
        return cls.from_dict(data)


def load_config(path: Union[str, Path, None] = None) -> EngineConfig:
    """Defaults when path is None, otherwise the JSON overrides in path."""
    if path is None:
        return EngineConfig()
    return EngineConfig.from_json(path)
