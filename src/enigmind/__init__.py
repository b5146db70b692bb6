"""
enigmind - generate and play logic-deduction code puzzles.

A secret code of N symbols in [0, B) is hidden behind a set of rules that
exactly one code satisfies.  Players test codes, cross out rules and values,
and finally bid on the code.
"""

from .config import DIFFICULTY_PRESETS, Difficulty, EngineConfig, load_config
from .engine import Engine, Resolution
from .errors import (
    EnigmindError,
    GenerationExhausted,
    InternalInvariantViolation,
    InvalidCode,
    InvalidParameters,
    InvalidTransition,
    SpaceTooLarge,
    UnknownRuleSet,
    UnknownSession,
)
from .generator import Puzzle, RuleSet, generate_puzzle
from .session import Session, SessionState, SessionStore, TestRecord
from .tracker import EliminationTracker, Outcome

__version__ = "0.1.0"
