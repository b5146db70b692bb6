"""
Engine facade: generate / describe / test / bid over opaque secret handles.

The engine keeps each puzzle's secret code in a private vault keyed by a
random handle.  Callers only ever hold the RuleSet and the handle; the raw
secret is never returned once generated.
"""

from __future__ import annotations

import logging
import random
import threading
import uuid
from enum import Enum
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

from .code_space import Code
from .config import Difficulty, EngineConfig
from .criteria import describe_criteria
from .errors import InvalidParameters, UnknownRuleSet, UnknownSession
from .evaluator import CandidateFilter, get_filter
from .generator import RuleSet, generate_puzzle
from .tracker import EliminationTracker, Outcome
from .utils_format import parse_code

logger = logging.getLogger(__name__)


class Resolution(Enum):
    WON = "won"
    LOST = "lost"


class _Sealed(NamedTuple):
    secret: Code
    base: int


class Engine:
    """Process-wide entry point; safe to share between sessions and threads."""

    def __init__(self, config: Optional[EngineConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or EngineConfig()
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._secrets: Dict[str, _Sealed] = {}
        self._rulesets: Dict[str, str] = {}  # ruleset id -> handle

    def evaluator(self, base: int, columns: int) -> CandidateFilter:
        return get_filter(base, columns, self.config.enumeration_ceiling,
                          self.config.max_sum_columns, self.config.mask_cache_bytes)

    # ---- generation -----------------------------------------------------------

    def generate(
        self,
        base: int,
        columns: int,
        difficulty: Union[str, int, Difficulty, None] = None,
    ) -> Tuple[RuleSet, str]:
        """New puzzle; returns (rule set, secret handle).

        Raises InvalidParameters, SpaceTooLarge or GenerationExhausted; on
        failure nothing is stored.
        """
        puzzle = generate_puzzle(base, columns, difficulty, self.config, self._rng)
        handle = uuid.uuid4().hex
        with self._lock:
            self._secrets[handle] = _Sealed(puzzle.secret, base)
            self._rulesets[puzzle.ruleset.ruleset_id] = handle
        return puzzle.ruleset, handle

    def release(self, handle: str) -> None:
        """Forget a puzzle's secret.  Unknown handles are ignored."""
        with self._lock:
            self._secrets.pop(handle, None)
            for ruleset_id in [r for r, h in self._rulesets.items() if h == handle]:
                del self._rulesets[ruleset_id]
        logger.debug(f"Released puzzle handle {handle}")

    def __len__(self) -> int:
        return len(self._secrets)

    # ---- descriptions ---------------------------------------------------------

    def describe_rules(self, ruleset: RuleSet) -> List[str]:
        """What the player is told about each rule: its criterion's description."""
        self._handle_of(ruleset)
        return ruleset.describe()

    def describe_criteria(self, ruleset: RuleSet) -> List[str]:
        self._handle_of(ruleset)
        return describe_criteria(ruleset.criteria)

    # ---- play -------------------------------------------------------------------

    def test(
        self,
        ruleset: RuleSet,
        handle: str,
        code: Union[str, Sequence[int]],
        criteria: Optional[Iterable[int]] = None,
    ) -> List[Outcome]:
        """Per-rule outcome of *code*, in rule set order (or in *criteria* order).

        CONSISTENT when the rule judges *code* the way it judges the secret.
        """
        secret = self._secret_for(ruleset, handle)
        code = parse_code(code, ruleset.base, ruleset.columns)
        outcomes = []
        for index in self.criteria_indices(ruleset, criteria):
            rule = ruleset.rules[index]
            same = rule.evaluate(code) == rule.evaluate(secret)
            outcomes.append(Outcome.CONSISTENT if same else Outcome.CONTRADICTED)
        return outcomes

    def bid(self, handle: str, code: Union[str, Sequence[int]]) -> Resolution:
        sealed = self._sealed(handle)
        code = parse_code(code, sealed.base, len(sealed.secret))
        return Resolution.WON if code == sealed.secret else Resolution.LOST

    def check_soundness(self, handle: str, tracker: EliminationTracker) -> None:
        """Raise InternalInvariantViolation if *tracker* excluded the secret."""
        tracker.check_soundness(self._secret(handle))

    @staticmethod
    def criteria_indices(ruleset: RuleSet, criteria: Optional[Iterable[int]]) -> Tuple[int, ...]:
        if criteria is None:
            return tuple(range(len(ruleset.rules)))
        indices = tuple(criteria)
        if not indices:
            raise InvalidParameters("At least one criterion must be tested")
        for i in indices:
            if not 0 <= i < len(ruleset.rules):
                raise InvalidParameters(f"No criterion {i}; the puzzle has {len(ruleset.rules)}")
        if len(set(indices)) != len(indices):
            raise InvalidParameters("A criterion can only be tested once per code")
        return indices

    # ---- vault ------------------------------------------------------------------

    def _sealed(self, handle: str) -> _Sealed:
        with self._lock:
            sealed = self._secrets.get(handle)
        if sealed is None:
            raise UnknownSession(f"Unknown or released puzzle handle {handle!r}")
        return sealed

    def _secret(self, handle: str) -> Code:
        return self._sealed(handle).secret

    def _handle_of(self, ruleset: RuleSet) -> str:
        with self._lock:
            handle = self._rulesets.get(ruleset.ruleset_id)
        if handle is None:
            raise UnknownRuleSet(f"Rule set {ruleset.ruleset_id!r} was not issued by this engine")
        return handle

    def _secret_for(self, ruleset: RuleSet, handle: str) -> Code:
        if self._handle_of(ruleset) != handle:
            raise UnknownRuleSet(f"Rule set {ruleset.ruleset_id!r} does not belong to this handle")
        return self._secret(handle)
