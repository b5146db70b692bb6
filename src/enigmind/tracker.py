"""
Elimination Tracker: the player's cumulative deductions for one session.

Live rules are the candidates of each criterion (see criteria.py).  A
candidate marked CONTRADICTED by a test is crossed out for good.  From the
survivors the tracker derives the codes still possible:

    possible = AND over criteria of (OR of the criterion's live candidate masks)

and a (column, symbol) value stays live while some possible code holds that
symbol in that column.  Everything only ever shrinks.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, List, Mapping, Sequence, Tuple

import numpy as np

from .code_space import Code
from .criteria import Criterion
from .errors import InternalInvariantViolation, InvalidParameters, InvalidTransition
from .evaluator import CandidateFilter
from .rules import Rule
from .utils_format import column_letter, format_code

logger = logging.getLogger(__name__)

# (criterion index, candidate rule id)
CandidateRef = Tuple[int, str]


class Outcome(Enum):
    CONSISTENT = "consistent"
    CONTRADICTED = "contradicted"


def resolve_candidate_outcomes(
    criteria: Sequence[Criterion],
    code: Sequence[int],
    verdicts: Mapping[int, bool],
) -> Dict[CandidateRef, Outcome]:
    """Per-candidate outcomes from the verifiers' verdicts on *code*.

    A candidate is contradicted when it judges *code* differently from the
    criterion's verifier.
    """
    outcomes: Dict[CandidateRef, Outcome] = {}
    for index, verdict in verdicts.items():
        for rule in criteria[index].candidates:
            same = rule.evaluate(code) == verdict
            outcomes[(index, rule.rule_id)] = Outcome.CONSISTENT if same else Outcome.CONTRADICTED
    return outcomes


class EliminationTracker:
    """Monotonic record of crossed-out candidate rules and symbol values."""

    def __init__(self, evaluator: CandidateFilter, criteria: Sequence[Criterion]):
        self._evaluator = evaluator
        self.space = evaluator.space
        self.criteria = tuple(criteria)
        self._live: List[Dict[str, Rule]] = [
            {r.rule_id: r for r in c.candidates} for c in self.criteria
        ]
        self.history: List[Tuple[Code, Dict[CandidateRef, Outcome]]] = []
        self.frozen = False
        self._unions = [self._union(i) for i in range(len(self.criteria))]
        self._mask = self._possible_codes()
        self._values = self._values_of(self._mask)

    # ---- updates ----------------------------------------------------------

    def observe(self, code: Sequence[int], outcomes: Mapping[CandidateRef, Outcome]) -> List[CandidateRef]:
        """Record one test; return the candidates it crossed out."""
        if self.frozen:
            raise InvalidTransition("record a test", "frozen")
        code = self.space.validate(code)
        for ref in outcomes:
            self._check_ref(ref)

        crossed: List[CandidateRef] = []
        for (index, rule_id), outcome in outcomes.items():
            if outcome is Outcome.CONTRADICTED and rule_id in self._live[index]:
                del self._live[index][rule_id]
                crossed.append((index, rule_id))
        self.history.append((code, dict(outcomes)))

        if crossed:
            for index in {i for i, _ in crossed}:
                self._unions[index] = self._union(index)
            self._mask = self._possible_codes()
            self._values &= self._values_of(self._mask)
            logger.debug(
                f"Test {format_code(code)} crossed out {len(crossed)} rule(s); "
                f"{self.remaining_candidates()} candidate code(s) left"
            )
        return crossed

    def freeze(self) -> None:
        self.frozen = True

    # ---- queries ------------------------------------------------------------

    def is_rule_live(self, ref: CandidateRef) -> bool:
        self._check_ref(ref)
        index, rule_id = ref
        return rule_id in self._live[index]

    def live_rules(self, index: int) -> List[Rule]:
        return list(self._live[index].values())

    def is_value_live(self, position: int, symbol: int) -> bool:
        if not (0 <= position < self.space.columns and 0 <= symbol < self.space.base):
            raise InvalidParameters(f"No value {symbol} in column {position}")
        return bool(self._values[position, symbol])

    def live_values(self, position: int) -> List[int]:
        return [int(s) for s in np.flatnonzero(self._values[position])]

    def remaining_candidates(self) -> int:
        """Exact number of codes still possible."""
        return int(np.count_nonzero(self._mask))

    def candidate_mask(self) -> np.ndarray:
        return self._mask.copy()

    def render_grid(self) -> str:
        """Symbol/column grid, highest symbol first; crossed-out values shown as '.'."""
        width = len(str(self.space.base - 1))
        lines = [" " * (width + 1) + " ".join(f"{column_letter(c):>{width}}" for c in range(self.space.columns))]
        for symbol in reversed(range(self.space.base)):
            cells = [
                f"{symbol if self._values[c, symbol] else '.':>{width}}"
                for c in range(self.space.columns)
            ]
            lines.append(f"{symbol:>{width}} " + " ".join(cells))
        return "\n".join(lines)

    def check_soundness(self, secret: Sequence[int]) -> None:
        """The secret must survive every deduction; raise otherwise."""
        index = self.space.encode(secret)
        for i, criterion in enumerate(self.criteria):
            if criterion.verifier.rule_id not in self._live[i]:
                raise InternalInvariantViolation(f"verifier of criterion {i} was crossed out")
        if not self._mask[index]:
            raise InternalInvariantViolation("secret code was eliminated from the candidates")
        for position, symbol in enumerate(secret):
            if not self._values[position, symbol]:
                raise InternalInvariantViolation(
                    f"secret value {symbol} in column {column_letter(position)} was crossed out"
                )

    # ---- internals ---------------------------------------------------------

    def _check_ref(self, ref: CandidateRef) -> None:
        index, rule_id = ref
        if not 0 <= index < len(self.criteria):
            raise InvalidParameters(f"No criterion {index}")
        if rule_id not in self.criteria[index].candidate_ids():
            raise InvalidParameters(f"{rule_id} is not a candidate of criterion {index}")

    def _union(self, index: int) -> np.ndarray:
        """Codes some live candidate of criterion *index* accepts."""
        union = self.space.empty_mask()
        for rule in self._live[index].values():
            union |= self._evaluator.mask(rule, cache=False)
        return union

    def _possible_codes(self) -> np.ndarray:
        mask = self.space.full_mask()
        for union in self._unions:
            mask &= union
        return mask

    def _values_of(self, mask: np.ndarray) -> np.ndarray:
        """(columns, base) boolean matrix of the values some code in *mask* uses."""
        rows = self.space.digits[mask]
        values = np.zeros((self.space.columns, self.space.base), dtype=bool)
        for position in range(self.space.columns):
            values[position] = np.bincount(rows[:, position], minlength=self.space.base) > 0
        return values
