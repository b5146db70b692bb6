"""
Criteria: each rule of a puzzle dressed up as a hidden verifier.

The player is shown the criterion's description and its candidate rules, but
not which candidate is the real one (the verifier).  Testing a code against a
criterion reveals the verifier's verdict; every candidate that would have
given a different verdict can be crossed out.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from .code_space import CodeSpace
from .errors import InternalInvariantViolation
from .rules import Rule


@dataclass(frozen=True)
class Criterion:
    verifier: Rule
    description: str
    candidates: Tuple[Rule, ...]

    def __post_init__(self):
        if self.verifier not in self.candidates:
            raise InternalInvariantViolation(f"verifier {self.verifier} missing from its candidates")

    def candidate_ids(self) -> List[str]:
        return [c.rule_id for c in self.candidates]

    def to_text(self, index: int) -> str:
        lines = [f"Criterion {index}: {self.description}."]
        for c in self.candidates:
            lines.append(f"    - {c.to_text()}")
        return "\n".join(lines)

    def to_json(self, reveal: bool = False) -> Dict:
        data = {
            "description": self.description,
            "candidates": [c.to_json() for c in self.candidates],
        }
        if reveal:
            data["verifier"] = self.verifier.to_json()
        return data


def build_criterion(rule: Rule, space: CodeSpace, max_sum_columns: int,
                    rng: random.Random) -> Criterion:
    """Pick one of *rule*'s look-alike families at random."""
    description, family = rng.choice(rule.similar(space, max_sum_columns))
    candidates: List[Rule] = []
    for c in family:
        if c not in candidates:
            candidates.append(c)
    if rule not in candidates:
        candidates.append(rule)
    return Criterion(rule, description, tuple(candidates))


def build_criteria(rules: Sequence[Rule], space: CodeSpace, max_sum_columns: int,
                   rng: random.Random) -> Tuple[Criterion, ...]:
    return tuple(build_criterion(r, space, max_sum_columns, rng) for r in rules)


def describe_criteria(criteria: Sequence[Criterion]) -> List[str]:
    """One block of text per criterion; never marks the verifier."""
    return [c.to_text(i) for i, c in enumerate(criteria)]
