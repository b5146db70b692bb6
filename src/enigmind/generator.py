"""Rule Generator: a secret code plus a rule set that pins it down.

Algorithm
---------
1. Draw the secret uniformly from the code space.
2. Draw candidate rules that hold for the secret.  A candidate is rejected
   when it does not shrink the current intersection ("0 impr"), or when its
   satisfying set contains the set of a rule already chosen ("redundant").
   With `sample_size > 1` several candidates are drawn per step and the one
   that shrinks the intersection the most is kept (greedy set cover).
3. Stop as soon as exactly one code survives.  It must be the secret.
4. A greedy pass then drops every rule the others make unnecessary.

Attempts that run out of samples or exceed the difficulty's rule budget are
restarted with a fresh secret; after `max_attempts` restarts generation fails
with GenerationExhausted.
"""
from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union

import numpy as np

from .code_space import Code
from .config import Difficulty, EngineConfig, resolve_difficulty
from .criteria import Criterion, build_criteria
from .errors import GenerationExhausted, InternalInvariantViolation
from .evaluator import CandidateFilter, get_filter
from .rules import Rule
from .utils_format import format_code

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# 1 - Result containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RuleSet:
    """The public half of a puzzle: never the secret.

    `rules` holds each criterion's verifier, in criterion order, for the engine
    and for solvers running in the same process.  `describe` and `to_json`
    only show the criteria; `reveal` is for answer keys.
    """
    ruleset_id: str
    base: int
    columns: int
    rules: Tuple[Rule, ...]
    criteria: Tuple[Criterion, ...]
    difficulty: str

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def describe(self) -> List[str]:
        """One line per rule, as much as the player is told about it."""
        return [f"{c.description}." for c in self.criteria]

    def reveal(self) -> List[str]:
        return [r.to_text() for r in self.rules]

    def to_json(self) -> Dict:
        return {
            "id": self.ruleset_id,
            "base": self.base,
            "columns": self.columns,
            "difficulty": self.difficulty,
            "criteria": [c.to_json() for c in self.criteria],
        }


@dataclass(frozen=True)
class Puzzle:
    ruleset: RuleSet
    secret: Code
    attempts: int


# ---------------------------------------------------------------------------
# 2 - Core generation loop
# ---------------------------------------------------------------------------


def generate_ruleset(
    evaluator: CandidateFilter,
    difficulty: Difficulty,
    rng: random.Random,
    max_attempts: int = 50,
    max_samples: int = 200,
) -> Tuple[Code, List[Rule], int]:
    """Return (secret, rules, attempts used).

    Raises GenerationExhausted when no attempt converges, and
    InternalInvariantViolation when the rules single out a code that is not
    the secret.
    """
    space = evaluator.space
    catalog = evaluator.catalog
    pool = [r for r in catalog.rules if catalog.coverage_pct(r) > difficulty.min_coverage_pct]
    if not pool:
        raise GenerationExhausted(0, f"no rule covers more than {difficulty.min_coverage_pct}% of the codes")

    for attempt in range(1, max_attempts + 1):
        secret_index = rng.randrange(space.size())
        secret = space.decode(secret_index)
        true_rules = [r for r in pool if r.evaluate(secret)]
        if not true_rules:
            logger.debug(f"Attempt {attempt}: no eligible rule holds for {format_code(secret)}")
            continue

        chosen = _pick_rules(evaluator, difficulty, rng, secret_index, true_rules, max_samples)
        if chosen is None:
            logger.debug(f"Attempt {attempt} for {format_code(secret)} did not converge, restarting")
            continue

        chosen = _minimize(evaluator, chosen)
        verify_unique(evaluator, chosen, secret)
        return secret, chosen, attempt

    raise GenerationExhausted(max_attempts)


def _pick_rules(
    evaluator: CandidateFilter,
    difficulty: Difficulty,
    rng: random.Random,
    secret_index: int,
    true_rules: List[Rule],
    max_samples: int,
) -> Optional[List[Rule]]:
    """Add rules until one code survives; None when the attempt is hopeless."""
    current = evaluator.space.full_mask()
    remaining = current.size
    chosen: List[Rule] = []
    misses = 0

    while remaining > 1:
        if len(chosen) >= difficulty.max_rules or misses >= max_samples:
            return None
        sample = rng.sample(true_rules, min(difficulty.sample_size, len(true_rules)))

        best: Optional[Rule] = None
        best_mask = None
        best_count = remaining
        for rule in sample:
            mask = evaluator.mask(rule)
            if not mask[secret_index]:
                raise InternalInvariantViolation(
                    f"{rule} holds for the secret but its mask excludes it"
                )
            narrowed = current & mask
            count = int(np.count_nonzero(narrowed))
            if _is_redundant(evaluator, mask, chosen):
                msg = "skipped (redundant)."
            elif count == remaining:
                msg = "skipped (0 impr)."
            elif count < best_count:
                best, best_mask, best_count = rule, narrowed, count
                msg = "candidate."
            else:
                msg = "skipped (weaker)."
            logger.debug(f"{rule.rule_id:<25} {msg:<20} remaining {count}")

        if best is None:
            misses += 1
            continue
        chosen.append(best)
        current, remaining = best_mask, best_count
        misses = 0

    survivor = int(np.flatnonzero(current)[0])
    if survivor != secret_index:
        raise InternalInvariantViolation(
            f"rules single out index {survivor} instead of the secret index {secret_index}"
        )
    return chosen


def _is_redundant(evaluator: CandidateFilter, mask: np.ndarray, chosen: List[Rule]) -> bool:
    """True when *mask* is a superset of some chosen rule's satisfying set."""
    return any(not np.any(evaluator.mask(c) & ~mask) for c in chosen)


# ---------------------------------------------------------------------------
# 3 - Minimisation & checks
# ---------------------------------------------------------------------------


def _minimize(evaluator: CandidateFilter, rules: List[Rule]) -> List[Rule]:
    """Greedy remove-any-that-stay-unique, weakest rules tried first.

    The result keeps the weakest-first order.
    """
    kept = sorted(rules, key=evaluator.coverage, reverse=True)
    for rule in list(kept):
        others = [r for r in kept if r is not rule]
        if others and evaluator.uniqueness(others) == 1:
            kept.remove(rule)
            logger.debug(f"Dropped {rule.rule_id}: implied by the other rules")
    return kept


def verify_unique(evaluator: CandidateFilter, rules: List[Rule], secret: Code) -> None:
    """Exactly one code satisfies *rules*, and it is *secret*."""
    mask = evaluator.ruleset_mask(rules)
    count = int(np.count_nonzero(mask))
    if count != 1:
        raise InternalInvariantViolation(f"rule set matches {count} codes instead of 1")
    survivor = evaluator.space.decode(int(np.flatnonzero(mask)[0]))
    if survivor != tuple(secret):
        raise InternalInvariantViolation(
            f"rule set singles out {format_code(survivor)}, not the secret"
        )


# ---------------------------------------------------------------------------
# 4 - Public entry point
# ---------------------------------------------------------------------------


def generate_puzzle(
    base: int,
    columns: int,
    difficulty: Union[str, int, Difficulty, None] = None,
    config: Optional[EngineConfig] = None,
    rng: Optional[random.Random] = None,
) -> Puzzle:
    """Secret code plus a rule set that uniquely determines it.

    Raises InvalidParameters, SpaceTooLarge or GenerationExhausted.
    """
    config = config or EngineConfig()
    rng = rng or random.Random()
    level = resolve_difficulty(difficulty, config.default_difficulty)
    evaluator = get_filter(base, columns, config.enumeration_ceiling,
                           config.max_sum_columns, config.mask_cache_bytes)

    secret, rules, attempts = generate_ruleset(
        evaluator, level, rng, config.max_attempts, config.max_samples
    )
    criteria = build_criteria(rules, evaluator.space, config.max_sum_columns, rng)
    ruleset = RuleSet(
        ruleset_id=uuid.uuid4().hex,
        base=base,
        columns=columns,
        rules=tuple(rules),
        criteria=criteria,
        difficulty=level.name,
    )
    logger.info(
        f"Generated {level.name} puzzle {base}^{columns}: {len(rules)} rules after {attempts} attempt(s)"
    )
    return Puzzle(ruleset, secret, attempts)
