"""
Candidate Filter: which codes remain consistent with a rule or a rule set.

Each rule's satisfying set is computed over the whole code space and kept
packed eight codes per byte in a least-recently-used cache bounded in bytes.
Callers always receive unpacked read-only boolean masks.  Filtering a rule
set is the AND of its rules' masks, and uniqueness is a popcount of that AND.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from functools import lru_cache
from typing import Iterable, Optional, Sequence

import numpy as np

from .code_space import DEFAULT_ENUMERATION_CEILING, CodeSpace
from .errors import InvalidParameters
from .rules import Rule, RuleCatalog, get_catalog

DEFAULT_MASK_CACHE_BYTES = 64 * 1024 * 1024


class CandidateFilter:
    """Evaluates rules against one code or against the whole code space.

    One instance is shared by every session playing in the same space, so the
    mask cache is guarded by a lock.  Masks handed out are read-only.
    """

    def __init__(self, space: CodeSpace, catalog: Optional[RuleCatalog] = None,
                 cache_bytes: int = DEFAULT_MASK_CACHE_BYTES):
        if catalog is not None and catalog.space is not space:
            raise InvalidParameters("catalog was built for a different code space")
        if cache_bytes < 0:
            raise InvalidParameters("cache_bytes must not be negative")
        self.space = space
        self.catalog = catalog
        self.cache_bytes = cache_bytes
        self._masks: OrderedDict[str, np.ndarray] = OrderedDict()
        self._lock = threading.Lock()

    def evaluate(self, rule: Rule, code: Sequence[int]) -> bool:
        """Direct predicate application."""
        return bool(rule.evaluate(code))

    def mask(self, rule: Rule, cache: bool = True) -> np.ndarray:
        """Satisfying set of *rule* over the whole space.

        With cache=False a missing mask is computed without being stored, for
        one-off rules such as criterion candidates.
        """
        key = rule.rule_id
        with self._lock:
            packed = self._masks.get(key)
            if packed is not None:
                self._masks.move_to_end(key)
        if packed is not None:
            computed = self.space.unpack(packed)
        else:
            computed = np.asarray(rule.satisfying(self.space.digits), dtype=bool)
            if cache:
                self._store(key, self.space.pack(computed))
        computed.setflags(write=False)
        return computed

    def coverage(self, rule: Rule) -> int:
        """Number of codes satisfying *rule*."""
        if self.catalog is not None and rule in self.catalog:
            return self.catalog.coverage(rule)
        return int(np.count_nonzero(self.mask(rule)))

    def coverage_pct(self, rule: Rule) -> float:
        return self.coverage(rule) * 100 / self.space.size()

    def is_informative(self, rule: Rule) -> bool:
        return 0 < self.coverage(rule) < self.space.size()

    def filter(self, rule: Rule, mask: np.ndarray) -> np.ndarray:
        """New mask: the codes of *mask* that satisfy *rule*."""
        return mask & self.mask(rule)

    def ruleset_mask(self, rules: Iterable[Rule], start: Optional[np.ndarray] = None) -> np.ndarray:
        """AND of every rule's mask (the full space when *rules* is empty)."""
        result = self.space.full_mask() if start is None else start.copy()
        for rule in rules:
            result &= self.mask(rule)
        return result

    def uniqueness(self, rules: Iterable[Rule]) -> int:
        """How many codes satisfy every rule: 0, 1 or more."""
        return int(np.count_nonzero(self.ruleset_mask(rules)))

    def count(self, mask: np.ndarray) -> int:
        return int(np.count_nonzero(mask))

    def cached_masks(self) -> int:
        return len(self._masks)

    def cached_bytes(self) -> int:
        with self._lock:
            return sum(p.nbytes for p in self._masks.values())

    def _store(self, key: str, packed: np.ndarray) -> None:
        if packed.nbytes > self.cache_bytes:
            return
        limit = self.cache_bytes // packed.nbytes
        with self._lock:
            self._masks[key] = packed
            self._masks.move_to_end(key)
            while len(self._masks) > limit:
                self._masks.popitem(last=False)


def get_filter(base: int, columns: int, ceiling: int = DEFAULT_ENUMERATION_CEILING,
               max_sum_columns: int = 3, cache_bytes: int = DEFAULT_MASK_CACHE_BYTES) -> CandidateFilter:
    """Process-wide filter (and catalog) for (base, columns)."""
    return _shared_filter(base, columns, ceiling, max_sum_columns, cache_bytes)


@lru_cache(maxsize=32)
def _shared_filter(base: int, columns: int, ceiling: int, max_sum_columns: int,
                   cache_bytes: int) -> CandidateFilter:
    catalog = get_catalog(base, columns, ceiling, max_sum_columns)
    return CandidateFilter(catalog.space, catalog, cache_bytes)
