"""Rule templates and the per-space rule catalog.

Every rule is a pure predicate over a code.  Each template is one frozen
dataclass subclass of `Rule`:

* `IsEven`, `IsOdd`            "column A is even / odd"
* `IsLowest`, `IsHighest`      "column A holds the strict minimum / maximum"
* `SumBelow`, `SumEquals`, `SumAbove`
                               "the sum of columns A and C is below 7"
* `CountEquals`                "exactly 2 columns hold 3"
* `NotAt`                      "column B does not hold 4"
* `GreaterThan`                "column A is greater than column C"

A template provides its scalar `evaluate`, a vectorised `satisfying` over the
whole digit matrix of a CodeSpace, an English rendering and a `domain`
classmethod enumerating its instances.  Adding a template means writing one
more subclass and listing it in `TEMPLATES`; nothing else in the engine needs
to change.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from itertools import combinations
from typing import ClassVar, Dict, Iterable, Iterator, List, Sequence, Tuple

import numpy as np

from .code_space import DEFAULT_ENUMERATION_CEILING, CodeSpace, get_space
from .utils_format import column_letter, column_letters, english_join, plural

logger = logging.getLogger(__name__)

# (description, candidate rules) - see criteria.py
Family = Tuple[str, List["Rule"]]

# ---------------------------------------------------------------------------
# 1 - Rule base class
# ---------------------------------------------------------------------------


class Rule:
    """Abstract base class for every rule template."""

    rule_name: ClassVar[str] = "<abstract>"

    # ---- public interface -------------------------------------------------
    def evaluate(self, code: Sequence[int]) -> bool:
        raise NotImplementedError

    def satisfying(self, digits: np.ndarray) -> np.ndarray:
        """Boolean vector, one entry per row of *digits*: does that code satisfy the rule?"""
        raise NotImplementedError

    def to_text(self) -> str:
        """Plain-English rendering."""
        raise NotImplementedError

    def params(self) -> str:
        """Compact parameter list used in the rule id."""
        raise NotImplementedError

    @property
    def rule_id(self) -> str:
        return f"{self.rule_name}({self.params()})"

    def to_json(self) -> Dict:
        raise NotImplementedError

    @classmethod
    def domain(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Rule]:
        """Every instance of the template for *space*."""
        raise NotImplementedError

    @classmethod
    def coverage_counts(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Tuple[Rule, int]]:
        """(rule, number of satisfying codes) for every instance of the template."""
        for rule in cls.domain(space, max_sum_columns):
            yield rule, int(np.count_nonzero(rule.satisfying(space.digits)))

    def similar(self, space: CodeSpace, max_sum_columns: int) -> List[Family]:
        """Families of look-alike rules that contain this one."""
        raise NotImplementedError

    def __str__(self) -> str:
        return self.rule_id

    def __repr__(self):  # pragma: no cover
        return f"<{self.rule_id}: {self.to_text()}>"


def _all_columns(space: CodeSpace) -> range:
    return range(space.columns)


# ---------------------------------------------------------------------------
# 2 - Concrete templates
# ---------------------------------------------------------------------------


@dataclass(frozen=True, repr=False)
class IsEven(Rule):
    column: int
    rule_name: ClassVar[str] = "IsEven"
    parity: ClassVar[str] = "even"

    def evaluate(self, code: Sequence[int]) -> bool:
        return code[self.column] % 2 == 0

    def satisfying(self, digits: np.ndarray) -> np.ndarray:
        return digits[:, self.column] % 2 == 0

    def to_text(self) -> str:
        return f"Column {column_letter(self.column)} is even."

    def params(self) -> str:
        return column_letter(self.column)

    def to_json(self) -> Dict:
        return {"type": self.rule_name, "column": self.column}

    @classmethod
    def domain(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Rule]:
        for c in _all_columns(space):
            yield cls(c)

    def similar(self, space: CodeSpace, max_sum_columns: int) -> List[Family]:
        letter = column_letter(self.column)
        return [
            (f"Column {letter} is even or odd", [IsEven(self.column), IsOdd(self.column)]),
            (f"One of the columns is {self.parity}", [type(self)(c) for c in _all_columns(space)]),
        ]


@dataclass(frozen=True, repr=False)
class IsOdd(IsEven):
    rule_name: ClassVar[str] = "IsOdd"
    parity: ClassVar[str] = "odd"

    def evaluate(self, code: Sequence[int]) -> bool:
        return code[self.column] % 2 == 1

    def satisfying(self, digits: np.ndarray) -> np.ndarray:
        return digits[:, self.column] % 2 == 1

    def to_text(self) -> str:
        return f"Column {column_letter(self.column)} is odd."


@dataclass(frozen=True, repr=False)
class IsLowest(Rule):
    """The column holds the minimum, and no other column ties with it."""
    column: int
    rule_name: ClassVar[str] = "IsLowest"
    extreme: ClassVar[str] = "lowest"

    def _extreme(self, values: Sequence[int]) -> int:
        return min(values)

    def _extreme_rows(self, digits: np.ndarray) -> np.ndarray:
        return digits.min(axis=1)

    def evaluate(self, code: Sequence[int]) -> bool:
        target = self._extreme(code)
        return code[self.column] == target and list(code).count(target) == 1

    def satisfying(self, digits: np.ndarray) -> np.ndarray:
        target = self._extreme_rows(digits)
        ties = (digits == target[:, None]).sum(axis=1)
        return (digits[:, self.column] == target) & (ties == 1)

    def to_text(self) -> str:
        return f"Column {column_letter(self.column)} is strictly lower than every other column."

    def params(self) -> str:
        return column_letter(self.column)

    def to_json(self) -> Dict:
        return {"type": self.rule_name, "column": self.column}

    @classmethod
    def domain(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Rule]:
        for c in _all_columns(space):
            yield cls(c)

    def similar(self, space: CodeSpace, max_sum_columns: int) -> List[Family]:
        return [(f"One of the columns is the {self.extreme}", [type(self)(c) for c in _all_columns(space)])]


@dataclass(frozen=True, repr=False)
class IsHighest(IsLowest):
    """The column holds the maximum, and no other column ties with it."""
    rule_name: ClassVar[str] = "IsHighest"
    extreme: ClassVar[str] = "highest"

    def _extreme(self, values: Sequence[int]) -> int:
        return max(values)

    def _extreme_rows(self, digits: np.ndarray) -> np.ndarray:
        return digits.max(axis=1)

    def to_text(self) -> str:
        return f"Column {column_letter(self.column)} is strictly higher than every other column."


@dataclass(frozen=True, repr=False)
class SumBelow(Rule):
    columns: Tuple[int, ...]
    value: int
    rule_name: ClassVar[str] = "SumBelow"
    relation: ClassVar[str] = "below"

    def _compare(self, total, value):
        return total < value

    def evaluate(self, code: Sequence[int]) -> bool:
        return bool(self._compare(sum(code[c] for c in self.columns), self.value))

    def satisfying(self, digits: np.ndarray) -> np.ndarray:
        totals = digits[:, list(self.columns)].sum(axis=1)
        return self._compare(totals, self.value)

    def to_text(self) -> str:
        letters = [column_letter(c) for c in self.columns]
        if len(letters) == 1:
            return f"Column {letters[0]} is {self.relation} {self.value}."
        return f"The sum of columns {english_join(letters)} is {self.relation} {self.value}."

    def params(self) -> str:
        return f"{column_letters(self.columns)}, {self.value}"

    def to_json(self) -> Dict:
        return {"type": self.rule_name, "columns": list(self.columns), "value": self.value}

    @classmethod
    def domain(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Rule]:
        for k in range(1, min(max_sum_columns, space.columns) + 1):
            top = k * (space.base - 1)
            for cols in combinations(_all_columns(space), k):
                for value in cls._values(top):
                    yield cls(cols, value)

    @staticmethod
    def _values(top: int) -> range:
        # sum < 0 never holds
        return range(1, top + 1)

    @classmethod
    def coverage_counts(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Tuple[Rule, int]]:
        # one histogram of the totals per column subset serves every value
        for k in range(1, min(max_sum_columns, space.columns) + 1):
            top = k * (space.base - 1)
            for cols in combinations(_all_columns(space), k):
                totals = space.digits[:, list(cols)].sum(axis=1)
                histogram = np.bincount(totals, minlength=top + 1)
                for value in cls._values(top):
                    yield cls(cols, value), int(cls._histogram_count(histogram, value))

    @staticmethod
    def _histogram_count(histogram: np.ndarray, value: int) -> int:
        return histogram[:value].sum()

    def similar(self, space: CodeSpace, max_sum_columns: int) -> List[Family]:
        letters = english_join([column_letter(c) for c in self.columns])
        k = len(self.columns)
        siblings = [SumBelow(self.columns, self.value), SumEquals(self.columns, self.value),
                    SumAbove(self.columns, self.value)]
        same_width = [type(self)(cols, self.value) for cols in combinations(_all_columns(space), k)]
        if k == 1:
            subject = f"Column {letters} is"
        else:
            subject = f"The sum of columns {letters} is"
        families: List[Family] = [
            (f"{subject} below, equal to or above {self.value}", siblings),
        ]
        if k == 1:
            families.append((f"One of the columns is {self.relation} {self.value}", same_width))
        elif len(same_width) > 1:
            families.append((f"The sum of {k} columns is {self.relation} {self.value}", same_width))
        return families


@dataclass(frozen=True, repr=False)
class SumEquals(SumBelow):
    rule_name: ClassVar[str] = "SumEquals"
    relation: ClassVar[str] = "equal to"

    def _compare(self, total, value):
        return total == value

    @staticmethod
    def _values(top: int) -> range:
        return range(0, top + 1)

    @staticmethod
    def _histogram_count(histogram: np.ndarray, value: int) -> int:
        return histogram[value]


@dataclass(frozen=True, repr=False)
class SumAbove(SumBelow):
    rule_name: ClassVar[str] = "SumAbove"
    relation: ClassVar[str] = "above"

    def _compare(self, total, value):
        return total > value

    @staticmethod
    def _values(top: int) -> range:
        # sum > top never holds
        return range(0, top)

    @staticmethod
    def _histogram_count(histogram: np.ndarray, value: int) -> int:
        return histogram[value + 1:].sum()


@dataclass(frozen=True, repr=False)
class CountEquals(Rule):
    """Symbol appears in exactly *count* columns."""
    count: int
    symbol: int
    rule_name: ClassVar[str] = "CountEquals"

    def evaluate(self, code: Sequence[int]) -> bool:
        return sum(1 for s in code if s == self.symbol) == self.count

    def satisfying(self, digits: np.ndarray) -> np.ndarray:
        return (digits == self.symbol).sum(axis=1) == self.count

    def to_text(self) -> str:
        if self.count == 0:
            return f"No column holds {self.symbol}."
        return (
            f"Exactly {self.count} {plural(self.count, 'column holds', 'columns hold')} {self.symbol}."
        )

    def params(self) -> str:
        return f"{self.count}, {self.symbol}"

    def to_json(self) -> Dict:
        return {"type": self.rule_name, "count": self.count, "symbol": self.symbol}

    @classmethod
    def domain(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Rule]:
        for count in range(space.columns + 1):
            for symbol in range(space.base):
                yield cls(count, symbol)

    @classmethod
    def coverage_counts(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Tuple[Rule, int]]:
        per_symbol = [
            np.bincount((space.digits == s).sum(axis=1), minlength=space.columns + 1)
            for s in range(space.base)
        ]
        for count in range(space.columns + 1):
            for symbol in range(space.base):
                yield cls(count, symbol), int(per_symbol[symbol][count])

    def similar(self, space: CodeSpace, max_sum_columns: int) -> List[Family]:
        return [(
            f"There are X columns that hold {self.symbol}",
            [CountEquals(i, self.symbol) for i in range(space.columns + 1)],
        )]


@dataclass(frozen=True, repr=False)
class NotAt(Rule):
    column: int
    symbol: int
    rule_name: ClassVar[str] = "NotAt"

    def evaluate(self, code: Sequence[int]) -> bool:
        return code[self.column] != self.symbol

    def satisfying(self, digits: np.ndarray) -> np.ndarray:
        return digits[:, self.column] != self.symbol

    def to_text(self) -> str:
        return f"Column {column_letter(self.column)} does not hold {self.symbol}."

    def params(self) -> str:
        return f"{column_letter(self.column)}, {self.symbol}"

    def to_json(self) -> Dict:
        return {"type": self.rule_name, "column": self.column, "symbol": self.symbol}

    @classmethod
    def domain(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Rule]:
        for c in _all_columns(space):
            for symbol in range(space.base):
                yield cls(c, symbol)

    def similar(self, space: CodeSpace, max_sum_columns: int) -> List[Family]:
        letter = column_letter(self.column)
        return [
            (f"Some column does not hold {self.symbol}",
             [NotAt(c, self.symbol) for c in _all_columns(space)]),
            (f"Column {letter} does not hold one of the symbols",
             [NotAt(self.column, s) for s in range(space.base)]),
        ]


@dataclass(frozen=True, repr=False)
class GreaterThan(Rule):
    column: int
    other: int
    rule_name: ClassVar[str] = "GreaterThan"

    def evaluate(self, code: Sequence[int]) -> bool:
        return code[self.column] > code[self.other]

    def satisfying(self, digits: np.ndarray) -> np.ndarray:
        return digits[:, self.column] > digits[:, self.other]

    def to_text(self) -> str:
        return f"Column {column_letter(self.column)} is greater than column {column_letter(self.other)}."

    def params(self) -> str:
        return f"{column_letter(self.column)}, {column_letter(self.other)}"

    def to_json(self) -> Dict:
        return {"type": self.rule_name, "column": self.column, "other": self.other}

    @classmethod
    def domain(cls, space: CodeSpace, max_sum_columns: int) -> Iterator[Rule]:
        for c in _all_columns(space):
            for o in _all_columns(space):
                if c != o:
                    yield cls(c, o)

    def similar(self, space: CodeSpace, max_sum_columns: int) -> List[Family]:
        a, b = column_letter(self.column), column_letter(self.other)
        pairs = [GreaterThan(c, o) for c in _all_columns(space) for o in _all_columns(space) if c != o]
        return [
            (f"Columns {a} and {b} compare one way or the other",
             [GreaterThan(self.column, self.other), GreaterThan(self.other, self.column)]),
            ("One column is greater than another", pairs),
        ]


TEMPLATES: Tuple[type, ...] = (
    IsEven,
    IsOdd,
    IsLowest,
    IsHighest,
    SumBelow,
    SumEquals,
    SumAbove,
    CountEquals,
    NotAt,
    GreaterThan,
)

# ---------------------------------------------------------------------------
# 3 - Catalog
# ---------------------------------------------------------------------------


class RuleCatalog:
    """Immutable list of the informative rule instances for one code space.

    A rule is informative when it splits the space: at least one code
    satisfies it and at least one does not.  The number of satisfying codes
    (the rule's coverage) is recorded for every kept rule; the masks
    themselves are left to the evaluator's cache.
    """

    def __init__(self, space: CodeSpace, max_sum_columns: int = 3,
                 templates: Iterable[type] = TEMPLATES):
        self.space = space
        self.max_sum_columns = max_sum_columns
        self.templates = tuple(templates)

        rules: List[Rule] = []
        coverage: Dict[str, int] = {}
        dropped = 0
        size = space.size()
        for template in self.templates:
            for rule, count in template.coverage_counts(space, max_sum_columns):
                if rule.rule_id in coverage:
                    continue
                if count == 0 or count == size:
                    dropped += 1
                    continue
                rules.append(rule)
                coverage[rule.rule_id] = count

        self.rules: Tuple[Rule, ...] = tuple(rules)
        self._coverage = coverage
        self._by_id = {r.rule_id: r for r in rules}
        logger.info(
            f"Built rule catalog for {space!r}: {len(self.rules)} informative rules "
            f"({dropped} trivial instances dropped)"
        )

    def __len__(self) -> int:
        return len(self.rules)

    def __iter__(self) -> Iterator[Rule]:
        return iter(self.rules)

    def __contains__(self, rule: Rule) -> bool:
        return rule.rule_id in self._by_id

    def get(self, rule_id: str) -> Rule:
        return self._by_id[rule_id]

    def coverage(self, rule: Rule) -> int:
        """Number of codes satisfying *rule*."""
        return self._coverage[rule.rule_id]

    def coverage_pct(self, rule: Rule) -> float:
        return self._coverage[rule.rule_id] * 100 / self.space.size()

    def of_template(self, template: type) -> List[Rule]:
        return [r for r in self.rules if type(r) is template]


def get_catalog(base: int, columns: int, ceiling: int = DEFAULT_ENUMERATION_CEILING,
                max_sum_columns: int = 3) -> RuleCatalog:
    """Process-wide catalog for (base, columns); built on first use, then shared."""
    return _shared_catalog(base, columns, ceiling, max_sum_columns)


@lru_cache(maxsize=32)
def _shared_catalog(base: int, columns: int, ceiling: int, max_sum_columns: int) -> RuleCatalog:
    return RuleCatalog(get_space(base, columns, ceiling), max_sum_columns)
