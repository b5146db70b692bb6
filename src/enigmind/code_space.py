"""
Code Space: every code of N symbols over an alphabet of size B.

A code is a tuple of ints.  Codes are indexed in lexicographic order, the
first column being the most significant digit in base B, so index 0 is
(0, ..., 0) and index B^N - 1 is (B-1, ..., B-1).

Masks over the space are numpy boolean arrays of length B^N, bit i standing
for the code with index i.
"""

from __future__ import annotations

import logging
from functools import cached_property, lru_cache
from itertools import product
from typing import Iterator, List, Optional, Sequence, Union

import numpy as np

from .errors import InvalidParameters, SpaceTooLarge
from .utils_format import Code, format_code, parse_code

logger = logging.getLogger(__name__)

DEFAULT_ENUMERATION_CEILING = 1_000_000


class CodeSpace:
    """Enumerate, index and bit-encode the codes of a (base, columns) game."""

    def __init__(self, base: int, columns: int, ceiling: int = DEFAULT_ENUMERATION_CEILING):
        if base < 2 or columns < 2:
            raise InvalidParameters(f"base and columns must be at least 2, got base={base} columns={columns}")
        size = base ** columns
        if size > ceiling:
            raise SpaceTooLarge(size, ceiling)
        self.base = base
        self.columns = columns
        self.ceiling = ceiling
        self._size = size
        # weight of each column, most significant first
        self._weights = tuple(base ** (columns - 1 - i) for i in range(columns))

    def __repr__(self) -> str:
        return f"CodeSpace(base={self.base}, columns={self.columns}, size={self._size})"

    def __len__(self) -> int:
        return self._size

    def size(self) -> int:
        return self._size

    def encode(self, code: Sequence[int]) -> int:
        """Index of code; raises InvalidCode when code is not in this space."""
        code = self.validate(code)
        return sum(s * w for s, w in zip(code, self._weights))

    def decode(self, index: int) -> Code:
        if not 0 <= index < self._size:
            raise InvalidParameters(f"Index {index} outside [0, {self._size})")
        return tuple((index // w) % self.base for w in self._weights)

    def all(self) -> Iterator[Code]:
        """Every code in index order.  Each call starts a fresh iterator."""
        return product(range(self.base), repeat=self.columns)

    def validate(self, code: Union[str, Sequence[int]]) -> Code:
        return parse_code(code, self.base, self.columns)

    def format(self, code: Sequence[int]) -> str:
        return format_code(code)

    # ---- bit-set helpers -------------------------------------------------

    @cached_property
    def digits(self) -> np.ndarray:
        """(size, columns) matrix; row i is the code with index i.  Read-only."""
        index = np.arange(self._size, dtype=np.int64)
        matrix = np.empty((self._size, self.columns), dtype=np.int16)
        for col, weight in enumerate(self._weights):
            matrix[:, col] = (index // weight) % self.base
        matrix.setflags(write=False)
        logger.debug(f"Materialised digit matrix for {self!r}")
        return matrix

    def full_mask(self) -> np.ndarray:
        return np.ones(self._size, dtype=bool)

    def empty_mask(self) -> np.ndarray:
        return np.zeros(self._size, dtype=bool)

    def packed_size(self) -> int:
        """Bytes taken by one mask packed eight codes per byte."""
        return (self._size + 7) // 8

    def pack(self, mask: np.ndarray) -> np.ndarray:
        return np.packbits(mask)

    def unpack(self, packed: np.ndarray) -> np.ndarray:
        return np.unpackbits(packed, count=self._size).astype(bool)

    def codes_in(self, mask: np.ndarray, limit: Optional[int] = None) -> List[Code]:
        """Decode the codes whose bit is set in mask (in index order)."""
        indices = np.flatnonzero(mask)
        if limit is not None:
            indices = indices[:limit]
        return [self.decode(int(i)) for i in indices]


def get_space(base: int, columns: int, ceiling: int = DEFAULT_ENUMERATION_CEILING) -> CodeSpace:
    """Shared CodeSpace instance for (base, columns, ceiling)."""
    return _shared_space(base, columns, ceiling)


@lru_cache(maxsize=64)
def _shared_space(base: int, columns: int, ceiling: int) -> CodeSpace:
    return CodeSpace(base, columns, ceiling)
