"""
Small text helpers shared by the rule renderings, the CLI and the sessions.
"""

from typing import Iterable, List, Sequence, Tuple, Union

from .errors import InvalidCode

Code = Tuple[int, ...]


def column_letter(column: int) -> str:
    """Column 0 is 'A', column 1 is 'B', ..."""
    return chr(ord("A") + column)


def column_letters(columns: Iterable[int]) -> str:
    """Compact form used in rule ids: (0, 2) -> 'AC'."""
    return "".join(column_letter(c) for c in sorted(columns))


def english_join(words: List[str]) -> str:
    """Return comma-separated English list: "A, B and C"."""
    if not words:
        return ""
    if len(words) == 1:
        return words[0]
    return ", ".join(words[:-1]) + f" and {words[-1]}"


def plural(n: int, singular: str, plural_form: str) -> str:
    return singular if n == 1 else plural_form


def format_code(code: Sequence[int]) -> str:
    """'0312' for small alphabets, '0-3-11-2' once a symbol needs two digits."""
    if all(s < 10 for s in code):
        return "".join(str(s) for s in code)
    return "-".join(str(s) for s in code)


def parse_code(text: Union[str, Sequence[int]], base: int, columns: int) -> Code:
    """
    Parse and validate a code for a (base, columns) space.

    Accepts a sequence of ints, a digit string ("0312", only when base <= 10)
    or a separated string ("0-3-11-2", "0,3,11,2", "0 3 11 2").

    Raises:
        InvalidCode: wrong length, symbol out of range or unparsable text
    """
    if isinstance(text, str):
        raw = text.strip()
        for sep in ("-", ",", " "):
            if sep in raw:
                parts = [p for p in raw.split(sep) if p]
                break
        else:
            if base > 10 and len(raw) != columns:
                raise InvalidCode(f"Code {text!r} is ambiguous for base {base}; separate symbols with '-'")
            parts = list(raw)
        try:
            code = tuple(int(p) for p in parts)
        except ValueError:
            raise InvalidCode(f"Cannot parse code {text!r}") from None
    else:
        try:
            code = tuple(int(s) for s in text)
        except (TypeError, ValueError):
            raise InvalidCode(f"Cannot parse code {text!r}") from None

    if len(code) != columns:
        raise InvalidCode(f"Code {format_code(code)} has {len(code)} symbols, expected {columns}")
    if any(s < 0 or s >= base for s in code):
        raise InvalidCode(f"Code {format_code(code)} uses a symbol outside [0, {base})")
    return code
