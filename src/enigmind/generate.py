#!/usr/bin/env python3
"""Generate enigmind code-deduction puzzles.

Each puzzle is a secret code of N symbols in [0, B) together with a set of
rules that holds for **exactly one** code.  Every rule is also presented as a
criterion: a short description and a handful of look-alike candidate rules,
one of which is the real one.

Output (in --output):
  * enigmind_puzzles.json - list of {"question", "canonical_answer", "metadata"}
  * enigmind_puzzles.txt  - printable puzzles, answer keys after a spoiler line

CLI synopsis
------------
```bash
python -m enigmind.generate --base 5 --columns 3 --count 10 --difficulty hard --output puzzles
```
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import load_config, resolve_difficulty
from .errors import EnigmindError, GenerationExhausted
from .generator import Puzzle, generate_puzzle
from .utils_format import column_letter, format_code

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Renderers
# ---------------------------------------------------------------------------


def puzzle_description(puzzle: Puzzle) -> str:
    """The complete English text of one puzzle (no answer)."""
    rs = puzzle.ruleset
    letters = ", ".join(column_letter(c) for c in range(rs.columns))
    lines: List[str] = [
        f"Find the secret code: {rs.columns} columns ({letters}), each holding a symbol from 0 to {rs.base - 1}.",
        "Each criterion below hides one rule among look-alikes. Exactly one code",
        "satisfies every hidden rule.",
        "",
    ]
    for i, criterion in enumerate(rs.criteria):
        lines.append(criterion.to_text(i))
    return "\n".join(lines)


def puzzle_to_json(puzzle: Puzzle) -> Dict:
    return {
        "question": puzzle_description(puzzle),
        "canonical_answer": format_code(puzzle.secret),
        "metadata": {
            **puzzle.ruleset.to_json(),
            "rules": [r.to_json() for r in puzzle.ruleset.rules],
            "criteria": [c.to_json(reveal=True) for c in puzzle.ruleset.criteria],
            "attempts": puzzle.attempts,
        },
    }


def write_json_all(puzzles: List[Puzzle], path: Path) -> None:
    path.write_text(json.dumps([puzzle_to_json(p) for p in puzzles], indent=2), encoding="utf8")


def write_text_all(puzzles: List[Puzzle], path: Path) -> None:
    lines: List[str] = []
    for idx, puzzle in enumerate(puzzles, 1):
        if idx > 1:
            lines.append("")
            lines.append("=" * 80)
            lines.append("")
        rs = puzzle.ruleset
        lines.append(f"Enigmind #{idx} - base {rs.base}, {rs.columns} columns, {rs.difficulty}")
        lines.append("")
        lines.append(puzzle_description(puzzle))
        lines.append("")
        lines.append("Answer key (scroll past if you don't want spoilers)")
        lines.append("=" * 60)
        lines.append(" ")
        lines.append(format_code(puzzle.secret))
        for i, text in enumerate(rs.reveal()):
            lines.append(f"Criterion {i}: {text}")
    path.write_text("\n".join(lines), encoding="utf8")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def main(argv: Optional[Sequence[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="Generate enigmind code-deduction puzzles.")
    ap.add_argument("--base", type=int, default=5, help="Alphabet size B (symbols 0..B-1)")
    ap.add_argument("--columns", type=int, default=3, help="Code length N")
    ap.add_argument("--count", type=int, default=10, help="How many puzzles to generate")
    ap.add_argument("--difficulty", default=None, help="easy, normal, hard or a coverage percentage")
    ap.add_argument("--config", type=Path, default=None, help="JSON file overriding engine settings")
    ap.add_argument("--output", type=Path, default=Path("."), help="Directory for output files")
    ap.add_argument("--verbose", action="store_true", help="Log every rule the generator considers")

    args = ap.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.count < 1:
        ap.error("--count must be positive")
    try:
        config = load_config(args.config)
        difficulty = resolve_difficulty(args.difficulty, config.default_difficulty)
    except EnigmindError as e:
        ap.error(str(e))

    puzzles: List[Puzzle] = []
    for i in range(args.count):
        logger.info(f"Generating puzzle {i + 1}/{args.count}")
        try:
            puzzles.append(generate_puzzle(args.base, args.columns, difficulty, config))
        except GenerationExhausted as er:
            logger.warning(f"Skipping puzzle {i + 1}: {er}")
        except EnigmindError as er:
            logger.error(f"Cannot generate puzzles: {er}")
            return 1

    if not puzzles:
        logger.error("No puzzle could be generated")
        return 1

    args.output.mkdir(parents=True, exist_ok=True)
    json_path = args.output / "enigmind_puzzles.json"
    txt_path = args.output / "enigmind_puzzles.txt"
    write_json_all(puzzles, json_path)
    write_text_all(puzzles, txt_path)
    logger.info(f"Wrote {len(puzzles)} puzzle(s) to {json_path} and {txt_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
