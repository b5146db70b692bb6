"""
One puzzle's lifecycle, and a store that keeps many of them apart.

    CREATED -> GENERATING -> ACTIVE -> AWAITING_BID -> WON | LOST

Generation failure returns the session to CREATED (retryable).  A failed
uniqueness or soundness check moves it to ABORTED.  Abandoning moves it to
ABANDONED.  WON, LOST, ABORTED and ABANDONED are final.

Each session serialises its own operations with a lock; the store's lock is
only held while looking sessions up, so sessions never block each other.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .code_space import Code, get_space
from .config import FEEDBACK_COUNT, Difficulty
from .engine import Engine, Resolution
from .errors import InternalInvariantViolation, InvalidTransition, UnknownSession
from .generator import RuleSet
from .tracker import CandidateRef, EliminationTracker, Outcome, resolve_candidate_outcomes
from .utils_format import format_code

logger = logging.getLogger(__name__)


class SessionState(Enum):
    CREATED = "created"
    GENERATING = "generating"
    ACTIVE = "active"
    AWAITING_BID = "awaiting_bid"
    WON = "won"
    LOST = "lost"
    ABORTED = "aborted"
    ABANDONED = "abandoned"


FINAL_STATES = frozenset(
    {SessionState.WON, SessionState.LOST, SessionState.ABORTED, SessionState.ABANDONED}
)


@dataclass(frozen=True)
class TestRecord:
    """What the player learned from one test.

    In count feedback mode `outcomes` is None and only `contradicted` is known.
    """
    __test__ = False  # not a pytest class

    code: Code
    criteria: Tuple[int, ...]
    outcomes: Optional[Tuple[Outcome, ...]]
    contradicted: int
    crossed_out: Tuple[CandidateRef, ...]


class Session:
    """A single player's puzzle, from generation to the final bid."""

    def __init__(self, engine: Engine, base: int, columns: int,
                 session_id: Optional[str] = None, clock: Callable[[], float] = time.monotonic):
        # validates (base, columns) before anything is stored
        self.space = get_space(base, columns, engine.config.enumeration_ceiling)
        self.session_id = session_id or uuid.uuid4().hex
        self.engine = engine
        self.base = base
        self.columns = columns
        self.feedback_mode = engine.config.feedback_mode
        self.ruleset: Optional[RuleSet] = None
        self.tests: List[TestRecord] = []
        self.resolution: Optional[Resolution] = None
        self._handle: Optional[str] = None
        self._tracker: Optional[EliminationTracker] = None
        self._state = SessionState.CREATED
        self._lock = threading.RLock()
        self._clock = clock
        self.last_used = clock()

    def __repr__(self) -> str:
        return f"Session({self.session_id[:8]}, {self.base}^{self.columns}, {self._state.value})"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_final(self) -> bool:
        return self._state in FINAL_STATES

    # ---- transitions ----------------------------------------------------------

    def start(self, difficulty: Union[str, int, Difficulty, None] = None) -> RuleSet:
        """Generate the puzzle.  On GenerationExhausted the session stays CREATED."""
        with self._lock:
            self._require("start", SessionState.CREATED)
            self._move(SessionState.GENERATING)
            try:
                ruleset, handle = self.engine.generate(self.base, self.columns, difficulty)
            except InternalInvariantViolation:
                self._abort()
                raise
            except Exception:
                self._move(SessionState.CREATED)
                raise

            tracker = EliminationTracker(self.engine.evaluator(self.base, self.columns), ruleset.criteria)
            self.ruleset, self._handle, self._tracker = ruleset, handle, tracker
            self._check_soundness()
            self._move(SessionState.ACTIVE)
            return ruleset

    def test(self, code: Union[str, Sequence[int]], criteria: Optional[Iterable[int]] = None) -> TestRecord:
        """Test *code* against the criteria (all of them by default)."""
        with self._lock:
            self._require("test a code", SessionState.ACTIVE)
            code = self.space.validate(code)
            indices = self.engine.criteria_indices(self.ruleset, criteria)
            outcomes = self.engine.test(self.ruleset, self._handle, code, indices)
            contradicted = sum(1 for o in outcomes if o is Outcome.CONTRADICTED)

            if self.feedback_mode == FEEDBACK_COUNT:
                shown = None
                if contradicted in (0, len(indices)):
                    verdicts = {i: contradicted == 0 for i in indices}
                else:
                    verdicts = {}
            else:
                shown = tuple(outcomes)
                verdicts = {i: o is Outcome.CONSISTENT for i, o in zip(indices, outcomes)}

            candidate_outcomes = resolve_candidate_outcomes(self.ruleset.criteria, code, verdicts)
            crossed = self._tracker.observe(code, candidate_outcomes)
            self._check_soundness()

            record = TestRecord(code, indices, shown, contradicted, tuple(crossed))
            self.tests.append(record)
            logger.info(
                f"Session {self.session_id[:8]} tested {format_code(code)}: "
                f"{contradicted}/{len(indices)} contradicted, {len(crossed)} rule(s) crossed out"
            )
            return record

    def request_bid(self) -> None:
        with self._lock:
            self._require("request a bid", SessionState.ACTIVE)
            self._tracker.freeze()
            self._move(SessionState.AWAITING_BID)

    def bid(self, code: Union[str, Sequence[int]]) -> Resolution:
        with self._lock:
            self._require("bid", SessionState.AWAITING_BID)
            code = self.space.validate(code)
            self.resolution = self.engine.bid(self._handle, code)
            self._end(SessionState.WON if self.resolution is Resolution.WON else SessionState.LOST)
            return self.resolution

    def abandon(self) -> None:
        """End the session without a bid.  No-op once final."""
        with self._lock:
            if self.is_final:
                return
            self._end(SessionState.ABANDONED)

    def touch(self) -> None:
        """Mark the session as used now."""
        with self._lock:
            self.last_used = self._clock()

    # ---- queries ----------------------------------------------------------------

    def describe_rules(self) -> List[str]:
        with self._lock:
            self._require_puzzle("describe rules")
            return self.engine.describe_rules(self.ruleset)

    def describe_criteria(self) -> List[str]:
        with self._lock:
            self._require_puzzle("describe criteria")
            return self.engine.describe_criteria(self.ruleset)

    def is_rule_live(self, ref: CandidateRef) -> bool:
        with self._lock:
            return self._tracker_or_raise("query rules").is_rule_live(ref)

    def is_value_live(self, position: int, symbol: int) -> bool:
        with self._lock:
            return self._tracker_or_raise("query values").is_value_live(position, symbol)

    def remaining_candidates(self) -> int:
        with self._lock:
            return self._tracker_or_raise("count candidates").remaining_candidates()

    def elimination_grid(self) -> str:
        with self._lock:
            return self._tracker_or_raise("render eliminations").render_grid()

    # ---- internals ---------------------------------------------------------------

    def _move(self, state: SessionState) -> None:
        logger.info(f"Session {self.session_id[:8]}: {self._state.value} -> {state.value}")
        self._state = state
        self.last_used = self._clock()

    def _require(self, operation: str, *states: SessionState) -> None:
        self.last_used = self._clock()
        if self._state not in states:
            raise InvalidTransition(operation, self._state.value)

    def _require_puzzle(self, operation: str) -> None:
        if self.ruleset is None or self.is_final:
            raise InvalidTransition(operation, self._state.value)

    def _tracker_or_raise(self, operation: str) -> EliminationTracker:
        if self._tracker is None:
            raise InvalidTransition(operation, self._state.value)
        return self._tracker

    def _check_soundness(self) -> None:
        try:
            self.engine.check_soundness(self._handle, self._tracker)
        except InternalInvariantViolation as e:
            logger.error(f"Session {self.session_id[:8]} aborted: {e}")
            self._abort()
            raise

    def _abort(self) -> None:
        self._end(SessionState.ABORTED)

    def _end(self, state: SessionState) -> None:
        if self._handle is not None:
            self.engine.release(self._handle)
        self._handle = None
        self._tracker = None
        self._move(state)


class SessionStore:
    """Sessions by id, with idle expiry."""

    def __init__(self, engine: Engine, clock: Callable[[], float] = time.monotonic):
        self.engine = engine
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, base: int, columns: int) -> Session:
        session = Session(self.engine, base, columns, clock=self._clock)
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None and self._expired(session):
                del self._sessions[session_id]
                expired = session
                session = None
            else:
                expired = None
        if expired is not None:
            logger.info(f"Session {session_id[:8]} expired")
            expired.abandon()
        if session is None:
            raise UnknownSession(f"Unknown or expired session {session_id!r}")
        session.touch()
        return session

    def close(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise UnknownSession(f"Unknown or expired session {session_id!r}")
        session.abandon()

    def purge_expired(self) -> int:
        """Drop every idle session; returns how many were dropped."""
        with self._lock:
            expired = [s for s in self._sessions.values() if self._expired(s)]
            for s in expired:
                del self._sessions[s.session_id]
        for s in expired:
            s.abandon()
        return len(expired)

    def _expired(self, session: Session) -> bool:
        ttl = self.engine.config.session_ttl_seconds
        return ttl is not None and self._clock() - session.last_used > ttl
