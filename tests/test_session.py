"""
Tests for sessions and the session store.

These tests verify:
1. The CREATED -> GENERATING -> ACTIVE -> AWAITING_BID -> WON | LOST lifecycle
2. Operations outside their state are rejected
3. Feedback modes, soundness aborts and abandonment
4. Store isolation and idle expiry
"""

import random
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from enigmind.code_space import CodeSpace
from enigmind.config import Difficulty, EngineConfig
from enigmind.engine import Engine, Resolution
from enigmind.errors import (
    GenerationExhausted,
    InternalInvariantViolation,
    InvalidTransition,
    UnknownSession,
)
from enigmind.session import Session, SessionState, SessionStore
from enigmind.tracker import Outcome


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def solve(session):
    evaluator = session.engine.evaluator(session.base, session.columns)
    (code,) = evaluator.space.codes_in(evaluator.ruleset_mask(session.ruleset.rules))
    return code


def started(engine, base=6, columns=4):
    session = Session(engine, base, columns)
    session.start()
    return session


# ============================================================================
# TESTS
# ============================================================================

class TestLifecycle:

    def test_win(self, engine):
        session = Session(engine, 6, 4)
        assert session.state is SessionState.CREATED
        ruleset = session.start()
        assert session.state is SessionState.ACTIVE
        assert engine.evaluator(6, 4).uniqueness(ruleset.rules) == 1

        secret = solve(session)
        record = session.test(secret)
        assert record.outcomes == tuple([Outcome.CONSISTENT] * len(ruleset.rules))
        assert record.contradicted == 0

        session.request_bid()
        assert session.state is SessionState.AWAITING_BID
        assert session.bid(secret) is Resolution.WON
        assert session.state is SessionState.WON
        assert session.is_final
        assert len(engine) == 0

    def test_loss(self, engine):
        session = started(engine)
        secret = solve(session)
        wrong = ((secret[0] + 1) % 6,) + secret[1:]
        session.request_bid()
        assert session.bid(wrong) is Resolution.LOST
        assert session.state is SessionState.LOST

    def test_neighbour_is_contradicted(self, engine):
        session = started(engine)
        secret = solve(session)
        record = session.test(((secret[0] + 1) % 6,) + secret[1:])
        assert record.contradicted >= 1
        assert session.remaining_candidates() >= 1

    def test_failed_generation_is_retryable(self, engine):
        session = Session(engine, 4, 3)
        with pytest.raises(GenerationExhausted):
            session.start(Difficulty("impossible", min_coverage_pct=100))
        assert session.state is SessionState.CREATED
        session.start("easy")
        assert session.state is SessionState.ACTIVE

    def test_wide_space_keeps_mask_memory_bounded(self):
        budget = 40 * CodeSpace(2, 12).packed_size()
        engine = Engine(EngineConfig(mask_cache_bytes=budget), rng=random.Random(6))
        session = Session(engine, 2, 12)
        session.start(Difficulty("wide", min_coverage_pct=0, sample_size=8, max_rules=40))
        evaluator = engine.evaluator(2, 12)
        assert evaluator.cached_bytes() <= budget
        assert evaluator.cached_masks() <= 40
        assert session.remaining_candidates() >= 1

    def test_abandon(self, engine):
        session = started(engine)
        session.abandon()
        assert session.state is SessionState.ABANDONED
        assert len(engine) == 0
        session.abandon()
        assert session.state is SessionState.ABANDONED


class TestTransitions:

    def test_test_before_start(self, engine):
        with pytest.raises(InvalidTransition):
            Session(engine, 5, 3).test("000")

    def test_bid_while_active(self, engine):
        session = started(engine, 5, 3)
        with pytest.raises(InvalidTransition):
            session.bid("000")

    def test_no_tests_after_bid_request(self, engine):
        session = started(engine, 5, 3)
        session.request_bid()
        with pytest.raises(InvalidTransition):
            session.test("000")

    def test_nothing_after_the_end(self, engine):
        session = started(engine, 5, 3)
        session.request_bid()
        session.bid(solve(session))
        with pytest.raises(InvalidTransition):
            session.start()
        with pytest.raises(InvalidTransition):
            session.request_bid()
        with pytest.raises(InvalidTransition):
            session.describe_rules()
        with pytest.raises(InvalidTransition):
            session.remaining_candidates()

    def test_queries_before_start(self, engine):
        session = Session(engine, 5, 3)
        with pytest.raises(InvalidTransition):
            session.is_value_live(0, 0)


class TestFeedback:

    def test_deductions_keep_the_secret(self, engine):
        session = started(engine, 5, 3)
        secret = solve(session)
        rng = random.Random(7)
        remaining = session.remaining_candidates()
        for _ in range(15):
            code = session.space.decode(rng.randrange(session.space.size()))
            session.test(code)
            now = session.remaining_candidates()
            assert now <= remaining
            remaining = now
            for position, symbol in enumerate(secret):
                assert session.is_value_live(position, symbol)
        assert len(session.tests) == 15

    def test_selected_criteria(self, engine):
        session = started(engine, 5, 3)
        record = session.test(solve(session), [0])
        assert record.criteria == (0,)
        assert record.outcomes == (Outcome.CONSISTENT,)

    def test_count_mode_hides_outcomes(self):
        engine = Engine(EngineConfig(feedback_mode="count"), rng=random.Random(3))
        session = started(engine)
        secret = solve(session)
        record = session.test(secret)
        assert record.outcomes is None
        assert record.contradicted == 0
        record = session.test(((secret[0] + 1) % 6,) + secret[1:])
        assert record.outcomes is None
        assert record.contradicted >= 1
        for position, symbol in enumerate(secret):
            assert session.is_value_live(position, symbol)

    def test_descriptions(self, engine):
        session = started(engine, 5, 3)
        assert len(session.describe_rules()) == len(session.ruleset.rules)
        assert len(session.describe_criteria()) == len(session.ruleset.criteria)
        assert "A" in session.elimination_grid().splitlines()[0]

    def test_soundness_failure_aborts(self, engine, monkeypatch):
        session = started(engine, 5, 3)

        def broken(handle, tracker):
            raise InternalInvariantViolation("secret eliminated")

        monkeypatch.setattr(engine, "check_soundness", broken)
        with pytest.raises(InternalInvariantViolation):
            session.test("000")
        assert session.state is SessionState.ABORTED
        assert len(engine) == 0


class TestStore:

    def test_create_get_close(self, engine):
        store = SessionStore(engine)
        session = store.create(5, 3)
        assert store.get(session.session_id) is session
        store.close(session.session_id)
        assert len(store) == 0
        assert session.state is SessionState.ABANDONED
        with pytest.raises(UnknownSession):
            store.get(session.session_id)
        with pytest.raises(UnknownSession):
            store.close(session.session_id)

    def test_sessions_are_isolated(self, engine):
        store = SessionStore(engine)
        first, second = store.create(5, 3), store.create(5, 3)
        first.start()
        second.start()
        assert first.ruleset.ruleset_id != second.ruleset.ruleset_id
        first.test("000")
        assert len(first.tests) == 1
        assert second.tests == []
        first.abandon()
        assert second.state is SessionState.ACTIVE
        second.test("111")

    def test_lookup_waits_for_a_busy_session(self, engine):
        store = SessionStore(engine)
        session = store.create(5, 3)
        found = threading.Event()

        def lookup():
            store.get(session.session_id)
            found.set()

        with session._lock:
            worker = threading.Thread(target=lookup)
            worker.start()
            assert not found.wait(0.1)
        worker.join(timeout=5)
        assert found.is_set()

    def test_expiry(self):
        clock = FakeClock()
        engine = Engine(EngineConfig(session_ttl_seconds=10), rng=random.Random(0))
        store = SessionStore(engine, clock=clock)
        idle = store.create(5, 3)
        busy = store.create(5, 3)
        idle.start()
        clock.now = 8
        store.get(busy.session_id)
        clock.now = 15
        with pytest.raises(UnknownSession):
            store.get(idle.session_id)
        assert idle.state is SessionState.ABANDONED
        assert store.get(busy.session_id) is busy
        clock.now = 100
        assert store.purge_expired() == 1
        assert len(store) == 0

    def test_concurrent_sessions(self, engine):
        store = SessionStore(engine)
        sessions = [store.create(5, 3) for _ in range(4)]
        for session in sessions:
            session.start()

        def play(session):
            for code in ("000", "123", "444"):
                session.test(code)
            return len(session.tests)

        with ThreadPoolExecutor(max_workers=4) as pool:
            assert list(pool.map(play, sessions)) == [3, 3, 3, 3]
