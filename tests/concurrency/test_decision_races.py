"""
Concurrent decision and claim races on a shared database file.

Each thread works in its own session through session_scope(), so the
races go through real connections and real locks.

Verifies:
- Two decisions on the same report: exactly one applies, the other is stale,
  whether or not the callers pass the state they expect
- The audit log records only the applied decision and its chain stays valid
- Two officers claiming the same report: exactly one assignment is created
"""

import threading

import pytest

from disposition_kernel.db.engine import (
    create_tables,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from disposition_kernel.db.immutability import register_immutability_listeners
from disposition_kernel.domain.lifecycle import ReportState
from disposition_kernel.exceptions import AlreadyAssignedError, StaleStateError
from disposition_kernel.services.assignment_manager import AssignmentManager
from disposition_kernel.services.audit_log import AuditLog
from disposition_kernel.services.decision_engine import DecisionEngine
from disposition_kernel.services.report_store import ReportStore
from tests.conftest import make_submission

pytestmark = pytest.mark.slow_locks


@pytest.fixture
def file_engine(tmp_path):
    eng = init_engine_from_url(f"sqlite:///{tmp_path / 'races.db'}")
    create_tables()
    register_immutability_listeners()
    yield eng
    reset_engine()


def _race(*workers):
    """Start every worker at the same barrier; collect (result, error) pairs."""
    barrier = threading.Barrier(len(workers))
    results = [None] * len(workers)

    def run(index, work):
        barrier.wait()
        try:
            results[index] = ("ok", work())
        except Exception as exc:  # collected for the assertions below
            results[index] = ("error", exc)

    threads = [threading.Thread(target=run, args=(i, w)) for i, w in enumerate(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results


class TestDecisionRace:

    def test_one_decision_wins(self, file_engine, clock, officer_a, head_of_compliance):
        reference = "F5-RACE-CTR-0001"
        with session_scope() as session:
            store = ReportStore(session, clock)
            store.intake(make_submission(reference))
            store.release_to_validation(reference)
            AssignmentManager(session, clock).assign(reference, officer_a, officer_a)
            opened = DecisionEngine(session, clock).begin_validation(reference, officer_a)

        def decide(actor, payload):
            def work():
                with session_scope() as session:
                    return DecisionEngine(session, clock).decide(
                        reference, actor, payload,
                        expected_state=ReportState.IN_VALIDATION,
                        expected_version=opened.version,
                    )
            return work

        results = _race(
            decide(officer_a, {"decision": "RETURN", "return_reason": "Missing branch code."}),
            decide(head_of_compliance, {
                "decision": "REJECT", "rejection_reason": "Duplicate of F5-RACE-CTR-0000.",
            }),
        )

        wins = [value for status, value in results if status == "ok"]
        losses = [value for status, value in results if status == "error"]
        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], StaleStateError)

        with session_scope() as session:
            final = ReportStore(session).get(reference)
            audit = AuditLog(session)
            trail = audit.trail_for(reference)

            assert final.state == wins[0].state
            assert final.version == opened.version + 1
            assert [e.decision for e in trail] == [wins[0].decision.kind]
            assert audit.validate_chain() is True

    def test_one_decision_wins_without_expected_state(self, file_engine, clock, officer_a,
                                                      head_of_compliance):
        reference = "F5-RACE-CTR-0003"
        with session_scope() as session:
            store = ReportStore(session, clock)
            store.intake(make_submission(reference))
            store.release_to_validation(reference)
            AssignmentManager(session, clock).assign(reference, officer_a, officer_a)
            opened = DecisionEngine(session, clock).begin_validation(reference, officer_a)

        def decide(actor, reason):
            def work():
                with session_scope() as session:
                    return DecisionEngine(session, clock).decide(
                        reference, actor, {"decision": "RETURN", "return_reason": reason},
                    )
            return work

        results = _race(
            decide(officer_a, "Missing branch code."),
            decide(head_of_compliance, "Totals do not reconcile."),
        )

        wins = [value for status, value in results if status == "ok"]
        losses = [value for status, value in results if status == "error"]
        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], StaleStateError)
        assert losses[0].actual_state == "RETURNED"

        with session_scope() as session:
            final = ReportStore(session).get(reference)
            trail = AuditLog(session).trail_for(reference)

            assert final.version == opened.version + 1
            assert [e.reason for e in trail] == [wins[0].decision.reason]


class TestClaimRace:

    def test_one_claim_wins(self, file_engine, clock, officer_a, officer_b):
        reference = "F5-RACE-CTR-0002"
        with session_scope() as session:
            store = ReportStore(session, clock)
            store.intake(make_submission(reference))
            store.release_to_validation(reference)

        def claim(officer):
            def work():
                with session_scope() as session:
                    return AssignmentManager(session, clock).assign(reference, officer, officer)
            return work

        results = _race(claim(officer_a), claim(officer_b))

        wins = [value for status, value in results if status == "ok"]
        losses = [value for status, value in results if status == "error"]
        assert len(wins) == 1
        assert len(losses) == 1
        assert isinstance(losses[0], AlreadyAssignedError)
        assert losses[0].assignee_id == str(wins[0].assignee_id)

        with session_scope() as session:
            history = AssignmentManager(session).history(reference)
            assert len(history) == 1
            assert history[0].is_active
