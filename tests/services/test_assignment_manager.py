"""
Tests for AssignmentManager.

Verifies:
- At most one active assignment per report; supervisors supersede it
- Individuals can only claim unassigned reports of their own type
- Assignee eligibility by report type and stage
- Compliance pickup of VALIDATED CTRs
- Live workload counts
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from disposition_kernel.domain.lifecycle import ReportState, ReportType
from disposition_kernel.domain.roles import WorkflowSettings
from disposition_kernel.exceptions import (
    AlreadyAssignedError,
    IneligibleAssigneeError,
    ReportNotAssignableError,
    UnauthorizedActorError,
)
from disposition_kernel.services.assignment_manager import AssignmentManager
from disposition_kernel.services.decision_engine import DecisionEngine


class TestClaim:

    def test_officer_claims_unassigned_ctr(self, submit_report, assignment_manager, report_store,
                                           officer_a, clock):
        report = submit_report("F5-UAT-CTR-0001")

        assignment = assignment_manager.assign(report.reference_number, officer_a, officer_a)

        assert assignment.assignee_id == officer_a.actor_id
        assert assignment.assigned_by_id == officer_a.actor_id
        assert assignment.assignee_name == "Officer A"
        assert assignment.is_active
        assert assignment.deadline == report.entered_queue_at + timedelta(hours=48)
        after = report_store.get(report.reference_number)
        assert after.state == ReportState.PENDING_VALIDATION
        assert after.version == report.version + 1

    def test_second_officer_cannot_take_claimed_report(self, submit_report, assignment_manager,
                                                       officer_a, officer_b):
        report = submit_report()
        assignment_manager.assign(report.reference_number, officer_a, officer_a)

        with pytest.raises(AlreadyAssignedError) as exc_info:
            assignment_manager.assign(report.reference_number, officer_b, officer_b)
        assert exc_info.value.assignee_id == str(officer_a.actor_id)

    def test_officer_cannot_assign_someone_else(self, submit_report, assignment_manager,
                                                officer_a, officer_b, captured_logs):
        report = submit_report()

        with pytest.raises(UnauthorizedActorError):
            assignment_manager.assign(report.reference_number, officer_b, officer_a)
        assert any(r["message"] == "assignment_refused" for r in captured_logs())
        assert assignment_manager.active_assignment(report.reference_number) is None

    def test_analyst_cannot_claim_ctr(self, submit_report, assignment_manager, analyst):
        report = submit_report(report_type=ReportType.CTR)
        with pytest.raises(UnauthorizedActorError):
            assignment_manager.assign(report.reference_number, analyst, analyst)

    def test_analyst_claims_str(self, submit_report, assignment_manager, analyst):
        report = submit_report(report_type=ReportType.STR)
        assignment = assignment_manager.assign(report.reference_number, analyst, analyst)
        assert assignment.assignee_role == "analyst"

    def test_explicit_deadline(self, submit_report, assignment_manager, officer_a, clock):
        report = submit_report()
        deadline = clock.now() + timedelta(hours=6)
        assignment = assignment_manager.assign(
            report.reference_number, officer_a, officer_a, deadline=deadline
        )
        assert assignment.deadline == deadline


class TestSupervisorAssignment:

    def test_head_assigns_to_officer(self, submit_report, assignment_manager,
                                     head_of_compliance, officer_b):
        report = submit_report()
        assignment = assignment_manager.assign(
            report.reference_number, officer_b, head_of_compliance
        )
        assert assignment.assignee_id == officer_b.actor_id
        assert assignment.assigned_by_id == head_of_compliance.actor_id

    def test_reassignment_supersedes_previous(self, submit_report, assignment_manager,
                                              head_of_compliance, officer_a, officer_b, clock):
        report = submit_report()
        first = assignment_manager.assign(report.reference_number, officer_a, officer_a)
        clock.advance_hours(1)

        second = assignment_manager.assign(report.reference_number, officer_b, head_of_compliance)

        history = assignment_manager.history(report.reference_number)
        assert [a.assignment_id for a in history] == [first.assignment_id, second.assignment_id]
        assert not history[0].is_active
        assert history[0].superseded_at == clock.now()
        assert history[1].is_active
        assert assignment_manager.active_assignment(report.reference_number).assignee_id == (
            officer_b.actor_id
        )
        assert assignment_manager.workload_of(officer_a.actor_id) == 0
        assert assignment_manager.workload_of(officer_b.actor_id) == 1

    def test_head_of_analysis_cannot_assign_ctr(self, submit_report, assignment_manager,
                                                head_of_analysis, officer_a):
        report = submit_report(report_type=ReportType.CTR)
        with pytest.raises(UnauthorizedActorError):
            assignment_manager.assign(report.reference_number, officer_a, head_of_analysis)

    def test_analyst_is_not_eligible_for_ctr(self, submit_report, assignment_manager,
                                             head_of_compliance, analyst):
        report = submit_report(report_type=ReportType.CTR)
        with pytest.raises(IneligibleAssigneeError) as exc_info:
            assignment_manager.assign(report.reference_number, analyst, head_of_compliance)
        assert exc_info.value.role == "analyst"

    def test_assign_by_id_uses_staff_directory(self, submit_report, assignment_manager,
                                               head_of_compliance, officer_b):
        report = submit_report()
        assignment = assignment_manager.assign(
            report.reference_number, officer_b.actor_id, head_of_compliance
        )
        assert assignment.assignee_name == "Officer B"

    def test_unknown_assignee_id(self, submit_report, assignment_manager, head_of_compliance):
        report = submit_report()
        with pytest.raises(IneligibleAssigneeError) as exc_info:
            assignment_manager.assign(report.reference_number, uuid4(), head_of_compliance)
        assert exc_info.value.role == "unknown"


class TestAssignableStates:

    def test_terminal_report_not_assignable(self, report_in_validation, decision_engine,
                                            assignment_manager, officer_a, head_of_compliance):
        report = report_in_validation(officer_a)
        decision_engine.decide(
            report.reference_number, officer_a,
            {"decision": "REJECT", "rejection_reason": "Duplicate of an earlier filing."},
        )

        with pytest.raises(ReportNotAssignableError) as exc_info:
            assignment_manager.assign(report.reference_number, officer_a, head_of_compliance)
        assert exc_info.value.state == "REJECTED"

    def test_escalation_needs_supervisory_assignee(self, escalated_ctr, assignment_manager,
                                                   officer_a, head_of_compliance,
                                                   deputy_head_of_compliance):
        outcome = escalated_ctr(officer_a)
        reference = outcome.decision.reference_number

        with pytest.raises(IneligibleAssigneeError):
            assignment_manager.assign(reference, officer_a, head_of_compliance)

        assignment = assignment_manager.assign(
            reference, deputy_head_of_compliance, head_of_compliance
        )
        assert assignment.assignee_role == "head_of_compliance"

    def test_officer_cannot_claim_escalation(self, escalated_ctr, assignment_manager, officer_a):
        outcome = escalated_ctr(officer_a)
        with pytest.raises(UnauthorizedActorError):
            assignment_manager.assign(outcome.decision.reference_number, officer_a, officer_a)


class TestCompliancePickup:

    @pytest.fixture
    def split_settings(self):
        return WorkflowSettings(retain_validator_for_review=False)

    def test_pickup_moves_validated_ctr_to_review(self, session, clock, submit_report, report_store,
                                                  staff_directory, split_settings,
                                                  officer_a, officer_b):
        engine = DecisionEngine(session, clock, settings=split_settings, directory=staff_directory)
        manager = AssignmentManager(session, clock, settings=split_settings)
        report = submit_report()
        manager.assign(report.reference_number, officer_a, officer_a)
        engine.begin_validation(report.reference_number, officer_a)

        accepted = engine.decide(report.reference_number, officer_a, {"decision": "ACCEPT"})
        assert accepted.state == ReportState.VALIDATED
        assert manager.active_assignment(report.reference_number) is None

        clock.advance_hours(4)
        pickup = engine.begin_review(report.reference_number, officer_b)

        assert pickup.assignee_id == officer_b.actor_id
        assert report_store.get(report.reference_number).state == ReportState.UNDER_COMPLIANCE_REVIEW
        assert [a.release_reason for a in manager.history(report.reference_number)] == [
            "decision_accept", None,
        ]


class TestWorkload:

    def test_breakdown(self, submit_report, escalated_ctr, assignment_manager, clock,
                       officer_a, head_of_compliance):
        first = submit_report()
        second = submit_report()
        assignment_manager.assign(first.reference_number, officer_a, officer_a)
        assignment_manager.assign(
            second.reference_number, officer_a, officer_a,
            deadline=clock.now() + timedelta(hours=1),
        )
        escalated = escalated_ctr(officer_a)
        assignment_manager.assign(
            escalated.decision.reference_number, head_of_compliance, head_of_compliance
        )
        clock.advance_hours(2)

        officer_load = assignment_manager.workload_breakdown(officer_a.actor_id)
        head_load = assignment_manager.workload_breakdown(head_of_compliance.actor_id)

        assert (officer_load.total, officer_load.ctrs, officer_load.strs) == (2, 2, 0)
        assert officer_load.overdue == 1
        assert head_load.escalated_ctrs == 1
        assert assignment_manager.workload_of(officer_a.actor_id) == 2
