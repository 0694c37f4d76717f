"""
Tests for QueueResolver.

Verifies:
- Role scoping cannot be overridden by caller filters
- Individuals also see the unassigned VALIDATED backlog they can pick up
- Dual-queue membership while a report is assigned
- Reports leave every active queue on a terminal decision
- Oldest-first ordering with the reference number as tiebreaker
- Search, status, risk, age, date and overdue filters
- Page size defaults and clamping
"""

from datetime import date, timedelta

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from disposition_kernel.domain.lifecycle import ReportState, ReportType
from disposition_kernel.domain.queues import (
    AgeBucket,
    QueueFilters,
    QueueName,
    RiskLevel,
    SortOrder,
)
from disposition_kernel.domain.roles import WorkflowSettings
from disposition_kernel.exceptions import InvalidQueueFilterError, UnauthorizedActorError
from disposition_kernel.selectors.queue_resolver import QueueResolver
from disposition_kernel.services.decision_engine import DecisionEngine
from disposition_kernel.services.report_store import ReportStore
from tests.conftest import make_submission

VALIDATION = QueueFilters(queue=QueueName.VALIDATION)
REVIEW = QueueFilters(queue=QueueName.REVIEW)


class TestRoleScoping:

    def test_officer_sees_only_own_assignments(self, submit_report, assignment_manager,
                                               queue_resolver, officer_a, officer_b,
                                               head_of_compliance):
        report = submit_report("F5-UAT-CTR-0001")
        submit_report("F5-UAT-CTR-0002")

        assignment_manager.assign(report.reference_number, officer_b, head_of_compliance)

        assert queue_resolver.resolve(officer_a).total == 0
        assert queue_resolver.resolve(officer_b).references == ["F5-UAT-CTR-0001"]
        assert queue_resolver.resolve(head_of_compliance).references == [
            "F5-UAT-CTR-0001", "F5-UAT-CTR-0002",
        ]

    def test_individual_report_type_is_pinned(self, submit_report, assignment_manager,
                                              queue_resolver, officer_a, captured_logs):
        ctr = submit_report(report_type=ReportType.CTR)
        assignment_manager.assign(ctr.reference_number, officer_a, officer_a)

        view = queue_resolver.resolve(
            officer_a, QueueFilters(report_type=ReportType.STR, assigned_to_me=False)
        )

        assert view.references == [ctr.reference_number]
        assert view.applied_filters["report_type"] == "CTR"
        assert view.applied_filters["assigned_to_me"] is True
        assert any(r["message"] == "queue_report_type_overridden" for r in captured_logs())

    def test_supervisor_report_type_is_pinned(self, submit_report, queue_resolver,
                                              head_of_analysis):
        submit_report(report_type=ReportType.CTR)
        strs = [submit_report(report_type=ReportType.STR) for _ in range(2)]

        view = queue_resolver.resolve(head_of_analysis, QueueFilters(report_type=ReportType.CTR))

        assert view.references == sorted(r.reference_number for r in strs)

    def test_individual_may_not_filter_unassigned(self, queue_resolver, analyst):
        with pytest.raises(InvalidQueueFilterError) as exc_info:
            queue_resolver.resolve(analyst, QueueFilters(unassigned=True))
        assert exc_info.value.field == "unassigned"

    def test_contradictory_supervisor_filters(self, queue_resolver, head_of_compliance):
        with pytest.raises(InvalidQueueFilterError):
            queue_resolver.resolve(
                head_of_compliance, QueueFilters(assigned_to_me=True, unassigned=True)
            )

    @pytest.mark.parametrize("queue", [QueueName.ESCALATION, QueueName.DISPOSITIONS])
    def test_supervisor_only_queues(self, queue_resolver, officer_a, queue):
        with pytest.raises(UnauthorizedActorError):
            queue_resolver.resolve(officer_a, QueueFilters(queue=queue))

    def test_supervisor_unassigned_and_mine(self, submit_report, assignment_manager,
                                            queue_resolver, head_of_compliance, officer_a):
        mine = submit_report()
        theirs = submit_report()
        free = submit_report()
        assignment_manager.assign(mine.reference_number, head_of_compliance, head_of_compliance)
        assignment_manager.assign(theirs.reference_number, officer_a, officer_a)

        unassigned = queue_resolver.resolve(head_of_compliance, QueueFilters(unassigned=True))
        assigned_to_me = queue_resolver.resolve(
            head_of_compliance, QueueFilters(assigned_to_me=True)
        )

        assert unassigned.references == [free.reference_number]
        assert assigned_to_me.references == [mine.reference_number]

    def test_officers_see_validated_backlog_for_pickup(self, session, clock, submit_report,
                                                       staff_directory, officer_a, officer_b,
                                                       head_of_compliance):
        split = WorkflowSettings(retain_validator_for_review=False)
        engine = DecisionEngine(session, clock, settings=split, directory=staff_directory)
        resolver = QueueResolver(session, clock, settings=split)
        report = submit_report()
        engine.begin_validation(report.reference_number, head_of_compliance)
        engine.decide(report.reference_number, head_of_compliance, {"decision": "ACCEPT"})

        for officer in (officer_a, officer_b):
            backlog = resolver.resolve(officer, REVIEW)
            assert backlog.references == [report.reference_number]
            assert backlog.items[0].state == ReportState.VALIDATED
            assert resolver.resolve(officer, VALIDATION).total == 0

        engine.begin_review(report.reference_number, officer_b)

        assert resolver.resolve(officer_a, REVIEW).total == 0
        picked_up = resolver.resolve(officer_b, REVIEW)
        assert picked_up.references == [report.reference_number]
        assert picked_up.items[0].state == ReportState.UNDER_COMPLIANCE_REVIEW

    def test_supervisor_mine_filter_excludes_backlog(self, session, clock, submit_report,
                                                     head_of_compliance):
        split = WorkflowSettings(retain_validator_for_review=False)
        engine = DecisionEngine(session, clock, settings=split)
        resolver = QueueResolver(session, clock, settings=split)
        report = submit_report()
        engine.begin_validation(report.reference_number, head_of_compliance)
        engine.decide(report.reference_number, head_of_compliance, {"decision": "ACCEPT"})

        assert resolver.resolve(head_of_compliance, REVIEW).total == 1
        mine = resolver.resolve(head_of_compliance, QueueFilters(queue=QueueName.REVIEW,
                                                                 assigned_to_me=True))
        assert mine.total == 0


class TestDualQueue:

    def test_assigned_ctr_in_validation_and_review(self, report_in_validation, queue_resolver,
                                                   officer_a, head_of_compliance):
        report = report_in_validation(officer_a)

        assert queue_resolver.resolve(officer_a, VALIDATION).references == [report.reference_number]
        assert queue_resolver.resolve(officer_a, REVIEW).references == [report.reference_number]
        assert queue_resolver.resolve(head_of_compliance, REVIEW).total == 1

    def test_compliance_review_keeps_dual_membership(self, ctr_in_review, queue_resolver,
                                                     officer_a):
        accepted = ctr_in_review(officer_a)
        reference = accepted.decision.reference_number

        validation = queue_resolver.resolve(officer_a, VALIDATION)
        review = queue_resolver.resolve(officer_a, REVIEW)

        assert validation.references == [reference]
        assert review.references == [reference]
        assert review.items[0].state == ReportState.UNDER_COMPLIANCE_REVIEW

    def test_unassigned_report_only_in_validation(self, submit_report, queue_resolver,
                                                  head_of_compliance):
        submit_report()
        assert queue_resolver.resolve(head_of_compliance, VALIDATION).total == 1
        assert queue_resolver.resolve(head_of_compliance, REVIEW).total == 0

    def test_terminal_decision_leaves_both_queues(self, ctr_in_review, decision_engine,
                                                  queue_resolver, officer_a, head_of_compliance):
        accepted = ctr_in_review(officer_a)
        reference = accepted.decision.reference_number

        decision_engine.decide(reference, officer_a, {"decision": "ARCHIVE"})

        for actor in (officer_a, head_of_compliance):
            assert queue_resolver.resolve(actor, VALIDATION).total == 0
            assert queue_resolver.resolve(actor, REVIEW).total == 0
        dispositions = queue_resolver.resolve(
            head_of_compliance, QueueFilters(queue=QueueName.DISPOSITIONS)
        )
        assert dispositions.references == [reference]
        assert dispositions.items[0].state == ReportState.ARCHIVED

    def test_str_dual_queue(self, report_in_validation, decision_engine, queue_resolver, analyst):
        report = report_in_validation(analyst, report_type=ReportType.STR)

        assert queue_resolver.resolve(analyst, VALIDATION).total == 1
        assert queue_resolver.resolve(analyst, REVIEW).total == 1

        decision_engine.decide(report.reference_number, analyst, {"decision": "ACCEPT"})

        assert queue_resolver.resolve(analyst, VALIDATION).total == 0
        assert queue_resolver.resolve(analyst, REVIEW).total == 0

    def test_escalated_report_moves_to_escalation_queue(self, escalated_ctr, queue_resolver,
                                                        officer_a, head_of_compliance):
        escalated = escalated_ctr(officer_a)

        assert queue_resolver.resolve(officer_a, VALIDATION).total == 0
        assert queue_resolver.resolve(officer_a, REVIEW).total == 0
        escalation = queue_resolver.resolve(
            head_of_compliance, QueueFilters(queue=QueueName.ESCALATION)
        )
        assert escalation.references == [escalated.decision.reference_number]


class TestOrdering:

    def test_oldest_first_and_newest_first(self, submit_report, queue_resolver, clock,
                                           head_of_compliance):
        refs = []
        for _ in range(3):
            refs.append(submit_report().reference_number)
            clock.advance_hours(1)

        oldest = queue_resolver.resolve(head_of_compliance)
        newest = queue_resolver.resolve(head_of_compliance, QueueFilters(sort=SortOrder.NEWEST_FIRST))

        assert oldest.references == refs
        assert newest.references == list(reversed(refs))

    def test_reference_breaks_ties(self, submit_report, queue_resolver, head_of_compliance):
        for ref in ("F5-UAT-CTR-0003", "F5-UAT-CTR-0001", "F5-UAT-CTR-0002"):
            submit_report(ref)

        assert queue_resolver.resolve(head_of_compliance).references == [
            "F5-UAT-CTR-0001", "F5-UAT-CTR-0002", "F5-UAT-CTR-0003",
        ]

    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(offsets=st.lists(st.integers(min_value=0, max_value=600), min_size=1, max_size=8))
    def test_fifo_for_any_arrival_pattern(self, session, clock, head_of_compliance, offsets):
        base = clock.now()
        savepoint = session.begin_nested()
        try:
            store = ReportStore(session, clock)
            for i, offset in enumerate(offsets):
                clock.set_time(base + timedelta(minutes=offset))
                reference = f"F5-FIFO-CTR-{i:04d}"
                store.intake(make_submission(reference))
                store.release_to_validation(reference)
            clock.set_time(base + timedelta(days=1))

            view = QueueResolver(session, clock).resolve(
                head_of_compliance, QueueFilters(page_size=100)
            )

            keys = [(item.entered_queue_at, item.reference_number) for item in view.items]
            assert keys == sorted(keys)
            assert view.total == len(offsets)
        finally:
            savepoint.rollback()
            clock.set_time(base)


class TestFilters:

    def test_search_by_entity_name(self, submit_report, queue_resolver, head_of_compliance):
        submit_report("F5-UAT-CTR-0001", entity_name="Unity Microfinance Ltd")
        submit_report("F5-UAT-CTR-0002", entity_name="Acme Trading Co")
        submit_report("F5-UAT-CTR-0003", entity_name="Community Savings Union")

        view = queue_resolver.resolve(head_of_compliance, QueueFilters(search="Unity"))

        assert view.references == ["F5-UAT-CTR-0001", "F5-UAT-CTR-0003"]
        assert view.applied_filters["search"] == "Unity"

    def test_search_by_reference_fragment(self, submit_report, queue_resolver,
                                          head_of_compliance):
        submit_report("F5-UAT-CTR-0101")
        submit_report("F5-UAT-CTR-0202")

        view = queue_resolver.resolve(head_of_compliance, QueueFilters(search="ctr-02"))

        assert view.references == ["F5-UAT-CTR-0202"]

    def test_search_wildcards_are_literal(self, submit_report, queue_resolver,
                                          head_of_compliance):
        submit_report(entity_name="100% Cash Ltd")
        submit_report(entity_name="Plain Name")

        view = queue_resolver.resolve(head_of_compliance, QueueFilters(search="%"))

        assert [i.entity_name for i in view.items] == ["100% Cash Ltd"]

    def test_status_filter(self, submit_report, report_in_validation, queue_resolver,
                           officer_a, head_of_compliance):
        submit_report()
        opened = report_in_validation(officer_a)

        view = queue_resolver.resolve(
            head_of_compliance, QueueFilters(status=ReportState.IN_VALIDATION)
        )

        assert view.references == [opened.reference_number]

    def test_risk_filter(self, submit_report, queue_resolver, head_of_compliance):
        high = submit_report(risk_level=RiskLevel.HIGH)
        submit_report(risk_level=RiskLevel.LOW)
        submit_report()

        view = queue_resolver.resolve(head_of_compliance, QueueFilters(risk=RiskLevel.HIGH))

        assert view.references == [high.reference_number]
        assert view.items[0].risk_level == RiskLevel.HIGH

    def test_age_buckets(self, submit_report, queue_resolver, clock, head_of_compliance):
        old = submit_report()
        clock.advance_hours(100)
        middle = submit_report()
        clock.advance_hours(40)
        fresh = submit_report()
        clock.advance_hours(2)

        def refs(bucket):
            return queue_resolver.resolve(head_of_compliance, QueueFilters(age=bucket)).references

        assert refs(AgeBucket.LT_24H) == [fresh.reference_number]
        assert refs(AgeBucket.D1_3) == [middle.reference_number]
        assert refs(AgeBucket.D3_7) == [old.reference_number]
        assert refs(AgeBucket.GT_7D) == []

    def test_submission_date_range(self, submit_report, queue_resolver, clock,
                                   head_of_compliance):
        march_4 = submit_report()
        clock.advance_hours(24)
        march_5 = submit_report()
        clock.advance_hours(24)
        submit_report()

        view = queue_resolver.resolve(
            head_of_compliance,
            QueueFilters(from_date=date(2024, 3, 4), to_date=date(2024, 3, 5)),
        )

        assert view.references == [march_4.reference_number, march_5.reference_number]

    def test_overdue_filter(self, submit_report, assignment_manager, queue_resolver, clock,
                            officer_a):
        late = submit_report()
        on_time = submit_report()
        assignment_manager.assign(
            late.reference_number, officer_a, officer_a, deadline=clock.now() + timedelta(hours=1)
        )
        assignment_manager.assign(on_time.reference_number, officer_a, officer_a)
        clock.advance_hours(2)

        overdue = queue_resolver.resolve(officer_a, QueueFilters(overdue=True))
        everything = queue_resolver.resolve(officer_a)

        assert overdue.references == [late.reference_number]
        assert {i.reference_number: i.is_overdue for i in everything.items} == {
            late.reference_number: True,
            on_time.reference_number: False,
        }

    def test_summary_fields(self, submit_report, assignment_manager, queue_resolver, clock,
                            officer_a):
        report = submit_report(entity_name="Unity Microfinance Ltd", amounts=("500.00", "250.00"))
        assignment_manager.assign(report.reference_number, officer_a, officer_a)
        clock.advance_hours(6)

        item = queue_resolver.resolve(officer_a).items[0]

        assert item.assigned_to_id == officer_a.actor_id
        assert item.assigned_to_name == "Officer A"
        assert item.transaction_count == 2
        assert item.age_hours == pytest.approx(6.0)
        data = item.to_dict()
        assert data["status"] == "PENDING_VALIDATION"
        assert data["assigned_to"] == str(officer_a.actor_id)


class TestPaging:

    def test_pages(self, submit_report, queue_resolver, clock, head_of_compliance):
        for _ in range(25):
            submit_report()
            clock.advance(60)

        first = queue_resolver.resolve(head_of_compliance, QueueFilters(page_size=10))
        last = queue_resolver.resolve(head_of_compliance, QueueFilters(page=3, page_size=10))

        assert first.total == 25
        assert first.total_pages == 3
        assert len(first.items) == 10
        assert len(last.items) == 5
        assert not last.has_more
        assert not set(first.references) & set(last.references)

    def test_default_and_clamped_page_size(self, submit_report, queue_resolver,
                                           head_of_compliance):
        submit_report()
        default = queue_resolver.resolve(head_of_compliance)
        clamped = queue_resolver.resolve(head_of_compliance, QueueFilters(page_size=500))

        assert default.page_size == 20
        assert clamped.page_size == 100
        assert clamped.applied_filters["page_size"] == 100
