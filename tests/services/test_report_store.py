"""
Tests for ReportStore: intake, lookup and the state compare-and-swap.
"""

from decimal import Decimal

import pytest

from disposition_kernel.domain.lifecycle import ReportState, ReportType
from disposition_kernel.domain.queues import RiskLevel
from disposition_kernel.exceptions import (
    DuplicateReportError,
    IllegalTransitionError,
    ReportNotFoundError,
    StaleStateError,
)
from tests.conftest import T0, make_submission


class TestIntake:

    def test_intake_records_submitted_report(self, report_store):
        info = report_store.intake(
            make_submission(
                "F5-UAT-CTR-0001",
                entity_name="Unity Microfinance Ltd",
                amounts=("15000.00", "2500.25"),
                risk_level=RiskLevel.MEDIUM,
            )
        )
        assert info.state == ReportState.SUBMITTED
        assert info.version == 1
        assert info.report_type == ReportType.CTR
        assert info.total_amount == Decimal("17500.25")
        assert info.transaction_count == 2
        assert info.risk_level == RiskLevel.MEDIUM
        assert info.submitted_at == T0
        assert info.entered_queue_at == T0

    def test_transactions_loaded_on_request(self, report_store):
        report_store.intake(make_submission("F5-UAT-CTR-0002", amounts=("1.00", "2.00", "3.00")))

        summary = report_store.get("F5-UAT-CTR-0002")
        detail = report_store.get("F5-UAT-CTR-0002", include_transactions=True)

        assert summary.transactions == ()
        assert [t.amount for t in detail.transactions] == [
            Decimal("1.00"), Decimal("2.00"), Decimal("3.00"),
        ]
        assert detail.transactions[0].account_number == "ACC-001"

    def test_duplicate_reference_refused(self, report_store):
        report_store.intake(make_submission("F5-UAT-STR-0001", report_type=ReportType.STR))
        with pytest.raises(DuplicateReportError) as exc_info:
            report_store.intake(make_submission("F5-UAT-STR-0001", report_type=ReportType.STR))
        assert exc_info.value.reference == "F5-UAT-STR-0001"

    def test_release_to_validation(self, report_store, clock, captured_logs):
        report_store.intake(make_submission("F5-UAT-CTR-0003"))
        clock.advance_hours(3)

        info = report_store.release_to_validation("F5-UAT-CTR-0003")

        assert info.state == ReportState.PENDING_VALIDATION
        assert info.version == 2
        assert info.entered_queue_at == clock.now()
        assert info.submitted_at == T0
        assert any(r["message"] == "report_received" for r in captured_logs())

    def test_release_twice_is_illegal(self, report_store):
        report_store.intake(make_submission("F5-UAT-CTR-0004"))
        report_store.release_to_validation("F5-UAT-CTR-0004")
        with pytest.raises(IllegalTransitionError) as exc_info:
            report_store.release_to_validation("F5-UAT-CTR-0004")
        assert exc_info.value.state == "PENDING_VALIDATION"


class TestLookup:

    def test_unknown_reference(self, report_store):
        with pytest.raises(ReportNotFoundError) as exc_info:
            report_store.get("F5-NOPE-0000")
        assert exc_info.value.code == "REPORT_NOT_FOUND"


class TestCompareAndSwap:

    def test_swap_bumps_version(self, report_store, submit_report):
        report = submit_report("F5-UAT-CTR-0010")
        model = report_store.load(report.reference_number)

        new_version = report_store.compare_and_swap_state(
            model, ReportState.PENDING_VALIDATION, report.version, ReportState.IN_VALIDATION
        )

        assert new_version == report.version + 1
        assert model.state == ReportState.IN_VALIDATION.value

    def test_same_state_swap_is_a_version_bump(self, report_store, submit_report):
        report = submit_report("F5-UAT-CTR-0011")
        model = report_store.load(report.reference_number)

        report_store.compare_and_swap_state(
            model, ReportState.PENDING_VALIDATION, report.version, ReportState.PENDING_VALIDATION
        )

        assert report_store.get(report.reference_number).version == report.version + 1

    def test_stale_version_refused(self, report_store, submit_report, captured_logs):
        report = submit_report("F5-UAT-CTR-0012")
        model = report_store.load(report.reference_number)
        report_store.compare_and_swap_state(
            model, ReportState.PENDING_VALIDATION, report.version, ReportState.PENDING_VALIDATION
        )

        with pytest.raises(StaleStateError) as exc_info:
            report_store.compare_and_swap_state(
                model, ReportState.PENDING_VALIDATION, report.version, ReportState.IN_VALIDATION
            )

        err = exc_info.value
        assert err.expected_version == report.version
        assert err.actual_version == report.version + 1
        assert err.actual_state == "PENDING_VALIDATION"
        assert any(r["message"] == "stale_state_detected" for r in captured_logs())
        assert report_store.get(report.reference_number).state == ReportState.PENDING_VALIDATION

    def test_stale_state_refused(self, report_store, submit_report):
        report = submit_report("F5-UAT-CTR-0013")
        model = report_store.load(report.reference_number)

        with pytest.raises(StaleStateError):
            report_store.compare_and_swap_state(
                model, ReportState.IN_VALIDATION, report.version, ReportState.RETURNED
            )

    def test_queue_clock_reset_is_optional(self, report_store, submit_report, clock):
        report = submit_report("F5-UAT-CTR-0014")
        model = report_store.load(report.reference_number)
        clock.advance_hours(5)

        report_store.compare_and_swap_state(
            model, ReportState.PENDING_VALIDATION, report.version,
            ReportState.PENDING_VALIDATION, reset_queue_clock=True,
        )

        assert model.entered_queue_at == clock.now()
