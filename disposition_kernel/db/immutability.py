"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Decisions and their audit entries are the compliance record of the
authority.  Once written they are never edited or removed; corrections are
new decisions.  Reports are never deleted either, only moved to terminal
states.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete event] --> _check_*_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

If a check fails the flush is aborted and the database is never modified.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable           | Operation refused
------------------|--------------------------|-------------------
DecisionModel     | ALWAYS (from creation)   | UPDATE, DELETE
AuditLogEntryModel| ALWAYS (from creation)   | UPDATE, DELETE
ReportModel       | never deleted            | DELETE
AssignmentModel   | never deleted            | DELETE

Bulk ``update()`` statements bypass mapper events; the kernel only issues
them against ``reports`` (the compare-and-swap in ReportStore).

===============================================================================
USAGE
===============================================================================

    from disposition_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from disposition_kernel.exceptions import ImmutabilityViolationError
from disposition_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_decision_immutability(mapper, connection, target):
    """Prevent any updates to Decision records."""
    _block("Decision", target, "UPDATE", "Decisions are immutable and cannot be modified")


def _check_decision_delete(mapper, connection, target):
    """Prevent deletion of Decision records."""
    _block("Decision", target, "DELETE", "Decisions cannot be deleted")


def _check_audit_entry_immutability(mapper, connection, target):
    """Prevent any updates to AuditLogEntry records."""
    _block("AuditLogEntry", target, "UPDATE", "Audit entries are immutable and cannot be modified")


def _check_audit_entry_delete(mapper, connection, target):
    """Prevent deletion of AuditLogEntry records."""
    _block("AuditLogEntry", target, "DELETE", "Audit entries cannot be deleted")


def _check_report_delete(mapper, connection, target):
    """Reports leave the workflow through terminal states, never by deletion."""
    _block("Report", target, "DELETE", "Reports are never deleted; transition to a terminal state")


def _check_assignment_delete(mapper, connection, target):
    """Assignments are superseded or released, never deleted."""
    _block("Assignment", target, "DELETE", "Assignments are superseded, never deleted")


def _listeners():
    from disposition_kernel.models.assignment import AssignmentModel
    from disposition_kernel.models.audit_entry import AuditLogEntryModel
    from disposition_kernel.models.decision import DecisionModel
    from disposition_kernel.models.report import ReportModel

    return (
        (DecisionModel, "before_update", _check_decision_immutability),
        (DecisionModel, "before_delete", _check_decision_delete),
        (AuditLogEntryModel, "before_update", _check_audit_entry_immutability),
        (AuditLogEntryModel, "before_delete", _check_audit_entry_delete),
        (ReportModel, "before_delete", _check_report_delete),
        (AssignmentModel, "before_delete", _check_assignment_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after models are imported and before any database operation.
    Idempotent.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally tamper with records
    to verify detection.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
