"""
AuditLog -- append-only, hash-chained record of every applied decision.

Responsibility:
    Writes one audit entry per decision, in the same flush as the decision
    and its state write, and validates the chain for tamper detection.
    Read queries are delegated to AuditSelector.

Architecture position:
    Kernel > Services -- called by DecisionEngine only.

Invariants enforced:
    - Sequence monotonicity via SequenceService (locked counter row).
    - Chain integrity: ``hash = H(reference | decision_id | decision |
      payload_hash | prev_hash)``; each entry links to its predecessor.
    - Append-only: entries are never modified or deleted (ORM listeners).

Failure modes:
    - PersistenceError when the entry cannot be written.
    - AuditChainBrokenError from validate_chain().
"""

from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from disposition_kernel.domain.audit import AuditEntry, AuditPage, AuditQuery
from disposition_kernel.domain.decisions import DecisionRecord
from disposition_kernel.exceptions import AuditChainBrokenError, PersistenceError
from disposition_kernel.logging_config import get_logger
from disposition_kernel.models.audit_entry import AuditLogEntryModel
from disposition_kernel.models.report import ReportModel
from disposition_kernel.selectors.audit_selector import AuditSelector
from disposition_kernel.services.sequence_service import SequenceService
from disposition_kernel.utils.hashing import hash_audit_entry, hash_payload

logger = get_logger("services.audit_log")


class AuditLog:
    """
    Decision audit log.

    Contract:
        ``record()`` flushes but never commits; if the caller's transaction
        rolls back, the entry and its sequence number go with it.
    """

    def __init__(self, session: Session):
        self._session = session
        self._sequence_service = SequenceService(session)
        self._selector = AuditSelector(session)

    def _get_last_hash(self) -> str | None:
        return self._session.execute(
            select(AuditLogEntryModel.hash)
            .order_by(AuditLogEntryModel.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def record(self, decision: DecisionRecord, report: ReportModel) -> AuditEntry:
        """
        Append the audit entry for ``decision``.

        The stored payload is the full decision record, so the payload hash
        can be recomputed from the row alone.
        """
        try:
            seq = self._sequence_service.next_value(SequenceService.AUDIT_LOG)
            prev_hash = self._get_last_hash()

            payload: dict[str, Any] = decision.to_dict()
            payload_hash = hash_payload(payload)
            entry_hash = hash_audit_entry(
                reference_number=decision.reference_number,
                decision_id=str(decision.decision_id),
                decision=decision.kind.value,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
            )

            entry = AuditLogEntryModel(
                seq=seq,
                decision_id=decision.decision_id,
                report_id=report.id,
                reference_number=decision.reference_number,
                report_type=decision.report_type.value,
                entity_id=report.entity_id,
                entity_name=report.entity_name,
                decision=decision.kind.value,
                stage=decision.stage.value,
                actor_id=decision.actor_id,
                actor_role=decision.actor_role,
                from_state=decision.from_state.value,
                to_state=decision.to_state.value,
                reason=decision.reason,
                comments=decision.comments,
                decided_at=decision.decided_at,
                payload=payload,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
                hash=entry_hash,
            )
            self._session.add(entry)
            self._session.flush()
        except DBAPIError as exc:
            logger.error(
                "audit_write_failed",
                extra={
                    "reference_number": decision.reference_number,
                    "decision_id": str(decision.decision_id),
                },
            )
            raise PersistenceError("audit_record", str(exc.orig or exc)) from exc

        logger.info(
            "audit_entry_recorded",
            extra={
                "reference_number": decision.reference_number,
                "decision": decision.kind.value,
                "seq": seq,
            },
        )
        return entry.to_dto()

    def query(self, query: AuditQuery) -> AuditPage:
        return self._selector.query(query)

    def trail_for(self, reference: str) -> tuple[AuditEntry, ...]:
        return self._selector.trail_for(reference)

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Returns True only if every stored payload hash, entry hash and
        predecessor link recomputes.

        Raises:
            AuditChainBrokenError: at the first entry that does not.
        """
        entries = self._session.execute(
            select(AuditLogEntryModel).order_by(AuditLogEntryModel.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for entry in entries:
            if entry.prev_hash != prev_hash:
                logger.critical("audit_chain_broken", extra={"seq": entry.seq})
                raise AuditChainBrokenError(str(entry.id), prev_hash or "None", entry.prev_hash or "None")

            payload_hash = hash_payload(entry.payload)
            if payload_hash != entry.payload_hash:
                logger.critical("audit_chain_broken", extra={"seq": entry.seq})
                raise AuditChainBrokenError(str(entry.id), payload_hash, entry.payload_hash)

            expected = hash_audit_entry(
                reference_number=entry.reference_number,
                decision_id=str(entry.decision_id),
                decision=entry.decision,
                payload_hash=entry.payload_hash,
                prev_hash=entry.prev_hash,
            )
            if expected != entry.hash:
                logger.critical("audit_chain_broken", extra={"seq": entry.seq})
                raise AuditChainBrokenError(str(entry.id), expected, entry.hash)
            prev_hash = entry.hash

        logger.info("audit_chain_valid", extra={"entry_count": len(entries)})
        return True
