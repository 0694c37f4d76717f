"""Selectors for the disposition kernel (read side)."""

from disposition_kernel.selectors.audit_selector import AuditSelector
from disposition_kernel.selectors.queue_resolver import QueueResolver

__all__ = [
    "AuditSelector",
    "QueueResolver",
]
