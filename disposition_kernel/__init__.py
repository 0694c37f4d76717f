"""
Disposition Kernel

The manual validation, review and escalation workflow for CTR/STR reports:
- Explicit report lifecycle state machine
- Exclusive assignments with deadlines and live workload
- Role-scoped queues with dual-queue membership
- Optimistic concurrency on every state write
- Hash-chained decision audit log
"""

__version__ = "0.1.0"
