"""
Approval Kernel - hierarchical approval workflow engine

Snapshot-based approval chains for HR requests with:
- Role-gated sequential approval
- Temporary delegation of approval authority
- Time-based escalation of stalled steps
- Optimistic concurrency on every request write
- Append-only history and audit log
"""

__version__ = "0.1.0"
