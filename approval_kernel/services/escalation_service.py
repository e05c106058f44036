"""
EscalationService -- automatic escalation of stalled approval requests.

Responsibility:
    Periodic batch that finds open requests untouched for
    ``escalation_days``, skips the blocking step, and either hands the
    request to the next approver or parks it as ``escalated`` for admin
    action.  Also answers the escalated-list and overdue queries.

Architecture position:
    Kernel > Services -- imperative shell.  Driven by
    ``scripts/run_escalations.py`` (cron).  The step change itself is the
    pure ``approval_engines.transitions.apply_escalation``.

Invariants enforced:
    - Per-request isolation: each escalation runs inside a SAVEPOINT; a
      failure rolls back only that request's writes and the batch goes on.
    - Idempotence: a request whose current step is no longer pending is
      left alone, and a just-escalated request is no longer stale, so
      re-running the batch is safe.
    - Optimistic write: a request changed by a human action after the batch
      read it raises OptimisticLockError instead of being overwritten.

Failure modes:
    - Per-request exceptions are reported as ``"Request {id}: {message}"``
      in ``EscalationResult.errors``; ``process_escalations`` itself does
      not raise for them.
"""

from __future__ import annotations

from datetime import timedelta
from uuid import uuid4

from sqlalchemy.orm import Session

from approval_engines.transitions import apply_escalation
from approval_kernel.domain.approval import (
    OPEN_REQUEST_STATUSES,
    SYSTEM_ACTOR_ID,
    SYSTEM_ACTOR_NAME,
    ApprovalAction,
    ApprovalRequest,
    EscalationResult,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.selectors.request_selector import RequestSelector
from approval_kernel.services.audit_service import AuditService
from approval_kernel.services.request_store import RequestStore
from approval_kernel.services.settings_service import SettingsService

logger = get_logger("services.escalation")


class EscalationService:
    """Escalate approval requests that have waited too long."""

    def __init__(
        self,
        session: Session,
        auditor: AuditService,
        clock: Clock | None = None,
        settings_service: SettingsService | None = None,
    ) -> None:
        self._session = session
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._settings = settings_service or SettingsService(session, self._clock)
        self._store = RequestStore(session)
        self._selector = RequestSelector(session)

    def process_escalations(self) -> EscalationResult:
        """Escalate every open request not updated within ``escalation_days``."""
        settings = self._settings.get_settings()
        if settings.escalation_days <= 0:
            logger.info("escalation_disabled")
            return EscalationResult()

        cutoff = self._clock.now() - timedelta(days=settings.escalation_days)
        batch_id = str(uuid4())

        processed = 0
        escalated = 0
        errors: list[str] = []

        with LogContext.bind(batch_id=batch_id):
            stale = self._selector.list_stale(cutoff)
            logger.info(
                "escalation_batch_started",
                extra={
                    "cutoff": cutoff,
                    "candidates": len(stale),
                    "escalation_days": settings.escalation_days,
                },
            )

            for request in stale:
                processed += 1
                try:
                    if self.escalate_request(request):
                        escalated += 1
                except Exception as exc:
                    errors.append(f"Request {request.request_id}: {exc}")
                    logger.warning(
                        "escalation_request_failed",
                        extra={
                            "request_id": str(request.request_id),
                            "error_type": type(exc).__name__,
                            "error": str(exc),
                        },
                    )

            logger.info(
                "escalation_batch_completed",
                extra={
                    "processed": processed,
                    "escalated": escalated,
                    "failed": len(errors),
                },
            )

        return EscalationResult(
            processed=processed,
            escalated=escalated,
            errors=tuple(errors),
        )

    def escalate_request(self, request: ApprovalRequest) -> bool:
        """Skip the current step of ``request`` inside a SAVEPOINT.

        Returns:
            False when there is no pending step to skip, True otherwise.

        Raises:
            OptimisticLockError: the request changed after it was read.
            RequestClosedError: the request became terminal after it was read.
        """
        settings = self._settings.get_settings()
        updated = apply_escalation(
            request, self._clock.now(), settings.escalation_days,
        )
        if updated is None:
            return False

        skipped = request.approval_chain[request.current_step]
        is_last_step = request.is_last_step

        with LogContext.bind(request_id=str(request.request_id)):
            with self._session.begin_nested():
                stored = self._store.save(updated)
                self._auditor.log(
                    stored, ApprovalAction.ESCALATED,
                    SYSTEM_ACTOR_ID, SYSTEM_ACTOR_NAME,
                    step=request.current_step,
                    metadata={
                        "skipped_approver_id": skipped.approver_employee_id,
                        "skipped_approver_name": skipped.approver_name,
                        "next_step": None if is_last_step else stored.current_step,
                        "is_last_step": is_last_step,
                        "escalation_days": settings.escalation_days,
                    },
                )

            logger.info(
                "approval_request_escalated",
                extra={
                    "request_id": str(request.request_id),
                    "skipped_step": request.current_step,
                    "new_status": stored.status.value,
                    "is_last_step": is_last_step,
                },
            )
        return True

    def get_escalated_requests(self) -> list[ApprovalRequest]:
        return self._selector.list_escalated()

    def is_request_overdue(self, request: ApprovalRequest) -> bool:
        """True if the request would be picked up by the next batch. Read-only."""
        settings = self._settings.get_settings()
        if request.status not in OPEN_REQUEST_STATUSES:
            return False
        if settings.escalation_days <= 0:
            return False

        touched = [t for t in (request.updated_at, request.created_at) if t is not None]
        if not touched:
            return False
        cutoff = self._clock.now() - timedelta(days=settings.escalation_days)
        return max(touched) <= cutoff
