"""
Overdue sweep.

The daily hook: find ACTIVE loans past due whose borrower has not been told
yet, send one notice each, and record the outcome. A delivered notice sets
``overdue_email_sent`` so later runs skip the loan; a failed one leaves the
flag clear (the next run tries again) and appends a row to the failure log.

The sweep never changes a checkout's status.
"""

import logging
import threading

import logfire
from pydantic import BaseModel

from ..database.circulation_repository import CirculationRepository
from ..database.session import DatabaseManager
from ..models.checkout import utc_now
from ..observability.metrics import record_overdue_notification
from .email import EmailDeliveryError, EmailSender, OverdueNotice

logger = logging.getLogger(__name__)


class SweepReport(BaseModel):
    """Outcome of one sweep run."""

    examined: int = 0
    sent: int = 0
    failed: int = 0
    skipped: bool = False


class OverdueSweep:
    """
    Runs the overdue notification pass.

    Overlapping runs in one process are refused by a non-blocking lock; runs in
    separate processes may overlap and rely on the conditional flag update, so
    at most one of them records the delivery.
    """

    def __init__(self, db: DatabaseManager, email_sender: EmailSender, clock=utc_now):
        self.db = db
        self.email_sender = email_sender
        self.clock = clock
        self._lock = threading.Lock()

    def run(self) -> SweepReport:
        if not self._lock.acquire(blocking=False):
            logger.info("Overdue sweep already running; skipping this trigger")
            return SweepReport(skipped=True)

        try:
            with logfire.span("library.overdue_sweep") as span:
                report = self._sweep()
                span.set_attribute("sweep.examined", report.examined)
                span.set_attribute("sweep.sent", report.sent)
                span.set_attribute("sweep.failed", report.failed)
        finally:
            self._lock.release()

        logger.info(
            "Overdue sweep finished: %d examined, %d sent, %d failed",
            report.examined,
            report.sent,
            report.failed,
        )
        return report

    def _sweep(self) -> SweepReport:
        # Read candidates in a short transaction; e-mail is sent outside of it
        with self.db.session_scope() as session:
            repo = CirculationRepository(session, clock=self.clock)
            candidates = repo.overdue_notification_candidates()

        report = SweepReport(examined=len(candidates))

        for checkout in candidates:
            notice = OverdueNotice.from_checkout(checkout)
            try:
                self.email_sender.send_overdue_notice(notice)
            except EmailDeliveryError as e:
                logger.error("Failed to send overdue notice for checkout %s: %s", checkout.id, e)
                with self.db.session_scope() as session:
                    CirculationRepository(session).record_email_failure(checkout.id, str(e))
                record_overdue_notification("failed")
                report.failed += 1
                continue

            with self.db.session_scope() as session:
                flagged = CirculationRepository(session).mark_overdue_email_sent(checkout.id)
            if not flagged:
                logger.warning("Checkout %s was already flagged by another sweep", checkout.id)
            record_overdue_notification("sent")
            report.sent += 1

        return report
