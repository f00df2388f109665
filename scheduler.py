# scheduler.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "manager" of the daemon. It owns two recurring jobs and hands
# the real work to the engine:
#
#   1. COMMITMENT CHECK (default: every minute)
#      → load the active commitments from the vault
#      → ReminderDispatcher sends a reminder for each one that is due
#
#   2. INBOX POLL (default: every five minutes)
#      → list unread Gmail messages whose subject carries [IMPACT-...]
#      → ReplyReconciler attaches each reply (and its summary) to its record
#      → the message is marked read only after that succeeded
#
# Both jobs are SINGLE-FLIGHT: if a firing comes due while the previous one
# is still running, the new firing is logged and skipped, never queued.
# Each job records its start time before doing anything, so the health
# endpoint can tell "ran and failed" apart from "never ran".
#
# One bad commitment or one bad message is logged and the loop moves on.
# Failing to load the list at all aborts just that cycle.
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────

import threading
from collections import Counter
from datetime import datetime
from zoneinfo import ZoneInfo

# APScheduler runs the two jobs on a background thread pool with
# crontab-style triggers.
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from config.settings import (
    TIMEZONE, CHECK_INTERVAL, POLL_INTERVAL, MISFIRE_GRACE_SECONDS,
    TOKEN_PREFIX, GMAIL_USER_EMAIL, VAULT_ROOT, missing_settings,
)
from engine.errors import ConfigurationError, StartupError
from engine.interfaces import RecordStore, Summarizer, Transport
from engine.reminders import DispatchReport, ReminderDispatcher
from engine.replies import ReplyReconciler
from utils.logger import logger


def _cron(expression: str, tz: ZoneInfo) -> CronTrigger:
    try:
        return CronTrigger.from_crontab(expression, timezone=tz)
    except ValueError as e:
        raise ConfigurationError(f"Invalid cron expression {expression!r}: {e}") from e


# ── THE SCHEDULER CLASS ────────────────────────────────────────────────

class Scheduler:
    """
    Runs the commitment check and the inbox poll on their own schedules.

    check_commitments() and poll_inbox() can also be called directly (the
    CLI's check-once / poll-once do exactly that); the single-flight guard
    applies either way.
    """

    def __init__(self, store: RecordStore, transport: Transport, summarizer: Summarizer,
                 recipient: str, timezone: str = TIMEZONE,
                 check_interval: str = CHECK_INTERVAL, poll_interval: str = POLL_INTERVAL,
                 clock=None):
        self.store = store
        self.transport = transport
        self.tz = ZoneInfo(timezone)

        self.dispatcher = ReminderDispatcher(store, transport, recipient, self.tz)
        self.reconciler = ReplyReconciler(store, summarizer)

        # Parsed up front so a bad expression fails before anything starts.
        self._check_trigger = _cron(check_interval, self.tz)
        self._poll_trigger = _cron(poll_interval, self.tz)

        # Injected in tests; otherwise "now" in the configured zone.
        self._clock = clock or (lambda: datetime.now(self.tz))

        self._check_lock = threading.Lock()
        self._poll_lock = threading.Lock()

        self.started_at: datetime | None = None
        self.last_check_time: datetime | None = None
        self.last_poll_time: datetime | None = None

        self._scheduler = BackgroundScheduler(timezone=self.tz)

    # ── LIFECYCLE ──────────────────────────────────────────────────────

    def start(self):
        # max_instances=2 lets an overlapping firing reach the lock below,
        # which logs and skips it.
        job_options = {
            'max_instances': 2,
            'coalesce': True,
            'misfire_grace_time': MISFIRE_GRACE_SECONDS,
            'replace_existing': True,
        }
        self._scheduler.add_job(self.check_commitments, self._check_trigger,
                                id='check_commitments', **job_options)
        self._scheduler.add_job(self.poll_inbox, self._poll_trigger,
                                id='poll_inbox', **job_options)
        self._scheduler.start()
        self.started_at = self._clock()
        logger.info("Scheduler started", timezone=str(self.tz))

    def stop(self):
        """Stop firing new cycles and wait for a running one to finish."""
        if self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    # ── CYCLE 1: COMMITMENT CHECK ─────────────────────────────────────

    def check_commitments(self) -> DispatchReport | None:
        """
        One commitment-check cycle.

        Returns the DispatchReport, or None when the cycle was skipped
        (already running) or aborted (commitments could not be loaded).
        """
        if not self._check_lock.acquire(blocking=False):
            logger.warn("Commitment check still running, skipping this firing")
            return None

        try:
            now = self._clock()
            self.last_check_time = now
            logger.debug("Checking commitments", now=now.isoformat())

            try:
                commitments = self.store.list_active_commitments()
            except Exception as e:
                logger.error("Commitment check aborted", error=str(e))
                return None

            report = self.dispatcher.run_cycle(commitments, now)

            if report.sent or report.failed:
                logger.info("Commitment check finished", sent=len(report.sent),
                            failed=len(report.failed), not_due=len(report.not_due))
            return report

        finally:
            self._check_lock.release()

    # ── CYCLE 2: INBOX POLL ───────────────────────────────────────────

    def poll_inbox(self) -> dict | None:
        """
        One inbox-poll cycle.

        Returns a count per outcome (plus "failed"), or None when the cycle
        was skipped or the inbox could not be listed.
        """
        if not self._poll_lock.acquire(blocking=False):
            logger.warn("Inbox poll still running, skipping this firing")
            return None

        try:
            self.last_poll_time = self._clock()

            try:
                messages = self.transport.list_unread(TOKEN_PREFIX)
            except Exception as e:
                logger.error("Inbox poll aborted", error=str(e))
                return None

            counts = Counter()
            for message in messages:
                try:
                    outcome = self.reconciler.reconcile(message)
                    # Only after the flow returned: a failure above leaves
                    # the message unread for the next poll.
                    self.transport.mark_read(message.id)
                    counts[outcome.value] += 1
                except Exception as e:
                    logger.error("Error processing reply", message_id=message.id,
                                 thread_id=message.thread_id, error=str(e))
                    counts['failed'] += 1

            if messages:
                logger.info("Inbox poll finished", messages=len(messages), **counts)
            return dict(counts)

        finally:
            self._poll_lock.release()

    # ── LIVENESS ──────────────────────────────────────────────────────

    def liveness(self) -> dict:
        def iso(moment):
            return moment.isoformat() if moment else None

        return {
            'started_at': iso(self.started_at),
            'last_check': iso(self.last_check_time),
            'last_poll': iso(self.last_poll_time),
        }


# ── WIRING ─────────────────────────────────────────────────────────────

def build_scheduler() -> Scheduler:
    """
    Build a Scheduler with the real collaborators: the vault store, the
    Gmail transport and the LLM summarizer.

    Raises:
        StartupError: required settings are missing.
    """
    missing = missing_settings()
    if missing:
        raise StartupError("Missing required configuration: " + "; ".join(missing))

    # Imported here so the engine can be used (and tested) without pulling
    # in the Google and LLM client libraries.
    from agents.summarizer_agent import SummarizerAgent
    from store.vault import VaultStore
    from tools.gmail_tools import GmailTransport

    store = VaultStore(VAULT_ROOT)
    store.initialize()

    return Scheduler(
        store=store,
        transport=GmailTransport(),
        summarizer=SummarizerAgent(),
        recipient=GMAIL_USER_EMAIL,
    )
