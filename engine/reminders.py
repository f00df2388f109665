# engine/reminders.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Sends the reminder for one due commitment, in a fixed order:
#
#   1. Resolve the template              (missing → skip this commitment)
#   2. Mint the token, compose subject   ([IMPACT-<id>-<YYYYMMDD>] Subject)
#   3. Create the ReminderRecord         (status sent, empty thread id)
#   4. Send the email                    (failure → stop here, re-raise)
#   5. Save the thread id on the record
#   6. Update the commitment's last_sent (LAST: this is what stops re-sends)
#
# The record exists before the send is attempted, so a crash mid-send leaves
# an auditable record with an empty thread id. last_sent only moves after a
# successful send, so a failed send is retried by the next due-check. There
# is no other retry.
# ============================================================================

from dataclasses import dataclass, field
from datetime import datetime, tzinfo

from config.goals import get_goals_for_tags
from engine.cadence import is_due
from engine.errors import ConfigurationError
from engine.interfaces import RecordStore, Transport
from engine.models import Commitment, ReminderRecord
from engine.tokens import compose_subject, mint_token
from utils.logger import logger


@dataclass
class DispatchReport:
    """What happened to each commitment during one check cycle."""
    sent: list[str] = field(default_factory=list)
    not_due: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def render_body(body: str, commitment: Commitment, now: datetime) -> str:
    """
    Fill the template placeholders:

        {{commitmentName}}  {{triggerTime}}  {{cutoffTime}}
        {{date}}            e.g. "Wednesday, January 15, 2025"
        {{goalsContext}}    goals for the commitment's tags, or removed
    """
    result = body or ''
    result = result.replace('{{commitmentName}}', commitment.name)
    result = result.replace('{{triggerTime}}', commitment.trigger_time)
    result = result.replace('{{cutoffTime}}', commitment.cutoff_time)
    result = result.replace('{{date}}', f"{now:%A, %B} {now.day}, {now.year}")

    if '{{goalsContext}}' in result:
        result = result.replace('{{goalsContext}}', get_goals_for_tags(commitment.tags))

    return result


class ReminderDispatcher:
    """Runs the send protocol for every due commitment in a check cycle."""

    def __init__(self, store: RecordStore, transport: Transport, recipient: str,
                 tz: tzinfo = None):
        self.store = store
        self.transport = transport
        self.recipient = recipient
        self.tz = tz

    def run_cycle(self, commitments: list[Commitment], now: datetime) -> DispatchReport:
        """
        Evaluate and, where due, send each commitment in turn.

        One commitment failing (bad template, Gmail down, vault write error)
        is logged and does not stop the others.
        """
        report = DispatchReport()

        for commitment in commitments:
            try:
                if not is_due(commitment, now, self.tz):
                    report.not_due.append(commitment.id)
                    continue

                if self.send_reminder(commitment, now) is None:
                    report.failed.append(commitment.id)
                else:
                    report.sent.append(commitment.id)

            except Exception as e:
                logger.error("Error processing commitment",
                             commitment_id=commitment.id, error=str(e))
                report.failed.append(commitment.id)

        return report

    def send_reminder(self, commitment: Commitment, now: datetime) -> ReminderRecord | None:
        """
        Execute the six-step protocol for one commitment.

        Returns the finished record, or None when the template is missing
        (a configuration problem: logged, nothing written). Transport and
        store failures propagate to the caller with every later step
        skipped.
        """
        # Step 1: template
        try:
            template = self._resolve_template(commitment)
        except ConfigurationError as e:
            logger.error("Template not found", commitment_id=commitment.id,
                         template_id=commitment.template_id, error=str(e))
            return None

        # Step 2: token + subject, dated in the local zone
        if self.tz is not None:
            now = now.astimezone(self.tz) if now.tzinfo else now.replace(tzinfo=self.tz)
        token = mint_token(commitment.id, now)
        subject = compose_subject(token, template.subject_line)
        body = render_body(template.email_body, commitment, now)

        # Step 3: audit record BEFORE the send attempt
        record_id = self.store.create_reminder_record(commitment.id, now)
        logger.debug("Reminder record created", record_id=record_id,
                     commitment_id=commitment.id)

        # Step 4: send. On failure the record keeps its empty thread id and
        # last_sent stays where it was.
        thread_id = self.transport.send(self.recipient, subject, body)

        # Step 5: correlate the record with the thread replies will land in
        self.store.update_record_thread_id(record_id, thread_id)

        # Step 6: finalize
        self.store.update_commitment_last_sent(commitment.id, now)

        logger.info("Reminder sent", commitment_id=commitment.id,
                    commitment_name=commitment.name, thread_id=thread_id)

        return ReminderRecord(
            id=record_id,
            commitment_id=commitment.id,
            created_at=now,
            thread_id=thread_id,
        )

    def _resolve_template(self, commitment: Commitment):
        if not commitment.template_id:
            raise ConfigurationError(f"Commitment {commitment.id} has no template")
        template = self.store.get_template(commitment.template_id)
        if template is None:
            raise ConfigurationError(f"Template {commitment.template_id} does not exist")
        return template
