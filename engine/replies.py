# engine/replies.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Handles one unread reply from the inbox:
#
#   1. Read the [IMPACT-...] marker from the subject (not ours → skip)
#   2. Find the ReminderRecord by Gmail thread id   (none → skip)
#   3. Look up the commitment and template           (optional context)
#   4. Save the cleaned reply on the record          → status "replied"
#   5. Summarize it                                  (failure → no summary)
#   6. Save the summary                              → status "summarized"
#
# Marking the message read is the CALLER's job and happens only after this
# flow returns. If anything here raises, the message stays unread and is
# processed again on the next poll. Doing the whole flow twice is harmless:
# the same reply text is re-attached and re-summarized.
# ============================================================================

import re
from enum import Enum

from config.goals import get_goals_for_tags
from engine.interfaces import RecordStore, Summarizer
from engine.models import Commitment, InboundMessage, Template
from engine.tokens import parse_token
from utils.logger import logger


class ReplyOutcome(str, Enum):
    NOT_OURS = "not_ours"             # no valid marker in the subject
    UNKNOWN_THREAD = "unknown_thread" # marker, but no record for the thread
    EMPTY = "empty"                   # nothing left after cleaning
    REPLIED = "replied"               # reply saved, no summary
    SUMMARIZED = "summarized"         # reply and summary saved


# "On Wed, Jan 15, 2025 at 9:05 AM Someone <x@y.z> wrote:", possibly wrapped
# onto a second line by the mail client.
_QUOTE_HEADER_RES = (
    re.compile(r'^[ \t]*On\b[^\n]*\bwrote:[ \t]*$', re.IGNORECASE | re.MULTILINE),
    re.compile(r'^[ \t]*On\b[^\n]*\n[^\n]*\bwrote:[ \t]*$', re.IGNORECASE | re.MULTILINE),
)

# "-- " signature delimiter, "-----Original Message-----", Outlook's "____"
_CUTOFF_LINE_RE = re.compile(r'^\s*(--\s*$|---|___)')


def clean_reply_body(body: str) -> str:
    """
    Strip everything that isn't the user's own new text.

    Drops ">"-quoted lines, cuts at the first "On ... wrote:" header and at
    the first signature / original-message separator, then trims.
    """
    if not body:
        return ''

    text = body.replace('\r\n', '\n').replace('\r', '\n')

    # Everything from the quoted-history header on is the original reminder.
    for pattern in _QUOTE_HEADER_RES:
        match = pattern.search(text)
        if match:
            text = text[:match.start()]
            break

    kept = []
    for line in text.split('\n'):
        if _CUTOFF_LINE_RE.match(line):
            break
        if line.lstrip().startswith('>'):
            continue
        kept.append(line)

    return '\n'.join(kept).strip()


class ReplyReconciler:
    """Attaches replies (and their summaries) to the matching ReminderRecord."""

    def __init__(self, store: RecordStore, summarizer: Summarizer):
        self.store = store
        self.summarizer = summarizer

    def reconcile(self, message: InboundMessage) -> ReplyOutcome:
        token = parse_token(message.subject)
        if not token.is_valid:
            logger.debug("Skipping message without reminder token",
                         message_id=message.id, subject=message.subject)
            return ReplyOutcome.NOT_OURS

        # The thread id is the durable key once the reminder was sent;
        # the token only tells us the mail is ours.
        record = self.store.find_record_by_thread_id(message.thread_id)
        if record is None:
            logger.warn("No reminder record for thread", thread_id=message.thread_id,
                        commitment_id=token.commitment_id)
            return ReplyOutcome.UNKNOWN_THREAD

        if record.commitment_id != token.commitment_id:
            logger.warn("Token and record disagree on commitment, trusting the thread",
                        record_id=record.id, record_commitment=record.commitment_id,
                        token_commitment=token.commitment_id)

        reply = clean_reply_body(message.body)
        if not reply:
            logger.warn("Reply is empty after cleaning", message_id=message.id,
                        record_id=record.id)
            return ReplyOutcome.EMPTY

        commitment = self._resolve_commitment(record.commitment_id)
        template = self._resolve_template(commitment)

        self.store.update_record_reply(record.id, reply)

        summary = self.summarizer.summarize(
            reply,
            context=self._summary_context(commitment),
            custom_prompt=template.summary_prompt if template else None,
        )

        if not summary:
            logger.warn("Summary generation failed, record updated with reply only",
                        record_id=record.id)
            return ReplyOutcome.REPLIED

        self.store.update_record_summary(record.id, summary)
        logger.info("Reply processed", commitment_id=record.commitment_id,
                    thread_id=message.thread_id, has_summary=True)
        return ReplyOutcome.SUMMARIZED

    # ── optional context: any failure here just means less context ────

    def _resolve_commitment(self, commitment_id: str) -> Commitment | None:
        try:
            return self.store.get_commitment(commitment_id)
        except Exception as e:
            logger.warn("Could not load commitment for reply context",
                        commitment_id=commitment_id, error=str(e))
            return None

    def _resolve_template(self, commitment: Commitment | None) -> Template | None:
        if commitment is None or not commitment.template_id:
            return None
        try:
            return self.store.get_template(commitment.template_id)
        except Exception as e:
            logger.warn("Could not load template for reply context",
                        template_id=commitment.template_id, error=str(e))
            return None

    @staticmethod
    def _summary_context(commitment: Commitment | None) -> dict | None:
        if commitment is None:
            return None
        return {
            'name': commitment.name,
            'tags': list(commitment.tags),
            'goals': get_goals_for_tags(commitment.tags),
        }
