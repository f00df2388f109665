# engine/models.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# The typed entities the engine works with. The record vault decodes its
# loosely-typed YAML into these models at its boundary, so nothing past
# store/vault.py ever sees a raw dict.
#
#   Commitment    : a recurring accountability item ("weekly journaling")
#   Template      : subject line, body and optional summary prompt
#   ReminderRecord: the audit entry for one reminder-and-reply cycle
#   InboundMessage: one unread reply fetched from the mailbox
#   ReminderToken : the [IMPACT-<id>-<date>] marker correlating the two
# ============================================================================

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class Cadence(str, Enum):
    """How often a commitment's reminder fires."""
    DAILY = "Daily"
    WEEKLY = "Weekly"
    QUARTERLY = "Quarterly"


class ReminderStatus(str, Enum):
    """Where a ReminderRecord is in its lifecycle."""
    SENT = "sent"
    REPLIED = "replied"
    SUMMARIZED = "summarized"


class Commitment(BaseModel):
    id: str
    name: str
    active: bool = True
    cadence: Cadence
    trigger_time: str               # local "HH:MM"
    cutoff_time: str = ""           # local "HH:MM", informational
    template_id: str = ""
    last_sent: datetime | None = None
    tags: list[str] = Field(default_factory=list)


class Template(BaseModel):
    id: str
    name: str = ""
    subject_line: str
    email_body: str
    summary_prompt: str | None = None


class ReminderRecord(BaseModel):
    id: str
    commitment_id: str
    created_at: datetime
    thread_id: str = ""
    reply: str | None = None
    summary: str | None = None

    @property
    def status(self) -> ReminderStatus:
        """
        Status is inferred from which fields are filled in, never stored
        authoritatively:

            Sent       ⇔ no reply yet
            Replied    ⇔ reply present, summary absent
            Summarized ⇔ reply and summary both present

        Because it is derived, a crash between any two protocol steps leaves
        a record whose status still matches what actually happened.
        """
        if not self.reply:
            return ReminderStatus.SENT
        if not self.summary:
            return ReminderStatus.REPLIED
        return ReminderStatus.SUMMARIZED

    @property
    def is_orphaned(self) -> bool:
        """Created but the send never completed (no thread id was recorded)."""
        return not self.thread_id and self.status == ReminderStatus.SENT


class InboundMessage(BaseModel):
    id: str
    thread_id: str
    sender: str = ""
    subject: str = ""
    body: str = ""
    received_at: datetime | None = None


class ReminderToken(BaseModel):
    commitment_id: str = ""
    date_stamp: str = ""            # YYYYMMDD in the configured timezone
    is_valid: bool = False

    @classmethod
    def invalid(cls) -> "ReminderToken":
        return cls()
