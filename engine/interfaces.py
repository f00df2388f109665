# engine/interfaces.py
#
# The narrow contracts the engine needs from its three collaborators. The
# real implementations live in tools/gmail_tools.py, store/vault.py and
# agents/summarizer_agent.py; tests hand in MagicMocks with the same shape.

from datetime import datetime
from typing import Protocol

from engine.models import Commitment, InboundMessage, ReminderRecord, Template


class Transport(Protocol):
    def send(self, recipient: str, subject: str, body: str) -> str:
        """Send one message and return its thread id. Raises TransportError."""

    def list_unread(self, filter_token: str) -> list[InboundMessage]:
        """Unread messages whose subject mentions filter_token."""

    def mark_read(self, message_id: str) -> None:
        ...


class RecordStore(Protocol):
    def list_active_commitments(self) -> list[Commitment]: ...

    def get_commitment(self, commitment_id: str) -> Commitment | None: ...

    def get_template(self, template_id: str) -> Template | None: ...

    def create_reminder_record(self, commitment_id: str, created_at: datetime) -> str: ...

    def update_record_thread_id(self, record_id: str, thread_id: str) -> None: ...

    def update_record_reply(self, record_id: str, reply: str) -> None: ...

    def update_record_summary(self, record_id: str, summary: str) -> None: ...

    def update_commitment_last_sent(self, commitment_id: str, sent_at: datetime) -> None: ...

    def find_record_by_thread_id(self, thread_id: str) -> ReminderRecord | None: ...


class Summarizer(Protocol):
    def summarize(self, text: str, context: dict | None = None,
                  custom_prompt: str | None = None) -> str | None:
        """Return a summary, or None when summarization failed."""
