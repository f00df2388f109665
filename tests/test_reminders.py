# tests/test_reminders.py
#
# Tests for sending one reminder: the strict step order, what a failed send
# leaves behind, and per-commitment isolation inside a check cycle.
# The store and transport are MagicMocks; no mail is sent.

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from unittest.mock import patch, MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from engine.errors import TransportError
from engine.models import Cadence, Commitment, Template
from engine.reminders import ReminderDispatcher, render_body


NY = ZoneInfo("America/New_York")
NOW = datetime(2025, 1, 15, 9, 5, tzinfo=NY)   # a Wednesday


def _commitment(commitment_id="journal", template_id="daily", **overrides):
    fields = dict(
        id=commitment_id,
        name="Journal",
        cadence=Cadence.DAILY,
        trigger_time="09:00",
        cutoff_time="21:00",
        template_id=template_id,
    )
    fields.update(overrides)
    return Commitment(**fields)


TEMPLATE = Template(
    id="daily",
    subject_line="Daily check-in",
    email_body="Did you work on {{commitmentName}} today?",
)


def _dispatcher():
    """Store and transport hang off one parent mock so call order is recorded."""
    parent = MagicMock()
    parent.store.get_template.return_value = TEMPLATE
    parent.store.create_reminder_record.return_value = "rec-1"
    parent.transport.send.return_value = "thread-1"
    dispatcher = ReminderDispatcher(parent.store, parent.transport, "me@example.com", NY)
    return dispatcher, parent


class TestSendReminder:

    def test_steps_run_in_order(self):
        dispatcher, parent = _dispatcher()

        dispatcher.send_reminder(_commitment(), NOW)

        names = [c[0] for c in parent.mock_calls]
        assert names == [
            'store.get_template',
            'store.create_reminder_record',
            'transport.send',
            'store.update_record_thread_id',
            'store.update_commitment_last_sent',
        ]

    def test_subject_carries_marker_and_body_is_rendered(self):
        dispatcher, parent = _dispatcher()

        dispatcher.send_reminder(_commitment(), NOW)

        parent.transport.send.assert_called_once_with(
            "me@example.com",
            "[IMPACT-journal-20250115] Daily check-in",
            "Did you work on Journal today?",
        )

    def test_record_gets_thread_id_and_commitment_gets_last_sent(self):
        dispatcher, parent = _dispatcher()

        record = dispatcher.send_reminder(_commitment(), NOW)

        parent.store.create_reminder_record.assert_called_once_with("journal", NOW)
        parent.store.update_record_thread_id.assert_called_once_with("rec-1", "thread-1")
        parent.store.update_commitment_last_sent.assert_called_once_with("journal", NOW)
        assert record.id == "rec-1"
        assert record.thread_id == "thread-1"

    def test_token_is_dated_in_local_zone(self):
        dispatcher, parent = _dispatcher()
        # 03:30 UTC on the 16th is still the evening of the 15th in New York
        late_evening = datetime(2025, 1, 16, 3, 30, tzinfo=timezone.utc)

        dispatcher.send_reminder(_commitment(), late_evening)

        subject = parent.transport.send.call_args[0][1]
        assert subject == "[IMPACT-journal-20250115] Daily check-in"
        created_at = parent.store.create_reminder_record.call_args[0][1]
        assert created_at.tzinfo == NY
        assert created_at == late_evening

    def test_send_failure_leaves_last_sent_untouched(self):
        dispatcher, parent = _dispatcher()
        parent.transport.send.side_effect = TransportError("Gmail is down")

        with pytest.raises(TransportError):
            dispatcher.send_reminder(_commitment(), NOW)

        # The audit record exists, nothing after the send ran.
        parent.store.create_reminder_record.assert_called_once()
        parent.store.update_record_thread_id.assert_not_called()
        parent.store.update_commitment_last_sent.assert_not_called()

    def test_missing_template_skips_without_writing(self):
        dispatcher, parent = _dispatcher()
        parent.store.get_template.return_value = None

        assert dispatcher.send_reminder(_commitment(), NOW) is None

        parent.store.create_reminder_record.assert_not_called()
        parent.transport.send.assert_not_called()

    def test_commitment_without_template_id_is_skipped(self):
        dispatcher, parent = _dispatcher()

        assert dispatcher.send_reminder(_commitment(template_id=""), NOW) is None
        parent.store.get_template.assert_not_called()
        parent.transport.send.assert_not_called()


class TestRunCycle:

    def test_one_failure_does_not_stop_the_others(self):
        dispatcher, parent = _dispatcher()
        parent.transport.send.side_effect = [TransportError("boom"), "thread-2"]

        report = dispatcher.run_cycle([_commitment("first"), _commitment("second")], NOW)

        assert report.failed == ["first"]
        assert report.sent == ["second"]
        parent.store.update_commitment_last_sent.assert_called_once_with("second", NOW)

    def test_not_due_commitments_are_not_sent(self):
        dispatcher, parent = _dispatcher()
        already_sent = _commitment("done", last_sent=NOW)
        later = _commitment("later", trigger_time="18:00")

        report = dispatcher.run_cycle([already_sent, later], NOW)

        assert report.not_due == ["done", "later"]
        parent.transport.send.assert_not_called()

    def test_missing_template_counts_as_failed(self):
        dispatcher, parent = _dispatcher()
        parent.store.get_template.return_value = None

        report = dispatcher.run_cycle([_commitment()], NOW)

        assert report.failed == ["journal"]
        assert report.sent == []

    def test_store_error_is_isolated(self):
        dispatcher, parent = _dispatcher()
        parent.store.create_reminder_record.side_effect = [OSError("disk full"), "rec-2"]

        report = dispatcher.run_cycle([_commitment("first"), _commitment("second")], NOW)

        assert report.failed == ["first"]
        assert report.sent == ["second"]

    def test_repeat_cycle_after_success_sends_nothing(self):
        """Once last_sent is today the second cycle finds nothing due."""
        dispatcher, parent = _dispatcher()
        commitment = _commitment()

        dispatcher.run_cycle([commitment], NOW)
        sent_today = commitment.model_copy(update={'last_sent': NOW})
        report = dispatcher.run_cycle([sent_today], NOW)

        assert report.not_due == ["journal"]
        assert parent.transport.send.call_count == 1


class TestRenderBody:

    def test_all_placeholders(self):
        body = "{{commitmentName}} at {{triggerTime}} until {{cutoffTime}} on {{date}}"
        assert render_body(body, _commitment(), NOW) == (
            "Journal at 09:00 until 21:00 on Wednesday, January 15, 2025"
        )

    def test_goals_context(self):
        with patch('engine.reminders.get_goals_for_tags',
                   return_value="Relevant goals:\n- Write daily") as mock_goals:
            result = render_body("Hi\n{{goalsContext}}", _commitment(tags=["writing"]), NOW)

        mock_goals.assert_called_once_with(["writing"])
        assert result == "Hi\nRelevant goals:\n- Write daily"

    def test_goals_context_removed_when_no_goals(self):
        with patch('engine.reminders.get_goals_for_tags', return_value=""):
            assert render_body("Hi{{goalsContext}}", _commitment(), NOW) == "Hi"

    def test_body_without_placeholders_is_unchanged(self):
        assert render_body("Plain text.", _commitment(), NOW) == "Plain text."
