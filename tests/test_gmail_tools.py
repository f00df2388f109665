# tests/test_gmail_tools.py
#
# Tests for the Gmail transport. The Gmail API service is a MagicMock, so
# these check what we send to the API and how we read what comes back.

import base64
from email import message_from_bytes

import httplib2
import pytest
from googleapiclient.errors import HttpError
from unittest.mock import MagicMock

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from engine.errors import TransportError
from tools.gmail_tools import GmailTransport, build_raw_message, parse_message


def _b64(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode('utf-8')).decode('ascii')


def _http_error(status=500):
    return HttpError(httplib2.Response({'status': status}), b'{"error": {"message": "backend error"}}')


def _gmail_message(message_id="m1", payload=None, headers=None):
    headers = headers or [
        {'name': 'Subject', 'value': 'Re: [IMPACT-journal-20250115] Check-in'},
        {'name': 'From', 'value': 'Me <me@example.com>'},
        {'name': 'Date', 'value': 'Wed, 15 Jan 2025 10:12:00 -0500'},
    ]
    payload = payload or {'mimeType': 'text/plain', 'body': {'data': _b64('Done.')}}
    payload['headers'] = headers
    return {'id': message_id, 'threadId': 't1', 'payload': payload}


class TestParseMessage:

    def test_simple_message(self):
        message = parse_message(_gmail_message())

        assert message.id == "m1"
        assert message.thread_id == "t1"
        assert message.subject == "Re: [IMPACT-journal-20250115] Check-in"
        assert message.sender == "Me <me@example.com>"
        assert message.body == "Done."
        assert message.received_at.isoformat() == "2025-01-15T10:12:00-05:00"

    def test_multipart_prefers_plain_text(self):
        payload = {
            'mimeType': 'multipart/alternative',
            'body': {},
            'parts': [
                {'mimeType': 'text/html', 'body': {'data': _b64('<p>Done.</p>')}},
                {'mimeType': 'text/plain', 'body': {'data': _b64('Done.')}},
            ],
        }
        assert parse_message(_gmail_message(payload=payload)).body == "Done."

    def test_html_only(self):
        payload = {
            'mimeType': 'multipart/alternative',
            'body': {},
            'parts': [{'mimeType': 'text/html', 'body': {'data': _b64('<p>Done.</p>')}}],
        }
        assert parse_message(_gmail_message(payload=payload)).body == "<p>Done.</p>"

    def test_nested_multipart(self):
        payload = {
            'mimeType': 'multipart/mixed',
            'body': {},
            'parts': [
                {
                    'mimeType': 'multipart/alternative',
                    'body': {},
                    'parts': [{'mimeType': 'text/plain', 'body': {'data': _b64('Nested.')}}],
                },
                {'mimeType': 'application/pdf', 'body': {'attachmentId': 'x'}},
            ],
        }
        assert parse_message(_gmail_message(payload=payload)).body == "Nested."

    def test_missing_date_falls_back_to_internal_date(self):
        raw = _gmail_message(headers=[{'name': 'Subject', 'value': 'Hi'}])
        raw['internalDate'] = '1736953920000'

        assert parse_message(raw).received_at.year == 2025


class TestBuildRawMessage:

    def test_headers_and_body(self):
        raw = build_raw_message("me@example.com", "[IMPACT-journal-20250115] Check-in",
                                "Did you write today?")
        parsed = message_from_bytes(base64.urlsafe_b64decode(raw))

        assert parsed['To'] == "me@example.com"
        assert parsed['Subject'] == "[IMPACT-journal-20250115] Check-in"
        assert parsed.get_payload().strip() == "Did you write today?"


class TestGmailTransport:

    def setup_method(self):
        self.service = MagicMock()
        self.messages = self.service.users.return_value.messages.return_value
        self.transport = GmailTransport(service=self.service)

    def test_send_returns_thread_id(self):
        self.messages.send.return_value.execute.return_value = {'id': 'm1', 'threadId': 't1'}

        assert self.transport.send("me@example.com", "Subject", "Body") == "t1"
        kwargs = self.messages.send.call_args.kwargs
        assert kwargs['userId'] == 'me'
        assert 'raw' in kwargs['body']

    def test_send_http_error_becomes_transport_error(self):
        self.messages.send.return_value.execute.side_effect = _http_error()

        with pytest.raises(TransportError):
            self.transport.send("me@example.com", "Subject", "Body")

    def test_send_without_thread_id_is_an_error(self):
        self.messages.send.return_value.execute.return_value = {'id': 'm1'}

        with pytest.raises(TransportError):
            self.transport.send("me@example.com", "Subject", "Body")

    def test_list_unread_follows_pages(self):
        self.messages.list.return_value.execute.side_effect = [
            {'messages': [{'id': 'm1'}], 'nextPageToken': 'p2'},
            {'messages': [{'id': 'm2'}]},
        ]
        self.messages.get.return_value.execute.side_effect = [
            _gmail_message('m1'), _gmail_message('m2'),
        ]

        messages = self.transport.list_unread("IMPACT")

        assert [m.id for m in messages] == ['m1', 'm2']
        first_call, second_call = self.messages.list.call_args_list
        assert first_call.kwargs == {'userId': 'me', 'q': 'is:unread subject:IMPACT'}
        assert second_call.kwargs['pageToken'] == 'p2'

    def test_list_unread_empty_inbox(self):
        self.messages.list.return_value.execute.return_value = {'resultSizeEstimate': 0}

        assert self.transport.list_unread("IMPACT") == []

    def test_list_failure_raises(self):
        self.messages.list.return_value.execute.side_effect = _http_error(503)

        with pytest.raises(TransportError):
            self.transport.list_unread("IMPACT")

    def test_one_unfetchable_message_is_skipped(self):
        self.messages.list.return_value.execute.return_value = {
            'messages': [{'id': 'm1'}, {'id': 'm2'}],
        }
        self.messages.get.return_value.execute.side_effect = [
            _http_error(404), _gmail_message('m2'),
        ]

        assert [m.id for m in self.transport.list_unread("IMPACT")] == ['m2']

    def test_mark_read_removes_unread_label(self):
        self.transport.mark_read("m1")

        self.messages.modify.assert_called_once_with(
            userId='me', id='m1', body={'removeLabelIds': ['UNREAD']},
        )

    def test_mark_read_failure_raises(self):
        self.messages.modify.return_value.execute.side_effect = _http_error()

        with pytest.raises(TransportError):
            self.transport.mark_read("m1")
