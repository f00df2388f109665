# tools/gmail_tools.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "post office." It talks to Gmail on the daemon's behalf:
#
#   1. Logs into Gmail using OAuth (saved token file or a refresh token
#      from the environment)
#   2. Sends reminder emails and returns their thread id
#   3. Lists unread replies whose subject carries our [IMPACT-...] marker
#   4. Marks a reply as read once it has been processed
#
# IMPORTANT: This file has NO artificial intelligence in it, and it never
# retries. A failed call raises TransportError and the next scheduler cycle
# is the retry.
# ============================================================================

import base64
import pickle
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import parsedate_to_datetime

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from config.settings import (
    CREDENTIALS_PATH, TOKEN_PATH, GMAIL_SCOPES,
    GMAIL_CLIENT_ID, GMAIL_CLIENT_SECRET, GMAIL_REFRESH_TOKEN, GMAIL_TOKEN_URI,
)
from engine.errors import ConfigurationError, TransportError
from engine.models import InboundMessage
from utils.logger import logger


# ── AUTHENTICATION ─────────────────────────────────────────────────────

def is_authenticated() -> bool:
    """
    Check whether usable Gmail credentials exist, without logging in.

    Either a refresh token is configured in the environment, or a saved
    token file exists that is still valid (or refreshable).
    """
    if GMAIL_REFRESH_TOKEN and GMAIL_CLIENT_ID and GMAIL_CLIENT_SECRET:
        return True

    if not TOKEN_PATH.exists():
        return False

    try:
        with open(TOKEN_PATH, 'rb') as f:
            creds = pickle.load(f)
        return bool(creds and (creds.valid or (creds.expired and creds.refresh_token)))
    except (OSError, pickle.UnpicklingError, EOFError, AttributeError):
        return False


def _load_credentials(interactive: bool):
    # Headless deployments: everything comes from the environment.
    if GMAIL_REFRESH_TOKEN and GMAIL_CLIENT_ID and GMAIL_CLIENT_SECRET:
        creds = Credentials(
            token=None,
            refresh_token=GMAIL_REFRESH_TOKEN,
            token_uri=GMAIL_TOKEN_URI,
            client_id=GMAIL_CLIENT_ID,
            client_secret=GMAIL_CLIENT_SECRET,
            scopes=GMAIL_SCOPES,
        )
        creds.refresh(Request())
        return creds

    creds = None
    if TOKEN_PATH.exists():
        with open(TOKEN_PATH, 'rb') as token_file:
            creds = pickle.load(token_file)

    if creds and creds.valid:
        return creds

    if creds and creds.expired and creds.refresh_token:
        logger.info("Refreshing expired Gmail token")
        creds.refresh(Request())

    elif interactive:
        if not CREDENTIALS_PATH.exists():
            raise ConfigurationError(
                f"Gmail credentials not found at {CREDENTIALS_PATH}. "
                "Download them from Google Cloud Console → APIs & Services → Credentials."
            )
        logger.info("Opening browser for Gmail authentication (only needed once)")
        flow = InstalledAppFlow.from_client_secrets_file(str(CREDENTIALS_PATH), GMAIL_SCOPES)
        # port=0 picks any free port for the local redirect server
        creds = flow.run_local_server(port=0)

    else:
        # The daemon never opens a browser.
        raise ConfigurationError(
            "No usable Gmail credentials. Run 'python main.py auth' or set GMAIL_REFRESH_TOKEN."
        )

    TOKEN_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(TOKEN_PATH, 'wb') as token_file:
        pickle.dump(creds, token_file)
    logger.info("Gmail authentication saved", token_path=str(TOKEN_PATH))
    return creds


def get_gmail_service(interactive: bool = False):
    """
    Log into Gmail and return a Gmail API service object.

    Args:
        interactive: allow the browser-based OAuth flow when no usable token
                     exists. Only "main.py auth" passes True.

    Raises:
        ConfigurationError: no credentials could be found or refreshed.
    """
    try:
        creds = _load_credentials(interactive)
    except GoogleAuthError as e:
        raise ConfigurationError(f"Gmail credentials rejected: {e}") from e
    # cache_discovery=False: the file cache needs oauth2client, which we don't ship
    return build('gmail', 'v1', credentials=creds, cache_discovery=False)


# ── THE TRANSPORT ──────────────────────────────────────────────────────

class GmailTransport:
    """
    Send / list-unread / mark-read on top of the Gmail API.

    The service is built lazily on first use so constructing a transport
    never touches the network.
    """

    def __init__(self, service=None):
        self._service = service

    @property
    def service(self):
        if self._service is None:
            self._service = get_gmail_service()
        return self._service

    def send(self, recipient: str, subject: str, body: str) -> str:
        """Send a plain-text email to `recipient`; returns the Gmail thread id."""
        logger.debug("Sending email", to=recipient, subject=subject)

        raw = build_raw_message(recipient, subject, body)
        try:
            response = self.service.users().messages().send(
                userId='me',
                body={'raw': raw},
            ).execute()
        except (HttpError, OSError) as e:
            raise TransportError(f"Sending to {recipient} failed: {e}") from e

        thread_id = response.get('threadId', '')
        if not thread_id:
            raise TransportError("Gmail accepted the message but returned no thread id")

        logger.info("Email sent", to=recipient, subject=subject, thread_id=thread_id)
        return thread_id

    def list_unread(self, filter_token: str) -> list[InboundMessage]:
        """
        Fetch every unread message whose subject mentions `filter_token`.

        Failing to list at all raises TransportError (the poll cycle is
        aborted). A single message that can't be fetched is logged and
        skipped; it stays unread and is picked up next poll.
        """
        query = f'is:unread subject:{filter_token}'
        logger.debug("Polling inbox", query=query)

        refs = []
        page_token = None
        try:
            while True:
                kwargs = {'userId': 'me', 'q': query}
                if page_token:
                    kwargs['pageToken'] = page_token
                results = self.service.users().messages().list(**kwargs).execute()
                refs.extend(results.get('messages', []))
                page_token = results.get('nextPageToken')
                if not page_token:
                    break
        except (HttpError, OSError) as e:
            raise TransportError(f"Listing unread messages failed: {e}") from e

        messages = []
        for ref in refs:
            try:
                msg = self.service.users().messages().get(
                    userId='me',
                    id=ref['id'],
                    format='full',
                ).execute()
            except (HttpError, OSError) as e:
                logger.warn("Error fetching message", message_id=ref['id'], error=str(e))
                continue
            messages.append(parse_message(msg))

        logger.debug("Inbox poll fetched messages", count=len(messages))
        return messages

    def mark_read(self, message_id: str) -> None:
        try:
            self.service.users().messages().modify(
                userId='me',
                id=message_id,
                body={'removeLabelIds': ['UNREAD']},
            ).execute()
        except (HttpError, OSError) as e:
            raise TransportError(f"Marking {message_id} as read failed: {e}") from e
        logger.debug("Message marked as read", message_id=message_id)


# ── MESSAGE BUILDING ───────────────────────────────────────────────────

def build_raw_message(recipient: str, subject: str, body: str) -> str:
    """RFC 2822 message, base64url-encoded the way the Gmail API wants it."""
    message = EmailMessage()
    message['To'] = recipient
    message['Subject'] = subject
    message.set_content(body)
    return base64.urlsafe_b64encode(message.as_bytes()).decode('ascii')


# ── EMAIL PARSING ──────────────────────────────────────────────────────

def parse_message(msg: dict) -> InboundMessage:
    """
    Flatten a raw Gmail API message into an InboundMessage.

    The body is returned as-is; stripping quoted history is the reply
    flow's job.
    """
    headers = {}
    for h in msg.get('payload', {}).get('headers', []):
        name = h['name'].lower()
        if name in ('subject', 'from', 'date'):
            headers[name] = h['value']

    return InboundMessage(
        id=msg['id'],
        thread_id=msg.get('threadId', ''),
        sender=headers.get('from', ''),
        subject=headers.get('subject', ''),
        body=_extract_body(msg.get('payload', {})),
        received_at=_received_at(headers.get('date'), msg.get('internalDate')),
    )


def _received_at(date_header: str | None, internal_date: str | None) -> datetime | None:
    if date_header:
        try:
            return parsedate_to_datetime(date_header)
        except (TypeError, ValueError):
            pass
    if internal_date:
        # Gmail's internalDate is epoch milliseconds
        return datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
    return None


def _decode(data: str) -> str:
    return base64.urlsafe_b64decode(data).decode('utf-8', errors='replace')


def _extract_body(payload: dict) -> str:
    """
    Dig through Gmail's nested multipart structure for the body text.

    Plain text is preferred; HTML is only used when there is no plain part.
    """
    if payload.get('body', {}).get('data'):
        return _decode(payload['body']['data'])

    text_body = ''
    html_body = ''

    for part in payload.get('parts', []):
        mime_type = part.get('mimeType', '')

        if mime_type == 'text/plain' and part.get('body', {}).get('data'):
            text_body = text_body or _decode(part['body']['data'])

        elif mime_type == 'text/html' and part.get('body', {}).get('data'):
            html_body = html_body or _decode(part['body']['data'])

        elif mime_type.startswith('multipart/'):
            nested = _extract_body(part)
            if nested:
                text_body = text_body or nested

    return text_body or html_body or ''
