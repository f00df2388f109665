# engine/tokens.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# Every reminder subject carries a marker like
#
#     [IMPACT-3f2a-journal-20250115] Daily check-in
#
# naming the commitment and the local date the reminder went out. When the
# reply comes back ("Re: [IMPACT-3f2a-journal-20250115] Daily check-in") we
# read the marker back out to decide whether the mail is one of ours.
#
# Mail clients mangle subjects: they fold long lines, add spaces, change
# case. The parser tolerates all of that. The commitment id may itself
# contain hyphens, so the id runs up to the LAST 8-digit group.
# ============================================================================

import re
from datetime import datetime

from config.settings import TOKEN_PREFIX
from engine.models import ReminderToken


DATE_STAMP_FORMAT = '%Y%m%d'


def _token_pattern(prefix: str) -> re.Pattern:
    # [^\[\]]+ keeps the greedy id match inside a single bracket pair.
    return re.compile(
        r'\[\s*' + re.escape(prefix) + r'\s*-\s*([^\[\]]+?)\s*-\s*(\d{8})\s*\]',
        re.IGNORECASE,
    )


_TOKEN_RE = _token_pattern(TOKEN_PREFIX)


def mint_token(commitment_id: str, now: datetime) -> ReminderToken:
    """Build the token for a reminder sent at `now` (already in local time)."""
    return ReminderToken(
        commitment_id=commitment_id,
        date_stamp=now.strftime(DATE_STAMP_FORMAT),
        is_valid=True,
    )


def format_token(token: ReminderToken, prefix: str = TOKEN_PREFIX) -> str:
    return f"[{prefix}-{token.commitment_id}-{token.date_stamp}]"


def compose_subject(token: ReminderToken, subject_line: str) -> str:
    """Put the marker in front of the template's subject line."""
    marker = format_token(token)
    subject_line = (subject_line or '').strip()
    return f"{marker} {subject_line}" if subject_line else marker


def parse_token(subject: str, prefix: str = TOKEN_PREFIX) -> ReminderToken:
    """
    Extract the reminder marker from a subject line.

    Never raises: a subject without a (well-formed) marker gives
    ReminderToken.invalid(), which callers treat as "not one of ours".
    """
    if not subject:
        return ReminderToken.invalid()

    pattern = _TOKEN_RE if prefix == TOKEN_PREFIX else _token_pattern(prefix)
    # Folded headers can split the marker across lines.
    match = pattern.search(' '.join(subject.split()))
    if not match:
        return ReminderToken.invalid()

    commitment_id = re.sub(r'\s+', '', match.group(1))
    date_stamp = match.group(2)

    try:
        datetime.strptime(date_stamp, DATE_STAMP_FORMAT)
    except ValueError:
        return ReminderToken.invalid()

    if not commitment_id:
        return ReminderToken.invalid()

    return ReminderToken(commitment_id=commitment_id, date_stamp=date_stamp, is_valid=True)
