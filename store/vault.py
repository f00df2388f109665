# store/vault.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "filing cabinet" for commitments, templates and reminder
# logs. Each record is one markdown file with YAML frontmatter, so the
# whole thing can be read and edited in any text editor (or Obsidian):
#
#     vault/
#     ├── commitments/journal.md     ← what to be reminded about, and when
#     ├── templates/daily-checkin.md ← subject, body, summary prompt
#     └── logs/20250115-090500-journal-a1b2c3.md  ← one per reminder sent
#
# It is also the decoding layer: frontmatter dicts are turned into the typed
# Commitment / Template / ReminderRecord models here, and nothing outside
# this file ever handles the raw YAML.
#
# Every update is a targeted change of one or two fields; the rest of the
# file is left exactly as it was.
#
# IMPORTANT: This file has NO artificial intelligence in it.
# ============================================================================

import re
import threading
import uuid
from datetime import date, datetime, time
from pathlib import Path
from zoneinfo import ZoneInfo

import yaml
from pydantic import ValidationError

from config.settings import TIMEZONE, VAULT_ROOT
from engine.errors import RecordStoreError
from engine.models import Cadence, Commitment, ReminderRecord, Template
from utils.logger import logger


# ── CONSTANTS ──────────────────────────────────────────────────────────

COMMITMENTS = 'commitments'
TEMPLATES = 'templates'
LOGS = 'logs'

RECORD_TYPES = [COMMITMENTS, TEMPLATES, LOGS]

# Record ids double as file names, so keep them to a safe alphabet.
_SAFE_ID_RE = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]*$')

# The frontmatter block: "---" on its own line, YAML, "---" on its own line.
_FRONTMATTER_RE = re.compile(r'\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)', re.DOTALL)


def _slugify(text: str) -> str:
    """
    Turn a human title into a file-name-safe id.

    "Weekly Journaling!" → "weekly-journaling"
    """
    slug = re.sub(r'[^a-z0-9]+', '-', text.lower())
    return slug.strip('-')[:60] or 'record'


def _clock_text(value) -> str:
    """
    Normalize a time-of-day read from YAML back to "HH:MM".

    PyYAML follows YAML 1.1, where an unquoted 18:30 is a base-60 integer
    (1110) and 9:00 is 540. Quoted and zero-padded values come through
    as strings and are left alone.
    """
    if value is None or value == '':
        return ''
    if isinstance(value, int) and not isinstance(value, bool):
        hours, minutes = divmod(value, 60)
        return f"{hours:02d}:{minutes:02d}"
    return str(value)


# ============================================================================
# THE VAULT
# ============================================================================

class VaultStore:
    """
    Record store backed by a folder of markdown files.

    Two scheduler threads (commitment check and inbox poll) share one store,
    so every read-modify-write happens under a lock.
    """

    def __init__(self, root: Path = None, timezone: str = TIMEZONE):
        self.root = Path(root or VAULT_ROOT)
        self.tz = ZoneInfo(timezone)
        self._lock = threading.RLock()

    def initialize(self) -> str:
        """Create the folder structure if it doesn't exist yet."""
        for record_type in RECORD_TYPES:
            (self.root / record_type).mkdir(parents=True, exist_ok=True)
        logger.debug("Vault ready", root=str(self.root))
        return str(self.root)

    # ── COMMITMENTS ────────────────────────────────────────────────────

    def list_active_commitments(self) -> list[Commitment]:
        """
        Every commitment with `active: true`.

        A single malformed file is logged and skipped. Failing to read the
        folder at all raises RecordStoreError, which aborts the cycle.
        """
        commitments = []
        for path in self._list_files(COMMITMENTS):
            try:
                commitment = self._decode_commitment(path.stem, self._read(path)[0])
            except (RecordStoreError, ValidationError) as e:
                logger.warn("Skipping unreadable commitment", file=path.name, error=str(e))
                continue
            if commitment.active:
                commitments.append(commitment)

        logger.debug("Retrieved active commitments", count=len(commitments))
        return commitments

    def get_commitment(self, commitment_id: str) -> Commitment | None:
        path = self._path(COMMITMENTS, commitment_id)
        if path is None or not path.exists():
            return None
        try:
            return self._decode_commitment(commitment_id, self._read(path)[0])
        except ValidationError as e:
            logger.warn("Commitment is malformed", commitment_id=commitment_id, error=str(e))
            return None

    def update_commitment_last_sent(self, commitment_id: str, sent_at: datetime) -> None:
        logger.debug("Updating commitment last sent", commitment_id=commitment_id)
        self._update(COMMITMENTS, commitment_id, last_sent=sent_at.isoformat())

    def create_commitment(self, name: str, cadence: Cadence | str, trigger_time: str,
                          template_id: str, cutoff_time: str = '', tags: list[str] = None,
                          active: bool = True, commitment_id: str = None) -> str:
        commitment_id = commitment_id or _slugify(name)
        frontmatter = {
            'name': name,
            'active': active,
            'cadence': Cadence(cadence).value,
            'trigger_time': trigger_time,
            'cutoff_time': cutoff_time,
            'template': template_id,
            'last_sent': None,
            'tags': tags or [],
        }
        self._write(self._require_path(COMMITMENTS, commitment_id), frontmatter, f"# {name}\n")
        return commitment_id

    # ── TEMPLATES ──────────────────────────────────────────────────────

    def get_template(self, template_id: str) -> Template | None:
        path = self._path(TEMPLATES, template_id)
        if path is None or not path.exists():
            return None

        frontmatter, content = self._read(path)
        try:
            return Template(
                id=template_id,
                name=str(frontmatter.get('name') or template_id),
                subject_line=str(frontmatter.get('subject') or ''),
                email_body=content,
                summary_prompt=frontmatter.get('summary_prompt') or None,
            )
        except ValidationError as e:
            logger.warn("Template is malformed", template_id=template_id, error=str(e))
            return None

    def create_template(self, name: str, subject_line: str, email_body: str,
                        summary_prompt: str = None, template_id: str = None) -> str:
        template_id = template_id or _slugify(name)
        frontmatter = {
            'name': name,
            'subject': subject_line,
            'summary_prompt': summary_prompt,
        }
        self._write(self._require_path(TEMPLATES, template_id), frontmatter, email_body)
        return template_id

    # ── REMINDER LOGS ──────────────────────────────────────────────────

    def create_reminder_record(self, commitment_id: str, created_at: datetime) -> str:
        """New log entry with an empty thread id; returns its id."""
        record_id = (f"{created_at:%Y%m%d-%H%M%S}-{_slugify(commitment_id)}"
                     f"-{uuid.uuid4().hex[:6]}")
        frontmatter = {
            'commitment': commitment_id,
            'created_at': created_at.isoformat(),
            'thread_id': '',
            'status': 'sent',
            'reply': None,
            'summary': None,
        }
        self._write(self._require_path(LOGS, record_id), frontmatter,
                    self._render_log_body(frontmatter))
        return record_id

    def update_record_thread_id(self, record_id: str, thread_id: str) -> None:
        logger.debug("Updating record thread id", record_id=record_id, thread_id=thread_id)
        self._update(LOGS, record_id, thread_id=thread_id)

    def update_record_reply(self, record_id: str, reply: str) -> None:
        """
        Attach the reply text.

        Re-attaching the same text keeps an existing summary. A different
        reply on the same thread replaces the old one and drops its summary,
        which no longer describes it.
        """
        with self._lock:
            record = self._load_record(record_id)
            if record.reply == reply:
                changes = {'reply': reply}
            else:
                changes = {'reply': reply, 'summary': None}
            self._update(LOGS, record_id, **changes)

    def update_record_summary(self, record_id: str, summary: str) -> None:
        self._update(LOGS, record_id, summary=summary)

    def find_record_by_thread_id(self, thread_id: str) -> ReminderRecord | None:
        if not thread_id:
            return None
        for record in self._iter_records():
            if record.thread_id == thread_id:
                return record
        return None

    def get_record(self, record_id: str) -> ReminderRecord | None:
        path = self._path(LOGS, record_id)
        if path is None or not path.exists():
            return None
        try:
            return self._decode_record(record_id, self._read(path)[0])
        except ValidationError as e:
            raise RecordStoreError(f"Malformed log {record_id}: {e}") from e

    def list_orphaned_records(self) -> list[ReminderRecord]:
        """Records whose send never completed: status sent, empty thread id."""
        return [record for record in self._iter_records() if record.is_orphaned]

    def _iter_records(self):
        for path in self._list_files(LOGS):
            try:
                yield self._decode_record(path.stem, self._read(path)[0])
            except (RecordStoreError, ValidationError) as e:
                logger.warn("Skipping unreadable log", file=path.name, error=str(e))

    def _load_record(self, record_id: str) -> ReminderRecord:
        record = self.get_record(record_id)
        if record is None:
            raise RecordStoreError(f"Reminder record not found: {record_id}")
        return record

    # ============================================================================
    # DECODING: frontmatter dict → typed model
    # ============================================================================

    def _decode_commitment(self, commitment_id: str, fm: dict) -> Commitment:
        return Commitment(
            id=commitment_id,
            name=str(fm.get('name') or commitment_id),
            active=bool(fm.get('active', True)),
            # "frequency" is accepted as an older spelling of "cadence"
            cadence=fm.get('cadence') or fm.get('frequency'),
            trigger_time=_clock_text(fm.get('trigger_time')),
            cutoff_time=_clock_text(fm.get('cutoff_time')),
            template_id=str(fm.get('template') or ''),
            last_sent=self._to_datetime(fm.get('last_sent')),
            tags=[str(tag) for tag in (fm.get('tags') or [])],
        )

    def _decode_record(self, record_id: str, fm: dict) -> ReminderRecord:
        # "status" in the file is informational; the model derives it.
        return ReminderRecord(
            id=record_id,
            commitment_id=str(fm.get('commitment') or ''),
            created_at=self._to_datetime(fm.get('created_at')),
            thread_id=str(fm.get('thread_id') or ''),
            reply=str(fm['reply']) if fm.get('reply') else None,
            summary=str(fm['summary']) if fm.get('summary') else None,
        )

    def _to_datetime(self, value) -> datetime | None:
        """YAML may hand us a str, a datetime or a bare date."""
        if value in (None, ''):
            return None
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=self.tz)
        if isinstance(value, date):
            return datetime.combine(value, time(), tzinfo=self.tz)
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError as e:
            raise RecordStoreError(f"Bad timestamp {value!r}") from e
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=self.tz)

    # ============================================================================
    # FILE I/O
    # ============================================================================

    def _path(self, record_type: str, record_id: str) -> Path | None:
        if not record_id or not _SAFE_ID_RE.match(record_id):
            return None
        return self.root / record_type / f"{record_id}.md"

    def _require_path(self, record_type: str, record_id: str) -> Path:
        path = self._path(record_type, record_id)
        if path is None:
            raise RecordStoreError(f"Invalid {record_type} id: {record_id!r}")
        return path

    def _list_files(self, record_type: str) -> list[Path]:
        folder = self.root / record_type
        try:
            if not folder.exists():
                return []
            return sorted(folder.glob('*.md'))
        except OSError as e:
            raise RecordStoreError(f"Cannot list {folder}: {e}") from e

    def _read(self, path: Path) -> tuple[dict, str]:
        """Split a file into (frontmatter dict, markdown content)."""
        try:
            text = path.read_text(encoding='utf-8')
        except OSError as e:
            raise RecordStoreError(f"Cannot read {path}: {e}") from e
        # Files edited on Windows arrive with CRLF endings
        text = text.replace('\r\n', '\n')

        frontmatter, content = {}, text
        match = _FRONTMATTER_RE.match(text)
        if match:
            try:
                frontmatter = yaml.safe_load(match.group(1)) or {}
            except yaml.YAMLError as e:
                raise RecordStoreError(f"Malformed frontmatter in {path.name}: {e}") from e
            content = text[match.end():].strip()

        if not isinstance(frontmatter, dict):
            raise RecordStoreError(f"Frontmatter in {path.name} is not a mapping")
        return frontmatter, content

    def _write(self, path: Path, frontmatter: dict, content: str) -> None:
        yaml_str = yaml.dump(frontmatter, default_flow_style=False, sort_keys=False,
                             allow_unicode=True)
        file_content = f"---\n{yaml_str.strip()}\n---\n\n{content.strip()}\n"
        try:
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(file_content, encoding='utf-8')
        except OSError as e:
            raise RecordStoreError(f"Cannot write {path}: {e}") from e

    def _update(self, record_type: str, record_id: str, **fields) -> None:
        """Change only the given frontmatter fields of an existing file."""
        path = self._require_path(record_type, record_id)
        with self._lock:
            if not path.exists():
                raise RecordStoreError(f"{record_type} record not found: {record_id}")
            frontmatter, content = self._read(path)
            frontmatter.update(fields)

            if record_type == LOGS:
                try:
                    record = self._decode_record(record_id, frontmatter)
                except ValidationError as e:
                    raise RecordStoreError(f"Malformed log {record_id}: {e}") from e
                frontmatter['status'] = record.status.value
                content = self._render_log_body(frontmatter)

            self._write(path, frontmatter, content)

    @staticmethod
    def _render_log_body(fm: dict) -> str:
        """Human-readable view of a log; regenerated from frontmatter on every update."""
        sections = [f"# Reminder for {fm.get('commitment', '')}"]
        if fm.get('reply'):
            sections.append(f"## Reply\n\n{fm['reply']}")
        if fm.get('summary'):
            sections.append(f"## Summary\n\n{fm['summary']}")
        return "\n\n".join(sections)
