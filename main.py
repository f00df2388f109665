# main.py
#
# ============================================================================
# WHAT THIS FILE DOES:
# This is the "start button" for the daemon, plus a handful of one-shot
# maintenance commands.
#
# It does three things:
#   1. Loads your settings from the .env file
#   2. Checks that the required settings are present (exits with code 1
#      and a helpful message if not)
#   3. Runs the command you asked for
#
# USAGE:
#   python main.py                        → Run the daemon (same as "serve")
#   python main.py serve --port 3002      → Health server on another port
#   python main.py auth                   → Log into Gmail once, save the token
#   python main.py check-credentials      → Show what is / isn't configured
#   python main.py send-test <id>         → Send one commitment's reminder now
#   python main.py check-once             → Run one commitment check and exit
#   python main.py poll-once              → Run one inbox poll and exit
#   python main.py orphans                → List records whose send never finished
#   python main.py add-template "Daily" --subject "Check-in" --body "..."
#   python main.py add-commitment "Journal" --cadence Daily --at 9:00 --template daily
# ============================================================================

# ── IMPORTS ────────────────────────────────────────────────────────────

import sys
import argparse
from pathlib import Path

# ── LOAD ENVIRONMENT VARIABLES ─────────────────────────────────────────

# "python-dotenv" reads the .env file in the project root and loads its
# contents as environment variables. This MUST happen before config.settings
# is imported, because settings are read once at import time.
from dotenv import load_dotenv
load_dotenv()

from rich.console import Console
from rich.table import Table

from config.settings import HEALTH_HOST, HEALTH_PORT, VAULT_ROOT, missing_settings
from engine.errors import ImpactError
from engine.models import Cadence

console = Console()


# ── HELPERS ────────────────────────────────────────────────────────────

def _require_settings():
    """Exit with code 1 if anything required is missing."""
    missing = missing_settings()
    if missing:
        console.print("[red]Error: missing required configuration:[/red]")
        for item in missing:
            console.print(f"   - {item}")
        console.print("   Put these in .env or export them in your shell.")
        sys.exit(1)


def _store():
    from store.vault import VaultStore
    store = VaultStore(VAULT_ROOT)
    store.initialize()
    return store


# ── COMMANDS ───────────────────────────────────────────────────────────

def cmd_serve(args):
    _require_settings()

    import uvicorn

    console.print()
    console.print("  ===========================================")
    console.print("        Impact Agent                        ")
    console.print("  ===========================================")
    console.print(f"   Health: http://{args.host}:{args.port}/health")
    console.print("   Press Ctrl+C to stop                     ")
    console.print("  ===========================================")
    console.print()

    # "web.app:app" tells uvicorn: "import the 'app' object from web/app.py".
    # The app's lifespan starts and stops the scheduler.
    uvicorn.run(
        "web.app:app",
        host=args.host,
        port=args.port,
        reload=False,
        log_level="info",
    )


def cmd_auth(args):
    from tools.gmail_tools import get_gmail_service

    service = get_gmail_service(interactive=True)
    profile = service.users().getProfile(userId='me').execute()
    console.print(f"[green][OK][/green] Gmail connected as {profile.get('emailAddress', '?')}")


def cmd_check_credentials(args):
    from agents.base_agent import describe_providers
    from tools.gmail_tools import is_authenticated

    missing = missing_settings()
    for item in missing:
        console.print(f"[red][MISSING][/red] {item}")

    gmail_ok = is_authenticated()
    tag = "[green][OK][/green]" if gmail_ok else "[red][FAIL][/red]"
    console.print(f"{tag} Gmail credentials usable")

    for line in describe_providers():
        console.print(f"[green][OK][/green] {line}")

    if missing or not gmail_ok:
        sys.exit(1)
    console.print("[green]All credentials configured.[/green]")


def cmd_send_test(args):
    """Send one commitment's reminder right now, ignoring its schedule."""
    _require_settings()

    from datetime import datetime
    from zoneinfo import ZoneInfo

    from config.settings import GMAIL_USER_EMAIL, TIMEZONE
    from engine.reminders import ReminderDispatcher
    from tools.gmail_tools import GmailTransport

    store = _store()
    commitment = store.get_commitment(args.commitment_id)
    if commitment is None:
        console.print(f"[red]No commitment with id {args.commitment_id!r}[/red]")
        sys.exit(1)

    dispatcher = ReminderDispatcher(store, GmailTransport(), GMAIL_USER_EMAIL)
    record = dispatcher.send_reminder(commitment, datetime.now(ZoneInfo(TIMEZONE)))
    if record is None:
        sys.exit(1)
    console.print(f"[green][OK][/green] Sent, record {record.id}, thread {record.thread_id}")


def cmd_check_once(args):
    from scheduler import build_scheduler

    report = build_scheduler().check_commitments()
    if report is None:
        sys.exit(1)
    console.print(f"sent={len(report.sent)} failed={len(report.failed)} "
                  f"not_due={len(report.not_due)}")


def cmd_poll_once(args):
    from scheduler import build_scheduler

    counts = build_scheduler().poll_inbox()
    if counts is None:
        sys.exit(1)
    console.print(counts or "No unread replies.")


def cmd_add_commitment(args):
    """Write a new commitment file so nobody has to hand-write the YAML."""
    from engine.cadence import parse_clock

    # Normalize "9:00" to "09:00" and reject anything that isn't a time
    trigger = parse_clock(args.at)
    cutoff = parse_clock(args.cutoff) if args.cutoff else None

    store = _store()
    if store.get_template(args.template) is None:
        console.print(f"[yellow]Warning: no template {args.template!r} yet; "
                      f"reminders are skipped until it exists.[/yellow]")

    commitment_id = store.create_commitment(
        args.name,
        args.cadence,
        f"{trigger:%H:%M}",
        args.template,
        cutoff_time=f"{cutoff:%H:%M}" if cutoff else '',
        tags=args.tag,
        active=not args.inactive,
        commitment_id=args.id,
    )
    console.print(f"[green][OK][/green] Commitment saved as {commitment_id}")


def cmd_add_template(args):
    if args.body_file:
        try:
            body = Path(args.body_file).read_text(encoding='utf-8')
        except OSError as e:
            console.print(f"[red]Cannot read {args.body_file}: {e}[/red]")
            sys.exit(1)
    else:
        body = args.body

    template_id = _store().create_template(
        args.name,
        args.subject,
        body,
        summary_prompt=args.summary_prompt,
        template_id=args.id,
    )
    console.print(f"[green][OK][/green] Template saved as {template_id}")


def cmd_orphans(args):
    """Records created for a send that never completed (empty thread id)."""
    records = _store().list_orphaned_records()
    if not records:
        console.print("No orphaned records.")
        return

    table = Table(title="Orphaned reminder records")
    table.add_column("Record")
    table.add_column("Commitment")
    table.add_column("Created")
    for record in records:
        table.add_row(record.id, record.commitment_id, record.created_at.isoformat())
    console.print(table)


# ── MAIN FUNCTION ──────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Impact Agent: accountability reminders by email"
    )
    sub = parser.add_subparsers(dest='command')

    serve = sub.add_parser('serve', help="Run the scheduler and the health server (default)")
    serve.add_argument('--port', type=int, default=HEALTH_PORT,
                       help=f"Health server port (default: {HEALTH_PORT})")
    serve.add_argument('--host', type=str, default=HEALTH_HOST,
                       help=f"Host to bind to (default: {HEALTH_HOST})")
    serve.set_defaults(func=cmd_serve)

    sub.add_parser('auth', help="Interactive Gmail login").set_defaults(func=cmd_auth)
    sub.add_parser('check-credentials', help="Report configured credentials") \
        .set_defaults(func=cmd_check_credentials)

    send_test = sub.add_parser('send-test', help="Send one commitment's reminder now")
    send_test.add_argument('commitment_id')
    send_test.set_defaults(func=cmd_send_test)

    sub.add_parser('check-once', help="Run one commitment check").set_defaults(func=cmd_check_once)
    sub.add_parser('poll-once', help="Run one inbox poll").set_defaults(func=cmd_poll_once)
    sub.add_parser('orphans', help="List interrupted sends").set_defaults(func=cmd_orphans)

    add_commitment = sub.add_parser('add-commitment', help="Create a commitment in the vault")
    add_commitment.add_argument('name')
    add_commitment.add_argument('--cadence', required=True,
                                choices=[c.value for c in Cadence])
    add_commitment.add_argument('--at', required=True, help="Local trigger time, HH:MM")
    add_commitment.add_argument('--template', required=True, help="Template id")
    add_commitment.add_argument('--cutoff', default='', help="Local cutoff time, HH:MM")
    add_commitment.add_argument('--tag', action='append', default=[],
                                help="Goal tag (repeatable)")
    add_commitment.add_argument('--id', default=None, help="File id (default: from name)")
    add_commitment.add_argument('--inactive', action='store_true')
    add_commitment.set_defaults(func=cmd_add_commitment)

    add_template = sub.add_parser('add-template', help="Create an email template in the vault")
    add_template.add_argument('name')
    add_template.add_argument('--subject', required=True)
    body = add_template.add_mutually_exclusive_group(required=True)
    body.add_argument('--body', help="Email body text")
    body.add_argument('--body-file', help="Read the email body from a file")
    add_template.add_argument('--summary-prompt', default=None)
    add_template.add_argument('--id', default=None, help="File id (default: from name)")
    add_template.set_defaults(func=cmd_add_template)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        args = parser.parse_args(['serve'] + (argv or []))

    try:
        args.func(args)
    except ImpactError as e:
        console.print(f"[red]{type(e).__name__}: {e}[/red]")
        sys.exit(1)


# ── ENTRY POINT ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
