"""
Circulation CLI - database setup and scheduled sweeps.

Meant to be run from cron once a day:

Usage:
    circulation init-db                         # Create tables
    circulation sweep-overdue                   # Flag overdue loans as of now
    circulation sweep-expired --as-of 2024-03-01T00:00:00
"""
import argparse
import asyncio
import sys
from datetime import datetime
from typing import Optional

# Load environment variables
from dotenv import load_dotenv
load_dotenv()

from circulation.database import AsyncSessionLocal, close_db, init_db  # noqa: E402
from circulation.engine import CirculationEngine  # noqa: E402
from circulation.ports import EventBusNotifier  # noqa: E402
from circulation.schemas.common import to_naive_utc  # noqa: E402
from circulation.services.audit_service import SqlAuditRecorder  # noqa: E402


# ============================================================================
# COLORS AND FORMATTING
# ============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    HEADER = '\033[95m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'


def print_header(text: str):
    """Print a header."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'='*70}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.HEADER}  {text}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'='*70}{Colors.END}\n")


def print_success(text: str):
    """Print success message."""
    print(f"{Colors.GREEN}✓ {text}{Colors.END}")


def print_error(text: str):
    """Print error message."""
    print(f"{Colors.RED}✗ {text}{Colors.END}")


# ============================================================================
# COMMANDS
# ============================================================================

def parse_as_of(value: str) -> datetime:
    """argparse type for ISO-8601 timestamps; aware values are converted to UTC."""
    try:
        return to_naive_utc(datetime.fromisoformat(value))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {value!r}")


def build_engine() -> CirculationEngine:
    return CirculationEngine(
        AsyncSessionLocal,
        audit=SqlAuditRecorder(AsyncSessionLocal),
        notifier=EventBusNotifier(),
    )


async def run_init_db() -> int:
    print_header("Initialize database")
    try:
        await init_db()
    finally:
        await close_db()
    print_success("Tables created")
    return 0


async def run_sweep(name: str, as_of: Optional[datetime], engine: Optional[CirculationEngine] = None) -> int:
    """Run one sweep and print its count; returns the process exit code."""
    owns_engine = engine is None
    engine = engine or build_engine()
    as_of = as_of or engine.coordinator.clock()
    print_header(f"Sweep: {name} as of {as_of.isoformat()}")

    try:
        if name == "overdue":
            result = await engine.loans.sweep_overdue(as_of)
            label = "loan(s) flagged overdue"
        else:
            result = await engine.reservations.sweep_expired(as_of)
            label = "reservation(s) expired"
    finally:
        if owns_engine:
            await close_db()

    if not result.ok:
        print_error(f"[{result.error.code}] {result.error.message}")
        return 1
    print_success(f"{result.value} {label}")
    return 0


def main(argv: Optional[list[str]] = None):
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Library circulation maintenance commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  circulation init-db
  circulation sweep-overdue
  circulation sweep-expired --as-of 2024-03-01T00:00:00
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init-db", help="Create database tables")
    for command, help_text in (
        ("sweep-overdue", "Flag active loans past their due date"),
        ("sweep-expired", "Expire unclaimed holds and pass copies on"),
    ):
        sub = subparsers.add_parser(command, help=help_text)
        sub.add_argument(
            "--as-of",
            type=parse_as_of,
            default=None,
            help="Reference time (ISO-8601, default: now)",
        )

    args = parser.parse_args(argv)

    try:
        if args.command == "init-db":
            code = asyncio.run(run_init_db())
        else:
            code = asyncio.run(run_sweep(args.command.split("-", 1)[1], args.as_of))
    except KeyboardInterrupt:
        print(f"\n\n{Colors.RED}Interrupted{Colors.END}")
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
