#!/usr/bin/env python3
"""
Run one escalation batch over open approval requests.

Meant to be scheduled (cron, systemd timer) roughly once a day.  Requests
left untouched for ``escalation_days`` have their current step skipped;
a stalled final step parks the request as ``escalated``.

Usage:
    python3 scripts/run_escalations.py --db-url <url> [options]

Examples:
    # Use DATABASE_URL from the environment
    python3 scripts/run_escalations.py

    # Local SQLite file, creating tables on first run
    python3 scripts/run_escalations.py --db-url sqlite:///approvals.db --create-tables

    # Site settings instead of the packaged defaults
    python3 scripts/run_escalations.py --settings-file site_settings.yaml

Exit codes:
    0  batch completed with no per-request errors
    1  configuration or database error, or at least one request failed
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DB_URL_ENV = "DATABASE_URL"


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Escalate approval requests that have waited longer than escalation_days.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--db-url",
        default=os.environ.get(DB_URL_ENV),
        help=f"Database URL (default: ${DB_URL_ENV}).",
    )
    parser.add_argument(
        "--settings-file",
        type=Path,
        default=None,
        help="YAML settings used until settings are saved in the database "
        "(default: packaged approval_config/sets/default.yaml).",
    )
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create approval tables before running (idempotent).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level for the approval_kernel loggers (default: INFO).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if not args.db_url:
        print(
            f"ERROR: No database URL. Pass --db-url or set {DB_URL_ENV}.",
            file=sys.stderr,
        )
        return 1

    # Lazy imports so we fail fast on args first
    import yaml

    from approval_config import default_settings, load_settings_file
    from approval_kernel.db.engine import (
        create_tables,
        init_engine_from_url,
        session_scope,
    )
    from approval_kernel.domain.clock import SystemClock
    from approval_kernel.exceptions import ConfigurationError
    from approval_kernel.logging_config import configure_logging
    from approval_kernel.services.audit_service import AuditService
    from approval_kernel.services.escalation_service import EscalationService
    from approval_kernel.services.settings_service import SettingsService

    configure_logging(level=getattr(logging, args.log_level))

    try:
        if args.settings_file is not None:
            defaults = load_settings_file(args.settings_file)
        else:
            defaults = default_settings()
    except (OSError, yaml.YAMLError, ConfigurationError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 1

    try:
        init_engine_from_url(args.db_url)
        if args.create_tables:
            create_tables()
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    clock = SystemClock()
    with session_scope() as session:
        service = EscalationService(
            session,
            AuditService(session, clock),
            clock=clock,
            settings_service=SettingsService(session, clock, defaults=defaults),
        )
        result = service.process_escalations()

    print(f"Processed: {result.processed}")
    print(f"Escalated: {result.escalated}")
    if result.errors:
        print(f"Errors: {len(result.errors)}", file=sys.stderr)
        for error in result.errors:
            print(f"  {error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
