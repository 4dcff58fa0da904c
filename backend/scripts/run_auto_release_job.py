#!/usr/bin/env python3
"""
Auto-release sweep job runner

Settles every PENDING_DELIVERY order whose auto-release deadline has passed
and that has no open dispute. Safe to run as often as needed (cron every few
minutes); each order is released at most once.

Usage:
    # Regular run (now, UTC)
    python -m scripts.run_auto_release_job

    # Dry-run (count due orders only)
    python -m scripts.run_auto_release_job --dry-run

    # Evaluate deadlines at a specific instant
    python -m scripts.run_auto_release_job --as-of 2026-01-27T12:00:00+00:00

    # Limit batch size
    python -m scripts.run_auto_release_job --max-orders 100
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from escrow_core.infrastructure.database import SessionLocal
from escrow_core.infrastructure.logging_config import setup_logging, trace_id_context
from escrow_core.services.orders.service import release_expired_orders

JOB_NAME = "auto_release_sweep"


def generate_trace_id(as_of: datetime) -> str:
    """
    Generate a unique trace_id for the job run.

    Format: job-auto-release-YYYYMMDDHHMM-<shortuuid>
    """
    return f"job-auto-release-{as_of.strftime('%Y%m%d%H%M')}-{str(uuid4())[:8]}"


def parse_as_of(as_of_str: Optional[str]) -> datetime:
    """Parse --as-of (ISO 8601, naive values are UTC) or default to now UTC"""
    if not as_of_str:
        return datetime.now(timezone.utc)
    try:
        value = datetime.fromisoformat(as_of_str)
    except ValueError:
        raise ValueError(f"Invalid datetime format: {as_of_str}. Expected ISO 8601")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def main(argv: Optional[list] = None) -> int:
    """Main entry point for the job runner; returns the process exit code"""
    parser = argparse.ArgumentParser(
        description='Run auto-release sweep',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument('--as-of', type=str, default=None, help='Reference time (ISO 8601, default: now UTC)')
    parser.add_argument('--dry-run', action='store_true', help='Count due orders without releasing')
    parser.add_argument('--max-orders', type=int, default=None, help='Maximum orders per run (default: AUTO_RELEASE_SWEEP_MAX_ORDERS)')
    args = parser.parse_args(argv)

    setup_logging()

    try:
        as_of = parse_as_of(args.as_of)
    except ValueError as e:
        print(json.dumps({"job": JOB_NAME, "error": str(e), "exit_code": 1}), file=sys.stderr)
        return 1

    trace_id = generate_trace_id(as_of)
    trace_id_context.set(trace_id)

    db = SessionLocal()
    try:
        summary = release_expired_orders(db, now=as_of, max_orders=args.max_orders, dry_run=args.dry_run)
    except Exception as e:
        print(json.dumps({
            "job": JOB_NAME,
            "trace_id": trace_id,
            "as_of": as_of.isoformat(),
            "dry_run": args.dry_run,
            "error": f"Unexpected error: {type(e).__name__}: {str(e)}",
            "exit_code": 1,
        }), file=sys.stderr)
        return 1
    finally:
        db.close()

    exit_code = 0 if summary['errors_count'] == 0 else 1
    print(json.dumps({
        "job": JOB_NAME,
        "trace_id": trace_id,
        "as_of": as_of.isoformat(),
        "dry_run": args.dry_run,
        "summary": summary,
        "exit_code": exit_code,
    }))
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
