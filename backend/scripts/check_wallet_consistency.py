#!/usr/bin/env python3
"""
Wallet consistency check

Replays each wallet's SUCCESS transactions and compares the result with the
stored balances. Prints one JSON line; exit code 1 when any wallet differs.

Usage:
    python -m scripts.check_wallet_consistency
    python -m scripts.check_wallet_consistency --user-id 123e4567-e89b-12d3-a456-426614174000
"""

import argparse
import json
import sys
from typing import Optional
from uuid import UUID

from escrow_core.infrastructure.database import SessionLocal
from escrow_core.infrastructure.logging_config import setup_logging
from escrow_core.utils.ledger_validator import validate_all_wallets


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(description='Check wallet balances against the transaction log')
    parser.add_argument('--user-id', action='append', type=UUID, default=None, help='Only check this user (repeatable)')
    args = parser.parse_args(argv)

    setup_logging()

    db = SessionLocal()
    try:
        mismatches = validate_all_wallets(db, user_ids=args.user_id)
    finally:
        db.close()

    print(json.dumps({
        "job": "wallet_consistency_check",
        "mismatch_count": len(mismatches),
        "mismatches": [
            {
                "user_id": str(m.user_id),
                "stored": {"available": m.stored_available, "held": m.stored_held},
                "replayed": {"available": m.replayed_available, "held": m.replayed_held},
            }
            for m in mismatches
        ],
    }))
    return 0 if not mismatches else 1


if __name__ == "__main__":
    sys.exit(main())
