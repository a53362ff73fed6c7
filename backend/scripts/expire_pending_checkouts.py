from dotenv import load_dotenv
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

load_dotenv(".env")

import argparse

from billing.core.database import SessionLocal
from billing.core.logging import configure_logging
from billing.core.settings import settings
from billing.services.reconciler import expire_abandoned_checkouts


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Fail pending checkouts that never reached the payment provider.")
    parser.add_argument(
        "--older-than-minutes",
        type=int,
        default=settings.pending_checkout_ttl_minutes,
        help="age cutoff in minutes (default: PENDING_CHECKOUT_TTL_MINUTES)",
    )
    args = parser.parse_args(argv)

    configure_logging(settings.log_level)
    db = SessionLocal()
    try:
        expired = expire_abandoned_checkouts(db, older_than_minutes=args.older_than_minutes)
    finally:
        db.close()

    for tx_id in expired:
        print(tx_id)
    print(f"expired={len(expired)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
