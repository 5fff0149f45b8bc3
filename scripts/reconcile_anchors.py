"""
Run one anchor reconciliation pass now instead of waiting for the scheduler.
Re-submits completed documents that were never anchored (ledger down, process restart).

Run from project root:
  python scripts/reconcile_anchors.py [min_age_minutes]

min_age_minutes defaults to 0 (everything pending, however recent).
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from app.config import get_settings
from app.services import tasks
from app.services.anchoring import reconcile_pending_anchors


def main():
    try:
        min_age = int(sys.argv[1]) if len(sys.argv) > 1 else 0
    except ValueError:
        print("Usage: python scripts/reconcile_anchors.py [min_age_minutes]")
        sys.exit(1)

    settings = get_settings()
    if not settings.blockchain_private_key:
        print("Blockchain is not configured. Set BLOCKCHAIN_PRIVATE_KEY and BLOCKCHAIN_RPC_URL in .env")
        sys.exit(1)

    queued = reconcile_pending_anchors(min_age_minutes=min_age)
    print(f"Queued {queued} document(s) for anchoring. Waiting for confirmations...")
    tasks.shutdown(wait=True)
    print("Done.")


if __name__ == "__main__":
    main()
