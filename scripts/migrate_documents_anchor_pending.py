"""
Add anchor_pending_at column to documents table (anchor reconciler marker).
For a NEW database: not needed; app.models.document.Document already defines this (create_all creates it).
Run once on an EXISTING DB: python scripts/migrate_documents_anchor_pending.py (from project root)
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy import text, inspect
from app.database import engine


def main():
    insp = inspect(engine)
    existing = {c["name"] for c in insp.get_columns("documents")}
    if "anchor_pending_at" in existing:
        print("  skip (exists): documents.anchor_pending_at")
        print("Done.")
        return
    column_type = "TIMESTAMP WITH TIME ZONE" if engine.dialect.name == "postgresql" else "DATETIME"
    with engine.begin() as conn:
        conn.execute(text(f'ALTER TABLE documents ADD COLUMN "anchor_pending_at" {column_type}'))
        # Completed but never anchored: let the reconciler pick them up
        conn.execute(
            text(
                "UPDATE documents SET anchor_pending_at = updated_at "
                "WHERE status = 'completed' AND blockchain_tx_hash IS NULL"
            )
        )
        print("  added: documents.anchor_pending_at")
    print("Done. documents table has anchor_pending_at column.")


if __name__ == "__main__":
    main()
