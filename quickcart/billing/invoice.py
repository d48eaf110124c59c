"""
quickcart/billing/invoice.py
----------------------------
Concurrency-safe receipt number generation, per merchant.

Format:  YYYY-NNNN
Example: 2026-0001, 2026-0002, … 2026-9999, 2026-10000

Algorithm
─────────
1. Lock the ReceiptSequence row for (merchant, year) with
   SELECT … FOR UPDATE. Concurrent checkouts of the same merchant
   block here until the first one commits.
2. If the row doesn't exist yet (first sale of the year), insert it with
   last_seq = 0 and lock it.
3. Increment last_seq and flush.

The lock is released when the caller's transaction commits or rolls
back, so the sequence only advances for orders that are actually saved
and the receipt series has no gaps.
"""
from datetime import datetime

from quickcart.utils.clock import shop_now


def generate_receipt_number(db_session, merchant_id: int, when: datetime = None) -> str:
    """
    Next receipt number for `merchant_id` in the year of `when`.

    MUST be called inside an open SQLAlchemy transaction.
    """
    from quickcart.billing.models import ReceiptSequence

    year = (when or shop_now()).year

    def locked_row():
        return (
            db_session.query(ReceiptSequence)
            .filter(ReceiptSequence.merchant_id == merchant_id,
                    ReceiptSequence.year == year)
            .with_for_update()
            .first()
        )

    seq_row = locked_row()
    if seq_row is None:
        db_session.add(ReceiptSequence(merchant_id=merchant_id, year=year, last_seq=0))
        db_session.flush()
        seq_row = locked_row()

    seq_row.last_seq += 1
    db_session.flush()

    return f"{year}-{seq_row.last_seq:04d}"
