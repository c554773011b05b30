#!/usr/bin/env python3
"""Check user_tiers against the points ledger.

Reports users whose total_light differs from what their transactions add up
to, and users whose current_tier does not match their total. A deduction that
hit the zero floor counts with the applied_amount recorded in its metadata.
With --fix, tier mismatches are corrected; totals are never rewritten.

Usage: python -m scripts.reconcile_tiers [--fix]
"""

import argparse
from datetime import datetime

from sqlalchemy import func

from app import app
from extensions import db
from models_points import PointsTransaction, UserTier
from tiers import compute_tier


def _ledger_sums() -> dict:
    sums = dict(
        db.session.query(PointsTransaction.user_id, func.coalesce(func.sum(PointsTransaction.points_amount), 0))
        .group_by(PointsTransaction.user_id)
        .all()
    )
    clipped = PointsTransaction.query.filter(
        PointsTransaction.points_amount < 0,
        PointsTransaction.metadata_json.like('%"applied_amount"%'),
    )
    for txn in clipped:
        applied = txn.meta.get("applied_amount")
        if isinstance(applied, int):
            sums[txn.user_id] = int(sums.get(txn.user_id, 0)) - txn.points_amount + applied
    return sums


def reconcile(fix: bool = False) -> dict:
    ledger = _ledger_sums()

    drift = []
    tier_fixes = []
    rows = UserTier.query.order_by(UserTier.user_id.asc()).all()
    for row in rows:
        ledger_sum = int(ledger.get(row.user_id, 0))
        if ledger_sum != int(row.total_light or 0):
            drift.append({"user_id": row.user_id, "total_light": row.total_light, "ledger_sum": ledger_sum})

        expected = compute_tier(int(row.total_light or 0))
        if expected != row.current_tier:
            tier_fixes.append({"user_id": row.user_id, "current_tier": row.current_tier, "expected_tier": expected})
            if fix:
                row.current_tier = expected
                row.tier_achieved_at = datetime.utcnow()

    missing = sorted(set(ledger) - {r.user_id for r in rows})

    if fix and tier_fixes:
        db.session.commit()
    else:
        db.session.rollback()

    return {
        "ok": True,
        "fixed": bool(fix and tier_fixes),
        "users": len(rows),
        "drift": drift,
        "tier_mismatches": tier_fixes,
        "missing_tier_rows": missing,
    }


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--fix", action="store_true", help="write corrected tiers")
    args = parser.parse_args(argv)

    with app.app_context():
        print(reconcile(fix=args.fix))


if __name__ == "__main__":
    main()
