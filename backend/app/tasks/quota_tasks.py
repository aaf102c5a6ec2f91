from __future__ import annotations

from typing import Any, Dict

from app.db.session import SessionLocal
from app.services.token_service import reset_all_daily_tokens, today


def task_reset_all_daily_tokens() -> Dict[str, Any]:
    """Reset every stale daily counter (tokens + unlocks).

    Safe to run more than once a day: rows already reset today are skipped.
    """
    db = SessionLocal()
    try:
        rows = reset_all_daily_tokens(db)
        return {"reset_users": int(rows), "date": today().isoformat()}
    finally:
        db.close()
