from __future__ import annotations

import logging
from typing import Dict, List, Optional

from sqlalchemy import func, inspect
from sqlalchemy.orm import Session

from database import Base, engine, get_db
from identity import USER_SEQUENCE, seed_user_sequence
from models import USER_NUMERIC_ID_MAX, USER_NUMERIC_ID_MIN, IdSequence, User

logger = logging.getLogger(__name__)


def missing_tables() -> List[str]:
    existing = set(inspect(engine).get_table_names())
    return [table.name for table in Base.metadata.sorted_tables if table.name not in existing]


def ensure_schema() -> None:
    """Create missing tables and the user id sequence row. Safe to repeat."""
    Base.metadata.create_all(bind=engine)
    db = next(get_db())
    try:
        seed_user_sequence(db)
    finally:
        db.close()


def sequence_status(db: Session) -> Dict[str, Optional[int]]:
    """Where the user id sequence stands against the ids already handed out.

    ``next_numeric_id`` is what the next sign-up would receive; ``remaining``
    is how many ids are left before sign-ups fail with a capacity error.
    """
    row = db.query(IdSequence).filter(IdSequence.name == USER_SEQUENCE).first()
    highest_issued = db.query(func.max(User.numeric_id)).scalar()
    value = row.value if row else None
    if value is None:
        base = max(highest_issued or 0, USER_NUMERIC_ID_MIN - 1)
    else:
        base = value
    next_id = base + 1
    return {
        "sequence_value": value,
        "highest_issued": highest_issued,
        "next_numeric_id": next_id if next_id <= USER_NUMERIC_ID_MAX else None,
        "remaining": max(USER_NUMERIC_ID_MAX - base, 0),
    }


def schema_report() -> Dict[str, object]:
    missing = missing_tables()
    report: Dict[str, object] = {"missing_tables": missing, "sequence": None, "problems": []}
    problems: List[str] = report["problems"]
    if missing:
        problems.append(f"Missing tables: {', '.join(missing)}")
        return report

    db = next(get_db())
    try:
        sequence = sequence_status(db)
    finally:
        db.close()
    report["sequence"] = sequence

    if sequence["sequence_value"] is None:
        problems.append(f"Sequence row `{USER_SEQUENCE}` is not seeded")
    elif sequence["highest_issued"] is not None and sequence["sequence_value"] < sequence["highest_issued"]:
        # The next allocation would collide with an existing user.
        problems.append(
            f"Sequence `{USER_SEQUENCE}` is at {sequence['sequence_value']} "
            f"but numeric id {sequence['highest_issued']} is already issued"
        )
    if sequence["next_numeric_id"] is None:
        problems.append("User numeric ids are exhausted")
    return report
