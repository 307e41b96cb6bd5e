"""
Change-control number issuance: ``CC-<year>-<4-digit sequence>``.

Numbers come from one counter row per calendar year, read with
``SELECT ... FOR UPDATE`` so concurrent submissions in the same year are
serialized. The counter is seeded on first use from the numbers already
issued for that year. Nothing here commits; the increment lands with the
caller's transaction.
"""
from __future__ import annotations
from typing import Optional
import logging

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.database import utcnow
from app.models.change_request import ChangeRequest
from app.models.sequence import ControlNumberCounter

logger = logging.getLogger(__name__)

PREFIX = "CC"

def format_control_number(year: int, seq: int) -> str:
    return f"{PREFIX}-{year}-{seq:04d}"

def _existing_count(db: Session, year: int) -> int:
    return (
        db.query(func.count(ChangeRequest.id))
        .filter(ChangeRequest.change_control_number.like(f"{PREFIX}-{year}-%"))
        .scalar()
        or 0
    )

def _locked_counter(db: Session, year: int) -> Optional[ControlNumberCounter]:
    return db.execute(
        select(ControlNumberCounter)
        .where(ControlNumberCounter.year == year)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()

def next_control_number(db: Session, year: Optional[int] = None) -> str:
    year = year or utcnow().year
    counter = _locked_counter(db, year)
    if counter is None:
        savepoint = db.begin_nested()
        try:
            counter = ControlNumberCounter(year=year, last_value=_existing_count(db, year))
            db.add(counter)
            db.flush()
            savepoint.commit()
        except IntegrityError:
            # another submission seeded the counter first
            savepoint.rollback()
            counter = _locked_counter(db, year)
    counter.last_value += 1
    db.flush()
    number = format_control_number(year, counter.last_value)
    logger.debug("control number issued: %s", number)
    return number
