# Overview: Service-layer operations for transaction numbering.

"""
Transaction numbers: TXN-<year>-<5 digit counter>, restarting each year.

The counter lives in one transaction_sequences row per year and is advanced
with a single atomic UPDATE, so concurrent creators can never read the same
value. The first allocation of a year races on the INSERT; the loser gets an
IntegrityError from the unique year column and falls back to the UPDATE.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import TransactionSequence
from .. import time_utils


NUMBER_PAD = 5


class SequenceError(Exception):
    """Raised when the sequence store cannot hand out a number."""
    pass


def format_transaction_number(year: int, number: int, prefix: str | None = None) -> str:
    prefix = prefix or current_app.config.get("TRANSACTION_NUMBER_PREFIX", "TXN")
    return f"{prefix}-{year}-{number:0{NUMBER_PAD}d}"


def _bump(year: int) -> int | None:
    stmt = (
        update(TransactionSequence)
        .where(TransactionSequence.year == year)
        .values(next_number=TransactionSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(TransactionSequence.next_number)
        .filter_by(year=year)
        .scalar()
    )
    return current - 1


def allocate_number(year: int | None = None) -> int:
    """
    Atomically allocate the next counter value for a year.

    Must run inside the caller's unit of work: the bumped row stays locked
    until the caller commits, which is what serializes concurrent creators.
    """
    if year is None:
        year = time_utils.today().year

    allocated = _bump(year)
    if allocated is not None:
        return allocated

    # First number of the year. A SAVEPOINT keeps the caller's pending work
    # intact if another creator inserted the row first.
    try:
        with db.session.begin_nested():
            db.session.add(TransactionSequence(year=year, next_number=2))
        return 1
    except IntegrityError:
        allocated = _bump(year)
        if allocated is None:
            raise SequenceError(f"Could not allocate a transaction number for {year}")
        return allocated


def next_transaction_number(year: int | None = None) -> str:
    """Allocate and format the next transaction number (see allocate_number)."""
    if year is None:
        year = time_utils.today().year
    return format_transaction_number(year, allocate_number(year))
