"""Gap-filling identifier allocation.

Projects, tasks and reports take the smallest positive id not currently in
use, so ids freed by deletion are reused. Allocation reads inside the
caller's transaction; two concurrent writers may still pick the same id, in
which case the second insert fails on the primary key and the caller sees a
conflict.
"""
import logging
from typing import Iterable

from sqlalchemy import Table, select
from sqlalchemy.orm import Session

logger = logging.getLogger("taskflow-core.id_allocation")


def next_free_id(sorted_ids: Iterable[int]) -> int:
    """
    Return the first positive integer absent from an ascending id sequence.

    >>> next_free_id([1, 2, 4])
    3
    >>> next_free_id([])
    1
    >>> next_free_id([2, 3])
    1
    """
    expected = 1
    for current in sorted_ids:
        if current < expected:
            # Non-positive ids or duplicates never shift the answer
            continue
        if current != expected:
            break
        expected += 1
    return expected


def allocate_id(db: Session, table: Table) -> int:
    """
    Allocate the lowest free id of ``table`` within the current transaction.

    Args:
        db: Database session (transaction already open)
        table: Table whose ``id`` column is allocated

    Returns:
        Lowest unused positive id
    """
    ids = db.execute(select(table.c.id).order_by(table.c.id)).scalars()
    new_id = next_free_id(ids)
    logger.debug(f"Allocated id {new_id} for {table.name}")
    return new_id
