# Overview: Service-layer helpers for conditional updates and commit handling.

from __future__ import annotations

import logging

from sqlalchemy.exc import SQLAlchemyError

from ..errors import DependencyFailure

logger = logging.getLogger(__name__)


def conditional_update(session, model, row, *conditions, **values) -> int:
    """
    UPDATE <model> SET values WHERE id = row.id AND <conditions>.

    This is the compare-and-set primitive: callers put the expected prior
    state in `conditions` and treat a zero rowcount as a lost race. The
    row's version_id is bumped so ORM-level optimistic locking stays in step,
    and the instance is expired so later reads see the stored values.

    Pending ORM changes are flushed first so they take part in the same
    transaction.
    """
    table = model.__table__
    session.flush()
    stmt = (
        table.update()
        .where(table.c.id == row.id, *conditions)
        .values(version_id=table.c.version_id + 1, **values)
    )
    result = session.execute(stmt)
    if result.rowcount:
        session.expire(row)
    return result.rowcount


def commit_or_fail(session, what: str) -> None:
    """
    Commit the current transaction.

    A store failure rolls back and surfaces as DependencyFailure; the
    details are logged, not returned to the client.
    """
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Commit failed while trying to %s", what)
        raise DependencyFailure(f"Failed to {what}") from exc
