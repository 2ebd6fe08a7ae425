# Overview: Service-layer transaction and row-locking helpers shared by every ledger operation.

from __future__ import annotations

import logging
from contextlib import contextmanager

from ..extensions import db

"""
Transaction Rules (authoritative)

- Every mutating service operation runs inside exactly one atomic() block.
- atomic() commits on success and rolls back on ANY exception, then re-raises.
- Nested atomic() blocks join the outer unit of work (no savepoints, no commit).
- Helpers named *_locked never commit; they expect the caller's atomic() block.
- Lock order inside one transaction: customer / supplier / allocation first,
  then sale items, then products sorted by id.
- No retries here: conflicts and datastore errors propagate to the caller.
"""

logger = logging.getLogger(__name__)

_DEPTH_KEY = "shopledger_atomic_depth"


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (its database-level write lock
    serializes writers instead), but PostgreSQL/MySQL honor it.
    Rows already in the identity map are refreshed from the locked read.
    """
    return query.with_for_update().populate_existing()


@contextmanager
def atomic():
    """Run the enclosed block as one unit of work on ``db.session``."""
    session = db.session
    depth = session.info.get(_DEPTH_KEY, 0)
    session.info[_DEPTH_KEY] = depth + 1
    try:
        yield session
        if depth == 0:
            session.commit()
    except Exception:
        if depth == 0:
            session.rollback()
            logger.debug("transaction rolled back", exc_info=True)
        raise
    finally:
        session.info[_DEPTH_KEY] = depth
