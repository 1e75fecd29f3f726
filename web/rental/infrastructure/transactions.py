"""
Side effects tied to the outcome of a session's transaction.

Work registered with ``on_commit`` runs once the enclosing transaction has
committed and is thrown away if it rolls back or the session closes first.
Callbacks run synchronously inside ``commit()`` and should only schedule work.
"""
from __future__ import annotations

import logging
from typing import Callable, List, Union

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

logger = logging.getLogger(__name__)

_PENDING = "on_commit"


def on_commit(session: Union[AsyncSession, Session], callback: Callable[[], object]) -> None:
    session.info.setdefault(_PENDING, []).append(callback)


@event.listens_for(Session, "after_commit")
def _run_pending(session: Session) -> None:
    callbacks: List[Callable[[], object]] = session.info.pop(_PENDING, [])
    for callback in callbacks:
        callback()


@event.listens_for(Session, "after_transaction_end")
def _discard_pending(session: Session, transaction: SessionTransaction) -> None:
    # after_commit has already emptied the queue when the transaction committed
    if transaction.parent is not None:
        return
    dropped = session.info.pop(_PENDING, None)
    if dropped:
        logger.info("Discarded %d side effect(s) of a rolled back transaction", len(dropped))
