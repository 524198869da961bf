"""
SideEffectDispatcher -- run best-effort work after a transaction commits.

Responsibility:
    Lets services register audit and notification writes while they hold
    an open transaction, and runs them only once that transaction has
    committed.  A rollback discards everything registered on it.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Used by ApprovalService, LeaveService and the HTTP audit wrapper.

Invariants enforced:
    - Side effects never run for a transaction that did not commit.
    - Side effects never propagate an exception to the caller, and never
      delay the committing thread in ``thread`` mode.
    - Each registered callable runs at most once.
    - The caller's context variables (request id, actor) are captured at
      registration time and restored when the callable runs.

Failure modes:
    - Exceptions raised by a side effect are logged at ERROR with
      ``exc_info`` and dropped.
"""

from __future__ import annotations

import contextvars
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from contextvars import ContextVar
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from erp_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.side_effects")

_PENDING_KEY = "erp_pending_side_effects"
_LISTENING_KEY = "erp_side_effect_listeners"


class ActorContext:
    """Request-scoped acting user.

    The HTTP layer binds the principal's user id for the duration of a
    request; best-effort writers read it when no explicit user is given.
    """

    _user_id: ContextVar[UUID | None] = ContextVar("erp_actor_user_id", default=None)

    @classmethod
    def current_user_id(cls) -> UUID | None:
        return cls._user_id.get()

    @classmethod
    def set(cls, user_id: UUID | str | None) -> contextvars.Token:
        if isinstance(user_id, str):
            user_id = UUID(user_id)
        if user_id is not None:
            LogContext.set(actor_id=str(user_id))
        return cls._user_id.set(user_id)

    @classmethod
    def reset(cls, token: contextvars.Token) -> None:
        cls._user_id.reset(token)


class DispatchMode(str, Enum):
    INLINE = "inline"
    THREAD = "thread"


class _Deferred:
    __slots__ = ("dispatcher", "fn", "args", "kwargs", "context")

    def __init__(self, dispatcher, fn, args, kwargs, context):
        self.dispatcher = dispatcher
        self.fn = fn
        self.args = args
        self.kwargs = kwargs
        self.context = context


def _on_after_commit(session: Session) -> None:
    # Savepoint releases fire after_commit too; only the root commit dispatches.
    if session.in_nested_transaction():
        return
    pending: list[_Deferred] = session.info.pop(_PENDING_KEY, [])
    for item in pending:
        item.dispatcher._dispatch(item)


def _on_after_transaction_end(session: Session, transaction: SessionTransaction) -> None:
    # Root transaction ended without after_commit consuming the queue.
    if transaction.parent is None and not transaction.nested:
        dropped = session.info.pop(_PENDING_KEY, None)
        if dropped:
            logger.debug(
                "side_effects_discarded",
                extra={"count": len(dropped)},
            )


class SideEffectDispatcher:
    """
    Defers callables until the owning session commits.

    Contract:
        ``defer(session, fn, *args, **kwargs)`` queues ``fn`` on
        ``session``.  After the session's next successful commit, every
        queued callable runs once, in registration order.  On rollback the
        queue is cleared without running anything.

    Non-goals:
        - Not a durable queue.  Work queued in ``thread`` mode is lost if
          the process dies before it runs.
    """

    def __init__(self, mode: DispatchMode | str = DispatchMode.INLINE, max_workers: int = 4):
        self._mode = DispatchMode(mode)
        self._executor: ThreadPoolExecutor | None = None
        if self._mode is DispatchMode.THREAD:
            self._executor = ThreadPoolExecutor(
                max_workers=max_workers, thread_name_prefix="erp-side-effect",
            )

    @property
    def mode(self) -> DispatchMode:
        return self._mode

    def defer(self, session: Session, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        if not session.info.get(_LISTENING_KEY):
            event.listen(session, "after_commit", _on_after_commit)
            event.listen(session, "after_transaction_end", _on_after_transaction_end)
            session.info[_LISTENING_KEY] = True

        session.info.setdefault(_PENDING_KEY, []).append(
            _Deferred(self, fn, args, kwargs, contextvars.copy_context())
        )

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Run ``fn`` now (inline) or hand it off (thread), outside any session."""
        self._dispatch(_Deferred(self, fn, args, kwargs, contextvars.copy_context()))

    def _dispatch(self, item: _Deferred) -> None:
        if self._executor is not None:
            self._executor.submit(self._run_safely, item)
        else:
            self._run_safely(item)

    @staticmethod
    def _run_safely(item: _Deferred) -> None:
        try:
            item.context.run(item.fn, *item.args, **item.kwargs)
        except Exception:
            logger.error(
                "side_effect_failed",
                extra={"side_effect": getattr(item.fn, "__qualname__", repr(item.fn))},
                exc_info=True,
            )

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
