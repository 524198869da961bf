"""
SideEffectDispatcher: deferred work runs after commit, never after a
rollback, and never raises into the caller.
"""

import threading

import pytest

from erp_kernel.logging_config import LogContext
from erp_kernel.services.side_effects import ActorContext, DispatchMode, SideEffectDispatcher


@pytest.fixture
def calls():
    return []


class TestInlineDispatch:
    def test_runs_after_commit_in_order(self, session, dispatcher, calls):
        dispatcher.defer(session, calls.append, "first")
        dispatcher.defer(session, calls.append, "second")
        assert calls == []

        session.commit()
        assert calls == ["first", "second"]

    def test_runs_once(self, session, dispatcher, calls):
        dispatcher.defer(session, calls.append, "once")
        session.commit()
        session.commit()
        assert calls == ["once"]

    def test_rollback_discards(self, session, dispatcher, calls):
        dispatcher.defer(session, calls.append, "never")
        session.rollback()
        session.commit()
        assert calls == []

    def test_savepoint_commit_does_not_dispatch(self, session, dispatcher, calls):
        with session.begin_nested():
            dispatcher.defer(session, calls.append, "outer-commit")
        assert calls == []
        session.commit()
        assert calls == ["outer-commit"]

    def test_exceptions_are_logged_not_raised(self, session, dispatcher, calls, captured_logs):
        def boom():
            raise RuntimeError("side effect failed")

        dispatcher.defer(session, boom)
        dispatcher.defer(session, calls.append, "after")
        session.commit()

        assert calls == ["after"]
        failures = [r for r in captured_logs() if r["message"] == "side_effect_failed"]
        assert len(failures) == 1
        assert failures[0]["exc_type"] == "RuntimeError"

    def test_context_captured_at_registration(self, session, dispatcher, calls):
        LogContext.set(request_id="req-42")
        dispatcher.defer(session, lambda: calls.append(LogContext.get_all().get("request_id")))
        LogContext.clear()
        session.commit()
        assert calls == ["req-42"]

    def test_submit_runs_immediately(self, dispatcher, calls):
        dispatcher.submit(calls.append, "now")
        assert calls == ["now"]


class TestThreadDispatch:
    def test_runs_off_the_committing_thread(self, session, calls):
        dispatcher = SideEffectDispatcher(mode=DispatchMode.THREAD, max_workers=2)
        dispatcher.defer(session, lambda: calls.append(threading.current_thread().name))
        session.commit()
        dispatcher.shutdown(wait=True)

        assert len(calls) == 1
        assert calls[0].startswith("erp-side-effect")

    def test_actor_survives_thread_hand_off(self, session, make_user, calls):
        user = make_user()
        dispatcher = SideEffectDispatcher(mode="thread")
        token = ActorContext.set(user.id)
        try:
            dispatcher.defer(session, lambda: calls.append(ActorContext.current_user_id()))
        finally:
            ActorContext.reset(token)
        session.commit()
        dispatcher.shutdown(wait=True)

        assert calls == [user.id]
        assert ActorContext.current_user_id() is None

    def test_mode(self):
        assert SideEffectDispatcher().mode is DispatchMode.INLINE
