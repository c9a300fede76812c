"""Unit tests for side-effect dispatchers."""

from __future__ import annotations

import threading

from clanwars.services.notification_service import InlineDispatcher, SideEffectDispatcher


def _boom(*_args, **_kwargs):
    raise RuntimeError("notification backend down")


class TestInlineDispatcher:
    def test_runs_job_with_arguments(self):
        calls = []
        dispatcher = InlineDispatcher()

        accepted = dispatcher.submit(lambda *a, **k: calls.append((a, k)), 1, 2, flag=True)

        assert accepted
        assert calls == [((1, 2), {"flag": True})]

    def test_failure_is_logged_not_raised(self, caplog):
        dispatcher = InlineDispatcher()

        assert dispatcher.submit(_boom)
        assert "side effect" in caplog.text
        assert "notification backend down" in caplog.text


class TestSideEffectDispatcher:
    def test_jobs_run_on_worker_thread(self):
        dispatcher = SideEffectDispatcher(maxsize=10)
        seen: list[str] = []
        try:
            dispatcher.submit(lambda: seen.append(threading.current_thread().name))
            dispatcher.join()
        finally:
            dispatcher.stop()

        assert seen == ["clanwars-side-effects"]
        assert not dispatcher.running

    def test_failing_job_does_not_stop_worker(self, caplog):
        dispatcher = SideEffectDispatcher(maxsize=10)
        results: list[int] = []
        try:
            dispatcher.submit(_boom)
            dispatcher.submit(results.append, 42)
            dispatcher.join()
        finally:
            dispatcher.stop()

        assert results == [42]
        assert "notification backend down" in caplog.text

    def test_full_queue_drops_instead_of_blocking(self, caplog):
        dispatcher = SideEffectDispatcher(maxsize=1)
        release = threading.Event()
        started = threading.Event()

        def blocker():
            started.set()
            release.wait(timeout=5)

        try:
            assert dispatcher.submit(blocker)
            assert started.wait(timeout=5)
            assert dispatcher.submit(lambda: None)
            assert not dispatcher.submit(lambda: None)
        finally:
            release.set()
            dispatcher.stop()

        assert "queue full" in caplog.text

    def test_stop_without_start_is_noop(self):
        SideEffectDispatcher().stop()

    def test_submit_after_stop_is_dropped(self, caplog):
        dispatcher = SideEffectDispatcher(maxsize=10)
        ran: list[int] = []
        dispatcher.submit(ran.append, 1)
        dispatcher.stop()

        assert not dispatcher.submit(ran.append, 2)
        assert not dispatcher.running
        assert ran == [1]
        assert "dispatcher stopped" in caplog.text

    def test_start_after_stop_accepts_jobs_again(self):
        dispatcher = SideEffectDispatcher(maxsize=10)
        ran: list[int] = []
        dispatcher.stop()
        dispatcher.start()
        try:
            assert dispatcher.submit(ran.append, 3)
            dispatcher.join()
        finally:
            dispatcher.stop()

        assert ran == [3]
