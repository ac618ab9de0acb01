import threading

from spotdiff.loop import Dispatcher, InlineRunner, ThreadRunner


def test_drain_runs_posted_callables_in_order():
    d = Dispatcher()
    seen = []
    d.post(seen.append, 1)
    d.post(seen.append, 2)
    d.post(lambda: seen.append(3))

    assert d.pending()
    assert d.drain() == 3
    assert seen == [1, 2, 3]
    assert not d.pending()
    assert d.drain() == 0


def test_failing_callable_does_not_stop_drain():
    d = Dispatcher()
    seen = []

    def boom():
        raise RuntimeError("boom")

    d.post(boom)
    d.post(seen.append, "after")

    assert d.drain() == 2
    assert seen == ["after"]


def test_inline_runner_passes_exception_as_result():
    results = []
    runner = InlineRunner()
    runner.run(lambda: 5, results.append)
    runner.run(lambda: 1 / 0, results.append)

    assert results[0] == 5
    assert isinstance(results[1], ZeroDivisionError)


def test_thread_runner_reports_back_on_loop_thread():
    d = Dispatcher()
    runner = ThreadRunner(d)
    results = []
    threads = []

    def done(res):
        results.append(res)
        threads.append(threading.current_thread())

    runner.run(lambda: threading.current_thread().name, done)
    runner.run(lambda: 1 / 0, done)
    runner.shutdown(timeout=5.0)

    # Completions wait for the loop.
    assert results == []
    assert d.drain() == 2

    assert results[0] == "sync-worker"
    assert isinstance(results[1], ZeroDivisionError)
    assert threads == [threading.current_thread()] * 2
