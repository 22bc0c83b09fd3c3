import sys
import os
import asyncio

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from lessonforge.utils.progress import ProgressReporter


def _run(coro):
    return asyncio.run(coro)


async def _report_all(reporter, values):
    for value in values:
        await reporter.report(value)


def test_values_only_go_up():
    seen = []
    reporter = ProgressReporter(seen.append)
    _run(_report_all(reporter, [5, 15, 10, 15, 60, 95]))
    assert seen == [5, 15, 60, 95]
    assert reporter.last == 95


def test_values_clamped_to_percent_range():
    seen = []
    _run(_report_all(ProgressReporter(seen.append), [-5, 150]))
    assert seen == [0, 100]


def test_async_callback_is_awaited():
    seen = []

    async def on_progress(value):
        seen.append(value)

    _run(_report_all(ProgressReporter(on_progress), [5, 75]))
    assert seen == [5, 75]


def test_failing_callback_never_propagates():
    calls = []

    def on_progress(value):
        calls.append(value)
        raise RuntimeError("client went away")

    reporter = ProgressReporter(on_progress)
    _run(_report_all(reporter, [5, 15]))
    assert calls == [5, 15]
    assert reporter.last == 15


def test_without_callback():
    reporter = ProgressReporter()
    _run(reporter.report(40))
    assert reporter.last == 40
