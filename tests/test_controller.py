import asyncio
import random

import numpy as np
import pytest

from smart_liveness.models import (
    CaptureError,
    CaptureTrigger,
    ClassificationError,
    ConfigError,
    FrameClassifier,
    FrameResult,
    Prediction,
    SessionBusyError,
    SessionCancelledError,
    SessionReporter,
)
from smart_liveness.pipeline.aggregator import DecisionEngine
from smart_liveness.pipeline.controller import CaptureSequenceController
from smart_liveness.pipeline.report import CollectingReporter
from smart_liveness.pipeline.session import SessionState


class FakeTrigger(CaptureTrigger):
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.calls = 0
        self.opened = 0
        self.closed = 0

    async def open(self):
        self.opened += 1

    async def capture(self):
        self.calls += 1
        if self.fail_on is not None and self.calls == self.fail_on:
            raise CaptureError("camera unplugged")
        return np.full((8, 8, 3), self.calls, dtype=np.uint8)

    async def close(self):
        self.closed += 1


class FakeClassifier(FrameClassifier):
    def __init__(self, frames=None, error=None):
        self.frames = frames
        self.error = error
        self.seen = []

    def classify_frame(self, frame_bgr):
        self.seen.append(int(frame_bgr[0, 0, 0]))
        if self.error is not None:
            raise self.error
        if self.frames is not None:
            return self.frames[len(self.seen) - 1]
        return FrameResult(Prediction.LIVE, 0.9, 0.8)


class SpyEngine(DecisionEngine):
    def __init__(self):
        super().__init__()
        self.calls = 0

    def decide(self, frames, required_count=None):
        self.calls += 1
        return super().decide(frames, required_count)


class SleepRecorder:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


def _controller(trigger=None, classifier=None, reporter=None, **kwargs):
    kwargs.setdefault("sleep", SleepRecorder())
    return CaptureSequenceController(
        trigger or FakeTrigger(),
        classifier or FakeClassifier(),
        reporter=reporter,
        **kwargs,
    )


def test_full_run_records_frames_in_order():
    frames = [FrameResult(Prediction.LIVE if i % 2 else Prediction.SPOOF, 0.5 + i / 20, 0.7) for i in range(6)]
    trigger = FakeTrigger()
    classifier = FakeClassifier(frames)
    reporter = CollectingReporter()
    ctl = _controller(trigger, classifier, reporter)

    verdict = asyncio.run(ctl.run(6, 700, 1500))

    snap = ctl.snapshot()
    assert snap.state is SessionState.COMPLETED
    assert list(snap.results) == frames
    assert list(verdict.frames) == frames
    assert classifier.seen == [1, 2, 3, 4, 5, 6]
    assert reporter.progress == [(i, 6) for i in range(1, 7)]
    assert reporter.verdict == verdict
    assert reporter.failures == []
    assert trigger.opened == 1 and trigger.closed == 1
    assert not ctl.is_running


def test_waits_only_between_rounds_and_within_bounds():
    sleep = SleepRecorder()
    ctl = _controller(sleep=sleep, rng=random.Random(7))
    asyncio.run(ctl.run(6, 700, 1500))
    assert len(sleep.waits) == 5
    assert all(0.7 <= w <= 1.5 for w in sleep.waits)


def test_single_frame_run_never_waits():
    sleep = SleepRecorder()
    ctl = _controller(sleep=sleep)
    verdict = asyncio.run(ctl.run(1, 700, 1500))
    assert sleep.waits == []
    assert len(verdict.frames) == 1


def test_wait_durations_vary_across_runs():
    sleep = SleepRecorder()
    ctl = _controller(sleep=sleep, rng=random.Random(1234))
    for _ in range(20):
        asyncio.run(ctl.run(6, 700, 1500))
    assert len(sleep.waits) == 100
    assert all(0.7 <= w <= 1.5 for w in sleep.waits)
    assert len(set(sleep.waits)) > 1


def test_capture_error_aborts_without_aggregation():
    trigger = FakeTrigger(fail_on=4)
    classifier = FakeClassifier()
    engine = SpyEngine()
    reporter = CollectingReporter()
    ctl = _controller(trigger, classifier, reporter, engine=engine)

    with pytest.raises(CaptureError):
        asyncio.run(ctl.run(6, 700, 1500))

    snap = ctl.snapshot()
    assert snap.state is SessionState.FAILED
    assert snap.completed == 3
    assert snap.verdict is None
    assert engine.calls == 0
    assert trigger.calls == 4
    assert len(classifier.seen) == 3
    assert reporter.progress == [(1, 6), (2, 6), (3, 6)]
    assert len(reporter.failures) == 1 and isinstance(reporter.failures[0], CaptureError)
    assert reporter.verdict is None
    assert trigger.closed == 1


def test_classifier_exception_becomes_classification_error():
    ctl = _controller(classifier=FakeClassifier(error=RuntimeError("model crashed")))
    with pytest.raises(ClassificationError) as exc:
        asyncio.run(ctl.run(6, 0, 0))
    assert "model crashed" in str(exc.value)
    assert ctl.state is SessionState.FAILED
    assert ctl.snapshot().completed == 0


def test_malformed_classifier_output_rejected():
    ctl = _controller(classifier=FakeClassifier(frames=[{"prediction": "Live"}] * 6))
    with pytest.raises(ClassificationError):
        asyncio.run(ctl.run(6, 0, 0))
    assert ctl.snapshot().completed == 0


def test_rerun_after_failure_starts_fresh():
    trigger = FakeTrigger(fail_on=2)
    ctl = _controller(trigger)
    with pytest.raises(CaptureError):
        asyncio.run(ctl.run(6, 0, 0))
    assert ctl.snapshot().completed == 1

    trigger.fail_on = None
    trigger.calls = 0
    verdict = asyncio.run(ctl.run(6, 0, 0))
    assert verdict.is_live
    snap = ctl.snapshot()
    assert snap.state is SessionState.COMPLETED
    assert snap.completed == 6
    assert snap.error is None


def test_cancel_during_wait():
    trigger = FakeTrigger()
    reporter = CollectingReporter()

    async def scenario():
        entered = asyncio.Event()

        async def blocking_sleep(seconds):
            entered.set()
            await asyncio.Event().wait()

        ctl = _controller(trigger, reporter=reporter, sleep=blocking_sleep)
        task = ctl.start(6, 700, 1500)
        await entered.wait()
        assert ctl.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return ctl

    ctl = asyncio.run(scenario())
    snap = ctl.snapshot()
    assert snap.state is SessionState.CANCELLED
    assert snap.completed == 1
    assert trigger.closed == 1
    assert len(reporter.failures) == 1
    assert isinstance(reporter.failures[0], SessionCancelledError)
    assert reporter.verdict is None
    assert not ctl.is_running


def test_cancel_during_classification_drops_frame():
    reporter = CollectingReporter()

    class SlowClassifier(FrameClassifier):
        def __init__(self):
            self.entered = asyncio.Event()

        async def classify(self, frame_bgr):
            self.entered.set()
            await asyncio.Event().wait()

    async def scenario():
        classifier = SlowClassifier()
        ctl = _controller(classifier=classifier, reporter=reporter)
        task = ctl.start(6, 0, 0)
        await classifier.entered.wait()
        ctl.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return ctl

    ctl = asyncio.run(scenario())
    assert ctl.state is SessionState.CANCELLED
    assert ctl.snapshot().completed == 0
    assert reporter.progress == []


def test_cancel_before_first_round():
    trigger = FakeTrigger()
    reporter = CollectingReporter()

    async def scenario():
        ctl = _controller(trigger, reporter=reporter)
        task = ctl.start(6, 0, 0)
        ctl.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return ctl

    ctl = asyncio.run(scenario())
    assert ctl.state is SessionState.CANCELLED
    assert trigger.calls == 0
    assert not ctl.is_running
    assert isinstance(reporter.failures[0], SessionCancelledError)


def test_cancel_when_idle():
    assert _controller().cancel() is False


def test_cancel_after_completed_run_leaves_caller_alone():
    async def scenario():
        ctl = _controller()
        verdict = await ctl.run(3, 0, 0)
        cancelled = ctl.cancel()
        await asyncio.sleep(0)
        return ctl, verdict, cancelled

    ctl, verdict, cancelled = asyncio.run(scenario())
    assert cancelled is False
    assert verdict.is_live
    assert ctl.state is SessionState.COMPLETED


def test_cancel_during_capture():
    reporter = CollectingReporter()

    class BlockingTrigger(FakeTrigger):
        def __init__(self):
            super().__init__()
            self.entered = asyncio.Event()

        async def capture(self):
            self.calls += 1
            self.entered.set()
            await asyncio.Event().wait()

    async def scenario():
        trigger = BlockingTrigger()
        ctl = _controller(trigger, reporter=reporter)
        task = ctl.start(6, 0, 0)
        await trigger.entered.wait()
        assert ctl.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return ctl, trigger

    ctl, trigger = asyncio.run(scenario())
    assert ctl.state is SessionState.CANCELLED
    assert ctl.snapshot().completed == 0
    assert trigger.closed == 1
    assert reporter.progress == []
    assert len(reporter.failures) == 1
    assert isinstance(reporter.failures[0], SessionCancelledError)
    assert not ctl.is_running


def test_overlapping_runs_rejected():
    async def scenario():
        entered = asyncio.Event()

        async def blocking_sleep(seconds):
            entered.set()
            await asyncio.Event().wait()

        ctl = _controller(sleep=blocking_sleep)
        task = ctl.start(6, 700, 1500)
        await entered.wait()
        with pytest.raises(SessionBusyError):
            ctl.start(6, 700, 1500)
        with pytest.raises(SessionBusyError):
            await ctl.run(6, 700, 1500)
        # The rejected calls must not disturb the live session
        assert ctl.snapshot().completed == 1
        ctl.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())


def test_invalid_run_parameters():
    ctl = _controller()
    with pytest.raises(ConfigError):
        asyncio.run(ctl.run(0, 700, 1500))
    with pytest.raises(ConfigError):
        asyncio.run(ctl.run(6, 1500, 700))
    with pytest.raises(ConfigError):
        asyncio.run(ctl.run(6, -1, 700))
    assert ctl.state is SessionState.IDLE
    assert not ctl.is_running


def test_reporter_errors_do_not_break_run():
    class BrokenReporter(SessionReporter):
        def on_progress(self, completed, total):
            raise RuntimeError("ui gone")

    ctl = _controller(reporter=BrokenReporter())
    verdict = asyncio.run(ctl.run(3, 0, 0))
    assert verdict.is_live
    assert ctl.state is SessionState.COMPLETED
