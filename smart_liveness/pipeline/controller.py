"""
Capture sequence controller: drives N capture-and-classify rounds with
jittered waits between them, then hands the frames to the decision engine.

Runs on asyncio. Suspension points are the inter-round wait, the capture and
the classification; cancelling the owning task at any of them ends the
session as Cancelled without recording a partial frame.
"""

import asyncio
import logging
import random
from typing import Optional

import numpy as np

from smart_liveness.app.config import CaptureConfig
from smart_liveness.app.utils import draw_interval_ms, now_ts
from smart_liveness.models.base import CaptureTrigger, FrameClassifier, FrameResult, SessionReporter, Verdict
from smart_liveness.models.errors import (
    CaptureError,
    ClassificationError,
    SessionBusyError,
    SessionCancelledError,
)
from smart_liveness.pipeline.aggregator import DecisionEngine
from smart_liveness.pipeline.session import CaptureSession, SessionSnapshot, SessionState


logger = logging.getLogger(__name__)


class CaptureSequenceController:
    def __init__(
        self,
        trigger: CaptureTrigger,
        classifier: FrameClassifier,
        reporter: Optional[SessionReporter] = None,
        engine: Optional[DecisionEngine] = None,
        capture: Optional[CaptureConfig] = None,
        rng: Optional[random.Random] = None,
        sleep=None,
    ):
        self.trigger = trigger
        self.classifier = classifier
        self.reporter = reporter if reporter is not None else SessionReporter()
        self.engine = engine if engine is not None else DecisionEngine()
        self.capture = capture if capture is not None else CaptureConfig()
        self._rng = rng if rng is not None else random.Random()
        self._sleep = sleep if sleep is not None else asyncio.sleep
        self._session = CaptureSession(required_count=self.capture.required_count)
        self._task: Optional[asyncio.Task] = None
        self._busy = False

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def is_running(self) -> bool:
        return self._busy

    def snapshot(self) -> SessionSnapshot:
        return self._session.snapshot()

    def start(self, required_count=None, min_interval_ms=None, max_interval_ms=None) -> asyncio.Task:
        """Schedule a run on the current event loop and return its task."""
        loop = asyncio.get_running_loop()
        settings = self._claim(required_count, min_interval_ms, max_interval_ms)
        self._task = loop.create_task(self._execute(settings))
        self._task.add_done_callback(self._on_task_done)
        return self._task

    async def run(self, required_count=None, min_interval_ms=None, max_interval_ms=None) -> Verdict:
        settings = self._claim(required_count, min_interval_ms, max_interval_ms)
        self._task = asyncio.current_task()
        return await self._execute(settings)

    def cancel(self) -> bool:
        if not self._busy or self._task is None or self._task.done():
            return False
        logger.info("cancelling capture session")
        return self._task.cancel()

    def _claim(self, required_count, min_interval_ms, max_interval_ms) -> CaptureConfig:
        if self._busy:
            raise SessionBusyError("a verification run is already in progress")
        settings = CaptureConfig(
            required_count=self.capture.required_count if required_count is None else int(required_count),
            min_interval_ms=self.capture.min_interval_ms if min_interval_ms is None else int(min_interval_ms),
            max_interval_ms=self.capture.max_interval_ms if max_interval_ms is None else int(max_interval_ms),
        ).validate()
        self._busy = True
        self._session.reset(settings.required_count)
        return settings

    async def _execute(self, settings: CaptureConfig) -> Verdict:
        session = self._session
        total = settings.required_count
        started = now_ts()
        logger.info(
            "capture session started: %d frames, interval %d-%d ms",
            total, settings.min_interval_ms, settings.max_interval_ms,
        )
        try:
            await self._open_trigger()
            for i in range(1, total + 1):
                if i > 1:
                    wait_ms = draw_interval_ms(self._rng, settings.min_interval_ms, settings.max_interval_ms)
                    logger.debug("round %d: waiting %d ms", i, wait_ms)
                    await self._sleep(wait_ms / 1000.0)
                image = await self._capture(i)
                frame = await self._classify(i, image)
                completed = session.append(frame)
                logger.info(
                    "round %d/%d: %s (confidence %.2f, quality %.2f)",
                    i, total, frame.prediction.value, frame.confidence, frame.quality_score,
                )
                self._notify("on_progress", completed, total)
            verdict = self.engine.decide(session.results, total)
            session.complete(verdict)
        except asyncio.CancelledError:
            err = SessionCancelledError(f"cancelled after {len(session.results)} of {total} frames")
            session.fail(err, cancelled=True)
            logger.info("capture session %s", err)
            self._notify("on_failure", err)
            raise
        except Exception as e:
            session.fail(e)
            logger.warning("capture session failed after %d of %d frames: %s", len(session.results), total, e)
            self._notify("on_failure", e)
            raise
        finally:
            await self._close_trigger()
            self._busy = False
            self._task = None

        logger.info(
            "capture session completed in %.2fs: live=%s live=%d%% confidence=%d%% quality=%d%%",
            now_ts() - started, verdict.is_live, verdict.live_percentage,
            verdict.confidence_percentage, verdict.quality_percentage,
        )
        self._notify("on_verdict", verdict)
        return verdict

    async def _open_trigger(self):
        try:
            await self.trigger.open()
        except CaptureError:
            raise
        except Exception as e:
            raise CaptureError(f"could not open capture source: {e}") from e

    async def _close_trigger(self):
        try:
            await self.trigger.close()
        except Exception:
            logger.exception("failed to release capture source")

    async def _capture(self, round_index: int) -> np.ndarray:
        try:
            image = await self.trigger.capture()
        except CaptureError:
            raise
        except Exception as e:
            raise CaptureError(f"round {round_index}: capture failed: {e}") from e
        if image is None:
            raise CaptureError(f"round {round_index}: capture returned no image")
        return image

    async def _classify(self, round_index: int, image: np.ndarray) -> FrameResult:
        try:
            frame = await self.classifier.classify(image)
        except ClassificationError:
            raise
        except Exception as e:
            # Includes out-of-range scores rejected by FrameResult
            raise ClassificationError(f"round {round_index}: classification failed: {e}") from e
        if not isinstance(frame, FrameResult):
            raise ClassificationError(
                f"round {round_index}: classifier returned {type(frame).__name__}, expected FrameResult"
            )
        return frame

    def _notify(self, event: str, *args):
        try:
            getattr(self.reporter, event)(*args)
        except Exception:
            logger.exception("reporter %s callback raised", event)

    def _on_task_done(self, task: asyncio.Task):
        if task.cancelled():
            if self._session.state.is_running:
                # Cancelled before the task body ever ran
                err = SessionCancelledError("cancelled before the first round")
                self._session.fail(err, cancelled=True)
                self._busy = False
                self._notify("on_failure", err)
            return
        # Mark the exception retrieved; callers awaiting the task still see it
        task.exception()
