import logging
from typing import Callable, List, Optional, Tuple

from smart_liveness.app.utils import round_half_up
from smart_liveness.models.base import SessionReporter, Verdict


logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Verification failed. Please try again."


def format_verdict(verdict: Verdict) -> str:
    lines = []
    if verdict.is_live:
        lines.append("VERIFICATION SUCCESSFUL")
        lines.append("Your identity has been verified as a real person.")
    else:
        lines.append("VERIFICATION FAILED")
        lines.append("We could not verify you as a real person.")
    lines.append("")
    lines.append("VERIFICATION DETAILS:")
    lines.append(f"  Live Detection: {verdict.live_percentage}%")
    lines.append(f"  Confidence: {verdict.confidence_percentage}%")
    lines.append(f"  Image Quality: {verdict.quality_percentage}%")
    lines.append("")
    lines.append("TECHNICAL INFORMATION:")
    for i, frame in enumerate(verdict.frames, start=1):
        lines.append(f"  Frame {i}: {frame.prediction.value} ({round_half_up(frame.confidence * 100.0)}%)")
    return "\n".join(lines)


class LoggingReporter(SessionReporter):
    def on_progress(self, completed: int, total: int) -> None:
        logger.info("verification in progress: %d/%d", completed, total)

    def on_failure(self, reason: Exception) -> None:
        logger.warning("verification failed: %s", reason)

    def on_verdict(self, verdict: Verdict) -> None:
        logger.info("verification %s", "passed" if verdict.is_live else "rejected")


class ConsoleReporter(SessionReporter):
    """Writes progress and the final summary through `echo` (typer.echo in the CLI)."""

    def __init__(self, echo: Callable[[str], None] = print):
        self.echo = echo

    def on_progress(self, completed: int, total: int) -> None:
        self.echo(f"Verification in progress: {completed}/{total}")

    def on_failure(self, reason: Exception) -> None:
        self.echo(RETRY_MESSAGE)

    def on_verdict(self, verdict: Verdict) -> None:
        self.echo(format_verdict(verdict))


class CollectingReporter(SessionReporter):
    def __init__(self):
        self.progress: List[Tuple[int, int]] = []
        self.failures: List[Exception] = []
        self.verdict: Optional[Verdict] = None

    def on_progress(self, completed: int, total: int) -> None:
        self.progress.append((completed, total))

    def on_failure(self, reason: Exception) -> None:
        self.failures.append(reason)

    def on_verdict(self, verdict: Verdict) -> None:
        self.verdict = verdict
