import asyncio
import logging
from pathlib import Path
from typing import List, Optional

import typer
import uvicorn

from smart_liveness.app.config import load_config
from smart_liveness.capture.sequence import ImageSequenceTrigger, load_images
from smart_liveness.models import LivenessError
from smart_liveness.pipeline.liveness_pipeline import LivenessPipeline
from smart_liveness.pipeline.report import ConsoleReporter


app = typer.Typer(name="smart-liveness")


def _setup_logging(level: Optional[str], default: str):
    logging.basicConfig(
        level=(level or default).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def verify(
    image: Optional[List[Path]] = typer.Option(None, "--image", "-i", help="Use image files instead of the webcam."),
    count: Optional[int] = typer.Option(None, help="Number of frames to capture."),
    min_interval_ms: Optional[int] = typer.Option(None),
    max_interval_ms: Optional[int] = typer.Option(None),
    log_level: Optional[str] = typer.Option(None, "--log-level"),
):
    """Run one liveness verification session."""
    cfg = load_config()
    _setup_logging(log_level, cfg.log_level)
    pipeline = LivenessPipeline(cfg)
    reporter = ConsoleReporter(typer.echo)
    try:
        if image:
            images = load_images(image)
            ctl = pipeline.controller(ImageSequenceTrigger(images), reporter)
            verdict = asyncio.run(ctl.run(len(images) if count is None else count, min_interval_ms or 0, max_interval_ms or 0))
        else:
            ctl = pipeline.camera_controller(reporter)
            verdict = asyncio.run(ctl.run(count, min_interval_ms, max_interval_ms))
    except LivenessError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=2)
    except KeyboardInterrupt:
        typer.echo("Cancelled.")
        raise typer.Exit(code=130)
    raise typer.Exit(code=0 if verdict.is_live else 1)


@app.command()
def api(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI service."""
    cfg = load_config()
    _setup_logging(None, cfg.log_level)
    uvicorn.run("smart_liveness.api.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    app()
