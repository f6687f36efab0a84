import logging
from typing import List

from fastapi import FastAPI, File, HTTPException, UploadFile
from pydantic import BaseModel

from smart_liveness.app.config import load_config
from smart_liveness.capture.sequence import decode_image
from smart_liveness.models import LivenessError, Verdict
from smart_liveness.pipeline.liveness_pipeline import LivenessPipeline
from smart_liveness.pipeline.report import RETRY_MESSAGE, LoggingReporter


logger = logging.getLogger(__name__)

app = FastAPI(title="Smart Liveness API", version="0.1.0")
cfg = load_config()
pipeline = LivenessPipeline(cfg)


class FrameResponse(BaseModel):
    prediction: str
    confidence: float
    quality_score: float


class VerdictResponse(BaseModel):
    is_live: bool
    live_percentage: int
    confidence_percentage: int
    quality_percentage: int
    frames: List[FrameResponse]

    @classmethod
    def from_verdict(cls, v: Verdict) -> "VerdictResponse":
        return cls(
            is_live=v.is_live,
            live_percentage=v.live_percentage,
            confidence_percentage=v.confidence_percentage,
            quality_percentage=v.quality_percentage,
            frames=[
                FrameResponse(prediction=f.prediction.value, confidence=f.confidence, quality_score=f.quality_score)
                for f in v.frames
            ],
        )


@app.get("/health")
def health():
    return {"status": "ok", "required_count": cfg.capture.required_count}


@app.post("/verify", response_model=VerdictResponse)
async def verify(files: List[UploadFile] = File(...)):
    if not files:
        raise HTTPException(status_code=400, detail="at least one image is required")
    try:
        images = [decode_image(await f.read()) for f in files]
        verdict = await pipeline.verify_images(images, reporter=LoggingReporter())
    except LivenessError as e:
        logger.info("verify request failed: %s", e)
        raise HTTPException(status_code=422, detail=RETRY_MESSAGE)
    return VerdictResponse.from_verdict(verdict)
