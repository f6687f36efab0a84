import logging
import os
import yaml
from dataclasses import dataclass, field

from smart_liveness.models.errors import ConfigError


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATHS = [
    os.environ.get("SMART_LIVENESS_CONFIG", ""),
    ".smart-liveness.yaml",
    "./config.yaml",
    "/etc/smart-liveness/config.yaml",
]


@dataclass
class CaptureConfig:
    required_count: int = 6
    min_interval_ms: int = 700
    max_interval_ms: int = 1500

    def validate(self) -> "CaptureConfig":
        if self.required_count < 1:
            raise ConfigError(f"required_count must be >= 1, got {self.required_count}")
        if self.min_interval_ms < 0 or self.min_interval_ms > self.max_interval_ms:
            raise ConfigError(
                f"expected 0 <= min_interval_ms <= max_interval_ms, got {self.min_interval_ms}..{self.max_interval_ms}"
            )
        return self


@dataclass
class DecisionConfig:
    # Spoof-majority sessions still pass when the spoof frames are this unsure
    spoof_confidence_threshold: float = 0.6
    min_live_count: int = 2


@dataclass
class CameraConfig:
    device_index: int = 0
    width: int = 640
    height: int = 480
    warmup_frames: int = 2


@dataclass
class BackendConfig:
    classifier_backend: str = "light"  # light|onnx
    antispoof_model_path: str = os.path.abspath("./models/antispoof.onnx")
    antispoof_input_size: int = 80
    live_threshold: float = 0.6
    threads: int = max(1, os.cpu_count() - 1 if os.cpu_count() else 1)


@dataclass
class AppConfig:
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    decision: DecisionConfig = field(default_factory=DecisionConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    log_level: str = "INFO"


def _merge_dict(d: dict, u: dict) -> dict:
    for k, v in u.items():
        if isinstance(v, dict) and isinstance(d.get(k), dict):
            d[k] = _merge_dict(d[k], v)
        else:
            d[k] = v
    return d


def _as_dict(cfg: AppConfig) -> dict:
    return {
        "capture": dict(cfg.capture.__dict__),
        "decision": dict(cfg.decision.__dict__),
        "camera": dict(cfg.camera.__dict__),
        "backend": dict(cfg.backend.__dict__),
        "log_level": cfg.log_level,
    }


def load_config(paths=None) -> AppConfig:
    cfg = AppConfig()
    candidates = DEFAULT_CONFIG_PATHS if paths is None else paths
    for p in [p for p in candidates if p]:
        if not os.path.exists(p):
            continue
        try:
            with open(p, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            merged = _merge_dict(_as_dict(cfg), data)
            cfg = AppConfig(
                capture=CaptureConfig(**merged.get("capture", {})),
                decision=DecisionConfig(**merged.get("decision", {})),
                camera=CameraConfig(**merged.get("camera", {})),
                backend=BackendConfig(**merged.get("backend", {})),
                log_level=str(merged.get("log_level", cfg.log_level)).upper(),
            )
        except (OSError, TypeError, yaml.YAMLError) as e:
            # Fall back to what was loaded so far
            logger.warning("ignoring config file %s: %s", p, e)
    cfg.capture.validate()
    return cfg
