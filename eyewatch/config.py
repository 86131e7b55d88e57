from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from eyewatch.pose.types import VALID_OUTPUT_STRIDES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionConfig:
	# Passed to the pose model on every cycle. Scale factor must be within [0.2, 1.0].
	image_scale_factor: float = 0.2
	flip_horizontal: bool = False  # true for mirrored webcams
	output_stride: int = 16  # 8 / 16 / 32


@dataclass(frozen=True)
class CameraConfig:
	index: int = 0
	# Optional capture size request; the driver may pick something else.
	width: Optional[int] = None
	height: Optional[int] = None
	fps: Optional[int] = None


@dataclass(frozen=True)
class PoseConfig:
	min_detection_confidence: float = 0.5
	min_tracking_confidence: float = 0.5


@dataclass(frozen=True)
class TrackerConfig:
	# Detection cycles are aligned to this refresh rate.
	refresh_hz: float = 60.0


@dataclass(frozen=True)
class ServerConfig:
	host: str = "127.0.0.1"
	port: int = 8000


@dataclass(frozen=True)
class LoggingConfig:
	level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
	detection: DetectionConfig = field(default_factory=DetectionConfig)
	camera: CameraConfig = field(default_factory=CameraConfig)
	pose: PoseConfig = field(default_factory=PoseConfig)
	tracker: TrackerConfig = field(default_factory=TrackerConfig)
	server: ServerConfig = field(default_factory=ServerConfig)
	log: LoggingConfig = field(default_factory=LoggingConfig)


_CONFIG_PATH: Optional[Path] = None
_CONFIG_CACHE: Optional[AppConfig] = None


def _repo_root() -> Path:
	# eyewatch/config.py -> repo root is one level up.
	return Path(__file__).resolve().parents[1]


def get_default_config_path() -> Path:
	return _repo_root() / "config.json"


def set_config_path(path: str | Path) -> None:
	"""
	Override the config path (must be called before first get_config()).
	Intended for the CLI `--config` flag and tests.
	"""
	global _CONFIG_PATH
	global _CONFIG_CACHE
	_CONFIG_PATH = Path(path).expanduser().resolve()
	_CONFIG_CACHE = None


def _deep_get(d: Dict[str, Any], keys: list[str], default: Any = None) -> Any:
	cur: Any = d
	for k in keys:
		if not isinstance(cur, dict):
			return default
		cur = cur.get(k)
	return cur if cur is not None else default


def _as_int(v: Any, default: int) -> int:
	try:
		return int(v)
	except (TypeError, ValueError):
		return int(default)


def _as_bool(v: Any, default: bool) -> bool:
	if isinstance(v, bool):
		return v
	if isinstance(v, (int, float)):
		return bool(v)
	if isinstance(v, str):
		return v.strip().lower() in ("1", "true", "yes", "on")
	return bool(default)


def _as_str(v: Any, default: str = "") -> str:
	return str(v) if v is not None else str(default)


def _as_float(v: Any, default: float) -> float:
	try:
		return float(v)
	except (TypeError, ValueError):
		return float(default)


def _as_opt_int(v: Any) -> Optional[int]:
	if v is None:
		return None
	try:
		n = int(v)
	except (TypeError, ValueError):
		return None
	return n if n > 0 else None


def _parse_detection(raw: Dict[str, Any]) -> DetectionConfig:
	scale = _as_float(_deep_get(raw, ["detection", "image_scale_factor"], 0.2), 0.2)
	if not (0.2 <= scale <= 1.0):
		logger.warning("detection.image_scale_factor=%r out of range [0.2, 1.0]; using 0.2", scale)
		scale = 0.2
	stride = _as_int(_deep_get(raw, ["detection", "output_stride"], 16), 16)
	if stride not in VALID_OUTPUT_STRIDES:
		logger.warning("detection.output_stride=%r not one of %r; using 16", stride, VALID_OUTPUT_STRIDES)
		stride = 16
	flip = _as_bool(_deep_get(raw, ["detection", "flip_horizontal"], False), False)
	return DetectionConfig(image_scale_factor=scale, flip_horizontal=flip, output_stride=stride)


def load_config(path: Optional[str | Path] = None) -> AppConfig:
	p = Path(path).expanduser().resolve() if path else (_CONFIG_PATH or get_default_config_path())
	if not p.exists():
		# Defaults-only config; app can still run.
		return AppConfig()
	try:
		raw = json.loads(p.read_text(encoding="utf-8"))
	except (OSError, ValueError) as e:
		logger.warning("Config %s unreadable (%r); using defaults", p, e)
		return AppConfig()

	if not isinstance(raw, dict):
		return AppConfig()

	cam_index = _as_int(_deep_get(raw, ["camera", "index"], 0), 0)

	min_det = _as_float(_deep_get(raw, ["pose", "min_detection_confidence"], 0.5), 0.5)
	min_trk = _as_float(_deep_get(raw, ["pose", "min_tracking_confidence"], 0.5), 0.5)

	refresh_hz = _as_float(_deep_get(raw, ["tracker", "refresh_hz"], 60.0), 60.0)

	host = _as_str(_deep_get(raw, ["server", "host"], "127.0.0.1"), "127.0.0.1").strip()
	port = _as_int(_deep_get(raw, ["server", "port"], 8000), 8000)

	level = _as_str(_deep_get(raw, ["logging", "level"], "INFO"), "INFO").strip().upper()

	return AppConfig(
		detection=_parse_detection(raw),
		camera=CameraConfig(
			index=max(0, int(cam_index)),
			width=_as_opt_int(_deep_get(raw, ["camera", "width"])),
			height=_as_opt_int(_deep_get(raw, ["camera", "height"])),
			fps=_as_opt_int(_deep_get(raw, ["camera", "fps"])),
		),
		pose=PoseConfig(
			min_detection_confidence=min_det if 0.0 <= min_det <= 1.0 else 0.5,
			min_tracking_confidence=min_trk if 0.0 <= min_trk <= 1.0 else 0.5,
		),
		tracker=TrackerConfig(refresh_hz=max(0.0, float(refresh_hz))),
		server=ServerConfig(host=host or "127.0.0.1", port=int(port) if 0 < int(port) < 65536 else 8000),
		log=LoggingConfig(level=level or "INFO"),
	)


def get_config() -> AppConfig:
	global _CONFIG_CACHE
	if _CONFIG_CACHE is None:
		_CONFIG_CACHE = load_config()
	return _CONFIG_CACHE
