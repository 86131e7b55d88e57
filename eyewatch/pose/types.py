from __future__ import annotations

from dataclasses import dataclass, field, replace as _dc_replace
from typing import Any, Dict, List, Tuple

VALID_OUTPUT_STRIDES = (8, 16, 32)


@dataclass(frozen=True)
class Keypoint:
	"""
	A single labeled 2D keypoint in full-frame pixel coordinates.
	"""

	part: str
	x_px: float
	y_px: float
	score: float  # confidence/visibility [0..1] best-effort

	@property
	def position(self) -> Tuple[float, float]:
		return (self.x_px, self.y_px)


@dataclass(frozen=True)
class Pose:
	"""
	Single-person pose for one video frame.

	- `keypoints` keep the order the model returned them in.
	- `width`/`height` are the frame size the pixel coordinates refer to.
	"""

	keypoints: List[Keypoint] = field(default_factory=list)
	score: float = 0.0
	width: int = 0
	height: int = 0


@dataclass(frozen=True)
class EyePosition:
	x: float = 0.0
	y: float = 0.0

	def to_dict(self) -> Dict[str, float]:
		return {"x": float(self.x), "y": float(self.y)}


@dataclass(frozen=True)
class EyePair:
	left: EyePosition = field(default_factory=EyePosition)
	right: EyePosition = field(default_factory=EyePosition)

	def to_dict(self) -> Dict[str, Dict[str, float]]:
		return {"left": self.left.to_dict(), "right": self.right.to_dict()}


DEFAULT_EYE_PAIR = EyePair()


@dataclass(frozen=True)
class DetectionOptions:
	"""
	Per-call estimator settings, opaque to the tracker.

	image_scale_factor: input downscale before inference, 0.2 ~ 1.0. Larger is
	  more accurate and slower.
	flip_horizontal: mirror results, for webcams that deliver a mirrored image.
	output_stride: model stride; smaller is finer and slower.
	"""

	image_scale_factor: float = 0.2
	flip_horizontal: bool = False
	output_stride: int = 16

	def __post_init__(self) -> None:
		scale = float(self.image_scale_factor)
		if not (0.2 <= scale <= 1.0):
			raise ValueError(f"image_scale_factor must be within [0.2, 1.0], got {self.image_scale_factor!r}")
		if int(self.output_stride) not in VALID_OUTPUT_STRIDES:
			raise ValueError(f"output_stride must be one of {VALID_OUTPUT_STRIDES}, got {self.output_stride!r}")
		object.__setattr__(self, "image_scale_factor", scale)
		object.__setattr__(self, "flip_horizontal", bool(self.flip_horizontal))
		object.__setattr__(self, "output_stride", int(self.output_stride))

	def replace(self, **changes: Any) -> "DetectionOptions":
		return _dc_replace(self, **changes)

	def to_dict(self) -> Dict[str, Any]:
		return {
			"image_scale_factor": self.image_scale_factor,
			"flip_horizontal": self.flip_horizontal,
			"output_stride": self.output_stride,
		}


DEFAULT_DETECTION_OPTIONS = DetectionOptions()
