from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable

from eyewatch.pose.types import DetectionOptions, Pose


class PoseModel(ABC):
	"""
	Loaded single-person pose model.

	Implementations take a BGR frame (H,W,3 uint8) and return a Pose whose
	keypoint positions are in the frame's own pixel space, whatever the options.
	"""

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def estimate_single_pose(self, frame: Any, options: DetectionOptions) -> Pose: ...

	@abstractmethod
	def close(self) -> None: ...


# Zero-arg async factory; called exactly once per tracker.
PoseModelLoader = Callable[[], Awaitable[PoseModel]]
