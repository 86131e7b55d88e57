import asyncio
import threading
import time
from typing import Any, Dict, List, Optional

import pytest

from eyewatch.pose.base import PoseModel
from eyewatch.pose.types import DetectionOptions, Keypoint, Pose
from eyewatch.video_source import VideoSource


def kp(part: str, x: float, y: float, score: float = 0.9) -> Keypoint:
	return Keypoint(part=part, x_px=x, y_px=y, score=score)


EYES_KEYPOINTS = [
	kp("nose", 150, 60),
	kp("leftEye", 100, 50),
	kp("rightEye", 200, 50),
	kp("leftEar", 80, 55),
]


class FakeVideo(VideoSource):
	def __init__(self, width: int = 400, height: int = 200, frame: Any = "frame") -> None:
		self.width = width
		self.height = height
		self.frame = frame
		self.started = False
		self.stopped = False

	def name(self) -> str:
		return "fake_video"

	def start(self) -> None:
		self.started = True

	def stop(self) -> None:
		self.stopped = True

	@property
	def video_width(self) -> int:
		return self.width

	@property
	def video_height(self) -> int:
		return self.height

	def read_frame(self) -> Optional[Any]:
		return self.frame

	def get_status(self) -> Dict[str, Any]:
		return {"backend": self.name(), "width": self.width, "height": self.height}


class FakeModel(PoseModel):
	"""Returns a fixed keypoint list; records every call and concurrent use."""

	def __init__(self, keypoints: List[Keypoint], delay: float = 0.0) -> None:
		self.keypoints = list(keypoints)
		self.delay = delay
		self.calls: List[DetectionOptions] = []
		self.closed = False
		self._lock = threading.Lock()
		self._active = 0
		self.max_active = 0

	def name(self) -> str:
		return "fake_model"

	def estimate_single_pose(self, frame: Any, options: DetectionOptions) -> Pose:
		with self._lock:
			self._active += 1
			self.max_active = max(self.max_active, self._active)
		try:
			if self.delay:
				time.sleep(self.delay)
			self.calls.append(options)
			return Pose(keypoints=list(self.keypoints), score=0.9)
		finally:
			with self._lock:
				self._active -= 1

	def close(self) -> None:
		self.closed = True


def loader_for(model: PoseModel):
	async def _load() -> PoseModel:
		return model

	return _load


async def wait_for(predicate, timeout: float = 2.0) -> None:
	deadline = time.monotonic() + timeout
	while not predicate():
		if time.monotonic() > deadline:
			raise AssertionError("condition not met in time")
		await asyncio.sleep(0.005)


@pytest.fixture
def fake_video() -> FakeVideo:
	return FakeVideo()


@pytest.fixture
def fake_model() -> FakeModel:
	return FakeModel(EYES_KEYPOINTS)
