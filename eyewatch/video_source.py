from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

from eyewatch.config import AppConfig, CameraConfig, get_config

logger = logging.getLogger(__name__)


class VideoSource(ABC):
	"""
	Live video handle: current frame dimensions plus the latest frame.

	`video_width`/`video_height` stay 0 until the first frame arrives.
	"""

	@abstractmethod
	def name(self) -> str: ...

	@abstractmethod
	def start(self) -> None: ...

	@abstractmethod
	def stop(self) -> None: ...

	@property
	@abstractmethod
	def video_width(self) -> int: ...

	@property
	@abstractmethod
	def video_height(self) -> int: ...

	@abstractmethod
	def read_frame(self) -> Optional[Any]:
		"""Latest frame (H,W,3 BGR) or None. Never blocks."""
		...

	@abstractmethod
	def get_status(self) -> Dict[str, Any]: ...


@dataclass
class _LatestFrame:
	image: Any
	t_host: float
	frame_idx: int


class OpenCVWebcamSource(VideoSource):
	"""
	Webcam capture via OpenCV.

	- The capture device lives in a daemon thread to keep teardown predictable.
	- Only the latest frame is kept; readers never wait for the camera.
	"""

	def __init__(self, cfg: Optional[CameraConfig] = None) -> None:
		self._cfg = cfg or CameraConfig()
		self._lock = threading.Lock()
		self._running = False
		self._thread: Optional[threading.Thread] = None
		self._latest: Optional[_LatestFrame] = None
		self._width = 0
		self._height = 0
		self._last_error: Optional[str] = None

	def name(self) -> str:
		return "opencv_webcam"

	@property
	def video_width(self) -> int:
		with self._lock:
			return self._width

	@property
	def video_height(self) -> int:
		with self._lock:
			return self._height

	def is_running(self) -> bool:
		with self._lock:
			return bool(self._running)

	def get_status(self) -> Dict[str, Any]:
		with self._lock:
			return {
				"backend": self.name(),
				"camera_index": int(self._cfg.index),
				"running": bool(self._running),
				"has_frame": self._latest is not None,
				"t_last_frame": self._latest.t_host if self._latest else None,
				"frame_idx": self._latest.frame_idx if self._latest else None,
				"width": self._width,
				"height": self._height,
				"error": self._last_error,
			}

	def read_frame(self) -> Optional[Any]:
		with self._lock:
			return self._latest.image if self._latest is not None else None

	def start(self) -> None:
		with self._lock:
			if self._running:
				return
			self._running = True
			self._last_error = None

		t = threading.Thread(target=self._run_capture_loop, name="webcam-capture", daemon=True)
		self._thread = t
		t.start()

	def stop(self) -> None:
		with self._lock:
			self._running = False

		# Capture release happens in the capture thread; we just wait briefly for exit.
		t = self._thread
		if t and t.is_alive():
			t.join(timeout=3.0)
		self._thread = None

	def _open_capture(self, cv2: Any) -> Any:
		cap = cv2.VideoCapture(int(self._cfg.index))
		if not cap.isOpened():
			cap.release()
			raise RuntimeError(f"could not open camera index {self._cfg.index}")
		cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
		if self._cfg.width:
			cap.set(cv2.CAP_PROP_FRAME_WIDTH, int(self._cfg.width))
		if self._cfg.height:
			cap.set(cv2.CAP_PROP_FRAME_HEIGHT, int(self._cfg.height))
		if self._cfg.fps:
			cap.set(cv2.CAP_PROP_FPS, int(self._cfg.fps))
		return cap

	def _run_capture_loop(self) -> None:
		try:
			import cv2  # type: ignore
		except ImportError as e:
			with self._lock:
				self._last_error = f"opencv import failed: {e!r}"
				self._running = False
			logger.error("OpenCV not available: %r", e)
			return

		cap = None
		frame_idx = 0
		try:
			cap = self._open_capture(cv2)
			logger.info("Webcam %d opened", self._cfg.index)
			while self.is_running():
				ok, image = cap.read()
				if not ok or image is None:
					time.sleep(0.01)
					continue
				frame_idx += 1
				h, w = int(image.shape[0]), int(image.shape[1])
				with self._lock:
					self._latest = _LatestFrame(image=image, t_host=time.time(), frame_idx=frame_idx)
					self._width = w
					self._height = h
		except Exception as e:
			logger.exception("Webcam capture loop failed")
			with self._lock:
				self._last_error = f"camera loop error: {e!r}"
		finally:
			with self._lock:
				self._running = False
			if cap is not None:
				cap.release()


def get_video_source(cfg: Optional[AppConfig] = None, *, camera_override: Optional[int] = None) -> VideoSource:
	cfg = cfg or get_config()
	cam = cfg.camera
	if camera_override is not None:
		# NOTE: camera index 0 is valid, so compare against None.
		cam = CameraConfig(index=int(camera_override), width=cam.width, height=cam.height, fps=cam.fps)
	return OpenCVWebcamSource(cam)
