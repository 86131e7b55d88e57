"""
Eye-position tracker.

Loads a pose model once, then runs one single-pose estimate per display
refresh tick on the latest video frame and publishes the two eye keypoints
as coordinates normalized to the video size.

Lifecycle:
	IDLE       no model yet (or no video yet)
	READY      model loaded and video delivering frames
	DETECTING  per-frame loop running
	CLOSED     stopped and model released
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from eyewatch.pose.base import PoseModel, PoseModelLoader
from eyewatch.pose.types import (
	DEFAULT_DETECTION_OPTIONS,
	DEFAULT_EYE_PAIR,
	DetectionOptions,
	EyePair,
	EyePosition,
	Keypoint,
	Pose,
)
from eyewatch.video_source import VideoSource

logger = logging.getLogger(__name__)

EYE_LABEL = "eye"

EyePairListener = Callable[[EyePair], None]


class TrackerState(str, Enum):
	IDLE = "idle"
	READY = "ready"
	DETECTING = "detecting"
	CLOSED = "closed"


class ModelState(str, Enum):
	ABSENT = "absent"
	LOADING = "loading"
	LOADED = "loaded"
	FAILED = "failed"
	RELEASED = "released"


def filter_eyes(keypoints: Iterable[Keypoint]) -> List[Keypoint]:
	"""Keypoints whose label contains "eye" (any case), in model order."""
	return [k for k in keypoints if EYE_LABEL in str(k.part).lower()]


def normalize_position(x: float, y: float, width: float, height: float) -> EyePosition:
	if width <= 0 or height <= 0:
		raise ValueError(f"video size must be positive, got {width}x{height}")
	return EyePosition(x=float(x) / float(width), y=float(y) / float(height))


def extract_eye_pair(pose: Pose, width: float, height: float) -> Optional[EyePair]:
	"""
	First two eye keypoints as (left, right), normalized to the video size.
	Returns None when the pose has fewer than two eye keypoints.
	"""
	eyes = filter_eyes(pose.keypoints)
	if len(eyes) < 2:
		return None
	left, right = eyes[0], eyes[1]
	return EyePair(
		left=normalize_position(left.x_px, left.y_px, width, height),
		right=normalize_position(right.x_px, right.y_px, width, height),
	)


def _release_late_model(fut: "asyncio.Future[PoseModel]") -> None:
	if fut.cancelled():
		return
	e = fut.exception()
	if e is not None:
		logger.debug("Abandoned pose model load failed: %r", e)
		return
	fut.result().close()
	logger.info("Pose model finished loading after close; released")


class FrameClock:
	"""
	Refresh-tick scheduler.

	tick() sleeps until the next multiple of the refresh period on the
	monotonic clock, so a slow cycle never drifts the following ones.
	refresh_hz <= 0 just yields to the event loop.
	"""

	def __init__(self, refresh_hz: float = 60.0, clock: Callable[[], float] = time.monotonic) -> None:
		self.refresh_hz = float(refresh_hz)
		self._clock = clock

	@property
	def period(self) -> float:
		return 1.0 / self.refresh_hz if self.refresh_hz > 0 else 0.0

	def delay(self) -> float:
		period = self.period
		if period <= 0.0:
			return 0.0
		now = self._clock()
		next_t = (math.floor(now / period) + 1) * period
		return max(0.0, next_t - now)

	async def tick(self) -> None:
		await asyncio.sleep(self.delay())


class EyePositionTracker:
	"""
	Owns the pose model handle and the single Eye Pair value.

	The loop is the only writer of `eyes`; any number of readers may poll the
	property or subscribe for updates.
	"""

	def __init__(
		self,
		video: VideoSource,
		loader: PoseModelLoader,
		options: DetectionOptions = DEFAULT_DETECTION_OPTIONS,
		clock: Optional[FrameClock] = None,
	) -> None:
		self._video = video
		self._loader = loader
		self._options = options
		self._clock = clock or FrameClock()

		self._state = TrackerState.IDLE
		self._model_state = ModelState.ABSENT
		self._model: Optional[PoseModel] = None
		self._load_task: Optional[asyncio.Task] = None
		self._run_task: Optional[asyncio.Task] = None
		self._stop = asyncio.Event()
		self._inflight = asyncio.Lock()
		self._estimate: Optional[asyncio.Future] = None

		self._eyes: EyePair = DEFAULT_EYE_PAIR
		self._listeners: List[EyePairListener] = []

		self._cycles = 0
		self._skipped = 0
		self._partial = 0
		self._errors = 0
		self._last_error: Optional[str] = None
		self._last_update_t: Optional[float] = None

	@property
	def eyes(self) -> EyePair:
		return self._eyes

	@property
	def state(self) -> TrackerState:
		return self._state

	@property
	def model_state(self) -> ModelState:
		return self._model_state

	@property
	def options(self) -> DetectionOptions:
		return self._options

	def set_options(self, options: DetectionOptions) -> None:
		"""Options apply from the next detection cycle on."""
		if options != self._options:
			logger.info("Detection options changed: %s", options.to_dict())
		self._options = options

	def subscribe(self, callback: EyePairListener) -> Callable[[], None]:
		self._listeners.append(callback)

		def _unsubscribe() -> None:
			try:
				self._listeners.remove(callback)
			except ValueError:
				pass

		return _unsubscribe

	def _publish(self, eyes: EyePair) -> None:
		self._eyes = eyes
		self._last_update_t = time.time()
		for cb in list(self._listeners):
			try:
				cb(eyes)
			except Exception:
				logger.exception("Eye pair listener failed")

	# Model lifecycle

	def start(self) -> asyncio.Task:
		"""Kick off the one-shot model load. Later calls return the same task."""
		if self._state is TrackerState.CLOSED:
			raise RuntimeError("tracker is closed")
		if self._load_task is None:
			self._load_task = asyncio.create_task(self._load_model(), name="pose-model-load")
		return self._load_task

	async def _load_model(self) -> PoseModel:
		self._model_state = ModelState.LOADING
		logger.info("Loading pose model")
		# Shielded so a cancelled load still gets to release a model that finishes late.
		inner = asyncio.ensure_future(self._loader())
		try:
			model = await asyncio.shield(inner)
		except asyncio.CancelledError:
			self._model_state = ModelState.RELEASED
			inner.add_done_callback(_release_late_model)
			raise
		except Exception as e:
			self._model_state = ModelState.FAILED
			self._last_error = f"model load failed: {e!r}"
			logger.error("Pose model load failed: %r", e)
			raise
		self._model = model
		self._model_state = ModelState.LOADED
		logger.info("Pose model loaded: %s", model.name())
		return model

	async def wait_loaded(self) -> PoseModel:
		"""Await the model; re-raises the load error if loading failed."""
		return await self.start()

	def _raise_if_load_failed(self) -> None:
		t = self._load_task
		if t is not None and t.done() and not t.cancelled():
			e = t.exception()
			if e is not None:
				raise e

	# Detection

	def _video_ready(self) -> bool:
		return self._video.video_width > 0 and self._video.video_height > 0

	async def detect_once(self) -> bool:
		"""
		Run one detection cycle. Returns True when a new Eye Pair was published.

		Skips (keeping the previous value) when the model or the video is not
		ready, or when fewer than two eye keypoints come back.
		"""
		model = self._model
		if model is None:
			self._skipped += 1
			return False
		frame = self._video.read_frame()
		width, height = self._video.video_width, self._video.video_height
		if frame is None or width <= 0 or height <= 0:
			self._skipped += 1
			return False
		if self._state is TrackerState.IDLE:
			self._state = TrackerState.READY
			logger.info("Tracker ready (model=%s, video=%dx%d)", model.name(), width, height)

		options = self._options
		async with self._inflight:
			if self._model is not model:
				# Released by close() while we waited for the lock.
				self._skipped += 1
				return False
			if self._state is TrackerState.READY:
				self._state = TrackerState.DETECTING
			# Shielded: a cancelled cycle must not hide a worker thread still using the model.
			self._estimate = asyncio.ensure_future(asyncio.to_thread(model.estimate_single_pose, frame, options))
			pose = await asyncio.shield(self._estimate)
			self._cycles += 1

		# Normalize in the pixel space of the frame the model saw.
		if pose.width > 0 and pose.height > 0:
			width, height = pose.width, pose.height
		eyes = extract_eye_pair(pose, width, height)
		if eyes is None:
			self._partial += 1
			logger.debug("Fewer than two eye keypoints (%d); keeping previous value", len(filter_eyes(pose.keypoints)))
			return False
		self._publish(eyes)
		return True

	async def run(self) -> None:
		"""
		Detection loop. Runs until stop()/close() or cancellation; raises if the
		model fails to load.
		"""
		self.start()
		logger.info("Detection loop started (refresh_hz=%.1f)", self._clock.refresh_hz)
		try:
			while not self._stop.is_set():
				self._raise_if_load_failed()
				try:
					await self.detect_once()
				except asyncio.CancelledError:
					raise
				except Exception as e:
					self._errors += 1
					self._last_error = f"estimation failed: {e!r}"
					logger.warning("Pose estimation failed: %r", e)
				await self._clock.tick()
		finally:
			if self._state is not TrackerState.CLOSED:
				self._state = TrackerState.READY if self._model is not None and self._video_ready() else TrackerState.IDLE
			logger.info("Detection loop stopped")

	def spawn(self) -> asyncio.Task:
		"""Start load + loop as a background task owned by the tracker."""
		if self._run_task is None or self._run_task.done():
			self._stop.clear()
			self._run_task = asyncio.create_task(self.run(), name="eye-tracker")
		return self._run_task

	def stop(self) -> None:
		self._stop.set()

	async def close(self) -> None:
		"""Stop the loop, wait for it to exit and release the model."""
		self.stop()
		t = self._run_task
		self._run_task = None
		if t is not None:
			try:
				await t
			except asyncio.CancelledError:
				pass
			except Exception as e:
				logger.debug("Detection loop ended with %r", e)
		self._state = TrackerState.CLOSED
		lt = self._load_task
		if lt is not None and not lt.done():
			lt.cancel()
			try:
				await lt
			except (asyncio.CancelledError, Exception):
				pass
		# Never release the model under a running estimate.
		async with self._inflight:
			est = self._estimate
			if est is not None and not est.done():
				await asyncio.wait({est})
			model, self._model = self._model, None
			if model is not None:
				model.close()
				self._model_state = ModelState.RELEASED
				logger.info("Pose model released")

	async def __aenter__(self) -> "EyePositionTracker":
		self.start()
		return self

	async def __aexit__(self, exc_type, exc, tb) -> None:
		await self.close()

	def get_status(self) -> Dict[str, Any]:
		return {
			"state": self._state.value,
			"model_state": self._model_state.value,
			"model": self._model.name() if self._model is not None else None,
			"running": bool(self._run_task is not None and not self._run_task.done()),
			"refresh_hz": self._clock.refresh_hz,
			"options": self._options.to_dict(),
			"cycles": self._cycles,
			"skipped_cycles": self._skipped,
			"partial_cycles": self._partial,
			"errors": self._errors,
			"last_error": self._last_error,
			"last_update_t": self._last_update_t,
			"eyes": self._eyes.to_dict(),
		}
