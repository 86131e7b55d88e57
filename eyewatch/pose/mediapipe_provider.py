from __future__ import annotations

import asyncio
import logging
import re
import threading
from typing import Any, Dict, Optional

from eyewatch.config import PoseConfig
from eyewatch.pose.base import PoseModel
from eyewatch.pose.types import DEFAULT_DETECTION_OPTIONS, DetectionOptions, Keypoint, Pose

logger = logging.getLogger(__name__)


# PoseNet-style part names, in the order keypoints are returned.
POSENET17_PARTS = [
	"nose",
	"leftEye",
	"rightEye",
	"leftEar",
	"rightEar",
	"leftShoulder",
	"rightShoulder",
	"leftElbow",
	"rightElbow",
	"leftWrist",
	"rightWrist",
	"leftHip",
	"rightHip",
	"leftKnee",
	"rightKnee",
	"leftAnkle",
	"rightAnkle",
]


def _landmark_name(part: str) -> str:
	# "leftEye" -> "LEFT_EYE"
	return re.sub(r"([A-Z])", r"_\1", part).upper()


# Smaller stride -> finer output -> heavier MediaPipe graph.
STRIDE_TO_COMPLEXITY = {8: 2, 16: 1, 32: 0}


class MediaPipePoseModel(PoseModel):
	"""
	MediaPipe Pose behind the single-pose estimator interface.

	Notes:
	- MediaPipe uses normalized coordinates; we convert to full-frame pixels, so
	  `image_scale_factor` only changes the inference input size.
	- `flip_horizontal` mirrors x positions (x -> width - x), labels untouched.
	- `visibility` is used as score (best-effort).
	- One MediaPipe graph is built lazily per model complexity.
	"""

	def __init__(self, cfg: Optional[PoseConfig] = None) -> None:
		try:
			import mediapipe as mp  # type: ignore
		except ImportError as e:
			raise RuntimeError("MediaPipe is not installed. Install it with: pip install mediapipe") from e
		try:
			import cv2  # type: ignore
		except ImportError as e:
			raise RuntimeError("OpenCV is not installed. Install it with: pip install opencv-python") from e

		self._mp = mp
		self._cv2 = cv2
		self._cfg = cfg or PoseConfig()
		self._lock = threading.Lock()
		self._graphs: Dict[int, Any] = {}

		PL = mp.solutions.pose.PoseLandmark
		self._landmarks = [(part, getattr(PL, _landmark_name(part))) for part in POSENET17_PARTS]

		# Build the default graph now so load failures surface at load time.
		self._graph_for(DEFAULT_DETECTION_OPTIONS.output_stride)

	def name(self) -> str:
		return "mediapipe_pose"

	def _graph_for(self, output_stride: int) -> Any:
		complexity = STRIDE_TO_COMPLEXITY.get(int(output_stride), 1)
		with self._lock:
			graph = self._graphs.get(complexity)
			if graph is None:
				logger.info("Building MediaPipe Pose graph (model_complexity=%d)", complexity)
				graph = self._mp.solutions.pose.Pose(
					static_image_mode=False,
					model_complexity=complexity,
					enable_segmentation=False,
					smooth_landmarks=True,
					min_detection_confidence=float(self._cfg.min_detection_confidence),
					min_tracking_confidence=float(self._cfg.min_tracking_confidence),
				)
				self._graphs[complexity] = graph
			return graph

	def estimate_single_pose(self, frame: Any, options: DetectionOptions) -> Pose:
		# frame: HxWx3 BGR
		h, w = int(frame.shape[0]), int(frame.shape[1])
		cv2 = self._cv2
		img = frame
		if options.image_scale_factor < 1.0:
			sw = max(1, int(round(w * options.image_scale_factor)))
			sh = max(1, int(round(h * options.image_scale_factor)))
			img = cv2.resize(img, (sw, sh), interpolation=cv2.INTER_AREA)
		rgb = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)

		graph = self._graph_for(options.output_stride)
		res = graph.process(rgb)
		if not res or not getattr(res, "pose_landmarks", None):
			return Pose(keypoints=[], score=0.0, width=w, height=h)

		lm = res.pose_landmarks.landmark
		keypoints = []
		for part, idx in self._landmarks:
			p = lm[int(idx)]
			x = float(p.x) * float(w)
			if options.flip_horizontal:
				x = float(w) - x
			keypoints.append(
				Keypoint(
					part=part,
					x_px=x,
					y_px=float(p.y) * float(h),
					score=float(getattr(p, "visibility", 0.0) or 0.0),
				)
			)
		score = sum(k.score for k in keypoints) / len(keypoints) if keypoints else 0.0
		return Pose(keypoints=keypoints, score=score, width=w, height=h)

	def close(self) -> None:
		with self._lock:
			graphs = list(self._graphs.values())
			self._graphs.clear()
		for graph in graphs:
			try:
				graph.close()
			except Exception as e:
				logger.debug("MediaPipe graph close failed: %r", e)


async def load_mediapipe_model(cfg: Optional[PoseConfig] = None) -> MediaPipePoseModel:
	"""
	Build the model off the event loop; graph construction loads model files.
	"""
	return await asyncio.to_thread(MediaPipePoseModel, cfg)
