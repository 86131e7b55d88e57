"""
Pose estimation adapters.

This package defines a model-agnostic single-pose interface and a MediaPipe
Pose adapter, so the eye tracker never talks to an ML library directly.
"""

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

__all__ = [
	"DEFAULT_DETECTION_OPTIONS",
	"DEFAULT_EYE_PAIR",
	"DetectionOptions",
	"EyePair",
	"EyePosition",
	"Keypoint",
	"Pose",
	"PoseModel",
	"PoseModelLoader",
]
