"""Pydantic request/response models for API validation and docs."""
from schemas.requests import DetectionOptionsPayload
from schemas.responses import EyePairResponse, EyePositionResponse, TrackerStatusResponse

__all__ = [
	"DetectionOptionsPayload",
	"EyePairResponse",
	"EyePositionResponse",
	"TrackerStatusResponse",
]
