"""Pydantic response models for API docs."""
from typing import Any, Dict, Optional

from pydantic import BaseModel


class EyePositionResponse(BaseModel):
	x: float
	y: float


class EyePairResponse(BaseModel):
	"""Response from GET /eyes. Coordinates are fractions of the video size."""

	left: EyePositionResponse
	right: EyePositionResponse


class TrackerStatusResponse(BaseModel):
	"""Response from GET /tracker/status."""

	state: str
	model_state: str
	model: Optional[str] = None
	running: bool
	refresh_hz: float
	options: Dict[str, Any]
	cycles: int
	skipped_cycles: int
	partial_cycles: int
	errors: int
	last_error: Optional[str] = None
	last_update_t: Optional[float] = None
	eyes: EyePairResponse
