"""Pydantic request body models."""
from typing import Literal, Optional

from pydantic import BaseModel, Field


class DetectionOptionsPayload(BaseModel):
	"""Request body for PUT /detection/options. Omitted fields keep their current value."""

	image_scale_factor: Optional[float] = Field(None, ge=0.2, le=1.0, description="Input downscale before inference")
	flip_horizontal: Optional[bool] = Field(None, description="Mirror x positions (mirrored webcams)")
	output_stride: Optional[Literal[8, 16, 32]] = Field(None, description="Model stride; smaller is finer and slower")
