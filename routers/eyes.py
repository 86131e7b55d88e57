"""Eye position and tracker routes. Routes: /eyes, /tracker/status, /detection/options."""
import logging

from fastapi import APIRouter, Depends, HTTPException

from deps import get_tracker
from eyewatch.eye_tracker import EyePositionTracker
from schemas.requests import DetectionOptionsPayload
from schemas.responses import EyePairResponse, TrackerStatusResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["eyes"])


@router.get("/eyes", response_model=EyePairResponse)
async def get_eyes(tracker: EyePositionTracker = Depends(get_tracker)):
	"""Current eye pair, normalized to the video size. (0,0) until the first detection."""
	return tracker.eyes.to_dict()


@router.get("/tracker/status", response_model=TrackerStatusResponse)
async def tracker_status(tracker: EyePositionTracker = Depends(get_tracker)):
	return tracker.get_status()


@router.get("/detection/options")
async def get_detection_options(tracker: EyePositionTracker = Depends(get_tracker)):
	return tracker.options.to_dict()


@router.put("/detection/options")
async def set_detection_options(payload: DetectionOptionsPayload, tracker: EyePositionTracker = Depends(get_tracker)):
	"""Update detection options; applies from the next detection cycle."""
	changes = payload.model_dump(exclude_none=True)
	try:
		options = tracker.options.replace(**changes)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	tracker.set_options(options)
	return options.to_dict()
