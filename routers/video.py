"""Video source routes. Routes: /video/status."""
from fastapi import APIRouter, Depends, HTTPException

from app_state import AppState
from deps import get_state

router = APIRouter(tags=["video"])


@router.get("/video/status")
async def video_status(state: AppState = Depends(get_state)):
	if state.video is None:
		raise HTTPException(status_code=503, detail="Video source not available")
	return state.video.get_status()
