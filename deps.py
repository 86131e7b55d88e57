"""
FastAPI dependencies. Use Depends(get_state) / Depends(get_tracker) in route handlers.
"""
from fastapi import HTTPException, Request

from app_state import AppState
from eyewatch.eye_tracker import EyePositionTracker


def get_state(request: Request) -> AppState:
	"""Return the app state instance attached in lifespan."""
	return request.app.state.state


def get_tracker(request: Request) -> EyePositionTracker:
	"""Return the running tracker, or 503 while the app has none."""
	tracker = get_state(request).tracker
	if tracker is None:
		raise HTTPException(status_code=503, detail="Eye tracker not available")
	return tracker
