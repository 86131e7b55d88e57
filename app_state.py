"""
Explicit app state: single source of truth for the runtime lifecycle.
Created in lifespan, attached to app.state.state; injected into routes via Depends(get_state).
"""
from typing import Any, Callable, Optional

from eyewatch.config import AppConfig
from eyewatch.eye_tracker import EyePositionTracker
from eyewatch.video_source import VideoSource


class AppState:
	"""
	Holds all runtime state for the app.
	Populated in server lifespan; routes receive this instance via Depends(get_state).
	"""
	cfg: Optional[AppConfig] = None

	# Video input and tracker (set in lifespan)
	video: Optional[VideoSource] = None
	tracker: Optional[EyePositionTracker] = None

	# WebSocket fan-out (set at app load)
	manager: Any = None
	log_to_clients: Optional[Callable[[str], None]] = None

	# Unsubscribe handle for the eye pair -> WebSocket bridge
	unsubscribe_eyes: Optional[Callable[[], None]] = None
