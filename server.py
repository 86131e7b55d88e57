import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from typing import Callable, Optional, Set

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app_state import AppState
from eyewatch import __version__
from eyewatch.config import AppConfig, get_config, set_config_path
from eyewatch.eye_tracker import EyePositionTracker, FrameClock
from eyewatch.pose.base import PoseModelLoader
from eyewatch.pose.types import DetectionOptions, EyePair
from eyewatch.video_source import VideoSource, get_video_source
from routers import eyes as eyes_router
from routers import video as video_router
from routers import ws as ws_router
from routers.ws import ConnectionManager, eyes_message

logger = logging.getLogger("eyewatch.server")


def _clients_logger(manager: ConnectionManager) -> Callable[[str], None]:
	tasks: Set[asyncio.Task] = set()

	def _log_to_clients(message: str) -> None:
		"""
		Send a log line to all connected WebSocket clients.
		Fire-and-forget; safe to call from non-async code.
		"""
		try:
			t = asyncio.get_running_loop().create_task(manager.broadcast_json({"type": "log", "msg": message}))
		except RuntimeError:
			# No running loop yet; ignore
			return
		tasks.add(t)
		t.add_done_callback(tasks.discard)

	return _log_to_clients


def _eyes_broadcaster(manager: ConnectionManager) -> Callable[[EyePair], None]:
	def _broadcast_eyes(eyes: EyePair) -> None:
		if manager.client_count == 0:
			return
		manager.broadcast_latest(eyes_message(eyes))

	return _broadcast_eyes


def _default_loader(cfg: AppConfig) -> PoseModelLoader:
	async def _load():
		from eyewatch.pose.mediapipe_provider import load_mediapipe_model

		return await load_mediapipe_model(cfg.pose)

	return _load


def _options_from_config(cfg: AppConfig) -> DetectionOptions:
	d = cfg.detection
	return DetectionOptions(
		image_scale_factor=d.image_scale_factor,
		flip_horizontal=d.flip_horizontal,
		output_stride=d.output_stride,
	)


def create_app(
	cfg: Optional[AppConfig] = None,
	*,
	video: Optional[VideoSource] = None,
	loader: Optional[PoseModelLoader] = None,
) -> FastAPI:
	"""
	Build the app. `video` and `loader` default to the configured webcam and
	MediaPipe Pose; tests pass fakes.
	"""
	cfg = cfg or get_config()

	@asynccontextmanager
	async def lifespan(app: FastAPI):
		state = AppState()
		state.cfg = cfg
		manager = ConnectionManager()
		log_to_clients = _clients_logger(manager)
		state.manager = manager
		state.log_to_clients = log_to_clients
		state.video = video or get_video_source(cfg)
		state.tracker = EyePositionTracker(
			state.video,
			loader or _default_loader(cfg),
			options=_options_from_config(cfg),
			clock=FrameClock(cfg.tracker.refresh_hz),
		)
		app.state.state = state
		try:
			state.video.start()
			state.unsubscribe_eyes = state.tracker.subscribe(_eyes_broadcaster(manager))
			task = state.tracker.spawn()

			def _on_tracker_done(t: asyncio.Task) -> None:
				if t.cancelled():
					return
				e = t.exception()
				if e is not None:
					log_to_clients(f"[Tracker] stopped: {e!r}")

			task.add_done_callback(_on_tracker_done)
			logger.info("eyewatch %s started (camera=%d)", __version__, cfg.camera.index)
			yield
		finally:
			if state.unsubscribe_eyes is not None:
				state.unsubscribe_eyes()
				state.unsubscribe_eyes = None
			await state.tracker.close()
			state.video.stop()
			await manager.aclose()
			logger.info("eyewatch stopped")

	app = FastAPI(title="eyewatch", version=__version__, lifespan=lifespan)
	app.add_middleware(
		CORSMiddleware,
		allow_origins=["*"],
		allow_credentials=True,
		allow_methods=["*"],
		allow_headers=["*"],
	)
	app.include_router(eyes_router.router)
	app.include_router(video_router.router)
	app.include_router(ws_router.router)
	return app


app = create_app()


def main(argv: Optional[list[str]] = None) -> int:
	p = argparse.ArgumentParser(description="Webcam eye-position tracker (pose model -> normalized eye coordinates).")
	p.add_argument("--config", default=None, help="Path to config.json (optional)")
	p.add_argument("--host", default=None, help="Bind address (default from config)")
	p.add_argument("--port", type=int, default=None, help="Bind port (default from config)")
	p.add_argument("--camera", type=int, default=None, help="Webcam index override")
	p.add_argument("--debug", action="store_true", help="Enable debug logging.")
	args = p.parse_args(argv)

	if args.config:
		set_config_path(args.config)
	cfg = get_config()

	level = logging.DEBUG if args.debug else getattr(logging, cfg.log.level, logging.INFO)
	logging.basicConfig(level=level, format='%(levelname)s:%(name)s:%(message)s')

	video = get_video_source(cfg, camera_override=args.camera)
	try:
		uvicorn.run(
			create_app(cfg, video=video),
			host=args.host or cfg.server.host,
			port=int(args.port or cfg.server.port),
			log_level="debug" if args.debug else "info",
		)
	except KeyboardInterrupt:
		pass
	except Exception as e:
		logging.exception("Fatal error: %s", e)
		return 1
	return 0


if __name__ == "__main__":
	sys.exit(main())
