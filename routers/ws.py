"""WebSocket endpoint and ConnectionManager. Route: /ws."""
import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from eyewatch.pose.types import EyePair

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ws"])


def eyes_message(eyes: EyePair) -> Dict[str, Any]:
	msg: Dict[str, Any] = {"type": "eyes"}
	msg.update(eyes.to_dict())
	msg["t"] = time.time()
	return msg


class ConnectionManager:
	def __init__(self, send_timeout: float = 1.0) -> None:
		self._clients: Set[WebSocket] = set()
		self._lock = asyncio.Lock()
		self._send_timeout = float(send_timeout)
		# Latest-only slot drained by a single pump task.
		self._pending: Optional[Dict[str, Any]] = None
		self._pump_task: Optional[asyncio.Task] = None

	@property
	def client_count(self) -> int:
		return len(self._clients)

	async def connect(self, websocket: WebSocket) -> None:
		await websocket.accept()
		async with self._lock:
			self._clients.add(websocket)

	async def disconnect(self, websocket: WebSocket) -> None:
		async with self._lock:
			self._clients.discard(websocket)

	async def broadcast_json(self, message: Dict[str, Any]) -> None:
		payload = json.dumps(message, separators=(",", ":"))
		async with self._lock:
			if not self._clients:
				return
			send_tasks = []
			for ws in list(self._clients):
				send_tasks.append(self._send(ws, payload))
			await asyncio.gather(*send_tasks, return_exceptions=True)

	def broadcast_latest(self, message: Dict[str, Any]) -> None:
		"""
		Queue a message for all clients, replacing any not yet sent.
		At most one broadcast runs at a time, so a slow client cannot pile up work.
		"""
		self._pending = message
		if self._pump_task is None or self._pump_task.done():
			self._pump_task = asyncio.get_running_loop().create_task(self._pump(), name="ws-broadcast")

	async def _pump(self) -> None:
		while self._pending is not None:
			message, self._pending = self._pending, None
			await self.broadcast_json(message)

	async def aclose(self) -> None:
		self._pending = None
		t, self._pump_task = self._pump_task, None
		if t is not None and not t.done():
			t.cancel()
			try:
				await t
			except asyncio.CancelledError:
				pass

	async def _send(self, ws: WebSocket, payload: str) -> None:
		try:
			await asyncio.wait_for(ws.send_text(payload), timeout=self._send_timeout)
		except Exception as e:
			logger.debug("WebSocket send failed (%r); dropping client", e)
			self._clients.discard(ws)
			try:
				await asyncio.wait_for(ws.close(), timeout=self._send_timeout)
			except Exception:
				pass


@router.websocket("/ws")
async def ws_endpoint(websocket: WebSocket):
	state = websocket.app.state.state
	manager = state.manager
	await manager.connect(websocket)
	try:
		# New clients get the current value right away instead of waiting for the next cycle.
		tracker = state.tracker
		if tracker is not None:
			await websocket.send_text(json.dumps(eyes_message(tracker.eyes), separators=(",", ":")))
		while True:
			await websocket.receive_text()
	except WebSocketDisconnect:
		pass
	finally:
		await manager.disconnect(websocket)
