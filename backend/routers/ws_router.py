"""
WebSocket Hub — live state pushes for the presentation layer.

URL: /ws/{session_id}?viewer={player_id}

Connection flow:
  1. Validate the session exists (close 4404 otherwise), then accept
  2. Send private "connected" message with the viewer's state snapshot
  3. Message loop (handle_message dispatcher)
  4. On disconnect: detach this socket (a newer one for the same viewer stays)

Client → server message types handled here:
  ping   — keep-alive heartbeat → responds with "pong"
  start  — start the game, or rematch from any phase
  clue   — submit the viewer's clue for the current turn
  vote   — cast the viewer's vote (voting phase only)

Server → client:
  state  — full per-viewer snapshot after every committed transition
  error  — {code, message} for rejected commands
"""
import json
import logging
from collections import defaultdict
from typing import Any, Dict, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from models.game import GameState, HUMAN_PLAYER_ID
from services.session_service import SessionNotFound, get_session_service
from agents.turn_coordinator import InvalidAction, coordinator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["websocket"])


class ViewerHub:
    """
    One socket per (session, viewer). Reconnecting replaces the previous
    socket; the old one's disconnect then leaves the new one in place.
    """

    def __init__(self):
        self._sockets: Dict[str, Dict[str, WebSocket]] = defaultdict(dict)

    async def attach(self, session_id: str, viewer_id: str, ws: WebSocket) -> None:
        await ws.accept()
        replaced = self._sockets[session_id].get(viewer_id)
        self._sockets[session_id][viewer_id] = ws
        logger.debug(
            f"[{session_id}] viewer {viewer_id} attached"
            f"{' (replacing an older socket)' if replaced else ''}"
        )

    def detach(self, session_id: str, viewer_id: str, ws: Optional[WebSocket] = None) -> None:
        viewers = self._sockets.get(session_id)
        if viewers is None:
            return
        if ws is None or viewers.get(viewer_id) is ws:
            viewers.pop(viewer_id, None)
        if not viewers:
            del self._sockets[session_id]

    async def push(self, session_id: str, viewer_id: str, message: Dict[str, Any]) -> bool:
        """Send to one viewer. A failed send detaches that socket."""
        ws = self._sockets.get(session_id, {}).get(viewer_id)
        if ws is None:
            return False
        try:
            await ws.send_json(message)
        except Exception as exc:
            logger.warning(f"[{session_id}] push to {viewer_id} failed: {exc}")
            self.detach(session_id, viewer_id, ws)
            return False
        return True

    async def broadcast_state(self, state: GameState) -> None:
        """Each viewer gets their own projection (roles and word filtered)."""
        for viewer_id in list(self._sockets.get(state.id, ())):
            await self.push(state.id, viewer_id, {
                "type": "state",
                "state": state.to_public(viewer_id),
            })


# Wired into the turn coordinator as its broadcaster at startup
hub = ViewerHub()


@router.websocket("/ws/{session_id}")
async def websocket_endpoint(
    ws: WebSocket,
    session_id: str,
    viewer: str = Query(HUMAN_PLAYER_ID, description="Player id of the viewer"),
):
    state = get_session_service().get_session(session_id)
    if not state:
        await ws.close(code=4404, reason="Session not found")
        return

    await hub.attach(session_id, viewer, ws)
    await hub.push(session_id, viewer, {
        "type": "connected",
        "viewer": viewer,
        "state": state.to_public(viewer),
    })

    try:
        while True:
            raw = await ws.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await _send_error(session_id, viewer, "PARSE_ERROR", "Invalid JSON")
                continue
            if not isinstance(data, dict):
                await _send_error(session_id, viewer, "PARSE_ERROR", "Expected a JSON object")
                continue

            payload = data.get("data")
            await _handle_message(
                session_id, viewer, str(data.get("type", "")),
                payload if isinstance(payload, dict) else {},
            )

    except WebSocketDisconnect:
        logger.debug(f"[{session_id}] viewer {viewer} disconnected")
    finally:
        hub.detach(session_id, viewer, ws)


# ── Message dispatcher ─────────────────────────────────────────────────────────

async def _send_error(session_id: str, viewer: str, code: str, message: str) -> None:
    await hub.push(session_id, viewer, {"type": "error", "code": code, "message": message})


async def _handle_message(session_id: str, viewer: str, msg_type: str, data: Dict) -> None:
    try:
        await _dispatch_message(session_id, viewer, msg_type, data)
    except WebSocketDisconnect:
        raise
    except InvalidAction as exc:
        await _send_error(session_id, viewer, exc.code, str(exc))
    except SessionNotFound as exc:
        await _send_error(session_id, viewer, "NOT_FOUND", str(exc))
    except Exception:
        logger.exception(f"[{session_id}] Unhandled error for message type {msg_type!r}")
        await _send_error(session_id, viewer, "SERVER_ERROR", "Internal server error")


async def _dispatch_message(session_id: str, viewer: str, msg_type: str, data: Dict) -> None:
    if msg_type == "ping":
        await hub.push(session_id, viewer, {"type": "pong"})

    elif msg_type == "start":
        await coordinator.start_game(session_id)

    elif msg_type == "clue":
        text = str(data.get("text", ""))[:50]
        if not await coordinator.submit_clue(session_id, viewer, text):
            await _send_error(session_id, viewer, "EMPTY_CLUE", "Clue cannot be empty")

    elif msg_type == "vote":
        target: Optional[str] = data.get("target")
        await coordinator.cast_vote(session_id, viewer, str(target or ""))

    else:
        await _send_error(session_id, viewer, "UNKNOWN_TYPE", f"Unknown message type: '{msg_type}'")
