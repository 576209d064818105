"""
Agent HTTP Server - exposes ConversationAgent over HTTP and WebSocket.

Uses aiohttp for a lightweight embedded server that runs within the existing
asyncio loop. Each request is its own task, so different sessions are served
concurrently; requests for the same session queue on the executor's per-key
lock.

Routes:
    POST   /api/session/new           create a session
    POST   /api/session/message       {"sessionId"?, "message"} -> AgentResponse
    GET    /api/session/{id}/history  session metadata + history
    DELETE /api/session/{id}          forget a session
    GET    /ws                        WebSocket, JSON requests or plain text
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

from aiohttp import WSMsgType, web

from convograph.errors import StoreError, UnknownSession
from convograph.runtime.agent import ConversationAgent

logger = logging.getLogger(__name__)


@dataclass
class AgentServerConfig:
    """Configuration for the agent HTTP server."""

    host: str = "127.0.0.1"
    port: int = 8080


def _parse_session_request(body: Any) -> tuple[str | None, str] | None:
    """Extract (sessionId, message) from a decoded request, None if malformed."""
    if not isinstance(body, dict):
        return None
    message = body.get("message")
    if not isinstance(message, str) or not message:
        return None
    session_id = body.get("sessionId") or body.get("session_id")
    if session_id is not None and not isinstance(session_id, str):
        return None
    return session_id, message


class AgentServer:
    """
    Embedded HTTP/WebSocket server in front of a ConversationAgent.

    Lifecycle:
        server = AgentServer(agent, AgentServerConfig(port=0))
        await server.start()
        # ... server running on server.port ...
        await server.stop()
    """

    def __init__(
        self,
        agent: ConversationAgent,
        config: AgentServerConfig | None = None,
    ):
        self._agent = agent
        self._config = config or AgentServerConfig()
        self._app: web.Application | None = None
        self._runner: web.AppRunner | None = None
        self._site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        """Create the aiohttp application with all routes registered."""
        app = web.Application()
        app.router.add_post("/api/session/new", self._handle_new_session)
        app.router.add_post("/api/session/message", self._handle_message)
        app.router.add_get("/api/session/{session_id}/history", self._handle_history)
        app.router.add_delete("/api/session/{session_id}", self._handle_delete)
        app.router.add_get("/ws", self._handle_websocket)
        return app

    async def start(self) -> None:
        """Start the HTTP server."""
        self._app = self.build_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        self._site = web.TCPSite(
            self._runner,
            self._config.host,
            self._config.port,
        )
        await self._site.start()
        logger.info(f"🌐 Agent server started on {self._config.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the HTTP server gracefully."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            self._app = None
            self._site = None
            logger.info("Agent server stopped")

    async def _handle_new_session(self, request: web.Request) -> web.Response:
        label = None
        if request.can_read_body:
            try:
                body = await request.json()
            except (json.JSONDecodeError, ValueError):
                return web.json_response({"error": "Invalid JSON"}, status=400)
            if isinstance(body, dict) and isinstance(body.get("label"), str):
                label = body["label"]
        session = self._agent.new_session(label=label)
        return web.json_response(session.model_dump(mode="json", by_alias=True))

    async def _handle_message(self, request: web.Request) -> web.Response:
        try:
            body = await request.json()
        except (json.JSONDecodeError, ValueError):
            return web.json_response({"error": "Invalid JSON"}, status=400)

        parsed = _parse_session_request(body)
        if parsed is None:
            return web.json_response({"error": "Message is required"}, status=400)

        session_id, message = parsed
        response = await self._agent.handle_message(session_id, message)
        return web.json_response(response.to_wire())

    async def _handle_history(self, request: web.Request) -> web.Response:
        session_id = request.match_info["session_id"]
        try:
            history = await self._agent.session_history(session_id)
        except UnknownSession as e:
            return web.json_response({"error": str(e)}, status=404)
        except StoreError as e:
            logger.error(f"❌ {e}")
            return web.json_response({"error": str(e)}, status=500)
        return web.json_response(history.to_wire())

    async def _handle_delete(self, request: web.Request) -> web.Response:
        session_id = request.match_info["session_id"]
        self._agent.delete_session(session_id)
        return web.json_response({"status": "deleted"})

    async def _handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """
        One conversation channel per connection.

        JSON frames shaped like the message endpoint's body get an
        AgentResponse JSON frame back. Any other text frame is treated as
        plain user input for a session owned by this connection and is
        answered with the reply text only.
        """
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        default_session_id: str | None = None
        logger.info("🔌 WebSocket client connected")

        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.warning(f"WebSocket closed with exception {ws.exception()}")
                break
            if msg.type != WSMsgType.TEXT:
                continue

            try:
                parsed = _parse_session_request(json.loads(msg.data))
            except (json.JSONDecodeError, ValueError):
                parsed = None

            if parsed is not None:
                session_id, message = parsed
                response = await self._agent.handle_message(session_id, message)
                await ws.send_json(response.to_wire())
                continue

            if default_session_id is None:
                default_session_id = self._agent.new_session().session_id
            response = await self._agent.handle_message(default_session_id, msg.data)
            default_session_id = response.session_id
            await ws.send_str(response.response)

        logger.info("🔌 WebSocket client disconnected")
        return ws

    @property
    def is_running(self) -> bool:
        """Check if the server is running."""
        return self._site is not None

    @property
    def port(self) -> int | None:
        """Return the actual listening port (useful when configured with port=0)."""
        if self._site and self._site._server and self._site._server.sockets:
            return self._site._server.sockets[0].getsockname()[1]
        return None
