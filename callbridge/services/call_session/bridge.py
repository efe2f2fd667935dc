"""Media stream bridge between Twilio and the ElevenLabs agent."""
import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from starlette.websockets import WebSocketDisconnect
from websockets.exceptions import ConnectionClosed

from callbridge.services.agent import protocol
from callbridge.services.agent.service import AgentUnavailableError, VoiceAgentService
from callbridge.services.call_session.models import (
    BridgeState,
    CallSession,
    close_agent_socket,
    close_carrier_socket,
)
from callbridge.services.call_session.registry import SessionRegistry
from callbridge.services.monitoring.live_calls import LiveCallMonitor
from callbridge.services.persistence.calls import CallLogService

logger = logging.getLogger(__name__)

DEFAULT_BUSINESS_NAME = "Our Business"

FrameHandler = Callable[[Dict[str, Any]], Awaitable[None]]


class MediaStreamBridge:
    """Accepts carrier media streams and bridges each one to the voice agent."""

    def __init__(
        self,
        registry: SessionRegistry,
        agent_service: VoiceAgentService,
        call_log: Optional[CallLogService] = None,
        monitor: Optional[LiveCallMonitor] = None,
    ):
        self.registry = registry
        self.agent_service = agent_service
        self.call_log = call_log
        self.monitor = monitor

    async def handle_connection(
        self,
        websocket: Any,
        agent_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        call_id: Optional[str] = None,
    ) -> "BridgeConnection":
        """Run one accepted carrier connection until the call ends."""
        connection = BridgeConnection(self, websocket, agent_id=agent_id, tenant_id=tenant_id, call_id=call_id)
        await connection.run()
        return connection


class BridgeConnection:
    """
    State machine for one carrier connection.

    AWAIT_START -> STREAMING -> CLOSING -> CLOSED. Carrier frames are read by
    ``run`` and agent frames by a task started on "start"; each direction is
    handled in receipt order and only ever writes to this call's sockets.
    """

    def __init__(
        self,
        bridge: MediaStreamBridge,
        websocket: Any,
        agent_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        call_id: Optional[str] = None,
    ):
        self.bridge = bridge
        self.websocket = websocket
        self.agent_id = agent_id
        self.tenant_id = tenant_id
        self.call_id = call_id
        self.state = BridgeState.AWAIT_START
        self.session: Optional[CallSession] = None
        self.dropped_media_frames = 0
        self._agent_task: Optional[asyncio.Task] = None
        self._announced = False

        self._carrier_handlers: Dict[str, FrameHandler] = {
            "connected": self._on_connected,
            "start": self._on_start,
            "media": self._on_media,
            "stop": self._on_stop,
            "mark": self._on_mark,
        }
        self._agent_handlers: Dict[str, FrameHandler] = {
            "conversation_initiation_metadata": self._on_initiation_metadata,
            "audio": self._on_agent_audio,
            "interruption": self._on_interruption,
            "ping": self._on_ping,
            "agent_response": self._on_agent_response,
            "user_transcript": self._on_user_transcript,
            "error": self._on_agent_error,
        }

    @property
    def stream_sid(self) -> Optional[str]:
        return self.session.stream_sid if self.session else None

    @property
    def _finished(self) -> bool:
        return self.state in (BridgeState.CLOSING, BridgeState.CLOSED)

    # Carrier leg

    async def run(self) -> None:
        """Read carrier frames until the stream stops or either socket closes."""
        logger.info(f"[MEDIA STREAM] Twilio connected to media stream (call {self.call_id})")
        try:
            while not self._finished:
                try:
                    raw = await self.websocket.receive_text()
                except WebSocketDisconnect as e:
                    logger.info(f"[MEDIA STREAM] Twilio disconnected: code={e.code}, stream={self.stream_sid}")
                    break
                except RuntimeError:
                    # socket was closed from the agent side or by a forced shutdown
                    break
                await self._dispatch(raw, self._carrier_handlers, "event", "Twilio")
        except Exception as e:
            logger.error(
                f"[MEDIA STREAM] Error on Twilio stream {self.stream_sid}: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
        finally:
            await self.close("carrier disconnected")

    async def _dispatch(self, raw: Any, handlers: Dict[str, FrameHandler], key: str, source: str) -> None:
        """Parse a frame and route it. Malformed and unknown frames are logged and skipped."""
        try:
            message = json.loads(raw)
            if not isinstance(message, dict):
                raise ValueError("frame is not a JSON object")
        except (TypeError, ValueError) as e:
            logger.warning(f"[MEDIA STREAM] Malformed {source} frame on stream {self.stream_sid}: {e}")
            return

        frame_type = message.get(key)
        handler = handlers.get(frame_type)
        if handler is None:
            logger.debug(f"[MEDIA STREAM] Unhandled {source} {key}: {frame_type}")
            return

        try:
            await handler(message)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning(
                f"[MEDIA STREAM] Malformed {source} '{frame_type}' frame on stream {self.stream_sid}: "
                f"{type(e).__name__}: {str(e)}"
            )

    async def _on_connected(self, message: Dict[str, Any]) -> None:
        logger.info(f"[MEDIA STREAM] Twilio stream connected for protocol: {message.get('protocol')}")

    async def _on_start(self, message: Dict[str, Any]) -> None:
        if self.session is not None:
            logger.warning(f"[MEDIA STREAM] Ignoring repeated start for stream {self.stream_sid}")
            return

        start = message.get("start") or {}
        stream_sid = start.get("streamSid") or message.get("streamSid")
        if not stream_sid:
            raise ValueError("start frame without streamSid")

        custom_parameters = {key: str(value) for key, value in (start.get("customParameters") or {}).items()}
        session = CallSession(
            stream_sid=stream_sid,
            ingress_socket=self.websocket,
            call_sid=start.get("callSid") or message.get("callSid") or self.call_id,
            tenant_id=self.tenant_id or custom_parameters.get("tenant_id"),
            agent_id=self.agent_id or custom_parameters.get("agent_id"),
            custom_parameters=custom_parameters,
        )
        if not self.bridge.registry.add(session):
            logger.warning(f"[MEDIA STREAM] Stream {stream_sid} is already bridged; ignoring start")
            return

        self.session = session
        logger.info(f"[MEDIA STREAM] Stream started: {stream_sid}, call: {session.call_sid}")
        self._agent_task = asyncio.create_task(self._run_agent(session))
        self._agent_task.add_done_callback(self._agent_task_done)

    async def _on_media(self, message: Dict[str, Any]) -> None:
        payload = message["media"]["payload"]
        if self.state is not BridgeState.STREAMING or self.session.egress_socket is None:
            # audio racing ahead of "start" or of the agent handshake
            self.dropped_media_frames += 1
            return
        try:
            await self.session.egress_socket.send(protocol.audio_chunk_frame(payload))
        except ConnectionClosed:
            logger.debug(f"[MEDIA STREAM] Agent socket closed; dropping audio for {self.stream_sid}")

    async def _on_stop(self, message: Dict[str, Any]) -> None:
        logger.info(f"[MEDIA STREAM] Stream stopped: {self.stream_sid}")
        await self.close("stop")

    async def _on_mark(self, message: Dict[str, Any]) -> None:
        logger.debug(f"[MEDIA STREAM] Mark event received: {(message.get('mark') or {}).get('name')}")

    async def _send_to_carrier(self, frame: str) -> None:
        try:
            await self.websocket.send_text(frame)
        except (RuntimeError, OSError, WebSocketDisconnect) as e:
            logger.debug(f"[MEDIA STREAM] Twilio socket unavailable for {self.stream_sid}: {e}")

    # Agent leg

    def _dynamic_variables(self, session: CallSession) -> Dict[str, Any]:
        params = session.custom_parameters
        business_name = params.get("tenant_name") or params.get("business_name") or ""
        variables: Dict[str, Any] = {
            "tenant_id": session.tenant_id,
            "tenant_name": business_name,
            # the agent requires "name"
            "name": business_name or DEFAULT_BUSINESS_NAME,
        }
        if params.get("business_name"):
            variables["business_name"] = params["business_name"]
        if params.get("caller_number"):
            variables["caller_number"] = params["caller_number"]
        if session.call_sid:
            variables["call_sid"] = session.call_sid
        return variables

    async def _run_agent(self, session: CallSession) -> None:
        """Open the agent socket, send the initiation frame, then relay agent frames."""
        reason = "agent disconnected"
        try:
            if self.bridge.call_log and session.call_sid:
                await self.bridge.call_log.mark_stream_started(session.call_sid, session.stream_sid)

            try:
                if not session.agent_id:
                    raise AgentUnavailableError("no agent id for stream")
                logger.info(f"[MEDIA STREAM] Connecting to agent {session.agent_id} for call {session.call_sid}")
                agent_ws = await self.bridge.agent_service.connect(session.agent_id)
            except AgentUnavailableError as e:
                logger.error(f"[MEDIA STREAM] Agent unavailable for call {session.call_sid}: {str(e)}")
                reason = "agent unavailable"
                return

            if self._finished or not session.attach_egress(agent_ws):
                # the call ended while the agent handshake was in flight
                await close_agent_socket(agent_ws, session.stream_sid)
                return

            await agent_ws.send(protocol.initiation_frame(self._dynamic_variables(session)))
            self.state = BridgeState.STREAMING
            logger.info(
                f"[MEDIA STREAM] Sent initialization message to agent for call {session.call_sid}, "
                f"tenant: {session.tenant_id}"
            )
            if self.bridge.monitor:
                self._announced = True
                await self.bridge.monitor.call_started(session.summary())

            async for raw in agent_ws:
                await self._dispatch(raw, self._agent_handlers, "type", "agent")
            logger.info(f"[MEDIA STREAM] Agent disconnected normally for call {session.call_sid}")
        except ConnectionClosed as e:
            logger.warning(f"[MEDIA STREAM] Agent connection lost for call {session.call_sid}: {e}")
        except Exception as e:
            logger.error(
                f"[MEDIA STREAM] Agent leg failed for call {session.call_sid}: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
            reason = "agent error"
        finally:
            await self.close(reason)

    async def _on_initiation_metadata(self, message: Dict[str, Any]) -> None:
        event = message.get("conversation_initiation_metadata_event") or {}
        self.session.conversation_id = event.get("conversation_id")
        logger.info(
            f"[MEDIA STREAM] Conversation initiated for call {self.session.call_sid}, "
            f"conversation_id: {self.session.conversation_id or 'unknown'}"
        )

    async def _on_agent_audio(self, message: Dict[str, Any]) -> None:
        payload = (message.get("audio_event") or {}).get("audio_base_64")
        if self.stream_sid and payload:
            await self._send_to_carrier(protocol.carrier_media_frame(self.stream_sid, payload))

    async def _on_interruption(self, message: Dict[str, Any]) -> None:
        if self.stream_sid:
            await self._send_to_carrier(protocol.carrier_clear_frame(self.stream_sid))

    async def _on_ping(self, message: Dict[str, Any]) -> None:
        event_id = (message.get("ping_event") or {}).get("event_id")
        if event_id is None:
            raise ValueError("ping without event_id")
        # the agent drops the connection if the pong is late
        await self.session.egress_socket.send(protocol.pong_frame(event_id))

    async def _on_agent_response(self, message: Dict[str, Any]) -> None:
        text = (message.get("agent_response_event") or {}).get("agent_response")
        logger.debug(f"[MEDIA STREAM] Agent response for call {self.session.call_sid}")
        await self._publish_turn("assistant", text)

    async def _on_user_transcript(self, message: Dict[str, Any]) -> None:
        text = (message.get("user_transcription_event") or {}).get("user_transcript")
        logger.debug(f"[MEDIA STREAM] User transcript for call {self.session.call_sid}")
        await self._publish_turn("user", text)

    async def _publish_turn(self, role: str, text: Optional[str]) -> None:
        if not text:
            return
        session = self.session
        session.record_turn(text)
        if self.bridge.monitor:
            await self.bridge.monitor.transcript_update(session.call_sid, session.tenant_id, role, text)

    async def _on_agent_error(self, message: Dict[str, Any]) -> None:
        logger.error(f"[MEDIA STREAM] Agent error for call {self.session.call_sid}: {json.dumps(message)}")

    # Teardown

    async def close(self, reason: str) -> None:
        """Close both sockets and unregister the session. Idempotent."""
        if self._finished:
            return
        self.state = BridgeState.CLOSING
        session = self.session
        logger.info(f"[MEDIA STREAM] Closing stream {self.stream_sid} ({reason})")

        task = self._agent_task
        if (
            task is not None
            and task is not asyncio.current_task()
            and not task.done()
            and session.egress_socket is not None
        ):
            # a pending connect is left to finish; it sees the closed session and drops its socket
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        if session is None:
            await close_carrier_socket(self.websocket)
        else:
            await session.close()
            self.bridge.registry.remove(session.stream_sid, session)
            if self.bridge.call_log and session.call_sid:
                await self.bridge.call_log.update_status(session.call_sid, "completed")
            if self.bridge.monitor and self._announced:
                await self.bridge.monitor.call_ended(session.summary(), duration=session.duration_seconds())
            if self.dropped_media_frames:
                logger.debug(
                    f"[MEDIA STREAM] Dropped {self.dropped_media_frames} media frame(s) received "
                    f"before the agent was ready on {session.stream_sid}"
                )

        self.state = BridgeState.CLOSED
        logger.info(f"[MEDIA STREAM] Stream closed: {self.stream_sid}")

    def _agent_task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"[MEDIA STREAM] Agent task for stream {self.stream_sid} ended with "
                f"{type(error).__name__}: {str(error)}"
            )
