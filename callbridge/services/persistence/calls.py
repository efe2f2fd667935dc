"""Call log persistence service."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from callbridge.db.models import Call

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "failed", "busy", "no-answer", "canceled")


class CallLogService:
    """Records bridged calls. Failures are logged, never raised into call handling."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def _get_call_by_sid(self, session: AsyncSession, call_sid: str) -> Optional[Call]:
        result = await session.execute(select(Call).where(Call.call_sid == call_sid))
        return result.scalar_one_or_none()

    async def get_call_by_sid(self, call_sid: str) -> Optional[Call]:
        """Get call by Twilio call SID."""
        async with self.session_factory() as session:
            return await self._get_call_by_sid(session, call_sid)

    async def record_incoming(
        self,
        call_sid: str,
        tenant_id: Optional[str] = None,
        agent_id: Optional[str] = None,
        from_number: Optional[str] = None,
        to_number: Optional[str] = None,
    ) -> None:
        """Create a call record, or leave an existing one untouched."""
        try:
            async with self.session_factory() as session:
                if await self._get_call_by_sid(session, call_sid):
                    return
                session.add(
                    Call(
                        call_sid=call_sid,
                        tenant_id=tenant_id,
                        agent_id=agent_id,
                        from_number=from_number,
                        to_number=to_number,
                        status="in_progress",
                    )
                )
                await session.commit()
        except Exception as e:
            logger.error(
                f"[CALL LOG] Error recording call {call_sid}: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

    async def mark_stream_started(self, call_sid: str, stream_sid: str) -> None:
        """Attach the media stream id to a call."""
        try:
            async with self.session_factory() as session:
                call = await self._get_call_by_sid(session, call_sid)
                if call:
                    call.stream_sid = stream_sid
                    await session.commit()
        except Exception as e:
            logger.error(
                f"[CALL LOG] Error updating stream for call {call_sid}: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )

    async def update_status(self, call_sid: str, status: str) -> None:
        """
        Update call status.

        Terminal statuses also set ``ended_at``; a call that already reached a
        terminal status keeps it.
        """
        try:
            async with self.session_factory() as session:
                call = await self._get_call_by_sid(session, call_sid)
                if not call or call.status in TERMINAL_STATUSES:
                    return
                call.status = status
                if status in TERMINAL_STATUSES:
                    call.ended_at = datetime.utcnow()
                await session.commit()
        except Exception as e:
            logger.error(
                f"[CALL LOG] Error updating status for call {call_sid}: {type(e).__name__}: {str(e)}",
                exc_info=True,
            )
