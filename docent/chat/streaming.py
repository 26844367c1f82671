"""
Streamed turn as an explicit event-producing state machine.

Phases and the events emitted while in them:

    STARTING    -> start{conversation_id}     (after the conversation is resolved)
    EMITTING    -> delta{content} per model increment
    FINALIZING  -> (assistant reply persisted, count incremented)
    DONE        -> final{content, message_id, conversation_id}
    FAILED      -> error{message}

Exactly one terminal event (final or error) is emitted and every delta
precedes it. If the consumer stops iterating (``aclose`` or cancellation)
nothing further is persisted or emitted.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from enum import Enum
from typing import TYPE_CHECKING

from ..core.schemas import DeltaEvent, ErrorEvent, FinalEvent, SendMessageInput, StartEvent, StreamEvent

if TYPE_CHECKING:
    from .turns import TurnOrchestrator

logger = logging.getLogger(__name__)


class StreamPhase(str, Enum):
    STARTING = "starting"
    EMITTING = "emitting"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class TurnStream:
    """Async iterator over the events of one streamed turn."""

    def __init__(self, orchestrator: "TurnOrchestrator", data: SendMessageInput):
        self._orchestrator = orchestrator
        self._data = data
        self.phase = StreamPhase.STARTING
        self.conversation_id: str | None = None
        self._events = self._run()

    def __aiter__(self) -> "TurnStream":
        return self

    async def __anext__(self) -> StreamEvent:
        return await self._events.__anext__()

    async def aclose(self) -> None:
        await self._events.aclose()

    async def _run(self) -> AsyncIterator[StreamEvent]:
        orchestrator = self._orchestrator
        buffer: list[str] = []

        try:
            self.conversation_id = await orchestrator.resolve_conversation(self._data)
            yield StartEvent(conversation_id=self.conversation_id)

            turn = await orchestrator.prepare_turn(self.conversation_id, self._data)

            self.phase = StreamPhase.EMITTING
            increments = orchestrator.generator.complete_stream(
                turn.system_prompt,
                turn.history,
                turn.user_text,
                temperature=orchestrator.settings.TEMPERATURE,
                max_tokens=orchestrator.settings.MAX_TOKENS,
            )
            async with aclosing(increments):
                async for piece in increments:
                    if not piece:
                        continue
                    buffer.append(piece)
                    yield DeltaEvent(content=piece)

            self.phase = StreamPhase.FINALIZING
            content = "".join(buffer)
            reply = await orchestrator.finish_turn(turn, content, streamed=True)
        except Exception as e:
            self.phase = StreamPhase.FAILED
            logger.error(
                f"Streamed turn failed in conversation {self.conversation_id}: {e}",
                exc_info=True,
            )
            yield ErrorEvent(message=str(e) or type(e).__name__)
            return

        self.phase = StreamPhase.DONE
        logger.info(f"Streamed turn completed in conversation {self.conversation_id} ({len(content)} chars)")
        yield FinalEvent(content=content, message_id=reply.id, conversation_id=self.conversation_id)
