"""
Caller surface for reply generation.

Wraps the Orchestrator and writes its outcome back:

  0. Store the inbound guest message (handle_guest_message)
  1. Orchestrator: context → intent → generation → confidence → escalation
  2. Store the AI reply as a thread message (meta: confidence, trace, intent, provider)
  3. If escalation is required: mark the thread escalated, open a handoff
  --- owner picks up the handoff, answers the guest, resolves it ---

The reply is stored even when escalated: the canned or low-confidence text
is what the guest sees while waiting for the owner.
"""

import logging
from dataclasses import dataclass

from concierge.domain.memory import ConversationMemory
from concierge.orchestrator import GenerateResponseResult, Orchestrator

log = logging.getLogger(__name__)

DEFAULT_HANDOFF_REASON = "Low confidence response"


@dataclass
class ProcessResult:
    success: bool
    ai_message: str = ""
    message_id: str = ""
    confidence: float = 0.0
    escalated: bool = False
    handoff_id: str = ""
    error: str = ""


class Pipeline:
    """
    Process one guest message per call.

    Call handle_guest_message() when a guest message arrives (it is stored
    before the reply), process_message() when the messaging surface already
    stored it, regenerate() when the owner asks for a fresh answer to an
    earlier message.
    """

    def __init__(self, orchestrator: Orchestrator, memory: ConversationMemory):
        self._orchestrator = orchestrator
        self._memory = memory

    @property
    def orchestrator(self) -> Orchestrator:
        return self._orchestrator

    async def handle_guest_message(self, thread_id: str, message: str) -> ProcessResult:
        """Store an inbound guest message, then answer it."""
        try:
            await self._memory.save_message(thread_id, "guest", message)
        except Exception as exc:
            log.error("thread=%s failed to store guest message: %s", thread_id, exc)
            return ProcessResult(success=False, error="Failed to store guest message")
        return await self.process_message(thread_id, message)

    async def process_message(self, thread_id: str, message: str) -> ProcessResult:
        result = await self._orchestrator.generate_response(thread_id, message)

        try:
            message_id = await self._memory.save_message(
                thread_id, "ai", result.content, meta=_reply_meta(result)
            )
        except Exception as exc:
            log.error("thread=%s failed to store AI reply: %s", thread_id, exc)
            return ProcessResult(success=False, error="Failed to store AI response")

        handoff_id = ""
        if result.should_escalate:
            try:
                handoff_id = await self._escalate(thread_id, message, result)
            except Exception as exc:
                log.error("thread=%s failed to open handoff: %s", thread_id, exc)
                return ProcessResult(
                    success=False,
                    ai_message=result.content,
                    message_id=message_id,
                    confidence=result.confidence,
                    escalated=True,
                    error="Failed to open handoff",
                )

        return ProcessResult(
            success=True,
            ai_message=result.content,
            message_id=message_id,
            confidence=result.confidence,
            escalated=result.should_escalate,
            handoff_id=handoff_id,
        )

    async def regenerate(self, thread_id: str, message_id: str) -> ProcessResult:
        """Answer a stored message again; the new reply is flagged as regenerated."""
        stored = await self._memory.get_message(message_id)
        if stored is None:
            log.warning("thread=%s regenerate: message %s not found", thread_id, message_id)
            return ProcessResult(success=False, error="Message not found")

        result = await self._orchestrator.generate_response(thread_id, stored.body)
        try:
            new_id = await self._memory.save_message(
                thread_id, "ai", result.content,
                meta={**_reply_meta(result), "regenerated": True},
            )
        except Exception as exc:
            log.error("thread=%s failed to store regenerated reply: %s", thread_id, exc)
            return ProcessResult(success=False, error="Failed to store regenerated message")

        log.info("thread=%s regenerated reply for message %s → %s", thread_id, message_id, new_id)
        return ProcessResult(
            success=True,
            ai_message=result.content,
            message_id=new_id,
            confidence=result.confidence,
            escalated=result.should_escalate,
        )

    async def assign_handoff(self, handoff_id: str, agent_id: str) -> bool:
        return await assign_handoff(self._memory, handoff_id, agent_id)

    async def resolve_handoff(self, handoff_id: str, outcome: str) -> bool:
        return await resolve_handoff(self._memory, handoff_id, outcome)

    async def _escalate(
        self, thread_id: str, message: str, result: GenerateResponseResult
    ) -> str:
        await self._memory.set_thread_status(thread_id, "escalated")
        handoff_id = await self._memory.create_handoff(
            thread_id,
            result.escalation_reason or DEFAULT_HANDOFF_REASON,
            snapshot={
                "last_message": message,
                "ai_response": result.content,
                "confidence": result.confidence,
            },
        )
        log.info(
            "thread=%s escalated → handoff=%s (%s)",
            thread_id, handoff_id, result.escalation_reason or DEFAULT_HANDOFF_REASON,
        )
        return handoff_id


def _reply_meta(result: GenerateResponseResult) -> dict:
    return {
        "confidence": result.confidence,
        "ai_trace_id": result.ai_trace_id,
        "intent": result.intent,
        "provider": result.provider,
    }


async def assign_handoff(memory: ConversationMemory, handoff_id: str, agent_id: str) -> bool:
    """Returns False when the handoff does not exist."""
    handoff = await memory.get_handoff(handoff_id)
    if handoff is None:
        return False
    await memory.assign_handoff(handoff_id, agent_id)
    log.info("handoff=%s assigned to %s", handoff_id, agent_id)
    return True


async def resolve_handoff(memory: ConversationMemory, handoff_id: str, outcome: str) -> bool:
    """Close a handoff and put its thread back into automatic handling."""
    handoff = await memory.get_handoff(handoff_id)
    if handoff is None:
        return False
    await memory.resolve_handoff(handoff_id, outcome)
    await memory.set_thread_status(handoff.thread_id, "open")
    log.info("handoff=%s resolved (thread=%s): %.60s", handoff_id, handoff.thread_id, outcome)
    return True
