"""
Pending replies

A flow that needs input from the user suspends on a future created by
``DialogSteps.begin``. Inbound messages and menu selections are handed to
``deliver``; whatever is not consumed by a waiter is treated as an ordinary
command by the router.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional

from walletbot.errors import Cancelled, InvalidReply

logger = logging.getLogger(__name__)


class ReplyKind(str, Enum):
    TEXT = "text"
    SELECTION = "selection"


@dataclass
class PendingStep:
    conversation_id: Hashable
    field: str
    validator: Callable[[str], Any]
    expects: ReplyKind
    future: asyncio.Future
    on_invalid: Optional[Callable[[InvalidReply], Awaitable[None]]] = None
    sensitive: bool = False


class DialogSteps:
    def __init__(self):
        self._pending: Dict[Hashable, PendingStep] = {}

    def begin(self, conversation_id, field: str, validator: Callable[[str], Any],
              expects: ReplyKind = ReplyKind.TEXT, on_invalid=None, sensitive: bool = False) -> asyncio.Future:
        """Wait for the next valid reply from a conversation.

        Only one waiter may exist per conversation: an older one is failed with
        ``Cancelled`` so it can never fire into a newer flow.
        """
        if self.cancel(conversation_id):
            logger.debug(f"Superseded pending step for conversation {conversation_id}")
        future = asyncio.get_running_loop().create_future()
        self._pending[conversation_id] = PendingStep(
            conversation_id=conversation_id,
            field=field,
            validator=validator,
            expects=expects,
            future=future,
            on_invalid=on_invalid,
            sensitive=sensitive,
        )
        return future

    def pending(self, conversation_id) -> Optional[PendingStep]:
        step = self._pending.get(conversation_id)
        if step is not None and step.future.done():
            # resolved or timed out but not yet cleaned up by its flow
            return None
        return step

    async def deliver(self, conversation_id, kind: ReplyKind, payload: str) -> bool:
        """Hand a reply to the conversation's waiter.

        Returns False when nobody is waiting for this kind of reply.
        """
        step = self.pending(conversation_id)
        if step is None or step.expects != kind:
            return False

        try:
            value = step.validator(payload)
            if inspect.isawaitable(value):
                value = await value
        except InvalidReply as e:
            # Keep waiting; the flow re-prompts with the reason
            if step.on_invalid is not None and not step.future.done():
                await step.on_invalid(e)
            return True
        except Exception as e:
            self._settle(step)
            if not step.future.done():
                step.future.set_exception(e)
            return True

        self._settle(step)
        # an awaited validator may have outlived a cancel or timeout
        if not step.future.done():
            step.future.set_result(value)
        return True

    def _settle(self, step: PendingStep):
        if self._pending.get(step.conversation_id) is step:
            del self._pending[step.conversation_id]

    def cancel(self, conversation_id, reason: Optional[Cancelled] = None) -> bool:
        """Fail the outstanding waiter with Cancelled. Returns True if there was one."""
        step = self._pending.pop(conversation_id, None)
        if step is None or step.future.done():
            return False
        step.future.set_exception(reason or Cancelled())
        return True

    def discard(self, conversation_id):
        """Drop a waiter without notifying it (its flow has already ended)."""
        step = self._pending.pop(conversation_id, None)
        if step is not None and not step.future.done():
            step.future.cancel()
