"""
Flow engine

A flow is an ordered list of steps (prompt, choice, confirm, action) run for
one conversation at a time. The engine drives each flow as an asyncio task,
suspending on ``DialogSteps`` whenever it needs a reply, and is the only place
that decides when a ledger mutation may happen.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Set, Tuple, Union

from walletbot import config
from walletbot.chains import Chain
from walletbot.dialogs import DialogSteps, ReplyKind
from walletbot.errors import (
    Cancelled,
    FlowAlreadyActive,
    FlowError,
    InsufficientBalance,
    InvalidReply,
    NotConnected,
    TimedOut,
    UnknownFlow,
    UnknownSelection,
)
from walletbot.sessions import Session, SessionStore

logger = logging.getLogger(__name__)

MenuRows = List[List[Tuple[str, str]]]

GENERIC_FAILURE = "❌ The operation failed. Please try again later."


class FlowStatus(str, Enum):
    IDLE = "idle"
    PROMPTING = "prompting"
    VALIDATING = "validating"
    CONFIRMING = "confirming"
    PERFORMING = "performing"


class FlowOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


@dataclass
class FlowResult:
    """Terminal message of a successful action."""
    text: str
    options: Optional[MenuRows] = None


def stripped(raw: str) -> str:
    return raw.strip()


@dataclass
class Prompt:
    """Ask for free text and store the validated value under ``field``."""
    field: str
    text: Union[str, Callable[['FlowContext'], str]]
    validator: Callable[[str], Any] = stripped
    # called with (engine, context, value) after the validator; may raise ValidationFailed
    verify: Optional[Callable[['FlowEngine', 'FlowContext', Any], Any]] = None
    sensitive: bool = False


@dataclass
class Choice:
    """Offer a menu; only a menu selection resolves the step."""
    field: str
    text: str
    options: Callable[['FlowContext'], List[Tuple[str, str]]]


@dataclass
class Confirm:
    """Gate before a mutating action: only the literal reply "confirm" proceeds."""
    summary: Callable[['FlowEngine', 'FlowContext'], str]


@dataclass
class Action:
    perform: Callable[['FlowEngine', 'FlowContext'], Awaitable[FlowResult]]


Step = Union[Prompt, Choice, Confirm, Action]


@dataclass
class FlowDefinition:
    flow_id: str
    steps: List[Step]
    requires_session: bool = True
    mutating: bool = False
    # runs before the first step; raising a FlowError ends the flow
    precheck: Optional[Callable[['FlowEngine', 'FlowContext'], None]] = None

    def __post_init__(self):
        if not self.steps or not isinstance(self.steps[-1], Action):
            raise ValueError(f"Flow {self.flow_id} must end with an action")
        if sum(isinstance(step, Action) for step in self.steps) != 1:
            raise ValueError(f"Flow {self.flow_id} must have exactly one action")
        if self.mutating and (len(self.steps) < 2 or not isinstance(self.steps[-2], Confirm)):
            raise ValueError(f"Mutating flow {self.flow_id} must confirm right before its action")


@dataclass
class FlowContext:
    conversation_id: Hashable
    flow: FlowDefinition
    session: Optional[Session]
    prefill: Dict[str, str] = field(default_factory=dict)
    collected: Dict[str, Any] = field(default_factory=dict)
    # values looked up while validating, e.g. token metadata
    extras: Dict[str, Any] = field(default_factory=dict)
    step_index: int = 0
    status: FlowStatus = FlowStatus.IDLE
    outcome: Optional[FlowOutcome] = None


class FlowEngine:
    def __init__(self, channel, sessions: SessionStore, ledger, dialogs: DialogSteps = None,
                 market=None, names=None, history=None,
                 step_timeout: Optional[float] = config.STEP_TIMEOUT,
                 min_deploy_balance: Decimal = config.MIN_DEPLOY_BALANCE,
                 default_chain: str = config.DEFAULT_CHAIN):
        self.channel = channel
        self.sessions = sessions
        self.ledger = ledger
        self.dialogs = dialogs or DialogSteps()
        self.market = market
        self.names = names
        self.history = history
        self.step_timeout = step_timeout
        self.min_deploy_balance = min_deploy_balance
        self.default_chain = default_chain
        self._flows: Dict[str, FlowDefinition] = {}
        self._active: Dict[Hashable, FlowContext] = {}
        self._tasks: Set[asyncio.Task] = set()

    def register(self, flow: FlowDefinition):
        self._flows[flow.flow_id] = flow

    def is_active(self, conversation_id) -> bool:
        return conversation_id in self._active

    def state(self, conversation_id) -> Optional[FlowContext]:
        return self._active.get(conversation_id)

    async def start(self, conversation_id, flow_id: str, initial_args: Dict[str, str] = None) -> asyncio.Task:
        """Start a flow for a conversation and return the task running it."""
        flow = self._flows.get(flow_id)
        if flow is None:
            raise UnknownFlow(flow_id)
        if self.is_active(conversation_id):
            raise FlowAlreadyActive(self._active[conversation_id].flow.flow_id)
        session = self.sessions.get(conversation_id)
        if flow.requires_session and session is None:
            raise NotConnected()

        ctx = FlowContext(
            conversation_id=conversation_id,
            flow=flow,
            session=session,
            prefill=dict(initial_args or {}),
        )
        self._active[conversation_id] = ctx
        logger.info(f"Starting flow {flow_id} for conversation {conversation_id}")
        task = asyncio.get_running_loop().create_task(self._run(ctx))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def cancel(self, conversation_id) -> bool:
        """Cancel the conversation's flow if it is waiting for a reply."""
        if not self.is_active(conversation_id):
            return False
        return self.dialogs.cancel(conversation_id)

    def wallet_for(self, ctx: FlowContext, chain: Chain = None):
        """The session wallet, rebound to ``chain`` when it differs from the session's network."""
        if ctx.session is None:
            raise NotConnected()
        wallet = ctx.session.wallet
        if chain is not None and chain.key != wallet.chain.key:
            return self.ledger.switch_chain(wallet, chain)
        return wallet

    def ensure_session(self, ctx: FlowContext, aftermath: str):
        """Raise Cancelled when the conversation disconnected or switched wallet since the flow started.

        Actions that suspend between ledger calls check again after every wait.
        """
        if ctx.flow.requires_session and self.sessions.get(ctx.conversation_id) is not ctx.session:
            raise Cancelled(f"❌ Your wallet or network changed while this operation was open. {aftermath}")

    def require_balance(self, wallet, minimum: Decimal) -> Decimal:
        balance = self.ledger.balance(wallet)
        if balance < minimum:
            raise InsufficientBalance(balance, minimum, wallet.chain.symbol)
        return balance

    async def _run(self, ctx: FlowContext) -> FlowOutcome:
        conversation_id = ctx.conversation_id
        flow = ctx.flow
        try:
            if flow.precheck is not None:
                await asyncio.to_thread(flow.precheck, self, ctx)

            while ctx.step_index < len(flow.steps):
                step = flow.steps[ctx.step_index]
                if isinstance(step, Prompt):
                    await self._collect(ctx, step)
                elif isinstance(step, Choice):
                    await self._choose(ctx, step)
                elif isinstance(step, Confirm):
                    await self._confirm(ctx, step)
                else:
                    await self._perform(ctx, step)
                ctx.step_index += 1
            ctx.outcome = FlowOutcome.SUCCEEDED
        except TimedOut as e:
            ctx.outcome = FlowOutcome.TIMED_OUT
            await self._notify(conversation_id, e.user_message)
        except Cancelled as e:
            ctx.outcome = FlowOutcome.CANCELLED
            await self._notify(conversation_id, e.user_message)
        except FlowError as e:
            ctx.outcome = FlowOutcome.FAILED
            await self._notify(conversation_id, e.user_message)
        except Exception:
            logger.exception(f"Flow {flow.flow_id} failed for conversation {conversation_id}")
            ctx.outcome = FlowOutcome.FAILED
            await self._notify(conversation_id, GENERIC_FAILURE)
        finally:
            ctx.status = FlowStatus.IDLE
            self.dialogs.discard(conversation_id)
            if self._active.get(conversation_id) is ctx:
                del self._active[conversation_id]

        logger.info(f"Flow {flow.flow_id} for conversation {conversation_id} ended: {ctx.outcome.value}")
        return ctx.outcome

    async def _notify(self, conversation_id, text: str):
        try:
            await self.channel.send_text(conversation_id, text)
        except Exception:
            logger.exception(f"Could not deliver message to conversation {conversation_id}")

    async def _collect(self, ctx: FlowContext, step: Prompt):
        check = self._checked(ctx, step, FlowStatus.PROMPTING)
        error = None
        if step.field in ctx.prefill:
            try:
                ctx.collected[step.field] = await check(ctx.prefill.pop(step.field))
                return
            except InvalidReply as e:
                error = e

        text = step.text(ctx) if callable(step.text) else step.text
        ctx.status = FlowStatus.PROMPTING
        await self.channel.send_text(ctx.conversation_id, self._annotate(text, error))

        async def reprompt(e):
            await self.channel.send_text(ctx.conversation_id, self._annotate(text, e))

        ctx.collected[step.field] = await self._await_reply(
            ctx, step.field, check, ReplyKind.TEXT, reprompt, step.sensitive
        )

    async def _choose(self, ctx: FlowContext, step: Choice):
        options = step.options(ctx)
        values = [value for _, value in options]
        rows = [[(label, f"choice:{value}")] for label, value in options]
        rows.append([("❌ Cancel", "cancel")])

        def pick(selection):
            ctx.status = FlowStatus.VALIDATING
            if selection not in values:
                ctx.status = FlowStatus.PROMPTING
                raise UnknownSelection(selection)
            return selection

        error = None
        if step.field in ctx.prefill:
            try:
                ctx.collected[step.field] = pick(ctx.prefill.pop(step.field))
                return
            except InvalidReply as e:
                error = e

        ctx.status = FlowStatus.PROMPTING
        message_id = await self.channel.send_menu(ctx.conversation_id, self._annotate(step.text, error), rows)

        async def rerender(e):
            await self.channel.edit_menu(ctx.conversation_id, message_id, self._annotate(step.text, e), rows)

        ctx.collected[step.field] = await self._await_reply(ctx, step.field, pick, ReplyKind.SELECTION, rerender)

    async def _confirm(self, ctx: FlowContext, step: Confirm):
        summary = await asyncio.to_thread(step.summary, self, ctx)
        ctx.status = FlowStatus.CONFIRMING
        await self.channel.send_text(
            ctx.conversation_id,
            f"{summary}\n\nType *confirm* to proceed. Any other reply cancels."
        )
        reply = await self._await_reply(ctx, "confirmation", lambda raw: raw, ReplyKind.TEXT)
        if reply.strip().lower() != "confirm":
            raise Cancelled()

    async def _perform(self, ctx: FlowContext, step: Action):
        ctx.status = FlowStatus.PERFORMING
        self.ensure_session(ctx, "Nothing was sent; please start again.")

        result = await step.perform(self, ctx)
        if result.options:
            await self.channel.send_menu(ctx.conversation_id, result.text, result.options)
        else:
            await self.channel.send_text(ctx.conversation_id, result.text)

    async def _await_reply(self, ctx: FlowContext, field_name: str, validator, kind: ReplyKind,
                           on_invalid=None, sensitive: bool = False):
        future = self.dialogs.begin(
            ctx.conversation_id, field_name, validator,
            expects=kind, on_invalid=on_invalid, sensitive=sensitive,
        )
        try:
            return await asyncio.wait_for(future, timeout=self.step_timeout)
        except asyncio.TimeoutError:
            raise TimedOut(field_name)

    def _checked(self, ctx: FlowContext, step: Prompt, waiting: FlowStatus):
        async def check(raw):
            ctx.status = FlowStatus.VALIDATING
            try:
                value = step.validator(raw)
                if step.verify is not None:
                    # verify hooks query the ledger or name service
                    value = await asyncio.to_thread(step.verify, self, ctx, value)
            except InvalidReply:
                ctx.status = waiting
                raise
            return value
        return check

    @staticmethod
    def _annotate(text: str, error: Optional[FlowError]) -> str:
        if error is None:
            return text
        return f"{error.user_message}\n\n{text}"
