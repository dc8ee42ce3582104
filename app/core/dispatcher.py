"""
Message dispatcher: waits for the gate, resolves the target, sends, and
classifies delivery failures.

Flow:
1. Wait for the Discord connection (ConnectionFault propagates)
2. channel_id -> fetch the channel; otherwise resolve the user
3. Channel: must be text-capable, then send
4. User: open the DM channel, then send
"""

import structlog

from app.core.errors import DispatchError, DispatchErrorKind
from app.core.models import ChannelTarget, ResolvedTarget, SendRequest, SendResult, UserTarget
from app.core.resolver import RecipientResolver, classify_lookup_failure
from app.core.transport import (
    MessagingTransport,
    RemoteChannel,
    RemoteUser,
    TransportFailure,
    TransportForbidden,
    TransportNotFound,
    TransportThrottled,
)
from app.discord.gate import ReadinessGate

logger = structlog.get_logger()

UNREACHABLE_HINT = (
    "Make sure the bot shares a server with the user, "
    "or ask the user to send the bot a message first."
)


class MessageDispatcher:
    def __init__(
        self,
        transport: MessagingTransport,
        gate: ReadinessGate,
        resolver: RecipientResolver | None = None,
        ready_timeout: float | None = None,
    ):
        self._transport = transport
        self._gate = gate
        self._resolver = resolver or RecipientResolver(transport)
        self._ready_timeout = ready_timeout

    async def dispatch(self, request: SendRequest) -> SendResult:
        log = logger.bind(
            display_name=request.display_name,
            user_id=request.user_id,
            channel_id=request.channel_id,
        )
        await self._gate.await_ready(self._ready_timeout)

        try:
            target = await self._resolve_target(request)
            if isinstance(target, ChannelTarget):
                await self._send_to_channel(target, request.text)
                result = SendResult(text=request.text, resolved_channel_id=str(target.id))
            else:
                await self._send_to_user(target, request.text)
                result = SendResult(
                    text=request.text,
                    resolved_display_name=target.display_name,
                    resolved_user_id=str(target.id),
                )
        except DispatchError as e:
            log.warning("dispatch.failed", kind=e.kind.value, detail=e.detail)
            raise

        log.info(
            "dispatch.sent",
            resolved_display_name=result.resolved_display_name,
            resolved_user_id=result.resolved_user_id,
        )
        return result

    async def _resolve_target(self, request: SendRequest) -> ResolvedTarget:
        # channel ids pass straight through, no resolver lookup
        if request.channel_id is not None:
            return ChannelTarget(id=int(request.channel_id.strip()))
        if request.user_id is not None:
            return await self._resolver.resolve_identifier(request.user_id)
        return await self._resolver.resolve_display_name(request.display_name)

    async def _send_to_channel(self, target: ChannelTarget, text: str):
        context = f"Channel '{target.id}'"
        try:
            channel = await self._transport.fetch_channel(target.id)
        except TransportFailure as e:
            raise classify_lookup_failure(e, context) from e

        if not channel.text_capable:
            raise DispatchError(
                DispatchErrorKind.INVALID_TARGET, f"{context} is not a text channel"
            )

        try:
            await self._transport.send(channel, text)
        except TransportFailure as e:
            raise self._classify_delivery(e, context) from e

    async def _send_to_user(self, user: UserTarget, text: str):
        context = f"user {user.display_name}"
        try:
            dm: RemoteChannel = await self._transport.open_private_channel(
                RemoteUser(id=user.id, name=user.display_name, handle=user.handle)
            )
            await self._transport.send(dm, text)
        except TransportForbidden as e:
            raise DispatchError(
                DispatchErrorKind.UNREACHABLE,
                f"User {user.display_name} does not accept direct messages "
                f"or has blocked the bot. {UNREACHABLE_HINT}",
            ) from e
        except TransportFailure as e:
            raise self._classify_delivery(e, context) from e

    @staticmethod
    def _classify_delivery(exc: TransportFailure, context: str) -> DispatchError:
        if isinstance(exc, TransportNotFound):
            return DispatchError(DispatchErrorKind.NOT_FOUND, f"{context} not found")
        if isinstance(exc, TransportThrottled):
            return DispatchError(
                DispatchErrorKind.RATE_LIMITED,
                f"Rate limited by Discord while sending to {context}; try again later",
            )
        return DispatchError(
            DispatchErrorKind.TRANSPORT_ERROR,
            f"Failed to send message to {context}: {exc.detail}",
        )
