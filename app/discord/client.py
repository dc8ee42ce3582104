"""
Discord transport: owns the single discord.py client for the process.

Handles:
- Gateway login lifecycle, reported to the ReadinessGate
  (start -> Connecting, on_ready -> Ready, login error / exit -> Faulted)
- The MessagingTransport capabilities used by the resolver and dispatcher
- Translation of discord.py exceptions into transport failures
"""

import asyncio
from contextlib import contextmanager

import discord
import structlog
from discord.abc import Messageable

from app.core.transport import (
    Community,
    MemberListingUnavailable,
    RemoteChannel,
    RemoteUser,
    TransportFailure,
    TransportForbidden,
    TransportNotFound,
    TransportThrottled,
)
from app.discord.gate import ReadinessGate

logger = structlog.get_logger()


@contextmanager
def _translate_errors():
    """Re-raise discord.py errors as transport failures."""
    try:
        yield
    except discord.NotFound as e:
        raise TransportNotFound(e.text or str(e), code=e.code) from e
    except discord.Forbidden as e:
        raise TransportForbidden(e.text or str(e), code=e.code) from e
    except discord.RateLimited as e:
        raise TransportThrottled(str(e), retry_after=e.retry_after) from e
    except discord.HTTPException as e:
        if e.status == 429:
            raise TransportThrottled(e.text or str(e)) from e
        raise TransportFailure(e.text or str(e), code=e.code) from e
    except discord.DiscordException as e:
        raise TransportFailure(str(e)) from e


class _GatewayClient(discord.Client):
    def __init__(self, gate: ReadinessGate, **kwargs):
        super().__init__(**kwargs)
        self._gate = gate

    async def on_ready(self):
        self._gate.mark_ready()
        logger.info("discord.ready", user=str(self.user), guilds=len(self.guilds))

    async def on_error(self, event_method: str, *args, **kwargs):
        logger.exception("discord.event_error", event=event_method)


class DiscordTransport:
    def __init__(self, token: str, gate: ReadinessGate, members_intent: bool = True):
        intents = discord.Intents.default()
        intents.members = members_intent  # privileged: needed to search users by name
        intents.dm_messages = True

        self._token = token
        self._gate = gate
        self._client = _GatewayClient(gate, intents=intents)
        self._task: asyncio.Task | None = None

    @property
    def gate(self) -> ReadinessGate:
        return self._gate

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Begin logging in; the gate turns Ready once the gateway handshake completes."""
        if not self._token:
            logger.error("discord.missing_token")
            self._gate.mark_faulted("DISCORD_BOT_TOKEN is not configured")
            return

        self._gate.begin_connecting()
        self._task = asyncio.create_task(self._client.start(self._token), name="discord-gateway")
        self._task.add_done_callback(self._on_gateway_exit)
        logger.info("discord.connecting")

    def _on_gateway_exit(self, task: asyncio.Task):
        if task.cancelled():
            self._gate.mark_faulted("Discord connection task was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("discord.login_failed", error=str(exc), error_type=type(exc).__name__)
            self._gate.mark_faulted(f"Discord login failed: {exc}")
        else:
            self._gate.mark_faulted("Discord connection closed")

    async def shutdown(self):
        """Close the gateway connection and wait for the client task to finish."""
        if not self._client.is_closed():
            await self._client.close()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        self._gate.mark_faulted("Discord transport shut down")
        logger.info("discord.shutdown")

    # ------------------------------------------------------------------
    # MessagingTransport
    # ------------------------------------------------------------------

    async def fetch_user(self, user_id: int) -> RemoteUser:
        with _translate_errors():
            user = await self._client.fetch_user(user_id)
        return RemoteUser(id=user.id, name=user.name, handle=user)

    async def fetch_channel(self, channel_id: int) -> RemoteChannel:
        with _translate_errors():
            channel = self._client.get_channel(channel_id) or await self._client.fetch_channel(
                channel_id
            )
        return RemoteChannel(
            id=channel.id,
            text_capable=isinstance(channel, Messageable),
            handle=channel,
        )

    async def open_private_channel(self, user: RemoteUser) -> RemoteChannel:
        with _translate_errors():
            dm = await self._client.create_dm(user.handle or discord.Object(id=user.id))
        return RemoteChannel(id=dm.id, text_capable=True, handle=dm)

    async def send(self, channel: RemoteChannel, text: str) -> None:
        messageable = channel.handle or self._client.get_partial_messageable(channel.id)
        with _translate_errors():
            await messageable.send(text)

    async def list_communities(self) -> list[Community]:
        return [Community(id=g.id, name=g.name, handle=g) for g in self._client.guilds]

    async def list_members(self, community: Community) -> list[RemoteUser]:
        if not self._client.intents.members:
            raise MemberListingUnavailable("SERVER MEMBERS intent is disabled")

        guild = community.handle or self._client.get_guild(community.id)
        if guild is None:
            raise TransportNotFound(f"Server {community.id} is not in the client cache")
        with _translate_errors():
            try:
                members = [m async for m in guild.fetch_members(limit=None)]
            except (discord.Forbidden, discord.ClientException) as e:
                raise MemberListingUnavailable(str(e)) from e
        return [RemoteUser(id=m.id, name=m.name, handle=m) for m in members]
