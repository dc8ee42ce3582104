import asyncio
from types import SimpleNamespace

import discord
import pytest
from discord.abc import Messageable

from app.core.errors import ConnectionFault
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
from app.discord.client import DiscordTransport, _translate_errors
from app.discord.gate import ConnectionState, ReadinessGate


def http_error(cls, status: int, code: int, message: str):
    response = SimpleNamespace(status=status, reason=message)
    return cls(response, {"code": code, "message": message})


class TextChannelStub(Messageable):
    def __init__(self, channel_id: int, error: Exception | None = None):
        self.id = channel_id
        self.error = error
        self.sent: list[str] = []

    async def send(self, content):
        if self.error is not None:
            raise self.error
        self.sent.append(content)


class GuildStub:
    def __init__(self, members=(), error: Exception | None = None):
        self.members = list(members)
        self.error = error

    def fetch_members(self, limit=None):
        async def iterate():
            if self.error is not None:
                raise self.error
            for member in self.members:
                yield member

        return iterate()


@pytest.fixture
def gate():
    return ReadinessGate()


@pytest.fixture
def discord_transport(gate):
    return DiscordTransport("token", gate)


class TestErrorTranslation:
    @pytest.mark.parametrize(
        "error, expected, code",
        [
            (http_error(discord.NotFound, 404, 10013, "Unknown User"), TransportNotFound, 10013),
            (
                http_error(discord.Forbidden, 403, 50007, "Cannot send messages to this user"),
                TransportForbidden,
                50007,
            ),
            (
                http_error(discord.HTTPException, 500, 0, "Internal Server Error"),
                TransportFailure,
                0,
            ),
        ],
    )
    def test_http_errors(self, error, expected, code):
        with pytest.raises(expected) as exc_info:
            with _translate_errors():
                raise error
        assert type(exc_info.value) is expected
        assert exc_info.value.code == code
        assert exc_info.value.__cause__ is error

    def test_http_429_is_throttled(self):
        with pytest.raises(TransportThrottled):
            with _translate_errors():
                raise http_error(discord.HTTPException, 429, 0, "You are being rate limited")

    def test_rate_limited_keeps_retry_after(self):
        with pytest.raises(TransportThrottled) as exc_info:
            with _translate_errors():
                raise discord.RateLimited(2.5)
        assert exc_info.value.retry_after == 2.5

    def test_other_library_errors(self):
        with pytest.raises(TransportFailure) as exc_info:
            with _translate_errors():
                raise discord.ClientException("not connected")
        assert "not connected" in exc_info.value.detail

    def test_unrelated_errors_pass_through(self):
        with pytest.raises(KeyError):
            with _translate_errors():
                raise KeyError("x")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_missing_token_faults_without_connecting(self, gate):
        transport = DiscordTransport("", gate)
        await transport.start()
        assert gate.state is ConnectionState.FAULTED
        assert "DISCORD_BOT_TOKEN" in gate.fault_detail

    @pytest.mark.asyncio
    async def test_login_failure_faults_gate(self, gate, discord_transport):
        async def login():
            raise discord.LoginFailure("Improper token has been passed.")

        gate.begin_connecting()
        task = asyncio.create_task(login())
        await asyncio.gather(task, return_exceptions=True)
        discord_transport._on_gateway_exit(task)

        assert gate.state is ConnectionState.FAULTED
        assert "Improper token" in gate.fault_detail
        with pytest.raises(ConnectionFault):
            await gate.await_ready(0.1)

    @pytest.mark.asyncio
    async def test_cancelled_task_faults_gate(self, gate, discord_transport):
        gate.begin_connecting()
        task = asyncio.create_task(asyncio.sleep(10))
        await asyncio.sleep(0)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        discord_transport._on_gateway_exit(task)

        assert gate.state is ConnectionState.FAULTED
        assert "cancelled" in gate.fault_detail

    @pytest.mark.asyncio
    async def test_clean_exit_faults_gate(self, gate, discord_transport):
        gate.begin_connecting()
        gate.mark_ready()
        task = asyncio.create_task(asyncio.sleep(0))
        await task
        discord_transport._on_gateway_exit(task)

        assert gate.state is ConnectionState.FAULTED
        assert gate.fault_detail == "Discord connection closed"


class TestMessaging:
    @pytest.mark.asyncio
    async def test_send_uses_channel_handle(self, discord_transport):
        channel = TextChannelStub(1)
        await discord_transport.send(RemoteChannel(id=1, text_capable=True, handle=channel), "hi")
        assert channel.sent == ["hi"]

    @pytest.mark.asyncio
    async def test_send_forbidden_is_translated(self, discord_transport):
        error = http_error(discord.Forbidden, 403, 50007, "Cannot send messages to this user")
        channel = TextChannelStub(1, error=error)
        with pytest.raises(TransportForbidden) as exc_info:
            await discord_transport.send(
                RemoteChannel(id=1, text_capable=True, handle=channel), "hi"
            )
        assert exc_info.value.code == 50007

    @pytest.mark.asyncio
    async def test_fetch_channel_reports_text_capability(self, discord_transport, monkeypatch):
        channels = {1: TextChannelStub(1), 2: SimpleNamespace(id=2)}
        monkeypatch.setattr(discord_transport._client, "get_channel", channels.get)

        assert (await discord_transport.fetch_channel(1)).text_capable is True
        assert (await discord_transport.fetch_channel(2)).text_capable is False

    @pytest.mark.asyncio
    async def test_open_private_channel_reuses_user_handle(self, discord_transport, monkeypatch):
        opened = []

        async def create_dm(user):
            opened.append(user)
            return SimpleNamespace(id=99)

        monkeypatch.setattr(discord_transport._client, "create_dm", create_dm)
        handle = SimpleNamespace(id=5)
        channel = await discord_transport.open_private_channel(
            RemoteUser(id=5, name="a", handle=handle)
        )
        assert opened == [handle]
        assert channel.id == 99

        await discord_transport.open_private_channel(RemoteUser(id=6, name="b"))
        assert isinstance(opened[1], discord.Object)
        assert opened[1].id == 6


class TestMemberListing:
    @pytest.mark.asyncio
    async def test_intent_disabled(self, gate):
        transport = DiscordTransport("token", gate, members_intent=False)
        with pytest.raises(MemberListingUnavailable):
            await transport.list_members(Community(id=1, name="guild", handle=GuildStub()))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [
            http_error(discord.Forbidden, 403, 50001, "Missing Access"),
            discord.ClientException("Intents.members must be enabled to use this."),
        ],
    )
    async def test_listing_refused(self, discord_transport, error):
        guild = GuildStub(error=error)
        with pytest.raises(MemberListingUnavailable):
            await discord_transport.list_members(Community(id=1, name="guild", handle=guild))

    @pytest.mark.asyncio
    async def test_members_keep_their_handles(self, discord_transport):
        member = SimpleNamespace(id=7, name="alice")
        guild = GuildStub(members=[member])
        users = await discord_transport.list_members(Community(id=1, name="guild", handle=guild))
        assert [(u.id, u.name) for u in users] == [(7, "alice")]
        assert users[0].handle is member

    @pytest.mark.asyncio
    async def test_other_listing_errors_are_transport_failures(self, discord_transport):
        guild = GuildStub(error=http_error(discord.HTTPException, 500, 0, "Internal Server Error"))
        with pytest.raises(TransportFailure) as exc_info:
            await discord_transport.list_members(Community(id=1, name="guild", handle=guild))
        assert not isinstance(exc_info.value, MemberListingUnavailable)
