"""
Shared fixtures: an in-memory messaging transport and a ready gate.

FakeTransport mimics the Discord adapter's contract: it raises the same
transport failures and records every send so tests can assert on side effects.
"""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from app.core.dispatcher import MessageDispatcher
from app.core.transport import (
    Community,
    MemberListingUnavailable,
    RemoteChannel,
    RemoteUser,
    TransportFailure,
    TransportForbidden,
    TransportNotFound,
)
from app.discord.gate import ReadinessGate

ALICE_ID = 123456789012345678
BOB_ID = 223456789012345678
TEXT_CHANNEL_ID = 333456789012345678
VOICE_CATEGORY_ID = 444456789012345678


class FakeTransport:
    def __init__(self):
        self.users: dict[int, RemoteUser] = {}
        self.channels: dict[int, RemoteChannel] = {}
        self.communities: list[Community] = []
        self.members: dict[int, list[RemoteUser]] = {}
        self.unlistable: set[int] = set()
        self.blocked_users: set[int] = set()
        self.send_failures: dict[int, TransportFailure] = {}
        self.sent: list[tuple[int, str]] = []
        self.member_fetches: list[int] = []
        self.opened_handles: list = []

    # -- setup helpers ---------------------------------------------------

    def add_user(self, user_id: int, name: str, community_id: int | None = None) -> RemoteUser:
        user = RemoteUser(id=user_id, name=name, handle=SimpleNamespace(id=user_id, name=name))
        self.users[user_id] = user
        if community_id is not None:
            self.members.setdefault(community_id, []).append(user)
        return user

    def add_community(self, community_id: int, name: str, listable: bool = True) -> Community:
        community = Community(id=community_id, name=name)
        self.communities.append(community)
        self.members.setdefault(community_id, [])
        if not listable:
            self.unlistable.add(community_id)
        return community

    # -- MessagingTransport ----------------------------------------------

    async def fetch_user(self, user_id: int) -> RemoteUser:
        if user_id not in self.users:
            raise TransportNotFound("Unknown User", code=10013)
        return self.users[user_id]

    async def fetch_channel(self, channel_id: int) -> RemoteChannel:
        if channel_id not in self.channels:
            raise TransportNotFound("Unknown Channel", code=10003)
        return self.channels[channel_id]

    async def open_private_channel(self, user: RemoteUser) -> RemoteChannel:
        self.opened_handles.append(user.handle)
        # DM channel ids are derived from the user id so sends are attributable
        return RemoteChannel(id=user.id, text_capable=True)

    async def send(self, channel: RemoteChannel, text: str) -> None:
        if channel.id in self.blocked_users:
            raise TransportForbidden("Cannot send messages to this user", code=50007)
        if channel.id in self.send_failures:
            raise self.send_failures[channel.id]
        self.sent.append((channel.id, text))

    async def list_communities(self) -> list[Community]:
        return list(self.communities)

    async def list_members(self, community: Community) -> list[RemoteUser]:
        self.member_fetches.append(community.id)
        if community.id in self.unlistable:
            raise MemberListingUnavailable("Missing Access")
        return list(self.members.get(community.id, []))


@pytest.fixture
def transport() -> FakeTransport:
    fake = FakeTransport()
    fake.add_community(1, "guild-one")
    fake.add_user(ALICE_ID, "Alice", community_id=1)
    fake.add_user(BOB_ID, "bob", community_id=1)
    fake.channels[TEXT_CHANNEL_ID] = RemoteChannel(id=TEXT_CHANNEL_ID, text_capable=True)
    fake.channels[VOICE_CATEGORY_ID] = RemoteChannel(id=VOICE_CATEGORY_ID, text_capable=False)
    return fake


@pytest.fixture
def ready_gate() -> ReadinessGate:
    gate = ReadinessGate()
    gate.begin_connecting()
    gate.mark_ready()
    return gate


@pytest.fixture
def dispatcher(transport: FakeTransport, ready_gate: ReadinessGate) -> MessageDispatcher:
    return MessageDispatcher(transport, ready_gate, ready_timeout=1.0)
