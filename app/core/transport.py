"""
Transport contract consumed by the resolver and dispatcher.

The Discord adapter in app/discord/client.py implements it; tests use an
in-memory fake. `handle` carries the SDK object a value was built from so the
adapter can act on it later without another round trip.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class RemoteUser:
    id: int
    name: str
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class RemoteChannel:
    id: int
    text_capable: bool
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class Community:
    id: int
    name: str
    handle: Any = field(default=None, compare=False, repr=False)


class TransportFailure(Exception):
    """Any failure reported by the messaging backend."""

    def __init__(self, detail: str, code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.code = code


class TransportNotFound(TransportFailure):
    pass


class TransportForbidden(TransportFailure):
    pass


class TransportThrottled(TransportFailure):
    def __init__(self, detail: str, retry_after: float | None = None):
        super().__init__(detail, code=429)
        self.retry_after = retry_after


class MemberListingUnavailable(TransportFailure):
    """Listing a community's members needs a privileged grant the bot lacks."""


class MessagingTransport(Protocol):
    async def fetch_user(self, user_id: int) -> RemoteUser: ...

    async def fetch_channel(self, channel_id: int) -> RemoteChannel: ...

    async def open_private_channel(self, user: RemoteUser) -> RemoteChannel: ...

    async def send(self, channel: RemoteChannel, text: str) -> None: ...

    async def list_communities(self) -> list[Community]: ...

    async def list_members(self, community: Community) -> list[RemoteUser]: ...
