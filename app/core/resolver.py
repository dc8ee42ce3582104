"""
Recipient resolver: turns a reference (id or username) into a concrete user.

- Identifier references are fetched directly, one remote call.
- Display names are searched across every community the bot is in, visited
  in ascending community id so repeated lookups pick the same account when a
  username exists in several communities. First match wins.
"""

import structlog

from app.core.errors import DispatchError, DispatchErrorKind
from app.core.models import (
    RecipientKind,
    UserTarget,
    classify_reference,
    normalize_display_name,
)
from app.core.transport import (
    MemberListingUnavailable,
    MessagingTransport,
    TransportFailure,
    TransportNotFound,
    TransportThrottled,
)

logger = structlog.get_logger()

LOOKUP_UNAVAILABLE_HINT = (
    "Searching by username requires the SERVER MEMBERS intent to be enabled for the bot "
    "(Developer Portal -> Bot -> Privileged Gateway Intents). "
    "Use the numeric user ID instead, which works without privileged intents."
)


def classify_lookup_failure(exc: TransportFailure, context: str) -> DispatchError:
    """Map a transport failure raised during lookup onto the dispatch taxonomy."""
    if isinstance(exc, TransportNotFound):
        return DispatchError(DispatchErrorKind.NOT_FOUND, f"{context} not found")
    if isinstance(exc, TransportThrottled):
        return DispatchError(
            DispatchErrorKind.RATE_LIMITED,
            f"Rate limited by Discord while looking up {context}; try again later",
        )
    return DispatchError(
        DispatchErrorKind.TRANSPORT_ERROR, f"Failed to look up {context}: {exc.detail}"
    )


class RecipientResolver:
    def __init__(self, transport: MessagingTransport):
        self._transport = transport

    async def resolve(self, reference: str) -> UserTarget:
        reference = reference.strip()
        if classify_reference(reference) is RecipientKind.IDENTIFIER:
            return await self.resolve_identifier(reference)
        return await self.resolve_display_name(reference)

    async def resolve_identifier(self, user_id: str) -> UserTarget:
        user_id = user_id.strip()
        try:
            user = await self._transport.fetch_user(int(user_id))
        except TransportFailure as e:
            raise classify_lookup_failure(e, f"User with ID '{user_id}'") from e
        return UserTarget(id=user.id, display_name=user.name, handle=user.handle)

    async def resolve_display_name(self, name: str) -> UserTarget:
        wanted = normalize_display_name(name)
        log = logger.bind(display_name=wanted)

        try:
            communities = await self._transport.list_communities()
        except TransportFailure as e:
            raise classify_lookup_failure(e, f"User '{name.strip()}'") from e

        unlisted: list[str] = []
        for community in sorted(communities, key=lambda c: c.id):
            try:
                members = await self._transport.list_members(community)
            except MemberListingUnavailable:
                log.warning("resolver.members_unavailable", community=community.name)
                unlisted.append(community.name)
                continue
            except TransportFailure as e:
                raise classify_lookup_failure(e, f"User '{name.strip()}'") from e

            for member in members:
                if member.name.lower() == wanted:
                    log.debug("resolver.matched", community=community.name, user_id=member.id)
                    return UserTarget(
                        id=member.id, display_name=member.name, handle=member.handle
                    )

        if unlisted:
            raise DispatchError(
                DispatchErrorKind.AMBIGUOUS_LOOKUP_UNAVAILABLE,
                f"Could not search for user '{name.strip()}' in {len(unlisted)} server(s). "
                f"{LOOKUP_UNAVAILABLE_HINT}",
            )
        raise DispatchError(DispatchErrorKind.NOT_FOUND, f"User '{name.strip()}' not found")
