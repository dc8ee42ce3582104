import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from app.core.errors import DispatchErrorKind

IDENTIFIER_PATTERN = re.compile(r"^\d{17,19}$")


class RecipientKind(str, Enum):
    IDENTIFIER = "identifier"
    DISPLAY_NAME = "display_name"


def classify_reference(reference: str) -> RecipientKind:
    """Identifier if the trimmed reference is 17-19 digits, display name otherwise."""
    if IDENTIFIER_PATTERN.fullmatch(reference.strip()):
        return RecipientKind.IDENTIFIER
    return RecipientKind.DISPLAY_NAME


def normalize_display_name(name: str) -> str:
    return name.strip().lower()


@dataclass(frozen=True)
class UserTarget:
    id: int
    display_name: str
    # transport object the user was resolved from, reused to open the DM
    handle: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class ChannelTarget:
    id: int


ResolvedTarget = UserTarget | ChannelTarget


@dataclass(frozen=True)
class SendRequest:
    """One private-message or channel send. Exactly one recipient field is set."""

    text: str
    display_name: str | None = None
    user_id: str | None = None
    channel_id: str | None = None

    def __post_init__(self):
        recipients = [v for v in (self.display_name, self.user_id, self.channel_id) if v is not None]
        if len(recipients) != 1:
            raise ValueError("Exactly one of display_name, user_id or channel_id must be set")
        if not recipients[0].strip():
            raise ValueError("Recipient must not be blank")
        if not self.text or not self.text.strip():
            raise ValueError("Message text must not be empty")
        for name in ("user_id", "channel_id"):
            value = getattr(self, name)
            if value is not None and not IDENTIFIER_PATTERN.fullmatch(value.strip()):
                raise ValueError(f"{name} must be a 17-19 digit identifier")

    @classmethod
    def for_reference(cls, reference: str, text: str) -> "SendRequest":
        """Build a user request from a raw reference, choosing id or name by its shape."""
        reference = reference.strip()
        if classify_reference(reference) is RecipientKind.IDENTIFIER:
            return cls(text=text, user_id=reference)
        return cls(text=text, display_name=reference)


@dataclass(frozen=True)
class SendResult:
    text: str
    resolved_display_name: str | None = None
    resolved_user_id: str | None = None
    resolved_channel_id: str | None = None


@dataclass(frozen=True)
class BulkFailure:
    row: int  # 1-based position in the extracted recipient list
    reference: str
    detail: str
    kind: DispatchErrorKind


@dataclass(frozen=True)
class BulkReport:
    total: int
    succeeded: int
    failed: int
    failures: tuple[BulkFailure, ...] = field(default_factory=tuple)
    cancelled: bool = False

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed
