from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from app.core.models import IDENTIFIER_PATTERN


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SendMessageIn(CamelModel):
    """Single send. `reference` is a user ID or username; `channelId` targets a channel."""

    reference: str | None = Field(
        default=None, validation_alias=AliasChoices("reference", "usernameOrId")
    )
    channel_id: str | None = None
    text: str = Field(min_length=1, validation_alias=AliasChoices("text", "message"))

    @model_validator(mode="after")
    def _one_recipient(self):
        reference = (self.reference or "").strip()
        channel_id = (self.channel_id or "").strip()
        if bool(reference) == bool(channel_id):
            raise ValueError("Provide exactly one of reference or channelId")
        if channel_id and not IDENTIFIER_PATTERN.fullmatch(channel_id):
            raise ValueError("channelId must be a 17-19 digit Discord ID")
        if not self.text.strip():
            raise ValueError("Message text must not be empty")
        return self


class SendMessageOut(CamelModel):
    success: bool = True
    message: str
    resolved_display_name: str | None = None
    resolved_user_id: str | None = None
    resolved_channel_id: str | None = None


class BulkErrorOut(CamelModel):
    row: int
    user: str
    error: str
    kind: str


class BulkResultsOut(CamelModel):
    total: int
    success: int
    failed: int
    cancelled: bool = False
    errors: list[BulkErrorOut] = []


class BulkSendOut(CamelModel):
    success: bool = True
    message: str
    results: BulkResultsOut


class HealthOut(CamelModel):
    status: str
    discord: str
    detail: str | None = None
