from typing import Any, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from citaflow.logging_config import get_logger

logger = get_logger("webhook_schema")

INBOUND_EVENT = "message:in:new"
OUTBOUND_EVENT = "message:out:new"


class ContactMetadata(BaseModel):
    key: str
    value: Optional[Any] = None


class ChatContact(BaseModel):
    metadata: list[ContactMetadata] = Field(default_factory=list)


class Chat(BaseModel):
    labels: list[str] = Field(default_factory=list)
    contact: Optional[ChatContact] = None

    @field_validator("labels", mode="before")
    @classmethod
    def _label_names(cls, value: Any) -> list[str]:
        # Labels arrive either as plain names or as {"name": ...} objects.
        if not isinstance(value, list):
            return []
        names = []
        for label in value:
            if isinstance(label, dict):
                label = label.get("name")
            if isinstance(label, str) and label:
                names.append(label)
        return names


class MessageMeta(BaseModel):
    isFirstMessage: Optional[bool] = None


class Device(BaseModel):
    id: Optional[str] = None


class InboundData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    fromNumber: str = Field(min_length=1)
    from_jid: Optional[str] = Field(default=None, validation_alias=AliasChoices("from", "from_jid"))
    body: str = Field(min_length=1)
    flow: Optional[str] = None
    meta: Optional[MessageMeta] = None
    chat: Optional[Chat] = None

    @property
    def labels(self) -> list[str]:
        return self.chat.labels if self.chat else []

    def metadata_value(self, key: str) -> Optional[str]:
        if not self.chat or not self.chat.contact:
            return None
        for item in self.chat.contact.metadata:
            if item.key == key:
                return None if item.value is None else str(item.value)
        return None


class OutboundData(BaseModel):
    model_config = ConfigDict(extra="allow")

    to: Optional[str] = None
    agent: Optional[Any] = None


class InboundMessage(BaseModel):
    """A message a contact sent to the tenant's WhatsApp number."""

    event: Literal["message:in:new"]
    device: Device = Field(default_factory=Device)
    data: InboundData
    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)

    @property
    def device_id(self) -> Optional[str]:
        return self.device.id

    @property
    def phone(self) -> str:
        return self.data.fromNumber

    @property
    def jid(self) -> str:
        return self.data.from_jid or f"{self.data.fromNumber}@c.us"

    @property
    def is_first_message(self) -> Optional[bool]:
        return self.data.meta.isFirstMessage if self.data.meta else None


class OutboundMessage(BaseModel):
    """A message sent from the tenant's number, by the automation or by a human operator."""

    event: Literal["message:out:new"]
    device: Device = Field(default_factory=Device)
    data: OutboundData = Field(default_factory=OutboundData)

    @property
    def device_id(self) -> Optional[str]:
        return self.device.id

    @property
    def sent_by_human(self) -> bool:
        return bool(self.data.agent)


WebhookEvent = Union[InboundMessage, OutboundMessage]


def _normalize_event_name(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip().replace("/", ":")


def parse_webhook_event(payload: Any) -> Optional[WebhookEvent]:
    """Validate a provider payload into a tagged event, or None when it is not actionable."""
    if not isinstance(payload, dict):
        return None

    event_name = _normalize_event_name(payload.get("event"))
    normalized = {**payload, "event": event_name}

    try:
        if event_name == OUTBOUND_EVENT:
            if not isinstance(normalized.get("data"), dict):
                normalized["data"] = {}
            return OutboundMessage.model_validate(normalized)
        if event_name == INBOUND_EVENT:
            message = InboundMessage.model_validate(normalized)
            message.raw = payload
            return message
    except ValidationError as exc:
        logger.info(
            "Webhook received but missing data",
            extra={"context": {"event": event_name, "errors": exc.error_count()}},
        )
        return None

    logger.info("Ignoring unsupported webhook event", extra={"context": {"event": event_name}})
    return None
