from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

MessageKind = Literal["text", "audio", "image", "document"]


class MessageKey(BaseModel):
    model_config = ConfigDict(extra="allow")

    remoteJid: Optional[str] = None
    fromMe: bool = False
    id: Optional[str] = None


class ExtendedTextMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None


class MessageContent(BaseModel):
    model_config = ConfigDict(extra="allow")

    conversation: Optional[str] = None
    extendedTextMessage: Optional[ExtendedTextMessage] = None
    audioMessage: Optional[dict[str, Any]] = None
    imageMessage: Optional[dict[str, Any]] = None
    documentMessage: Optional[dict[str, Any]] = None


class MessageData(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: MessageKey = Field(default_factory=MessageKey)
    pushName: Optional[str] = None
    message: Optional[MessageContent] = None
    messageType: Optional[str] = None


class EvolutionWebhook(BaseModel):
    """Evolution API webhook envelope; only ``messages.upsert`` is handled."""

    model_config = ConfigDict(extra="allow")

    event: Optional[str] = None
    instance: Optional[str] = Field(default=None, validation_alias=AliasChoices("instance", "instanceName"))
    data: Optional[MessageData] = None

    @property
    def contact_id(self) -> Optional[str]:
        if not self.data or not self.data.key.remoteJid:
            return None
        return self.data.key.remoteJid.split("@")[0] or None

    def message_kind(self) -> Optional[MessageKind]:
        content = self.data.message if self.data else None
        if content is None:
            return None
        if self.text:
            return "text"
        if content.audioMessage is not None:
            return "audio"
        if content.imageMessage is not None:
            return "image"
        if content.documentMessage is not None:
            return "document"
        return None

    @property
    def text(self) -> Optional[str]:
        content = self.data.message if self.data else None
        if content is None:
            return None
        if content.extendedTextMessage and content.extendedTextMessage.text:
            return content.extendedTextMessage.text
        return content.conversation or None


class WebhookAck(BaseModel):
    status: Literal["accepted", "ignored", "busy"]
    reason: Optional[str] = None
