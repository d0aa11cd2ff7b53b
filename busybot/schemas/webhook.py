from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class EvolutionMessageKey(BaseModel):
    remoteJid: Optional[str] = None
    fromMe: bool = False
    id: Optional[str] = None


class EvolutionTextPart(BaseModel):
    text: Optional[str] = None


class EvolutionMediaPart(BaseModel):
    model_config = ConfigDict(extra="allow")

    caption: Optional[str] = None


class EvolutionMessageContent(BaseModel):
    model_config = ConfigDict(extra="allow")

    conversation: Optional[str] = None
    extendedTextMessage: Optional[EvolutionTextPart] = None
    imageMessage: Optional[EvolutionMediaPart] = None
    videoMessage: Optional[EvolutionMediaPart] = None
    audioMessage: Optional[EvolutionMediaPart] = None


class EvolutionEventData(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: Optional[EvolutionMessageKey] = None
    pushName: Optional[str] = None
    message: Optional[EvolutionMessageContent] = None


class EvolutionWebhookEvent(BaseModel):
    """Evolution API webhook body. Only ``messages.upsert`` events are acted on."""

    model_config = ConfigDict(extra="allow")

    event: Optional[str] = None
    instance: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("instance", "instanceName", "instance_name"),
    )
    data: Optional[EvolutionEventData] = None


class WebhookResponse(BaseModel):
    status: str
    reason: Optional[str] = None
    event: Optional[str] = None
    from_me: Optional[bool] = None
    intent: Optional[str] = None
    sentiment: Optional[str] = None
    urgency: Optional[str] = None
    results: list[dict[str, Any]] = []
