from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel


class TrainRequest(BaseModel):
    tenant_id: UUID


class ContactSummary(BaseModel):
    contact: str
    messages: int
    tone: Optional[str] = None
    relationship: Optional[str] = None


class TrainResponse(BaseModel):
    status: str = "trained"
    messages_analyzed: int
    contacts_analyzed: int
    is_fallback: bool = False
    fallback_reason: Optional[str] = None
    per_contact_summary: list[ContactSummary] = []
    learned_style: dict[str, Any]
