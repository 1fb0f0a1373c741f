from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# Models
class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    TAKEN = "taken"
    UNKNOWN = "unknown"


class Intent(str, Enum):
    DOMAIN_REQUEST = "domain_request"
    PROJECT_DISCUSSION = "project_discussion"
    REFINEMENT = "refinement"
    GENERAL = "general"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class DomainStatusRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    domain: str
    status: AvailabilityStatus
    price: Optional[float] = Field(default=None, description="Registration price in whole currency units")
    currency: Optional[str] = None
    period: Optional[int] = Field(default=None, description="Registration period in years")
    register_url: str = Field(..., alias="registerURL", min_length=1)
    summary: str


class DomainSuggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    domain: str
    explanation: str = ""
    relevance_score: Optional[float] = Field(default=None, alias="relevanceScore", description="How well it matches user intent (1-10)")
    category: Optional[str] = Field(default=None, description="e.g. brandable, descriptive, keyword-rich")
    reasoning: Optional[str] = None


class DomainWithStatus(DomainSuggestion):
    status: AvailabilityStatus = AvailabilityStatus.UNKNOWN
    register_url: Optional[str] = Field(default=None, alias="registerURL")
    price: Optional[str] = None
    currency: Optional[str] = None
    summary: Optional[str] = None

    @classmethod
    def merge(cls, suggestion: DomainSuggestion, record: Optional[DomainStatusRecord]) -> "DomainWithStatus":
        data = suggestion.model_dump()
        if record is not None:
            data.update(
                status=record.status,
                register_url=record.register_url,
                price=f"${record.price:.2f}" if record.price is not None else None,
                currency=record.currency,
                summary=record.summary,
            )
        return cls(**data)


class ConversationalResponse(BaseModel):
    assistant_reply: str
    domain_suggestions: List[DomainSuggestion] = Field(default_factory=list)
    intent: Intent = Intent.GENERAL
    needs_more_info: bool = False


class Conversation(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str
    name: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)


class ChatMessage(BaseModel):
    id: str = Field(default_factory=_new_id)
    conversation_id: str
    role: MessageRole
    content: str
    created_at: datetime = Field(default_factory=_now)


class StoredSuggestion(BaseModel):
    conversation_id: str
    user_id: str
    domain: str
    explanation: str = ""
    available: bool
    created_at: datetime = Field(default_factory=_now)


class TokenUsage(BaseModel):
    user_id: str
    tokens_used: int
    api_call_type: str
    created_at: datetime = Field(default_factory=_now)


# Request bodies
class CheckDomainRequest(BaseModel):
    domain: Optional[str] = Field(default=None, description="Single domain to check")
    domains: List[str] = Field(default_factory=list, description="Domains to check, in order")

    @field_validator("domains")
    @classmethod
    def clean_domains(cls, v):
        return [d.strip() for d in v if d and d.strip()]

    def all_domains(self) -> List[str]:
        domains = []
        if self.domain and self.domain.strip():
            domains.append(self.domain.strip())
        domains.extend(self.domains)
        return domains


class SuggestDomainsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: Optional[str] = None
    conversation_id: Optional[str] = Field(default=None, alias="conversationId")


class CreateConversationRequest(BaseModel):
    name: Optional[str] = None


class CreateMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    role: Optional[MessageRole] = None
    content: Optional[str] = None
