# pydantic models for data validation and structure
import json
import logging
from datetime import datetime
from enum import Enum
from typing import List, Dict, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import MIN_SLIDES, MAX_SLIDES, DEFAULT_TEMPLATE_ID

logger = logging.getLogger(__name__)


# the two monthly credit counters
class CreditCounter(str, Enum):
    TOKENS = "tokens"
    COINS = "coins"


# llm backends that can be configured
class ProviderKind(str, Enum):
    AZURE = "azure"
    OPENROUTER = "openrouter"


_TRUTHY = (True, 1, "true", "1")


# typed permission set, coerced once at the storage/token boundary
class Permissions(BaseModel):
    sudo: bool = False

    @classmethod
    def from_raw(cls, raw: Any) -> "Permissions":
        """Build permissions from a dict, a JSON string or a double-encoded JSON string"""
        value = raw
        try:
            # stored blobs are sometimes JSON inside a JSON string
            for _ in range(2):
                if isinstance(value, (str, bytes)):
                    value = json.loads(value)
        except (TypeError, ValueError) as e:
            logger.warning(f"Unreadable permissions blob {raw!r}: {e}")
            return cls()

        if isinstance(value, Permissions):
            return value
        if not isinstance(value, dict):
            return cls()

        sudo = value.get("sudo", False)
        if isinstance(sudo, str):
            sudo = sudo.strip().lower()
        return cls(sudo=sudo in _TRUTHY)

    def merged(self, changes: Dict[str, Any]) -> "Permissions":
        data = self.model_dump()
        data.update(changes)
        return Permissions.from_raw(data)

    def to_json(self) -> str:
        return json.dumps(self.model_dump())


# who a session token says the caller is
class Identity(BaseModel):
    username: str
    permissions: Permissions = Field(default_factory=Permissions)


# stored user row
class UserRecord(BaseModel):
    id: Optional[int] = None
    username: str
    email: str
    password_hash: str
    permissions: Permissions = Field(default_factory=Permissions)
    omnitokens: int
    omnicoins: int
    last_reset: datetime
    created_at: Optional[datetime] = None

    def public(self) -> Dict[str, Any]:
        """User fields that are safe to return to a client"""
        return {
            "username": self.username,
            "email": self.email,
            "permissions": self.permissions.model_dump(),
            "omnitokens": self.omnitokens,
            "omnicoins": self.omnicoins,
            "lastReset": self.last_reset.isoformat(),
        }


# one slide worth of generated content
class SlideContent(BaseModel):
    title: str
    content: List[str] = Field(default_factory=list)
    notes: Optional[str] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("slide title must not be empty")
        return v.strip()

    @field_validator("content", mode="before")
    @classmethod
    def content_as_list(cls, v):
        # models occasionally return a single string instead of a list
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# request body for the full generation pipeline
class GenerateRequest(_CamelModel):
    topic: str = Field(..., min_length=1)
    description: Optional[str] = None
    slide_count: Optional[int] = Field(None, alias="slideCount", ge=MIN_SLIDES, le=MAX_SLIDES)
    template_id: str = Field(DEFAULT_TEMPLATE_ID, alias="templateId")
    mix_layouts: bool = Field(False, alias="mixLayouts")
    slides: Optional[List[SlideContent]] = None

    @field_validator("topic")
    @classmethod
    def topic_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("topic must not be empty")
        return v.strip()

    @property
    def has_supplied_slides(self) -> bool:
        return bool(self.slides)


# request body for the content-only (review) step
class GenerateContentRequest(_CamelModel):
    topic: str = Field(..., min_length=1)
    description: Optional[str] = None
    slide_count: int = Field(..., alias="slideCount", ge=MIN_SLIDES, le=MAX_SLIDES)


# response for a finished generation
class GenerateResult(_CamelModel):
    presentation_id: str = Field(..., alias="presentationId")
    slide_count: int = Field(..., alias="slideCount")
    template_name: str = Field(..., alias="templateName")
    warnings: List[str] = Field(default_factory=list)
    message: str = "Presentation generated successfully"


# response for the content-only step
class GeneratedContent(BaseModel):
    slides: List[SlideContent]
    warnings: List[str] = Field(default_factory=list)


# response for a presentation whose html the model designed
class DesignedResult(_CamelModel):
    presentation_id: str = Field(..., alias="presentationId")
    slide_count: int = Field(..., alias="slideCount")
    slides: List[SlideContent]
    warnings: List[str] = Field(default_factory=list)
    message: str = "Presentation generated successfully"


# stored presentation
class PresentationRecord(_CamelModel):
    id: str
    owner: Optional[str] = None
    title: str = ""
    description: str = ""
    html: Optional[str] = None
    slide_count: Optional[int] = Field(None, alias="slideCount")
    # raw slide records, or per-slide html fragments in the legacy layout
    slides: Optional[List[Dict[str, Any]]] = None
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @property
    def is_legacy(self) -> bool:
        return not self.html and bool(self.slides)


# summary row for the "my presentations" list
class PresentationSummary(_CamelModel):
    id: str
    title: str
    description: str = ""
    slide_count: Optional[int] = Field(None, alias="slideCount")
    created_at: datetime = Field(..., alias="createdAt")
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")


# auth request bodies
class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ResetCreditsRequest(BaseModel):
    username: str = Field(..., min_length=1)


class UpdatePermissionsRequest(BaseModel):
    username: str = Field(..., min_length=1)
    permissions: Dict[str, Any]


# provider admin request bodies
class AzureProviderRequest(_CamelModel):
    api_key: str = Field(..., alias="apiKey", min_length=1)
    endpoint: str = Field(..., min_length=1)
    deployment_name: str = Field(..., alias="deploymentName", min_length=1)
    api_version: str = Field("2024-02-15-preview", alias="apiVersion", min_length=1)


class OpenRouterProviderRequest(_CamelModel):
    api_key: str = Field(..., alias="apiKey", min_length=1)
    base_url: Optional[str] = Field(None, alias="baseUrl")
    model: str = Field(..., min_length=1)


class SetActiveProviderRequest(BaseModel):
    provider: ProviderKind
