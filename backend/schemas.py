from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any
from enum import Enum
from datetime import datetime, date as date_type
from urllib.parse import urlparse


class UserRoleEnum(str, Enum):
    USER = "user"
    ADMIN = "admin"


class RequestStatusEnum(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RankBadgeEnum(str, Enum):
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"
    PLAIN = "plain"


def _normalize_optional_http_url(value: Optional[str], field_name: str, max_length: int = 500) -> Optional[str]:
    raw = str(value or "").strip()
    if not raw:
        return None
    if len(raw) > max_length:
        raise ValueError(f"{field_name} must be at most {max_length} characters")
    parsed = urlparse(raw)
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"{field_name} must be a valid http/https URL")
    return raw


def _require_text(value: Optional[str], field_name: str) -> str:
    normalized = str(value or "").strip()
    if not normalized:
        raise ValueError(f"{field_name} is required")
    return normalized


def _enum_value(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    normalized = str(value).strip()
    return normalized or None


# Auth Schemas
class MemberRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=2, max_length=255)
    org_unit: str = Field(..., min_length=1, max_length=150)

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        normalized = _require_text(v, "Full name")
        if len(normalized) < 2:
            raise ValueError("Full name must be at least 2 characters")
        return normalized

    @field_validator('org_unit')
    @classmethod
    def validate_org_unit(cls, v):
        return _require_text(v, "Organisational unit")


class MemberLogin(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    full_name: str
    org_unit: Optional[str] = None
    avatar_url: Optional[str] = None
    total_participation_count: int
    last_activity_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ProfileSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    avatar_url: Optional[str] = None


class MeResponse(BaseModel):
    user_id: int
    email: str
    role: UserRoleEnum
    is_admin: bool
    profile: Optional[ProfileResponse] = None

    @field_validator('role', mode="before")
    @classmethod
    def unwrap_role(cls, v):
        return _enum_value(v)


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: MeResponse


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    org_unit: Optional[str] = Field(None, max_length=150)
    avatar_url: Optional[str] = None

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        if v is None:
            return v
        return _require_text(v, "Full name")

    @field_validator('org_unit')
    @classmethod
    def validate_org_unit(cls, v):
        return _optional_text(v)

    @field_validator('avatar_url')
    @classmethod
    def validate_avatar_url(cls, v):
        return _normalize_optional_http_url(v, "avatar_url")


class AdminProfileCreate(BaseModel):
    full_name: str = Field(..., min_length=2, max_length=255)
    org_unit: Optional[str] = Field(None, max_length=150)
    avatar_url: Optional[str] = None

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        return _require_text(v, "Full name")

    @field_validator('org_unit')
    @classmethod
    def validate_org_unit(cls, v):
        return _optional_text(v)

    @field_validator('avatar_url')
    @classmethod
    def validate_avatar_url(cls, v):
        return _normalize_optional_http_url(v, "avatar_url")


class AccountLinkRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class RoleUpdate(BaseModel):
    role: UserRoleEnum


class AdminUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    role: UserRoleEnum
    profile_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @field_validator('role', mode="before")
    @classmethod
    def unwrap_role(cls, v):
        return _enum_value(v)


# Competition Schemas
class CompetitionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    date: date_type
    description: Optional[str] = None
    category: str = Field("General", min_length=1, max_length=100)

    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        return _require_text(v, "Title")

    @field_validator('category')
    @classmethod
    def validate_category(cls, v):
        return _require_text(v, "Category")

    @field_validator('description')
    @classmethod
    def validate_description(cls, v):
        return _optional_text(v)


class CompetitionUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    date: Optional[date_type] = None
    description: Optional[str] = None
    category: Optional[str] = Field(None, min_length=1, max_length=100)

    @field_validator('title', 'category')
    @classmethod
    def validate_required_when_present(cls, v):
        if v is None:
            return v
        return _require_text(v, "Value")


class CompetitionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    date: date_type
    description: Optional[str] = None
    category: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CompetitionSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    date: Optional[date_type] = None
    category: Optional[str] = None


# Verification Schemas
class VerificationRequestCreate(BaseModel):
    competition_title: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=100)
    message: str = Field(..., min_length=1)
    participation_date: Optional[datetime] = None

    @field_validator('competition_title')
    @classmethod
    def validate_competition_title(cls, v):
        return _require_text(v, "Competition title")

    @field_validator('category')
    @classmethod
    def validate_category(cls, v):
        return _require_text(v, "Category")

    @field_validator('message')
    @classmethod
    def validate_message(cls, v):
        return _require_text(v, "Message")


class VerificationRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    profile_id: int
    competition_id: Optional[int] = None
    message: str
    participation_date: Optional[datetime] = None
    status: RequestStatusEnum
    reviewed_by: Optional[int] = None
    reviewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    profile: Optional[ProfileSummary] = None
    competition: Optional[CompetitionSummary] = None

    @field_validator('status', mode="before")
    @classmethod
    def unwrap_status(cls, v):
        return _enum_value(v)


# Participation Schemas
class ParticipationCreate(BaseModel):
    profile_id: int
    competition_title: str = Field(..., min_length=1, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    participation_date: Optional[datetime] = None

    @field_validator('competition_title')
    @classmethod
    def validate_competition_title(cls, v):
        return _require_text(v, "Competition title")

    @field_validator('category', 'notes')
    @classmethod
    def validate_optional_text(cls, v):
        return _optional_text(v)


class ParticipationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    profile_id: int
    competition_id: int
    admin_id: Optional[int] = None
    notes: Optional[str] = None
    participation_date: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    profile: Optional[ProfileSummary] = None
    competition: Optional[CompetitionSummary] = None


# Leaderboard Schemas
class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rank: int
    badge: RankBadgeEnum
    profile_id: int
    full_name: str
    org_unit: Optional[str] = None
    avatar_url: Optional[str] = None
    participation_count: int
    total_participation_count: int
    last_activity_at: Optional[datetime] = None


class LeaderboardResponse(BaseModel):
    entries: List[LeaderboardEntry] = Field(default_factory=list)
    total_matches: int = 0
    truncated: bool = False
    is_empty: bool = True
    search: Optional[str] = None
    category: Optional[str] = None
    revision: int = 0


class LeaderboardRevisionResponse(BaseModel):
    revision: int


class PresignRequest(BaseModel):
    filename: str = Field(..., min_length=1)
    content_type: str = Field(..., min_length=1)


class PresignResponse(BaseModel):
    upload_url: str
    public_url: str
    key: str
    content_type: str


class AdminLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    admin_id: Optional[int] = None
    admin_email: str
    admin_name: str
    action: str
    method: Optional[str] = None
    path: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
