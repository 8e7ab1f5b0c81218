from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime

from time_utils import ensure_utc


# Auth Schemas
class AdminLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v


class AdminUserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    role: str


class SessionResponse(BaseModel):
    success: bool = True
    user: AdminUserResponse


# Participant Schemas
class CheckStatus(BaseModel):
    status: bool = False
    time: Optional[datetime] = None


class WifiCredentials(BaseModel):
    ssid: Optional[str] = None
    password: Optional[str] = None


class ParticipantCreate(BaseModel):
    participant_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    phone: Optional[str] = None
    role: Optional[str] = None
    team_name: Optional[str] = None
    institute: Optional[str] = None
    lab_allotted: Optional[str] = None
    wifi_credentials: Optional[WifiCredentials] = None
    college_check_in: Optional[CheckStatus] = None
    lab_check_in: Optional[CheckStatus] = None

    @field_validator("participant_id")
    @classmethod
    def strip_participant_id(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("participant_id must not be blank")
        return v


class ParticipantUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    team_name: Optional[str] = None
    institute: Optional[str] = None
    lab_allotted: Optional[str] = None
    wifi_credentials: Optional[WifiCredentials] = None
    college_check_in: Optional[CheckStatus] = None
    lab_check_in: Optional[CheckStatus] = None
    college_check_out: Optional[CheckStatus] = None
    temp_lab_check_out: Optional[CheckStatus] = None


class ParticipantResponse(BaseModel):
    participant_id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: Optional[str] = None
    team_name: Optional[str] = None
    institute: Optional[str] = None
    lab_allotted: Optional[str] = None
    wifi_credentials: Optional[WifiCredentials] = None
    college_check_in: CheckStatus
    lab_check_in: CheckStatus
    college_check_out: CheckStatus
    temp_lab_check_out: CheckStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CheckInRequest(BaseModel):
    type: Literal["college", "lab"]
    status: bool


class CheckOutRequest(BaseModel):
    type: Literal["college", "temp_lab"]
    status: bool


class CheckInStats(BaseModel):
    total: int
    college_only: int
    in_lab: int
    temp_out: int
    alerts: int
    checked_out: int
    not_arrived: int


class TempCheckoutAlert(BaseModel):
    participant_id: str
    name: str
    team_name: Optional[str] = None
    lab_allotted: Optional[str] = None
    since: datetime
    minutes_away: int


class CheckInOverview(BaseModel):
    stats: CheckInStats
    alerts: List[TempCheckoutAlert]


# Sponsor Schemas
class SponsorCreate(BaseModel):
    sponsor_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255)
    phone: Optional[str] = None
    role: Optional[str] = None
    company_name: Optional[str] = None


class SponsorUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    company_name: Optional[str] = None


class SponsorResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sponsor_id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: Optional[str] = None
    company_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_times(cls, v):
        return ensure_utc(v)


class BulkWriteResult(BaseModel):
    success: bool = True
    count: int


# Database / backup Schemas
class DatabaseStats(BaseModel):
    total: int
    college_checked_in: int
    lab_checked_in: int
    checked_out: int


class ImportResult(BaseModel):
    upserted: int
    modified: int
    errors: List[str]


class BackupFrequencyRequest(BaseModel):
    frequency: Literal["5min", "10min", "20min", "manual"]


class BackupFrequencyResult(BaseModel):
    ok: bool
    error: Optional[str] = None


class BackupLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    success: bool
    count: Optional[int] = None
    filename: Optional[str] = None
    file_url: Optional[str] = None
    error: Optional[str] = None
    duration_ms: int
    time: datetime
    source: str

    @field_validator("time")
    @classmethod
    def normalize_times(cls, v):
        return ensure_utc(v)


class BackupRunResponse(BaseModel):
    success: bool
    count: int
    filename: str
    file_url: str
    time: datetime


# Mailer Schemas
class EmailRecipient(BaseModel):
    name: Optional[str] = None
    email: str
    role: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None


class MailerSendRequest(BaseModel):
    subject: str = ""
    content: str = ""
    recipients: List[EmailRecipient] = Field(default_factory=list)


class MailerSendResponse(BaseModel):
    success: bool
    sent: int
    failed: int
    errors: List[str] = Field(default_factory=list)
    message: Optional[str] = None


class MailerPreviewRequest(BaseModel):
    content: str
    recipient: Optional[EmailRecipient] = None


class EmailTemplateResponse(BaseModel):
    key: str
    label: str
    html: str


# ID card Schemas
class IdCardData(BaseModel):
    participant_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., max_length=255)
    email: Optional[str] = None
    role: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None


class IdCardBulkRequest(BaseModel):
    cards: List[IdCardData] = Field(..., min_length=1)
    base_name: str = Field(default="id_cards", min_length=1, max_length=100)


# Bot Schemas
class BotConfigMeta(BaseModel):
    updated_at: Optional[datetime] = None
    updated_by: Optional[str] = None
    version: int


class BotConfigResponse(BaseModel):
    data: Dict[str, Any]
    meta: BotConfigMeta


class BotConfigHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    snapshot_of: str
    data: Dict[str, Any]
    version: int
    saved_at: datetime
    saved_by: Optional[str] = None

    @field_validator("saved_at")
    @classmethod
    def normalize_times(cls, v):
        return ensure_utc(v)


class BotStatusResponse(BaseModel):
    online: bool
    last_seen: Optional[datetime] = None
    tag: Optional[str] = None
    ping: Optional[int] = None
    guild_count: Optional[int] = None
    started_at: Optional[datetime] = None
    stale_ms: Optional[int] = None


class BotLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    event: Optional[str] = None
    user_id: Optional[str] = None
    username: Optional[str] = None
    channel_id: Optional[str] = None
    detail: Optional[str] = None
    success: bool
    duration_ms: Optional[int] = None
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def normalize_times(cls, v):
        return ensure_utc(v)


class BotLogSummary(BaseModel):
    total: int
    errors: int
    avg_ms: int


class BotLogsResponse(BaseModel):
    logs: List[BotLogResponse]
    summary: Dict[str, BotLogSummary]


class ScheduledMessageCreate(BaseModel):
    name: str = ""
    channel_id: str = ""
    message_format: Literal["plain", "embed"] = "plain"
    content: Optional[str] = None
    embed_title: Optional[str] = None
    embed_color: str = "#FF6B35"
    schedule_type: Literal["once", "recurring"] = "once"
    cron_expression: Optional[str] = None
    send_at: Optional[datetime] = None


class ScheduledMessageToggle(BaseModel):
    active: bool


class ScheduledMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    channel_id: str
    message_format: str
    content: Optional[str] = None
    embed_title: Optional[str] = None
    embed_color: str
    schedule_type: str
    cron_expression: Optional[str] = None
    send_at: Optional[datetime] = None
    active: bool
    sent: bool
    sent_count: int
    last_sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None

    @field_validator("send_at", "last_sent_at", "created_at")
    @classmethod
    def normalize_times(cls, v):
        return ensure_utc(v)
