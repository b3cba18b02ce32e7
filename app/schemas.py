from datetime import date, datetime, time

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from app.models import ActivityStatus, ActivityType, CustomerType


class SuccessResponse(BaseModel):
    success: bool = True


class ProfileRead(BaseModel):
    id: int
    name: str
    phone: str
    role: str
    team: str
    last_login_at: datetime | None = None
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class LoginRequest(BaseModel):
    phone: str = Field(
        min_length=1,
        max_length=32,
        validation_alias=AliasChoices("phone", "phone_number"),
    )


class AuthUserResponse(BaseModel):
    user: ProfileRead | None = None


class StaffCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    phone: str = Field(
        min_length=1,
        max_length=32,
        validation_alias=AliasChoices("phone", "phone_number"),
    )
    team: str
    role: str | None = None


class StaffUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(
        default=None,
        min_length=1,
        max_length=32,
        validation_alias=AliasChoices("phone", "phone_number"),
    )
    team: str | None = None
    role: str | None = None


class TeamMemberRead(BaseModel):
    id: int
    name: str
    phone: str
    role: str
    team: str
    last_login_at: datetime | None = None


class TeamRolesRead(BaseModel):
    team: str
    roles: list[str]


class TeamsMetaResponse(BaseModel):
    headquarters_team: str
    teams: list[TeamRolesRead]
    role_priority: dict[str, int]


class StaffActivityCreate(BaseModel):
    activity_type: str = Field(default=ActivityType.CUSTOMER_VISIT.value, min_length=1, max_length=64)
    customer_type: CustomerType | None = None
    client_name: str = Field(min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    customer_activity: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    interest: str | None = "Interested"
    follow_up_date: date | None = None
    follow_up_time: time | None = None
    location: str | None = Field(default=None, max_length=1024)
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    follow_up_of_id: int | None = Field(default=None, ge=1)
    gallery: list[str] = Field(default_factory=list)


class StaffActivityUpdate(BaseModel):
    client_name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=32)
    customer_activity: str | None = Field(default=None, max_length=255)
    notes: str | None = None
    status: ActivityStatus | None = None
    follow_up_date: date | None = None
    follow_up_time: time | None = None


class StaffActivityRead(BaseModel):
    id: int
    user_id: int
    team: str | None = None
    role: str | None = None
    assigned_by: str | None = None
    effective_team: str | None = None
    effective_role: str | None = None
    client_name: str
    phone: str | None = None
    activity_type: str
    display_type: str
    customer_type: str | None = None
    customer_activity: str | None = None
    status: ActivityStatus
    notes: str | None = None
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    gallery: list[str] = Field(default_factory=list)
    image_url: str | None = None
    follow_up_date: date | None = None
    follow_up_time: time | None = None
    created_at: datetime


class DueFollowUpRead(StaffActivityRead):
    owner_name: str | None = None


class DashboardStatsRead(BaseModel):
    total: int
    follow_up: int
    converted: int
    not_interested: int
    team_members: int


class DefaulterLogRead(BaseModel):
    id: int
    user_id: int
    name: str
    phone: str | None = None
    team: str
    role: str | None = None
    defaulter_date: date
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class DefaulterSyncResponse(BaseModel):
    defaulter_date: date
    inserted_count: int
    entries: list[DefaulterLogRead] = Field(default_factory=list)


class DashboardResponse(BaseModel):
    profile: ProfileRead
    is_global: bool
    stats: DashboardStatsRead
    due_follow_ups: list[DueFollowUpRead] = Field(default_factory=list)
    defaulter_alerts: list[DefaulterLogRead] = Field(default_factory=list)
    role_options: list[str] = Field(default_factory=list)


class LegacyActivityCreate(BaseModel):
    team: str
    contact: str = Field(min_length=1, max_length=255)
    type: str = Field(min_length=1, max_length=64)
    notes: str | None = None
    location: str | None = Field(default=None, max_length=1024)
    latitude: float | None = None
    longitude: float | None = None
    image_url: str | None = Field(default=None, max_length=1024)
    follow_up_date: date | None = None


class LegacyActivityCompletionUpdate(BaseModel):
    is_completed: bool


class LegacyActivityRead(BaseModel):
    id: int
    user_id: int
    team: str
    contact: str
    type: str
    notes: str | None = None
    location: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    image_url: str | None = None
    follow_up_date: date | None = None
    is_completed: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AdminLegacyActivityRead(LegacyActivityRead):
    user_name: str | None = None
    user_phone: str | None = None


class UploadImageResponse(BaseModel):
    success: bool = True
    key: str
    url: str


class GeocodeResponse(BaseModel):
    lat: float
    lon: float
    location: str
