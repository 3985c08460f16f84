from datetime import datetime
from typing import Optional, List, Dict
from pydantic import BaseModel, ConfigDict, HttpUrl, Field, field_validator

# bcrypt only accepts up to 72 bytes of input
PASSWORD_MAX_BYTES = 72


def _check_password_bytes(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > PASSWORD_MAX_BYTES:
        raise ValueError(f"password must be at most {PASSWORD_MAX_BYTES} bytes in UTF-8")
    return value


# Short links
class ShortLinkCreateRequest(BaseModel):
    target_url: HttpUrl
    code: Optional[str] = Field(default=None, pattern=r"^[A-Za-z0-9_-]{3,32}$")
    password: Optional[str] = Field(default=None, min_length=1, max_length=72)
    expires_at: Optional[datetime] = None

    @field_validator("password")
    def _password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)


class ShortLinkUpdateRequest(BaseModel):
    target_url: Optional[HttpUrl] = None
    is_active: Optional[bool] = None
    is_password_protected: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=1, max_length=72)
    is_time_restricted: Optional[bool] = None
    expires_at: Optional[datetime] = None

    @field_validator("password")
    def _password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)


class ShortLinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    target_url: str
    is_active: bool
    is_password_protected: bool
    is_time_restricted: bool
    expires_at: Optional[datetime]
    clicks: int
    created_at: datetime


class ShortLinksResponse(BaseModel):
    links: List[ShortLinkResponse]


# Schedules
class ScheduleCreateRequest(BaseModel):
    target_url: HttpUrl
    start_time: datetime
    end_time: datetime
    password: Optional[str] = Field(default=None, min_length=1, max_length=72)
    is_active: bool = True

    @field_validator("password")
    def _password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)


class ScheduleUpdateRequest(BaseModel):
    target_url: Optional[HttpUrl] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_password_protected: Optional[bool] = None
    password: Optional[str] = Field(default=None, min_length=1, max_length=72)
    is_active: Optional[bool] = None

    @field_validator("password")
    def _password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        return _check_password_bytes(value)


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    shortlink_id: int
    target_url: str
    start_time: datetime
    end_time: datetime
    is_password_protected: bool
    is_active: bool


class SchedulesResponse(BaseModel):
    schedules: List[ScheduleResponse]


# Analytics
class AnalyticsOverviewResponse(BaseModel):
    clicks: int
    logged_accesses: int
    unique_visitors: int
    recent_accesses: int
    device_stats: Dict[str, int]
    browser_stats: Dict[str, int]
    os_stats: Dict[str, int]
    country_stats: Dict[str, int]


class DailyStatsResponse(BaseModel):
    days: Dict[str, int]
