"""
Admin API data models.

Contains Pydantic models for settings management, rule inspection and
the cron trigger.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..core.settings_store import SeverityLevel


class SettingsResponse(BaseModel):
    """Current module settings."""

    log_to_file: bool = Field(..., description="Write errors to the log file")
    log_to_file_new_only: bool = Field(..., description="Only write errors not seen before")
    log_to_file_min_severity: SeverityLevel = Field(..., description="Minimum severity written to file")
    send_new_errors_email: bool = Field(..., description="Email new errors")
    email_addresses: List[str] = Field(..., description="Recipients of new error emails")
    cron_last_exec: int = Field(..., description="Unix timestamp of the last cron run")
    last_sync: int = Field(..., description="Unix timestamp of the last rule synchronization attempt")


class SettingsUpdateRequest(BaseModel):
    """Partial settings update; omitted fields are left unchanged."""

    log_to_file: Optional[bool] = None
    log_to_file_new_only: Optional[bool] = None
    log_to_file_min_severity: Optional[int] = Field(
        default=None,
        description="1=notice, 2=deprecation, 3=warning, 4=error; anything else becomes 2"
    )
    send_new_errors_email: Optional[bool] = None
    email_addresses: Optional[List[str]] = Field(
        default=None,
        description="Replaces the whole list; an empty list clears it"
    )


class ConvertRuleResponse(BaseModel):
    """A locally stored convert rule."""

    local_id: int
    remote_id: int
    search: str
    replace: str


class TransformRequest(BaseModel):
    """Message to run through the convert rules."""

    message: str = Field(..., max_length=65536)


class TransformResponse(BaseModel):
    message: str
    transformed: str


class CronResponse(BaseModel):
    status: str = "ok"
    last_exec: int
