"""
Data models package.

Contains:
- SQLAlchemy storage model for convert rules
- Pydantic models for the remote convert_message payload
- Pydantic models for admin API requests and responses
"""

from .admin import (
    ConvertRuleResponse,
    CronResponse,
    SettingsResponse,
    SettingsUpdateRequest,
    TransformRequest,
    TransformResponse,
)
from .convert_message import ConvertMessage, ConvertRule
from .remote import ConvertMessageResponse, RemoteConvertRule

__all__ = [
    # Storage models
    "ConvertMessage",
    "ConvertRule",

    # Remote payload models
    "ConvertMessageResponse",
    "RemoteConvertRule",

    # Admin models
    "ConvertRuleResponse",
    "CronResponse",
    "SettingsResponse",
    "SettingsUpdateRequest",
    "TransformRequest",
    "TransformResponse",
]
