"""
Remote convert_message payload models.

The server answers with {"success": bool, "data": [...], "error": str}.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RemoteConvertRule(BaseModel):
    """A rule as published by the remote server."""

    model_config = ConfigDict(extra="ignore")

    id: int = Field(description="Remote rule identifier, stable across fetches")
    search: str = Field(description="Delimited PCRE pattern")
    replace: str = Field(default="", description="Replacement template")


class ConvertMessageResponse(BaseModel):
    """Envelope returned by the convert_message endpoint."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    data: Optional[List[RemoteConvertRule]] = None
    error: Optional[str] = None
