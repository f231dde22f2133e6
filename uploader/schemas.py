"""Pydantic schemas for the upload session signer contract."""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class SessionInitRequest(BaseModel):
    """Request body for opening a resumable upload session."""
    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(alias="videoId")
    filename: str
    size: int
    content_type: str = Field(alias="contentType")


class SessionInitResponse(BaseModel):
    """Response body carrying the resumable session endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    video_id: Optional[str] = Field(default=None, alias="videoId")
    upload_url: str = Field(alias="uploadUrl")
    resume_url: Optional[str] = Field(default=None, alias="resumeUrl")
    expires_at: Optional[str] = Field(default=None, alias="expiresAt")


class SessionCompleteRequest(BaseModel):
    """Request body for confirming a finished transfer."""
    model_config = ConfigDict(populate_by_name=True)

    video_id: str = Field(alias="videoId")
