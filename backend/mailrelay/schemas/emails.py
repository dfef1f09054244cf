"""Pydantic schemas for sending email and reading logs"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator


class Attachment(BaseModel):
    filename: str = Field(min_length=1)
    content: str  # Base64 encoded
    contentType: Optional[str] = None


class SendEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: EmailStr = Field(alias="from")
    to: List[EmailStr] = Field(min_length=1)
    cc: Optional[List[EmailStr]] = None
    bcc: Optional[List[EmailStr]] = None
    subject: str = Field(min_length=1)
    html: Optional[str] = None
    text: Optional[str] = None
    attachments: Optional[List[Attachment]] = None
    reply_to: Optional[List[EmailStr]] = None
    tags: Optional[Dict[str, str]] = None

    @model_validator(mode="after")
    def require_content(self):
        if not self.html and not self.text:
            raise ValueError("Either html or text content is required")
        return self


class SendEmailResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    from_: str = Field(serialization_alias="from")
    to: List[str]
    created_at: datetime


class WebhookEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_type: str
    event_data: Any
    processed: bool
    created_at: Optional[datetime] = None


class EmailLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    api_key_id: Optional[str] = None
    domain_id: str
    domain: Optional[str] = None
    key_name: Optional[str] = None
    from_email: str
    to_emails: List[str]
    cc_emails: List[str] = []
    bcc_emails: List[str] = []
    subject: Optional[str] = None
    html_content: Optional[str] = None
    text_content: Optional[str] = None
    attachments: List[Dict[str, Any]] = []
    status: str
    ses_message_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class EmailLogDetail(EmailLogResponse):
    webhook_data: Optional[Any] = None
    webhook_events: List[WebhookEventResponse] = []


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    totalPages: int


class EmailLogListResponse(BaseModel):
    emails: List[EmailLogResponse]
    pagination: Pagination


class EmailDetailResponse(BaseModel):
    email: EmailLogDetail
