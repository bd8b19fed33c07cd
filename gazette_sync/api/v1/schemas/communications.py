"""Communication schemas"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel


class CommunicationResponse(BaseModel):
    """Locally stored DJEN communication"""
    id: int
    external_id: Optional[str] = None
    process_number: str
    process_number_masked: Optional[str] = None
    court: Optional[str] = None
    disclosure_date: date
    channel: Optional[str] = None
    communication_type: Optional[str] = None
    organ_name: Optional[str] = None
    communication_number: Optional[str] = None
    document_type: Optional[str] = None
    class_name: Optional[str] = None
    recipients: Optional[List[Dict[str, Any]]] = None
    attorney_recipients: Optional[List[Dict[str, Any]]] = None
    text: Optional[str] = None
    link: Optional[str] = None
    attorney_name: str
    read: bool
    read_at: Optional[datetime] = None
    ingested_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CommunicationListResponse(BaseModel):
    """Filtered list of communications"""
    communications: List[CommunicationResponse]
    total: int


class UnreadCountResponse(BaseModel):
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int
