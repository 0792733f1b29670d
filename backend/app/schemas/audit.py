"""审计日志 Schema"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel


class AuditLogItem(BaseModel):
    id: int
    user_id: Optional[int] = None
    request_id: Optional[str] = None
    action: str
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    detail: Optional[str] = None
    ip: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    items: List[AuditLogItem]
    total: int
    page: int
    page_size: int
