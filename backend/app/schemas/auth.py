"""
认证相关Schema（令牌由外部认证服务签发）
"""
from pydantic import BaseModel
from datetime import datetime
from typing import Optional

ADMIN_ROLES = ("admin", "superAdmin")


class UserResponse(BaseModel):
    """当前用户"""
    id: int
    username: str
    email: str
    role: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_super_admin(self) -> bool:
        return self.role == "superAdmin"
