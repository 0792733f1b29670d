"""
操作审计日志：订单更新、取消、删除、支付状态变更等关键操作
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.core.database import Base


class AuditLog(Base):
    """审计日志表"""
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)  # 支付网关回调等系统操作为空
    action = Column(String(64), nullable=False, index=True)  # update_order, cancel_order, delete_order, payment_completed 等
    resource_type = Column(String(32), nullable=True, index=True)  # order
    resource_id = Column(String(64), nullable=True)
    detail = Column(Text, nullable=True)  # JSON 或简短描述
    ip = Column(String(64), nullable=True)
    request_id = Column(String(64), nullable=True, index=True)  # 链路追踪，与 X-Request-ID 一致
    created_at = Column(DateTime(timezone=True), server_default=func.now())
