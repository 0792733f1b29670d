"""
订单模型
"""
from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean, DateTime, ForeignKey, JSON
from sqlalchemy.sql import func
from app.core.database import Base


class Order(Base):
    """订单表"""
    __tablename__ = "orders"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)  # 为空表示游客订单
    quantity = Column(Integer, nullable=False)  # 商品总件数
    subtotal = Column(Numeric(10, 2), nullable=False)
    delivery_cost = Column(Numeric(10, 2), nullable=True)  # 未选择配送方式时为空
    total_price = Column(Numeric(10, 2), nullable=False)
    delivery_option_id = Column(Integer, ForeignKey("delivery_options.id"), nullable=True)
    status = Column(String(50), nullable=False, default="pending", index=True)  # pending, processing, shipped, delivered, cancelled
    payment_status = Column(String(50), nullable=False, default="pending", index=True)  # pending, processing, completed, failed, refunded
    payment_reference = Column(String(255), nullable=True)
    reference = Column(String(100), unique=True, nullable=False, index=True)
    delivery_address = Column(Text, nullable=True)
    customer_email = Column(String(120), nullable=True, index=True)
    customer_phone = Column(String(20), nullable=True)
    customer_name = Column(String(160), nullable=True)
    # metadata 是 Declarative 保留名，数据库列名仍为 metadata
    order_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)


class OrderItem(Base):
    """订单明细表（price 为下单时的单价，之后不随商品价格变化）"""
    __tablename__ = "order_items"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
