# Database models
from app.models.user import User
from app.models.customer import Customer
from app.models.product import Product
from app.models.delivery_option import DeliveryOption
from app.models.order import Order, OrderItem
from app.models.audit_log import AuditLog

__all__ = [
    "User",
    "Customer",
    "Product",
    "DeliveryOption",
    "Order",
    "OrderItem",
    "AuditLog",
]
