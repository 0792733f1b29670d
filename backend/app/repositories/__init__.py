"""
数据访问层：每个实体一个仓储类，服务层通过构造函数注入的 AsyncSession 使用
"""
from app.repositories.product_repository import ProductRepository, StockDirection
from app.repositories.delivery_option_repository import DeliveryOptionRepository
from app.repositories.customer_repository import CustomerRepository
from app.repositories.order_repository import OrderRepository

__all__ = [
    "ProductRepository",
    "StockDirection",
    "DeliveryOptionRepository",
    "CustomerRepository",
    "OrderRepository",
]
