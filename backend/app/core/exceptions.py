"""
订单领域异常

下单前（校验阶段）抛出的异常会中止整个操作；
下单提交后的外部调用（支付网关、通知、自动注册）失败只记录日志，不向上抛。
"""
from typing import Any, Dict, Optional


class OrderError(ValueError):
    """订单领域异常基类，status_code 为对应的 HTTP 状态码"""

    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {}


class NotFoundError(OrderError):
    """商品、配送方式或订单不存在"""

    status_code = 404


class InsufficientStockError(OrderError):
    """库存不足，携带当前可用库存"""

    status_code = 400

    def __init__(self, product_name: str, available_stock: Optional[int] = None, product_id: Optional[int] = None):
        self.product_name = product_name
        self.product_id = product_id
        self.available_stock = available_stock if available_stock is not None else 0
        super().__init__(f'商品 "{product_name}" 库存不足，可用库存: {self.available_stock}')

    def to_dict(self) -> Dict[str, Any]:
        return {"available_stock": self.available_stock, "product_id": self.product_id}


class OrderStateError(OrderError):
    """订单当前状态不允许该操作（如重复取消、取消已送达订单）"""

    status_code = 400


class ConflictError(OrderError):
    """唯一性冲突"""

    status_code = 409


class PaymentGatewayError(Exception):
    """支付网关调用失败"""


class NotificationError(Exception):
    """邮件/短信发送失败"""
