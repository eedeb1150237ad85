"""
支付领域实体 - 对账导入后的本地支付记录
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException

UNKNOWN_PRODUCT = "Unknown Product"


class PaymentStatus(str, Enum):
    """支付状态枚举（与渠道订单状态是两套词汇）"""
    COMPLETED = "completed"
    REFUNDED = "refunded"
    PENDING = "pending"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass
class Payment:
    """
    支付记录

    业务规则：
    1. (processor, processor_order_id) 全局唯一，重复导入只更新不新增
    2. 金额以最小货币单位（分）存储，且不能为负
    3. metadata 顶层必须冗余保存商品名/规格名，便于查询
    """

    id: Optional[int]
    user_id: Optional[str]
    order_id: str
    processor: str
    processor_order_id: str
    amount: int
    status: PaymentStatus = PaymentStatus.COMPLETED
    product_name: str = UNKNOWN_PRODUCT
    metadata: dict = field(default_factory=dict)
    purchased_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后验证"""
        self._validate_amount()
        if not self.processor or not self.processor_order_id:
            raise DomainValidationException("processor and processor_order_id are required", field="processor_order_id")
        if isinstance(self.status, str) and not isinstance(self.status, PaymentStatus):
            self.status = PaymentStatus(self.status)
        if not self.product_name:
            self.product_name = UNKNOWN_PRODUCT
        if self.metadata is None:
            self.metadata = {}
        self.purchased_at = _ensure_utc(self.purchased_at)
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)

    def _validate_amount(self) -> None:
        """业务规则：金额为非负整数（分）"""
        if not isinstance(self.amount, int) or isinstance(self.amount, bool) or self.amount < 0:
            raise DomainValidationException(f"Amount must be a non-negative integer of minor units: {self.amount!r}", field="amount")

    def refresh_from(
        self,
        *,
        amount: int,
        status: PaymentStatus,
        product_name: str,
        metadata: dict[str, Any],
    ) -> None:
        """用渠道最新数据刷新金额/状态/元数据（重复导入时调用）

        退款是终态：渠道仍报告已支付时（例如 Stripe 退款后的 Checkout Session）不回退状态。
        """
        self.amount = amount
        self._validate_amount()
        if self.status != PaymentStatus.REFUNDED:
            self.status = status
        self.product_name = product_name or UNKNOWN_PRODUCT
        self.metadata = dict(metadata or {})
        self.updated_at = datetime.now(timezone.utc)

    def mark_refunded(self) -> None:
        self.status = PaymentStatus.REFUNDED
        self.updated_at = datetime.now(timezone.utc)
