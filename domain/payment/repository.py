"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Payment


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录；幂等键冲突时抛出 PaymentAlreadyExistsException"""
        pass

    @abstractmethod
    async def get_by_processor_order(self, processor: str, processor_order_id: str) -> Optional[Payment]:
        """根据幂等键 (processor, processor_order_id) 获取支付"""
        pass

    @abstractmethod
    async def update(self, payment: Payment) -> Payment:
        """更新支付记录"""
        pass

    @abstractmethod
    async def list_by_user(self, user_id: str, skip: int = 0, limit: int = 100) -> List[Payment]:
        """获取用户的支付列表"""
        pass

    @abstractmethod
    async def count(self, processor: Optional[str] = None) -> int:
        """统计支付数量"""
        pass

    @abstractmethod
    async def delete_all(self) -> int:
        """删除全部支付记录，返回删除数量"""
        pass
