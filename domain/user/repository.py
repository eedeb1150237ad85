"""
用户仓储接口

对账只需要按邮箱找人、按 ID 反查邮箱，以及首次出现时建档。
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import User


class UserRepository(ABC):
    @abstractmethod
    async def create(self, user: User) -> User:
        """邮箱已存在时抛出 UserAlreadyExistsException，会话已回滚"""

    @abstractmethod
    async def get_by_id(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def get_by_email(self, email: str) -> Optional[User]:
        """精确匹配；调用方负责去除首尾空白"""
