"""
新用户首次开通的副作用接口（个人工作区、默认 API Key 等）
"""
from abc import ABC, abstractmethod

from .entity import User


class AccountProvisioner(ABC):
    """只能在新建用户的同一事务内调用一次"""

    @abstractmethod
    async def provision(self, user: User) -> None:
        pass
