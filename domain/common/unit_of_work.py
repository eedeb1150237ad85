"""Unit of Work 抽象定义"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.payment.repository import PaymentRepository
from domain.user.provisioning import AccountProvisioner
from domain.user.repository import UserRepository


class AbstractUnitOfWork(ABC):
    """一次对账写入的事务边界：正常退出提交，异常退出回滚

    readonly=True 用于查询路径，退出时不提交。
    """

    user_repository: UserRepository
    payment_repository: PaymentRepository
    account_provisioner: AccountProvisioner

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc is not None:
            await self.rollback()
        elif not self._readonly and not self._committed:
            await self.commit()

    @abstractmethod
    async def commit(self) -> None: ...

    @abstractmethod
    async def rollback(self) -> None: ...
