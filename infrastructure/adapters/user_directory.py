"""Resolves a user id to the email adapters match provider orders against."""
from __future__ import annotations

from typing import Callable, Optional

from domain.common.unit_of_work import AbstractUnitOfWork


class UnitOfWorkUserDirectory:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def get_email(self, user_id: str) -> Optional[str]:
        async with self._uow_factory(readonly=True) as uow:
            user = await uow.user_repository.get_by_id(user_id)
        return user.email if user else None
