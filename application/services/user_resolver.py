"""
Find-or-create the account owning an imported order, keyed by email.
"""
from __future__ import annotations

import uuid
from typing import Optional, Tuple

from core.logging_config import get_logger
from domain.common.exceptions import UserAlreadyExistsException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.user.entity import User

logger = get_logger(__name__)


class UserResolver:
    """邮箱精确匹配已有用户；不存在时创建并执行首次开通（工作区 + 默认 API Key）"""

    async def resolve(
        self,
        uow: AbstractUnitOfWork,
        email: str,
        name: Optional[str] = None,
        image: Optional[str] = None,
    ) -> Tuple[User, bool]:
        email = email.strip()
        existing = await uow.user_repository.get_by_email(email)
        if existing is not None:
            # 已有用户的资料不做覆盖
            return existing, False

        candidate = User(id=str(uuid.uuid4()), email=email, name=name, image=image)
        try:
            user = await uow.user_repository.create(candidate)
        except UserAlreadyExistsException:
            # 并发导入抢先创建了同一邮箱，仓储已回滚会话，重新读取即可
            user = await uow.user_repository.get_by_email(email)
            if user is None:
                raise
            return user, False

        await uow.account_provisioner.provision(user)
        logger.info("user_created_from_order", user_id=user.id)
        return user, True
