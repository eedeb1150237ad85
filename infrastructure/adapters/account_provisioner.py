"""Creates the personal workspace and default API key for a freshly created user.

Runs inside the caller's session so provisioning commits or rolls back
together with the user row.
"""
from __future__ import annotations

import hashlib
import secrets

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.user.entity import User
from domain.user.provisioning import AccountProvisioner
from infrastructure.models.account import ApiKeyModel, WorkspaceModel

logger = get_logger(__name__)

DEFAULT_API_KEY_NAME = "Default API Key"
_KEY_PREFIX = "sk_live_"


def generate_api_key() -> tuple[str, str, str]:
    """Return (plaintext, display prefix, sha256 hex digest)."""
    plaintext = _KEY_PREFIX + secrets.token_urlsafe(32)
    return plaintext, plaintext[: len(_KEY_PREFIX) + 4], hashlib.sha256(plaintext.encode()).hexdigest()


class SQLAlchemyAccountProvisioner(AccountProvisioner):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def provision(self, user: User) -> None:
        existing = await self.session.execute(
            select(WorkspaceModel.id).where(
                WorkspaceModel.owner_id == user.id,
                WorkspaceModel.is_personal.is_(True),
            )
        )
        if existing.scalar_one_or_none() is not None:
            logger.info("account_already_provisioned", user_id=user.id)
            return

        display = user.name or user.email.split("@", 1)[0]
        self.session.add(WorkspaceModel(owner_id=user.id, name=f"{display}'s Workspace", is_personal=True))

        _, prefix, digest = generate_api_key()
        self.session.add(
            ApiKeyModel(
                user_id=user.id,
                name=DEFAULT_API_KEY_NAME,
                description="Created automatically during import/creation",
                key_prefix=prefix,
                key_hash=digest,
            )
        )
        await self.session.flush()
        logger.info("account_provisioned", user_id=user.id)
