"""
令牌服务 - 签发与校验访问令牌（JWT）
"""
from datetime import datetime, timedelta, timezone
from typing import Optional
import uuid

import jwt

from application.dto import CurrentUserDTO
from core.config import settings
from core.exceptions import TokenExpiredException, UnauthorizedException
from core.logging_config import get_logger

logger = get_logger(__name__)


class TokenService:
    """访问令牌的签发与解码；令牌由上游认证服务签发时只使用 decode"""

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None):
        self._secret_key = secret_key or settings.SECRET_KEY
        self._algorithm = algorithm or settings.ALGORITHM

    def create_access_token(
        self,
        user_id: str,
        *,
        email: Optional[str] = None,
        name: Optional[str] = None,
        role: str = "user",
        expires_minutes: int = 30,
    ) -> str:
        """创建访问令牌"""
        expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
        to_encode = {
            "sub": str(user_id),
            "email": email,
            "name": name,
            "role": role,
            "exp": expire,
            "type": "access",
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def decode_access_token(self, token: str) -> CurrentUserDTO:
        """解码访问令牌并构建认证上下文"""
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.PyJWTError as e:
            logger.warning("invalid_access_token", error=str(e))
            raise UnauthorizedException("Invalid access token")

        if payload.get("type") != "access":
            raise UnauthorizedException("Wrong token type")

        user_id = payload.get("sub")
        if not user_id:
            raise UnauthorizedException("Token is missing the subject")

        email = payload.get("email")
        role = payload.get("role") or "user"
        is_admin = role == "admin" or bool(email and email.strip().lower() in settings.admin_emails)
        return CurrentUserDTO(
            user_id=str(user_id),
            email=email,
            name=payload.get("name"),
            role=role,
            is_admin=is_admin,
        )
