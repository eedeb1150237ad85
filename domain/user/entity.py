"""
用户领域实体 - 包含核心业务规则
"""
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from domain.common.exceptions import DomainValidationException

_EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


@dataclass
class User:
    """用户实体 - 对账时以邮箱作为关联键"""

    id: Optional[str]
    email: str
    name: Optional[str] = None
    image: Optional[str] = None
    role: str = "user"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """初始化后的业务规则验证"""
        self.email = (self.email or "").strip()
        self.validate_email()

    def validate_email(self) -> None:
        """业务规则：邮箱格式验证"""
        if not _EMAIL_PATTERN.match(self.email):
            raise DomainValidationException(f"Invalid email address: {self.email!r}", field="email")

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)
