"""
数据传输对象（DTO）- 应用层与表现层之间的数据传输
"""
from typing import Optional

from pydantic import BaseModel


class CurrentUserDTO(BaseModel):
    """认证上下文：当前调用者身份与角色"""
    user_id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: str = "user"
    is_admin: bool = False
