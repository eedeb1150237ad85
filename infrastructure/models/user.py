"""
用户表：对账时按邮箱关联订单
"""
from sqlalchemy import Column, String

from .base import Base, TimestampMixin


class UserModel(TimestampMixin, Base):
    """业务规则在 domain.user.entity.User 中"""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, comment="用户ID")
    email = Column(String(255), unique=True, index=True, nullable=False, comment="邮箱（对账关联键）")
    name = Column(String(255), nullable=True, comment="显示名称")
    image = Column(String(1024), nullable=True, comment="头像URL")
    role = Column(String(20), nullable=False, default="user", comment="角色: user/admin")

    def __repr__(self):
        return f"<UserModel(id={self.id}, email='{self.email}')>"
