"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .payment import PaymentModel
from .account import WorkspaceModel, ApiKeyModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "PaymentModel",
    "WorkspaceModel",
    "ApiKeyModel",
]
