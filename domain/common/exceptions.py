"""领域层业务异常定义，供领域与基础设施使用。

核心（core）层仅负责全局映射与异常处理，尽量避免领域层反向依赖核心层。
"""
from __future__ import annotations

from typing import Optional

from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "code": int(self.code),
            "message": self.message,
            "error_type": self.error_type,
            "details": self.details,
            "field": self.field,
        }


class DomainValidationException(BusinessException):
    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class UserNotFoundException(BusinessException):
    def __init__(self, user_id: Optional[str] = None):
        details = {"user_id": user_id} if user_id else None
        super().__init__(
            code=BusinessCode.USER_NOT_FOUND,
            message="User not found",
            error_type="UserNotFound",
            details=details,
        )


class UserAlreadyExistsException(BusinessException):
    def __init__(self, email: str):
        super().__init__(
            code=BusinessCode.USER_ALREADY_EXISTS,
            message=f"Email {email} already registered",
            error_type="UserAlreadyExists",
            details={"email": email},
            field="email",
        )


class PaymentAlreadyExistsException(BusinessException):
    """Insert collided with an existing (processor, processor_order_id) row."""

    def __init__(self, processor: str, processor_order_id: str):
        super().__init__(
            code=BusinessCode.RECORD_CONFLICT,
            message="Payment already recorded for this order",
            error_type="RecordConflict",
            details={"processor": processor, "processor_order_id": processor_order_id},
        )


class ProviderNotFoundException(BusinessException):
    def __init__(self, provider: str):
        super().__init__(
            code=PaymentCode.PROVIDER_NOT_FOUND,
            message=f"Payment provider '{provider}' is not registered",
            error_type="ProviderNotFound",
            details={"provider": provider},
            field="provider",
        )
