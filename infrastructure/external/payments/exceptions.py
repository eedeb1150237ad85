"""
Exceptions for payment providers mapped to unified BusinessException variants.

"Not configured" is normally a sentinel (empty result / zeroed stats), not an
exception; ProviderNotConfiguredError only guards internal calls that need
credentials.
"""
from __future__ import annotations

from typing import Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


def _details(provider: str, provider_code: Optional[str], details: Optional[dict]) -> dict:
    full_details = {"provider": provider, "provider_code": provider_code}
    if details:
        full_details.update(details)
    return full_details


class PaymentProviderError(BusinessException):
    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_ERROR,
        error_type: str = "PaymentProviderError",
    ):
        super().__init__(
            code=code,
            message=message,
            error_type=error_type,
            details=_details(provider, provider_code, details),
        )
        self.provider = provider


class ProviderNotConfiguredError(PaymentProviderError):
    def __init__(self, provider: str):
        super().__init__(
            f"Payment provider '{provider}' is not configured",
            provider=provider,
            code=PaymentCode.PROVIDER_NOT_CONFIGURED,
            error_type="ProviderNotConfigured",
        )


class ProviderAuthError(PaymentProviderError):
    """Credentials rejected by the remote backend; never retried."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            details=details,
            code=PaymentCode.PROVIDER_AUTH,
            error_type="ProviderAuthError",
        )


class ProviderNetworkError(PaymentProviderError):
    """Transient failure (transport error, 429, 5xx); safe to retry."""

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        provider_code: str | None = None,
        details: Optional[dict] = None,
        code: int = PaymentCode.PROVIDER_RECOVERABLE,
        error_type: str = "ProviderNetworkError",
    ):
        super().__init__(
            message,
            provider=provider,
            provider_code=provider_code,
            details=details,
            code=code,
            error_type=error_type,
        )


class ProviderTimeoutError(ProviderNetworkError):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(
            message,
            provider=provider,
            details=details,
            code=PaymentCode.TIMEOUT,
            error_type="ProviderTimeout",
        )
