"""
API依赖项 - 认证上下文与服务装配

注册表、限流存储在 lifespan 中挂到 app.state，这里按请求组装应用服务。
"""
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from application.dto import CurrentUserDTO
from application.ports.rate_limit import RateLimitStore
from application.services.import_service import PaymentImportService
from application.services.payment_admin_service import PaymentAdminService
from application.services.payment_service import PaymentService
from application.services.rate_limiter import RateLimit, RateLimiter
from application.services.token_service import TokenService
from core.exceptions import UnauthorizedException
from core.settings import payment_settings
from infrastructure.external.payments.registry import ProviderRegistry
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


def get_token_service() -> TokenService:
    return TokenService()


async def get_token(
    bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
) -> str:
    """从 Bearer token 中提取 token"""
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise UnauthorizedException("Missing bearer token")


async def get_current_user(
    token: str = Depends(get_token),
    tokens: TokenService = Depends(get_token_service),
) -> CurrentUserDTO:
    """获取当前调用者"""
    return tokens.decode_access_token(token)


def get_provider_registry(request: Request) -> ProviderRegistry:
    return request.app.state.provider_registry


def get_rate_limit_store(request: Request) -> RateLimitStore:
    return request.app.state.rate_limit_store


def get_uow_factory():
    return SQLAlchemyUnitOfWork


def get_import_service(
    registry: ProviderRegistry = Depends(get_provider_registry),
    uow_factory=Depends(get_uow_factory),
) -> PaymentImportService:
    return PaymentImportService(
        registry,
        uow_factory,
        parallel=payment_settings.import_parallel,
        import_attempts=payment_settings.retry.import_attempts,
        import_backoff=payment_settings.retry.import_backoff,
    )


def get_payment_service(
    registry: ProviderRegistry = Depends(get_provider_registry),
    importer: PaymentImportService = Depends(get_import_service),
    uow_factory=Depends(get_uow_factory),
) -> PaymentService:
    return PaymentService(
        registry,
        importer,
        uow_factory,
        default_provider=payment_settings.default_provider,
    )


def get_payment_admin_service(
    importer: PaymentImportService = Depends(get_import_service),
    store: RateLimitStore = Depends(get_rate_limit_store),
) -> PaymentAdminService:
    limit = payment_settings.import_rate_limit
    return PaymentAdminService(
        importer,
        RateLimiter(store),
        RateLimit(requests=limit.requests, duration_seconds=limit.duration_seconds),
    )
