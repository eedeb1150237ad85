"""
Business codes shared by domain, core and api.

Provider-side failures live in `shared.codes.payment_codes` (6xxxx range).
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    SUCCESS = 0

    # Request errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    USER_NOT_FOUND = 20001
    USER_ALREADY_EXISTS = 20002
    TOKEN_INVALID = 20004
    TOKEN_EXPIRED = 20005
    NOT_FOUND = 20006
    # unique (processor, processor_order_id) hit on insert
    RECORD_CONFLICT = 20007

    # Authorization (3xxxx)
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001

    # Admin operations are rate limited per action
    TOO_MANY_REQUESTS = 50001


__all__ = ["BusinessCode"]
