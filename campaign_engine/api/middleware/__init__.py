"""
API middleware module.
"""
from campaign_engine.api.middleware.error_handler import (
    AppException,
    NotFoundException,
    BadRequestException,
    ConflictException,
    ValidationException,
    UpstreamException,
    to_app_exception,
    app_exception_handler,
    campaign_engine_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)

__all__ = [
    "AppException",
    "NotFoundException",
    "BadRequestException",
    "ConflictException",
    "ValidationException",
    "UpstreamException",
    "to_app_exception",
    "app_exception_handler",
    "campaign_engine_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "unhandled_exception_handler",
]
