"""Awario: API client, payload parsing, and remote alert validation."""

from src.awario.client import AwarioClient, AwarioClientError, create_awario_client
from src.awario.config import AwarioConfig
from src.awario.http_client import HTTPClient, HTTPClientError, RateLimitError, RetryConfig
from src.awario.schemas import MentionsPage, RemoteAlert, RemoteAlertOption, ValidationResult
from src.awario.validation import AlertValidator, RemoteAlertCache

__all__ = [
    "AlertValidator",
    "AwarioClient",
    "AwarioClientError",
    "AwarioConfig",
    "HTTPClient",
    "HTTPClientError",
    "MentionsPage",
    "RateLimitError",
    "RemoteAlert",
    "RemoteAlertCache",
    "RemoteAlertOption",
    "RetryConfig",
    "ValidationResult",
    "create_awario_client",
]
