"""API module for request/response models and handlers."""

from src.api.models import AnalyzeRequest, AnalyzeResponse, ClearSessionRequest
from src.api.handlers import (
    create_analyze_handler,
    create_clear_session_handler,
    create_health_handler,
)

__all__ = [
    "AnalyzeRequest",
    "AnalyzeResponse",
    "ClearSessionRequest",
    "create_analyze_handler",
    "create_clear_session_handler",
    "create_health_handler",
]
