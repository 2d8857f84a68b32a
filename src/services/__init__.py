"""Services module for business logic."""

from src.services.conversation_store import Message, Role, Session, SessionStore
from src.services.log_analyzer import AnalysisResult, LogAnalyzer
from src.services.qwen_client import QwenClient

__all__ = [
    "AnalysisResult",
    "LogAnalyzer",
    "Message",
    "QwenClient",
    "Role",
    "Session",
    "SessionStore",
]
