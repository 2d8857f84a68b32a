"""API request handlers."""

import logging

from fastapi import Response

from src.api.models import AnalyzeRequest, AnalyzeResponse, ClearSessionRequest
from src.services.conversation_store import SessionStore
from src.services.log_analyzer import AnalysisResult, LogAnalyzer

logger = logging.getLogger(__name__)


def to_response(result: AnalysisResult) -> AnalyzeResponse:
    """Render an analysis result in the public response shape."""
    return AnalyzeResponse(
        code=result.code,
        msg=result.message,
        analysis_result=result.analysis_result,
        session_id=result.session_id,
    )


def create_health_handler(store: SessionStore):
    """Create health check handler."""

    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "sessions": len(store)}

    return health


def create_analyze_handler(analyzer: LogAnalyzer):
    """Create log analysis handler with analyzer dependency.

    Args:
        analyzer: LogAnalyzer instance shared by all requests

    Returns:
        Analyze handler function
    """

    async def analyze(request: AnalyzeRequest, response: Response) -> AnalyzeResponse:
        """Analyze a Java exception log or answer a follow-up question."""
        result = await analyzer.analyze(request.exception_log, request.session_id)
        # HTTP status mirrors the result code; the body always carries it too
        response.status_code = result.code
        return to_response(result)

    return analyze


def create_clear_session_handler(store: SessionStore):
    """Create handler that forgets a conversation."""

    async def clear_session(request: ClearSessionRequest):
        """Drop the stored history for a session."""
        cleared = store.clear(request.session_id)
        logger.info(f"Clear session {request.session_id}: {'removed' if cleared else 'not found'}")
        return {"status": "cleared" if cleared else "not_found"}

    return clear_session
