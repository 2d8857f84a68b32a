"""Pydantic models for API requests and responses."""

from pydantic import BaseModel, ConfigDict, Field


class AnalyzeRequest(BaseModel):
    """Log analysis request from client."""

    model_config = ConfigDict(populate_by_name=True)

    exception_log: str | None = Field(
        None,
        alias="exceptionLog",
        description="Java exception log on the first round, follow-up question afterwards",
    )
    session_id: str | None = Field(
        None, alias="sessionId", description="Conversation ID; omit to start a new one"
    )


class AnalyzeResponse(BaseModel):
    """Log analysis response to client."""

    model_config = ConfigDict(populate_by_name=True)

    code: int = Field(..., description="200 success, 400 invalid input, 500 remote failure")
    msg: str = Field(..., description="Result message")
    analysis_result: str | None = Field(
        None, alias="analysisResult", description="Model analysis (success only)"
    )
    session_id: str | None = Field(
        None, alias="sessionId", description="Conversation ID to send with follow-up questions"
    )


class ClearSessionRequest(BaseModel):
    """Request to forget a conversation."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., alias="sessionId")
