"""Configuration dataclass for the log analysis service."""

import os
from dataclasses import dataclass, field

from src.prompts import FIRST_ROUND_PROMPT, FOLLOW_UP_PROMPT, PLACEHOLDER

DEFAULT_API_URL = "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"
DEFAULT_MODEL = "qwen-turbo"
# Scheduling allowance per attempt on top of request_timeout
ATTEMPT_SLACK = 0.5


@dataclass
class Config:
    """Application configuration.

    All configuration should be passed as a Config instance rather than
    reading from environment variables directly.
    """

    api_key: str
    api_url: str = DEFAULT_API_URL
    model: str = DEFAULT_MODEL
    retry_count: int = 2
    retry_delay: float = 1.0  # seconds between attempts
    request_timeout: float = 60.0
    connect_timeout: float = 30.0
    first_round_prompt: str = FIRST_ROUND_PROMPT
    follow_up_prompt: str = FOLLOW_UP_PROMPT
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    port: int = 8080

    def __post_init__(self):
        if not self.api_key or not self.api_key.strip():
            raise ValueError("QWEN_API_KEY must be set")
        if self.retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be >= 0")
        for name in ("first_round_prompt", "follow_up_prompt"):
            if PLACEHOLDER not in getattr(self, name):
                raise ValueError(f"{name} must contain the {PLACEHOLDER} placeholder")

    @property
    def total_timeout(self) -> float:
        """Upper bound on one analysis call, all attempts and delays included."""
        attempts = self.retry_count + 1
        per_attempt = self.request_timeout + ATTEMPT_SLACK
        return attempts * per_attempt + self.retry_count * self.retry_delay

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables.

        This is the only place that reads from environment variables.
        """
        api_key = os.getenv("QWEN_API_KEY")
        if not api_key:
            raise ValueError("QWEN_API_KEY environment variable must be set")

        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            api_key=api_key,
            api_url=os.getenv("QWEN_API_URL", DEFAULT_API_URL),
            model=os.getenv("QWEN_MODEL", DEFAULT_MODEL),
            retry_count=int(os.getenv("QWEN_RETRY_COUNT", "2")),
            retry_delay=float(os.getenv("QWEN_RETRY_DELAY", "1.0")),
            request_timeout=float(os.getenv("QWEN_REQUEST_TIMEOUT", "60")),
            first_round_prompt=os.getenv("QWEN_PROMPT_FIRST", FIRST_ROUND_PROMPT),
            follow_up_prompt=os.getenv("QWEN_PROMPT_FOLLOW", FOLLOW_UP_PROMPT),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            port=int(os.getenv("PORT", "8080")),
        )
