"""LLM collaborator access: chat client, circuit breaker, JSON recovery."""

from charity_oracle.llm.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpen,
    CircuitState,
)
from charity_oracle.llm.client import ChatClient, ChatResponse
from charity_oracle.llm.parsing import coerce_score, extract_json_object

__all__ = [
    "ChatClient",
    "ChatResponse",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "coerce_score",
    "extract_json_object",
]
