"""
Configuration Module
====================

Process settings and shared constants using Pydantic.

Operator-tunable AI thresholds (confidence, complexity, rate/cost limits)
are NOT here - they live in the versioned AI settings snapshot
(see helpdesk_intel.ai_settings).
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-intel", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Storage ==========
    storage_backend: str = Field(
        default="database",
        description="Repository backend: 'database' (PostgreSQL) or 'memory'"
    )
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk_intel",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== AI Settings Store ==========
    ai_settings_path: Path = Field(
        default=Path("ai_settings.yaml"),
        description="Path to the operator AI settings YAML file"
    )

    # ========== Inference Capability ==========
    inference_provider: str = Field(
        default="mock",
        description="Inference backend: 'openai', 'zai' or 'mock'"
    )
    openai_api_key: Optional[str] = Field(
        default=None,
        description="API key for the OpenAI-compatible inference endpoint"
    )
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of an OpenAI-compatible gateway (Bedrock proxy, Groq, ...)"
    )
    zai_api_key: Optional[str] = Field(
        default=None,
        description="Z.AI API key"
    )
    inference_timeout_seconds: float = Field(
        default=60.0,
        description="Upper bound for a single inference call",
        ge=1,
        le=600
    )

    # ========== Ticket Store ==========
    ticket_store_url: Optional[str] = Field(
        default=None,
        description="Base URL of the helpdesk ticket REST API"
    )
    ticket_store_token: Optional[str] = Field(
        default=None,
        description="Bearer token for the helpdesk ticket REST API"
    )
    ticket_store_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for ticket store calls",
        ge=0.1,
        le=60
    )

    # ========== Notifications ==========
    notification_webhook_url: Optional[str] = Field(
        default=None,
        description="Teams incoming webhook URL for pipeline events"
    )
    notification_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for notification webhook calls",
        ge=0.1,
        le=30
    )

    # ========== FAQ Cache ==========
    faq_eviction: str = Field(
        default="none",
        description="FAQ cache eviction strategy: 'none', 'ttl' or 'lru'"
    )
    faq_ttl_hours: float = Field(
        default=24 * 30,
        description="Entry lifetime for the 'ttl' strategy",
        gt=0
    )
    faq_max_entries: int = Field(
        default=5000,
        description="Entry ceiling for the 'lru' strategy",
        ge=1
    )
    faq_min_answer_length: int = Field(
        default=50,
        description="Answers at or below this length are not cached",
        ge=0
    )

    # ========== Knowledge Learning ==========
    learning_scheduler_enabled: bool = Field(
        default=True,
        description="Run the periodic learning pass"
    )
    learning_interval_hours: int = Field(
        default=24,
        description="Hours between scheduled learning passes",
        ge=1
    )
    learning_batch_size: int = Field(
        default=20,
        description="Queue items processed per learning pass",
        ge=1,
        le=500
    )
    learning_max_attempts: int = Field(
        default=3,
        description="Attempts before a queue item is permanently failed",
        ge=1
    )
    learning_lease_minutes: int = Field(
        default=30,
        description="Minutes after which an item stuck in processing is failed and retried",
        ge=1
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5000"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        allowed = {"database", "memory"}
        if v not in allowed:
            raise ValueError(f"storage_backend must be one of {allowed}")
        return v

    @field_validator("inference_provider")
    @classmethod
    def validate_inference_provider(cls, v: str) -> str:
        allowed = {"openai", "zai", "mock"}
        if v not in allowed:
            raise ValueError(f"inference_provider must be one of {allowed}")
        return v

    @field_validator("faq_eviction")
    @classmethod
    def validate_faq_eviction(cls, v: str) -> str:
        allowed = {"none", "ttl", "lru"}
        if v not in allowed:
            raise ValueError(f"faq_eviction must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketCategory(str, Enum):
    """Ticket categories produced by analysis."""
    BUG = "bug"
    FEATURE = "feature"
    SUPPORT = "support"
    ENHANCEMENT = "enhancement"
    INCIDENT = "incident"
    REQUEST = "request"


class TicketPriority(str, Enum):
    """Ticket priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ComplexityLevel(str, Enum):
    """Coarse complexity levels a model may report instead of a score."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class StageStatus(str, Enum):
    """Outcome tags for pipeline stages."""
    OK = "ok"
    SERVICE_UNAVAILABLE = "service_unavailable"
    RATE_LIMITED = "rate_limited"
    COST_LIMITED = "cost_limited"
    TIMEOUT = "timeout"
    NO_RESPONSE = "no_response"


class QueueStatus(str, Enum):
    """Learning queue item statuses."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ArticleSource(str, Enum):
    """Origin of a knowledge article."""
    MANUAL = "manual"
    LEARNED = "learned"


class FeedbackKind(str, Enum):
    """Targets that accept helpfulness feedback."""
    AUTO_RESPONSE = "autoResponse"
    KNOWLEDGE_ARTICLE = "knowledgeArticle"


class PipelineEventType(str, Enum):
    """Events emitted to the notification dispatcher."""
    RESPONSE_GENERATED = "response_generated"
    TICKET_ESCALATED = "ticket_escalated"
    ARTICLE_PENDING_APPROVAL = "article_pending_approval"
    LEARNING_ITEM_FAILED = "learning_item_failed"


# ========== Lists for validation ==========

VALID_CATEGORIES = [c.value for c in TicketCategory]
VALID_PRIORITIES = [p.value for p in TicketPriority]
VALID_RATINGS = [1, 5]
