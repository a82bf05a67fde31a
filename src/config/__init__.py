"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, IPvAnyNetwork, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="isp-ticket-service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root logging level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=3000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/isp_tickets",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Configuration ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to SLA policy YAML file"
    )

    # ========== Geo-IP Lookup ==========
    geoip_enabled: bool = Field(default=True, description="Enrich new tickets with geolocation")
    ipify_url: str = Field(
        default="https://api.ipify.org?format=json",
        description="Public IP lookup endpoint"
    )
    ip_api_url: str = Field(
        default="http://ip-api.com/json",
        description="Geolocation lookup endpoint (IP is appended to the path)"
    )
    geoip_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for geo-ip lookups",
        ge=0.1,
        le=30
    )
    geoip_test_timeout_seconds: float = Field(
        default=3.0,
        description="Timeout for geo-ip connectivity tests",
        ge=0.1,
        le=30
    )
    trusted_proxies: List[IPvAnyNetwork] = Field(
        default=["127.0.0.1", "::1"],
        validate_default=True,
        description="Peers (addresses or networks) whose X-Forwarded-For header is honoured"
    )

    # ========== Authentication ==========
    secret_key: str = Field(
        default="change-me-in-production",
        description="Secret used to sign access tokens"
    )
    jwt_algorithm: str = Field(default="HS256", description="Access token signing algorithm")
    access_token_expire_minutes: int = Field(
        default=60 * 8,
        description="Access token lifetime in minutes",
        ge=1
    )
    bcrypt_rounds: int = Field(default=12, description="bcrypt cost factor", ge=4, le=31)

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-sa-east-1.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )
    metrics_push_interval: int = Field(
        default=60,
        description="Seconds between metric pushes to Grafana (0 disables)",
        ge=0
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
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class Priority(str, Enum):
    """Ticket priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TicketCategory(str, Enum):
    """Kinds of connectivity problems a customer can report."""
    CONNECTION = "connection"
    SPEED = "speed"
    INSTABILITY = "instability"
    CONFIGURATION = "configuration"
    OTHER = "other"


class UserRole(str, Enum):
    """User roles."""
    CUSTOMER = "customer"
    TECHNICIAN = "technician"
    ADMIN = "admin"


# ========== Lists for validation ==========

VALID_STATUSES = [s.value for s in TicketStatus]
VALID_PRIORITIES = [p.value for p in Priority]
VALID_CATEGORIES = [c.value for c in TicketCategory]
VALID_ROLES = [r.value for r in UserRole]

# Statuses whose SLA clock is still running
ACTIVE_STATUSES = [TicketStatus.OPEN.value, TicketStatus.IN_PROGRESS.value]

STAFF_ROLES = [UserRole.TECHNICIAN.value, UserRole.ADMIN.value]
