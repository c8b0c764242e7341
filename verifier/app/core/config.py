"""
Centralized configuration management for the Verifier microservice.

Pydantic v2 settings management to enforce strict validation,
zero secret leakage, and fast-failure on invalid configuration.

A missing relayer API key is NOT a configuration failure: the service
starts with verification disabled and reports it on every request.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated, Optional

from pydantic import AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

SensitiveEnv = Annotated[
    Optional[SecretStr],
    Field(
        default=None,
        description="Sensitive credential, redacted from logs",
    ),
]

PositiveSeconds = Annotated[
    float,
    Field(gt=0, le=3600),
]


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment.
    """

    # ---------------------------------------------------------------------
    # Verification network (zkVerify relayer)
    # ---------------------------------------------------------------------

    relayer_url: Annotated[
        AnyHttpUrl,
        Field(
            default="https://relayer-api.horizenlabs.io/api/v1",
            description="Base URL of the verification network relayer",
        ),
    ]

    relayer_api_key: SensitiveEnv

    relayer_probe_path: Annotated[
        str,
        Field(
            default="/health",
            description="Relative path used to probe relayer reachability",
        ),
    ]

    proof_type: Annotated[
        str,
        Field(
            default="ultraplonk",
            pattern=r"^[a-z0-9_]{3,32}$",
            description="Proof system identifier understood by the network",
        ),
    ]

    # ---------------------------------------------------------------------
    # Session lifecycle
    # ---------------------------------------------------------------------

    session_init_attempts: Annotated[
        int,
        Field(
            default=3,
            ge=1,
            le=10,
            description="Bounded retry budget for session initialization",
        ),
    ]

    session_retry_wait_seconds: Annotated[
        float,
        Field(default=2.0, ge=0, le=60),
    ]

    # ---------------------------------------------------------------------
    # Submission lifecycle
    # ---------------------------------------------------------------------

    submission_timeout_seconds: Annotated[
        PositiveSeconds,
        Field(
            default=300.0,
            description=(
                "Upper bound on the wait for a terminal network event "
                "(finalized or error) after a single submission"
            ),
        ),
    ]

    job_poll_interval_seconds: Annotated[
        PositiveSeconds,
        Field(default=5.0),
    ]

    # ---------------------------------------------------------------------
    # Local (best-effort) verification
    # ---------------------------------------------------------------------

    circuits_dir: Annotated[
        Path,
        Field(
            default=Path("circuits"),
            description="Root of circuits/<type>/target/<type>.json artifacts",
        ),
    ]

    enable_local_verification: Annotated[
        bool,
        Field(
            default=True,
            description="Run the diagnostic local proof check when possible",
        ),
    ]

    local_verifier_binary: Annotated[
        str,
        Field(default="bb", min_length=1),
    ]

    local_verifier_scheme: Annotated[
        str,
        Field(default="ultra_honk", min_length=1),
    ]

    # ---------------------------------------------------------------------
    # External document store
    # ---------------------------------------------------------------------

    documents_url: Annotated[
        AnyHttpUrl,
        Field(
            default="http://localhost:3001",
            description="Base URL of the document persistence service",
        ),
    ]

    model_config = SettingsConfigDict(
        env_prefix="VERIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Dependency injection provider for application settings.
    """
    return Settings()  # singleton within process
