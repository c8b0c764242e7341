import logging
import sys
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from verifier.app.api.routes import router as verify_router
from verifier.app.core.config import Settings, get_settings
from verifier.app.network.protocol import VerificationNetwork
from verifier.app.network.relayer import RelayerClient
from verifier.app.network.session import VerificationSession
from verifier.app.services.documents import (
    DocumentRepository,
    DocumentService,
    HttpDocumentRepository,
)
from verifier.app.services.orchestrator import VerificationOrchestrator

logger = logging.getLogger("verifier.main")


def get_app_version() -> str:
    """
    Resolve application version deterministically.

    Falls back to the source version when the package is not installed.
    """
    try:
        return version("zk-proof-verifier")
    except PackageNotFoundError:
        return "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Guarantees:
    - Fail-fast startup if configuration is invalid
    - One verification session per process, started once
    - A session that cannot start leaves the service up, with
      verification reported as unavailable on every request
    """
    logger.info(
        "verifier_startup_begin",
        extra={
            "service": "verifier",
            "version": get_app_version(),
        },
    )

    # ------------------------------------------------------------------
    # Load and validate configuration (FAIL FAST)
    # ------------------------------------------------------------------
    settings: Optional[Settings] = getattr(app.state, "settings", None)
    if settings is None:
        try:
            settings = get_settings()
        except Exception:
            logger.exception("invalid_verifier_configuration")
            raise
        app.state.settings = settings

    # ------------------------------------------------------------------
    # Persistent HTTP client (relayer and document store)
    # ------------------------------------------------------------------
    app.state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            timeout=60.0,
            connect=10.0,
            read=60.0,
            write=10.0,
        ),
        limits=httpx.Limits(
            max_keepalive_connections=20,
            max_connections=50,
        ),
        headers={
            "User-Agent": f"zk-proof-verifier/{get_app_version()}",
        },
    )

    # ------------------------------------------------------------------
    # Verification network session (non-fatal on failure)
    # ------------------------------------------------------------------
    network: Optional[VerificationNetwork] = app.state.network
    if network is None:
        network = RelayerClient(
            http_client=app.state.http_client,
            base_url=str(settings.relayer_url),
            api_key=settings.relayer_api_key,
            probe_path=settings.relayer_probe_path,
            poll_interval_seconds=settings.job_poll_interval_seconds,
        )

    session = VerificationSession(
        network,
        max_attempts=settings.session_init_attempts,
        retry_wait_seconds=settings.session_retry_wait_seconds,
    )
    await session.start()
    app.state.session = session

    # ------------------------------------------------------------------
    # Document store and orchestration wiring
    # ------------------------------------------------------------------
    repository: Optional[DocumentRepository] = app.state.repository
    if repository is None:
        repository = HttpDocumentRepository(
            http_client=app.state.http_client,
            base_url=str(settings.documents_url),
        )

    app.state.document_service = DocumentService(
        repository=repository,
        orchestrator=VerificationOrchestrator.from_settings(settings, session),
    )

    logger.info(
        "verifier_startup_complete",
        extra={"session_state": session.state.value},
    )

    try:
        yield
    finally:
        logger.info("verifier_shutdown_begin")

        # Idempotent shutdown
        try:
            await session.close()
        except Exception:
            logger.warning("verification_session_shutdown_failed")

        try:
            await app.state.http_client.aclose()
        except Exception:
            logger.warning("http_client_shutdown_failed")


def create_app(
    settings: Optional[Settings] = None,
    *,
    network: Optional[VerificationNetwork] = None,
    repository: Optional[DocumentRepository] = None,
) -> FastAPI:
    """
    Application factory for the proof verifier service.

    ``network`` and ``repository`` replace the relayer client and the HTTP
    document store; tests use them to run without external services.
    """
    app = FastAPI(
        title="zkVerify Proof Verifier",
        description=(
            "Verifies zero-knowledge proofs for stored documents "
            "against the zkVerify network."
        ),
        version=get_app_version(),
        docs_url="/docs",
        redoc_url=None,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    if settings is not None:
        app.state.settings = settings
    app.state.network = network
    app.state.repository = repository

    # Internal service; CORS enforced at ingress / mesh layer
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.include_router(verify_router)

    @app.get(
        "/healthz",
        tags=["Monitoring"],
        summary="Liveness and readiness probe",
    )
    async def health_check():
        """
        Reports liveness and the verification session state.

        NOTE:
        - Does NOT call the verification network
        """
        session: Optional[VerificationSession] = getattr(
            app.state, "session", None
        )
        return ORJSONResponse(
            content={
                "status": "ok",
                "service": "verifier",
                "version": app.version,
                "runtime": f"python {sys.version.split()[0]}",
                "session": session.state.value if session else "uninitialized",
            }
        )

    return app


def main() -> None:
    """Console entry point: run the service under uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run(
        "verifier.app.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=3002,
    )
