"""
Helpdesk Intelligence - Main Application
========================================

AI ticket intelligence pipeline for a helpdesk.

Modules:
- Governance: Rate and cost governor in front of every inference call
- FAQ: Content-addressed answer cache with request coalescing
- Intelligence: Ticket analysis, auto-responses and escalation
- Learning: Knowledge articles mined from resolved tickets, with feedback

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, inference clients, ticket store, notifications
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from helpdesk_intel.config import settings
from helpdesk_intel.core import ApplicationException

# Infrastructure
from helpdesk_intel.infrastructure.database import init_database, close_database, create_tables
from helpdesk_intel.infrastructure.llm import IInferenceClient, create_inference_client
from helpdesk_intel.infrastructure.notifications import INotificationDispatcher, create_notification_dispatcher
from helpdesk_intel.infrastructure.ticket_store import HttpTicketStore, InMemoryTicketStore, ITicketStore

# AI settings
from helpdesk_intel.ai_settings.application import ISettingsProvider
from helpdesk_intel.ai_settings.infrastructure import AISettingsManager

# Governance
from helpdesk_intel.governance.application import Clock, CostRateGovernor, GovernedInference, utc_now
from helpdesk_intel.governance.infrastructure import InMemoryUsageLedger, SQLAlchemyUsageLedger

# FAQ
from helpdesk_intel.faq.application import FaqAssistant, FaqCache
from helpdesk_intel.faq.domain import create_eviction_policy
from helpdesk_intel.faq.infrastructure import InMemoryFaqCacheRepository, SQLAlchemyFaqCacheRepository

# Intelligence
from helpdesk_intel.intelligence.application import (
    AutoResponseGenerator,
    TicketAnalyzer,
    TicketIntelligencePipeline,
)
from helpdesk_intel.intelligence.infrastructure import (
    InMemoryAutoResponseRepository,
    InMemoryComplexityScoreRepository,
    SQLAlchemyAutoResponseRepository,
    SQLAlchemyComplexityScoreRepository,
)

# Learning
from helpdesk_intel.learning.application import (
    ArticleKnowledgeSearch,
    FeedbackTracker,
    IKnowledgeArticleRepository,
    KnowledgeLearningJob,
    LearningQueue,
)
from helpdesk_intel.learning.infrastructure import (
    InMemoryKnowledgeArticleRepository,
    InMemoryLearningQueueRepository,
    LearningScheduler,
    SQLAlchemyKnowledgeArticleRepository,
    SQLAlchemyLearningQueueRepository,
)

# Module Routers
from helpdesk_intel.governance.interfaces import governance_router
from helpdesk_intel.faq.interfaces import faq_router
from helpdesk_intel.intelligence.interfaces import intelligence_router
from helpdesk_intel.learning.interfaces import learning_router

# Middleware
from helpdesk_intel.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler
)

# Logging
from helpdesk_intel.shared.infrastructure.logging import setup_logging, get_logger
from helpdesk_intel.shared.infrastructure.grafana import GrafanaOTLPExporter, get_grafana_exporter

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Wired application services, exposed to controllers as app.state.services."""
    settings_provider: ISettingsProvider
    governor: CostRateGovernor
    inference: GovernedInference
    faq_cache: FaqCache
    faq_assistant: FaqAssistant
    analyzer: TicketAnalyzer
    generator: AutoResponseGenerator
    pipeline: TicketIntelligencePipeline
    learning_queue: LearningQueue
    learning_job: KnowledgeLearningJob
    feedback_tracker: FeedbackTracker
    article_repository: IKnowledgeArticleRepository
    ticket_store: ITicketStore
    notifier: INotificationDispatcher
    scheduler: Optional[LearningScheduler] = None

    async def close(self) -> None:
        if self.scheduler:
            await self.scheduler.stop()
        await self.governor.drain()
        await self.notifier.close()
        if isinstance(self.ticket_store, HttpTicketStore):
            await self.ticket_store.close()


def build_services(
    settings_provider: ISettingsProvider,
    inference_client: Optional[IInferenceClient],
    ticket_store: ITicketStore,
    notifier: INotificationDispatcher,
    storage_backend: str = "memory",
    exporter: Optional[GrafanaOTLPExporter] = None,
    clock: Clock = utc_now
) -> ServiceContainer:
    """
    Wire every service against one storage backend.

    Args:
        inference_client: None leaves the inference capability unavailable
        storage_backend: "database" (PostgreSQL) or "memory"
    """
    if storage_backend == "database":
        ledger = SQLAlchemyUsageLedger()
        faq_repository = SQLAlchemyFaqCacheRepository()
        complexity_repository = SQLAlchemyComplexityScoreRepository()
        response_repository = SQLAlchemyAutoResponseRepository()
        queue_repository = SQLAlchemyLearningQueueRepository()
        article_repository = SQLAlchemyKnowledgeArticleRepository()
    else:
        ledger = InMemoryUsageLedger()
        faq_repository = InMemoryFaqCacheRepository()
        complexity_repository = InMemoryComplexityScoreRepository()
        response_repository = InMemoryAutoResponseRepository()
        queue_repository = InMemoryLearningQueueRepository()
        article_repository = InMemoryKnowledgeArticleRepository()

    governor = CostRateGovernor(ledger, settings_provider, clock=clock, exporter=exporter)
    inference = GovernedInference(governor, inference_client)

    faq_cache = FaqCache(
        faq_repository,
        eviction=create_eviction_policy(settings.faq_eviction, settings.faq_ttl_hours, settings.faq_max_entries),
        min_answer_length=settings.faq_min_answer_length,
        clock=clock
    )
    faq_assistant = FaqAssistant(faq_cache, inference, settings_provider)

    analyzer = TicketAnalyzer(inference, complexity_repository, settings_provider)
    generator = AutoResponseGenerator(
        inference,
        settings_provider,
        faq_cache=faq_cache,
        knowledge_search=ArticleKnowledgeSearch(article_repository)
    )
    pipeline = TicketIntelligencePipeline(
        analyzer,
        generator,
        response_repository,
        ticket_store,
        notifier,
        settings_provider,
        exporter=exporter,
        clock=clock
    )

    learning_job = KnowledgeLearningJob(
        queue_repository,
        article_repository,
        ticket_store,
        inference,
        settings_provider,
        notifier,
        batch_size=settings.learning_batch_size,
        max_attempts=settings.learning_max_attempts,
        lease=timedelta(minutes=settings.learning_lease_minutes),
        clock=clock
    )

    return ServiceContainer(
        settings_provider=settings_provider,
        governor=governor,
        inference=inference,
        faq_cache=faq_cache,
        faq_assistant=faq_assistant,
        analyzer=analyzer,
        generator=generator,
        pipeline=pipeline,
        learning_queue=LearningQueue(queue_repository, clock=clock),
        learning_job=learning_job,
        feedback_tracker=FeedbackTracker(response_repository, article_repository),
        article_repository=article_repository,
        ticket_store=ticket_store,
        notifier=notifier
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database (database backend only)
    3. Load AI settings and watch the file
    4. Initialize inference client, ticket store and notifier
    5. Wire services
    6. Start learning scheduler

    SHUTDOWN:
    1. Stop learning scheduler
    2. Close HTTP clients
    3. Stop settings watcher
    4. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Helpdesk Intelligence", extra={
        "version": settings.app_version,
        "environment": settings.environment,
        "storage_backend": settings.storage_backend
    })

    if settings.storage_backend == "database":
        logger.info("Initializing database")
        init_database()
        try:
            await create_tables()
        except Exception as e:
            logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    logger.info("Loading AI settings")
    settings_manager = AISettingsManager()
    settings_manager.load(settings.ai_settings_path)
    settings_manager.start_watching()

    logger.info("Initializing inference client")
    try:
        inference_client = create_inference_client()
    except ApplicationException as e:
        logger.warning("Inference capability not available", extra={"error": e.message})
        inference_client = None

    if settings.ticket_store_url:
        ticket_store = HttpTicketStore()
    else:
        logger.warning("TICKET_STORE_URL not set, using in-memory ticket store")
        ticket_store = InMemoryTicketStore()

    services = build_services(
        settings_manager,
        inference_client,
        ticket_store,
        create_notification_dispatcher(),
        storage_backend=settings.storage_backend,
        exporter=get_grafana_exporter()
    )

    if settings.learning_scheduler_enabled:
        services.scheduler = LearningScheduler(interval_hours=settings.learning_interval_hours)
        await services.scheduler.start(services.learning_job.run_scheduled)

    app.state.services = services
    logger.info("Helpdesk Intelligence started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Helpdesk Intelligence")
    await services.close()
    settings_manager.stop_watching()
    if settings.storage_backend == "database":
        await close_database()
    logger.info("Helpdesk Intelligence shutdown complete")


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Build the FastAPI application; tests skip the lifespan and set app.state.services."""
    app = FastAPI(
        title="Helpdesk Intelligence API",
        description="""
    ## AI Ticket Intelligence Pipeline

    - **Governance** - rate and cost ceilings for every inference call
    - **FAQ** - cached answers for repeated questions
    - **Intelligence** - analysis, auto-responses, escalation, ticket events
    - **Learning** - knowledge articles mined from resolved tickets, feedback
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan if use_lifespan else None
    )

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(CorrelationIDMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(governance_router)
    app.include_router(faq_router)
    app.include_router(intelligence_router)
    app.include_router(learning_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check endpoint for load balancers and orchestrators."""
        services: Optional[ServiceContainer] = getattr(request.app.state, "services", None)
        if services is None:
            return {"status": "starting", "version": settings.app_version}

        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": {
                "storage": settings.storage_backend,
                "ai_settings_version": services.settings_provider.snapshot().version,
                "inference": "available" if services.inference.is_available else "not_configured",
                "learning_scheduler": (
                    "running" if services.scheduler and services.scheduler.is_running else "stopped"
                ),
                "learning_pass": "running" if services.learning_job.is_running else "idle"
            }
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Helpdesk Intelligence",
            "version": settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "governance": {"prefix": "/governance"},
                "faq": {"prefix": "/faq"},
                "intelligence": {"prefix": "/intelligence"},
                "learning": {"prefix": "/learning"}
            }
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "helpdesk_intel.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
