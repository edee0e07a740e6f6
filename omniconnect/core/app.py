"""
FastAPI application factory.

Builds the app, wires routers and middlewares and owns the long-lived
services through the lifespan:

- Persistent aiohttp session shared by every provider client
- Provider client registry (one client per channel credential set)
- Realtime fan-out hub with its liveness sweeps
- Inbound ingestion service with the optional auto-reply policy
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiohttp
from fastapi import FastAPI

from omniconnect.api.middleware import ErrorHandlerMiddleware, RequestLoggingMiddleware
from omniconnect.api.routes import (
    create_channel_router,
    create_webhook_router,
    health_router,
    realtime_router,
)
from omniconnect.core.config.settings import settings
from omniconnect.core.logging.logger import get_app_logger, setup_app_logging
from omniconnect.domain.interfaces.auto_reply import IAutoReplyDecider, NeverAutoReply
from omniconnect.domain.interfaces.channel_repository import IChannelRepository
from omniconnect.domain.interfaces.message_repository import IMessageRepository
from omniconnect.domain.interfaces.presence_repository import IPresenceRepository
from omniconnect.domain.services.auto_reply_policy import AutoReplyPolicy
from omniconnect.domain.services.inbound_messages import InboundMessageService
from omniconnect.messaging.zapi.registry import ClientFactory, ZapiClientRegistry
from omniconnect.persistence.memory import (
    MemoryChannelRepository,
    MemoryMessageRepository,
    MemoryPresenceRepository,
)
from omniconnect.realtime.hub import FanOutHub


def _default_presence() -> IPresenceRepository:
    if settings.presence_backend == "redis":
        from omniconnect.persistence.redis import RedisPresenceRepository

        return RedisPresenceRepository.from_url(
            settings.redis_url, max_connections=settings.redis_max_connections
        )
    return MemoryPresenceRepository()


def create_app(
    channels: IChannelRepository | None = None,
    messages: IMessageRepository | None = None,
    presence: IPresenceRepository | None = None,
    auto_reply_decider: IAutoReplyDecider | None = None,
    client_factory: ClientFactory | None = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Create the OmniConnect FastAPI application.

    Args:
        channels: Channel repository (in-memory by default)
        messages: Message repository (in-memory by default)
        presence: Presence repository (from PRESENCE_BACKEND by default)
        auto_reply_decider: Auto-reply collaborator; the policy only runs
            when AUTO_REPLY_ENABLED is set
        client_factory: Provider client factory override
        configure_logging: Install the Rich logging handlers on startup

    Returns:
        Configured FastAPI application
    """
    channels = channels or MemoryChannelRepository()
    messages = messages or MemoryMessageRepository()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if configure_logging:
            setup_app_logging()
        logger = get_app_logger()
        logger.info(f"🚀 Starting OmniConnect v{settings.version}")
        logger.info(f"📊 Environment: {settings.environment}")

        connector = aiohttp.TCPConnector(limit=100, keepalive_timeout=30)
        session = aiohttp.ClientSession(connector=connector)

        presence_repository = presence or _default_presence()
        hub = FanOutHub(presence=presence_repository)
        registry = ZapiClientRegistry(session, client_factory)

        policy = None
        if settings.auto_reply_enabled:
            policy = AutoReplyPolicy(auto_reply_decider or NeverAutoReply())
            logger.info(
                f"🤖 Auto-reply enabled (threshold {policy.threshold:.2f})"
            )

        app.state.http_session = session
        app.state.channels = channels
        app.state.messages = messages
        app.state.presence = presence_repository
        app.state.hub = hub
        app.state.clients = registry
        app.state.inbound = InboundMessageService(messages, hub, registry, policy)

        hub.start()
        logger.info(f"📨 Webhook URL pattern: {settings.public_base_url}/webhooks/zapi/<channel_id>")
        logger.info("✅ OmniConnect startup completed")

        try:
            yield
        finally:
            logger.info("🛑 Shutting down OmniConnect...")
            await hub.stop()
            close = getattr(presence_repository, "close", None)
            if close is not None:
                await close()
            await session.close()
            logger.info("✅ OmniConnect shutdown completed")

    app = FastAPI(
        title="OmniConnect",
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Last added runs first
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    app.include_router(health_router)
    app.include_router(create_webhook_router())
    app.include_router(create_channel_router())
    app.include_router(realtime_router)

    return app
