"""Composition root: builds the service graph once and hands it to callers."""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

import redis

from cortex.core.config import Config, get_config
from cortex.database.db import Database, get_database
from cortex.llm.client import LLMClient
from cortex.llm.router import AgentRouter
from cortex.llm.summarizer import ConversationSummarizer
from cortex.models.base import utcnow
from cortex.orchestration.pipeline import ConversationPipeline
from cortex.orchestration.steps import CheckpointStore, EventLedger, StepRunner
from cortex.services.audit_service import AuditService
from cortex.services.booking_service import BookingEngine
from cortex.services.lead_service import InterventionService, LeadService
from cortex.services.message_service import MessageService
from cortex.services.messaging import WhatsAppMessenger
from cortex.services.rate_limiter import RateLimiter
from cortex.services.settings_cache import SettingsCache
from cortex.services.settings_service import BusinessSettingsService, SettingsStore
from cortex.services.sender_lock import SenderLock
from cortex.services.sweeper import MaintenanceSweeper
from cortex.services.tool_executor import ToolExecutor


@dataclass
class ServiceContainer:
    config: Config
    database: Database
    settings: BusinessSettingsService
    rate_limiter: RateLimiter
    sender_lock: SenderLock
    audit: AuditService
    leads: LeadService
    messages: MessageService
    booking: BookingEngine
    executor: ToolExecutor
    router: AgentRouter
    messenger: Any
    ledger: EventLedger
    pipeline: ConversationPipeline
    sweeper: MaintenanceSweeper
    intervention: InterventionService


def build_container(
    config: Config | None = None,
    database: Database | None = None,
    messenger: Any = None,
    llm_client: Any = None,
    clock: Callable[[], datetime] = utcnow,
    sleep: Callable[[float], None] | None = None,
    redis_client: Any = None,
) -> ServiceContainer:
    """Wire every component explicitly; tests pass fakes for the external edges."""
    config = config or get_config()
    database = database or get_database()
    session_factory = database.session_factory

    store = SettingsStore(session_factory)
    cache = SettingsCache(store, ttl_seconds=config.SETTINGS_CACHE_TTL_SECONDS)
    settings = BusinessSettingsService(cache, store, default_timezone=config.BUSINESS_TIMEZONE)

    def business_today() -> date:
        return clock().astimezone(settings.get_settings().tz).date()

    audit = AuditService(session_factory)
    leads = LeadService(session_factory)
    messages = MessageService(session_factory)
    booking = BookingEngine(session_factory, settings, clock=clock)
    executor = ToolExecutor(leads, booking, audit, today=business_today)
    client = llm_client or LLMClient(config)
    router = AgentRouter(
        client,
        business_hours=settings.format_business_hours,
        max_history=config.MAX_HISTORY_MESSAGES,
        max_length=config.MAX_RESPONSE_LENGTH,
        today=business_today,
    )
    messenger = messenger or WhatsAppMessenger.from_config(config)
    ledger = EventLedger(
        session_factory,
        stall_after=timedelta(minutes=config.PIPELINE_STALL_MINUTES),
    )
    step_kwargs = {"sleep": sleep} if sleep is not None else {}
    steps = StepRunner(
        CheckpointStore(session_factory),
        audit,
        max_attempts=config.PIPELINE_STEP_MAX_ATTEMPTS,
        backoff_seconds=config.PIPELINE_STEP_BACKOFF_SECONDS,
        **step_kwargs,
    )
    pipeline = ConversationPipeline(
        ledger=ledger,
        steps=steps,
        leads=leads,
        messages=messages,
        router=router,
        executor=executor,
        messenger=messenger,
        audit=audit,
        summarizer=ConversationSummarizer(client),
        max_history=config.MAX_HISTORY_MESSAGES,
        summary_every=config.SUMMARY_EVERY_N_MESSAGES,
    )
    sweeper = MaintenanceSweeper(
        session_factory,
        messenger,
        settings,
        audit,
        clock=clock,
        stale_after=timedelta(minutes=config.STALE_APPOINTMENT_MINUTES),
        reminder_window=(
            timedelta(hours=config.REMINDER_WINDOW_START_HOURS),
            timedelta(hours=config.REMINDER_WINDOW_END_HOURS),
        ),
    )
    return ServiceContainer(
        config=config,
        database=database,
        settings=settings,
        rate_limiter=RateLimiter(config.RATE_LIMIT_MESSAGES, config.RATE_LIMIT_WINDOW_SECONDS),
        sender_lock=SenderLock(
            redis_client if redis_client is not None else redis.Redis.from_url(config.REDIS_URL, decode_responses=True),
            ttl_seconds=config.SENDER_LOCK_TTL_SECONDS,
        ),
        audit=audit,
        leads=leads,
        messages=messages,
        booking=booking,
        executor=executor,
        router=router,
        messenger=messenger,
        ledger=ledger,
        pipeline=pipeline,
        sweeper=sweeper,
        intervention=InterventionService(leads, messages, messenger, audit),
    )


_CONTAINER: ServiceContainer | None = None
_CONTAINER_LOCK = threading.Lock()


def get_container() -> ServiceContainer:
    """Process-wide container, built on first use behind a single lock."""
    global _CONTAINER
    if _CONTAINER is None:
        with _CONTAINER_LOCK:
            if _CONTAINER is None:
                _CONTAINER = build_container()
    return _CONTAINER


def set_container(container: ServiceContainer | None) -> None:
    """Install (or clear) the process-wide container; used by tests and the CLI."""
    global _CONTAINER
    with _CONTAINER_LOCK:
        _CONTAINER = container
