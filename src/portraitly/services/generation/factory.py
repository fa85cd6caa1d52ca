"""Wires a GenerationEngine (and its collaborators) from settings."""

from datetime import timedelta
from typing import Callable

import httpx

from portraitly.core.config import Settings
from portraitly.services.credits.ledger import CreditLedger
from portraitly.services.generation.engine import GenerationEngine
from portraitly.services.image_generation.orchestrator import FallbackOrchestrator
from portraitly.services.image_generation.poller import TaskPoller
from portraitly.services.image_generation.registry import (
    build_candidates,
    build_captioner,
    build_text_to_image,
)
from portraitly.services.publishing.publisher import ResultPublisher
from portraitly.services.storage.supabase_storage import SupabaseStorageClient


def build_ledger(settings: Settings, uow_factory: Callable) -> CreditLedger:
    return CreditLedger(
        uow_factory,
        daily_limit=settings.daily_credit_limit,
        reset_window=timedelta(hours=settings.credit_reset_hours),
    )


def build_engine(
    settings: Settings, uow_factory: Callable, http_client: httpx.AsyncClient
) -> GenerationEngine:
    """Assemble the engine used by both the HTTP routes and the CLI.

    Args:
        settings: Application settings
        uow_factory: Factory producing UnitOfWork instances
        http_client: Shared httpx client (provider calls, downloads, storage)

    Returns:
        Ready-to-use GenerationEngine
    """
    poller = TaskPoller(
        interval_seconds=settings.poll_interval_seconds,
        timeout_seconds=settings.poll_timeout_seconds,
        unbounded=settings.poll_unbounded,
    )
    orchestrator = FallbackOrchestrator(
        build_candidates(settings, http_client),
        build_text_to_image(settings),
        poller,
        request_timeout=settings.provider_timeout_seconds,
    )
    storage = SupabaseStorageClient(
        http_client, settings.supabase_url, settings.storage_key, settings.storage_bucket
    )
    publisher = ResultPublisher(storage, uow_factory, http_client)

    return GenerationEngine(
        ledger=build_ledger(settings, uow_factory),
        orchestrator=orchestrator,
        publisher=publisher,
        uow_factory=uow_factory,
        http_client=http_client,
        captioner=build_captioner(settings),
        credits_per_generation=settings.credits_per_generation,
        publish_lease=timedelta(seconds=settings.publish_lease_seconds),
    )
