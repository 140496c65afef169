"""Service wiring and FastAPI dependencies."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import httpx
from fastapi import Request

from wavebatch.config import Settings
from wavebatch.registry import InMemoryRegistry
from wavebatch.services.airtable import AirtableArchive
from wavebatch.services.images import ImageFetcher
from wavebatch.services.poller import Poller, PollPolicy
from wavebatch.services.reconciler import CompletionReconciler
from wavebatch.services.submission import SubmissionPipeline
from wavebatch.services.supervisor import TaskSupervisor
from wavebatch.services.wavespeed import WaveSpeedClient
from wavebatch.services.webhook import WebhookIngest


@dataclass
class Services:
    registry: InMemoryRegistry
    reconciler: CompletionReconciler
    pipeline: SubmissionPipeline
    webhook: WebhookIngest
    supervisor: TaskSupervisor


def build_services(
    settings: Settings,
    client: httpx.AsyncClient,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Services:
    registry = InMemoryRegistry()
    supervisor = TaskSupervisor()
    archive = AirtableArchive(client, settings.airtable_table_url, settings.airtable_token)
    engine = WaveSpeedClient(
        client,
        api_key=settings.wavespeed_api_key,
        submit_url=settings.engine_submit_url,
        result_url=settings.engine_result_url,
        webhook_url=settings.webhook_url,
    )
    reconciler = CompletionReconciler(
        registry,
        archive,
        finalize_attempts=settings.archive_finalize_attempts,
        sleep=sleep,
    )
    poller = Poller(
        engine,
        reconciler,
        registry,
        PollPolicy(
            max_attempts=settings.poll_max_attempts,
            initial_delay=settings.poll_initial_delay,
            max_delay=settings.poll_max_delay,
            backoff_factor=settings.poll_backoff_factor,
        ),
        sleep=sleep,
    )
    pipeline = SubmissionPipeline(
        ImageFetcher(client),
        engine,
        archive,
        reconciler,
        registry,
        supervisor,
        poller,
        submission_delay=settings.submission_delay,
        sleep=sleep,
    )
    return Services(
        registry=registry,
        reconciler=reconciler,
        pipeline=pipeline,
        webhook=WebhookIngest(reconciler, registry),
        supervisor=supervisor,
    )


def get_services(request: Request) -> Services:
    services: Services = request.app.state.services
    return services
