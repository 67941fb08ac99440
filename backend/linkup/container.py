from dataclasses import dataclass
from typing import Any, Optional

import httpx
from fastapi import Request

from .config import Settings
from .db import build_store
from .services.completion import CompletionProcessor
from .services.gradio_client import GradioClient
from .services.ingestion import IngestionOrchestrator
from .services.location_client import LocationCorrector
from .services.notifier import CompletionNotifier
from .services.openai_client import OpenAIClient
from .services.twilio_client import TwilioClient
from .services.verify_client import VerifyClient


@dataclass
class Container:
    settings: Settings
    store: Any
    twilio: TwilioClient
    gateway: GradioClient
    notifier: CompletionNotifier
    locator: LocationCorrector
    orchestrator: IngestionOrchestrator
    completion: CompletionProcessor
    verify: VerifyClient


def build_container(
    settings: Settings,
    store: Any = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    translator: Optional[OpenAIClient] = None,
) -> Container:
    """Wire every component from one Settings object.

    ``transport`` replaces the network for all outbound HTTP clients.
    """
    store = store if store is not None else build_store(settings)
    twilio = TwilioClient(settings, transport=transport)
    gateway = GradioClient(settings, transport=transport)
    notifier = CompletionNotifier(settings, transport=transport)
    locator = LocationCorrector(settings, transport=transport)
    if translator is None:
        translator = OpenAIClient(settings)
    return Container(
        settings=settings,
        store=store,
        twilio=twilio,
        gateway=gateway,
        notifier=notifier,
        locator=locator,
        orchestrator=IngestionOrchestrator(twilio, gateway, store, notifier),
        completion=CompletionProcessor(settings, gateway, store, notifier, translator=translator, locator=locator),
        verify=VerifyClient(settings, transport=transport),
    )


def get_container(request: Request) -> Container:
    return request.app.state.container
