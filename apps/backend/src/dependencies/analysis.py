"""Dependencies exposing the analysis engine's long-lived services.

`CheckpointStore` and `ProviderClient` are built once in the application
lifespan and parked on `app.state`, next to the registry of streams that
are live in this process; streamers are per request.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from core.config import get_settings
from services.analysis.checkpoints import CheckpointStore
from services.analysis.client import ProviderClient
from services.analysis.streamer import ActiveStreams, AnalysisStreamer


def get_checkpoint_store(request: Request) -> CheckpointStore:
    return request.app.state.checkpoint_store


def get_provider_client(request: Request) -> ProviderClient:
    return request.app.state.provider_client


def get_active_streams(request: Request) -> ActiveStreams:
    return request.app.state.active_streams


CheckpointStoreDep = Annotated[CheckpointStore, Depends(get_checkpoint_store)]
ProviderClientDep = Annotated[ProviderClient, Depends(get_provider_client)]
ActiveStreamsDep = Annotated[ActiveStreams, Depends(get_active_streams)]


def get_streamer(
    provider_client: ProviderClientDep, checkpoint_store: CheckpointStoreDep
) -> AnalysisStreamer:
    """A fresh single-session streamer over the shared services."""
    return AnalysisStreamer(provider_client, checkpoint_store, get_settings())


StreamerDep = Annotated[AnalysisStreamer, Depends(get_streamer)]
