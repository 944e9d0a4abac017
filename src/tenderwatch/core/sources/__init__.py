"""Source clients: one cursor-based listing contract over three transports."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import (
    DiscoveryError,
    FetchError,
    ListPage,
    NoDataError,
    ParseError,
    SessionError,
    SourceClient,
    Tender,
    page_number,
)
from .browser_session import BrowserSessionClient
from .capture import CaptureBuffer
from .form_session import FormSessionClient
from .token_session import TokenSessionClient

if TYPE_CHECKING:
    from tenderwatch.core.config.models import SourceConfig


def create_client(config: SourceConfig) -> SourceClient:
    """Build the client matching a source's transport.

    Client type to implementation mapping:
    - FORM_SESSION -> FormSessionClient
    - TOKEN_SESSION -> TokenSessionClient
    - BROWSER_SESSION -> BrowserSessionClient
    """
    from tenderwatch.core.config.models import ClientType

    if config.client_type == ClientType.FORM_SESSION:
        return FormSessionClient(config)
    if config.client_type == ClientType.TOKEN_SESSION:
        return TokenSessionClient(config)
    if config.client_type == ClientType.BROWSER_SESSION:
        return BrowserSessionClient(config)
    raise ValueError(f"Unknown client type: {config.client_type}")


__all__ = [
    "Tender",
    "ListPage",
    "SourceClient",
    "page_number",
    "create_client",
    "CaptureBuffer",
    "FormSessionClient",
    "TokenSessionClient",
    "BrowserSessionClient",
    "DiscoveryError",
    "SessionError",
    "FetchError",
    "ParseError",
    "NoDataError",
]
