"""
Pydantic configuration models for TenderWatch.

These models provide type-safe configuration with validation for:
- Application settings (database, logging, notification)
- Source configurations, one per listing portal
- Transport-specific client settings
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator


# =============================================================================
# Enums
# =============================================================================


class ClientType(str, Enum):
    """Transport protocol a source is reached through."""

    FORM_SESSION = "form_session"
    TOKEN_SESSION = "token_session"
    BROWSER_SESSION = "browser_session"


class WatermarkPolicy(str, Enum):
    """Which stored column defines how far back discovery has to look."""

    ISSUED = "issued"
    FIRST_OBSERVED = "first_observed"


# =============================================================================
# Form Session Configuration
# =============================================================================


class ColumnMap(BaseModel):
    """Zero-based cell indexes of a listing grid row."""

    id: int = Field(default=0, ge=0)
    description: int = Field(default=1, ge=0)
    agency: int = Field(default=2, ge=0)
    issued: int = Field(default=3, ge=0)
    close: int = Field(default=4, ge=0)
    link: int | None = Field(
        default=None,
        ge=0,
        description="Cell holding the detail link (defaults to the description cell)",
    )


class FormSessionConfig(BaseModel):
    """Server-rendered grid paged through form postbacks."""

    list_url: str = Field(
        ...,
        description="Page hosting the listing form (absolute or relative to base_url)",
    )
    form_selector: str = Field(
        default="form",
        description="CSS selector of the form whose hidden fields are replayed",
    )
    required_hidden_fields: list[str] = Field(
        default_factory=lambda: ["__VIEWSTATE"],
        description="Hidden fields that must exist for the session to be usable",
    )
    search_fields: dict[str, str] = Field(
        default_factory=dict,
        description="Filter fields posted with every request",
    )
    submit_fields: dict[str, str] = Field(
        default_factory=dict,
        description="Fields posted only with the first search (the submit button)",
    )
    pager_target: str = Field(
        ...,
        description="__EVENTTARGET value that pages the grid",
    )
    pager_argument: str = Field(
        default="Page${page}",
        description="__EVENTARGUMENT template; {page} is the requested page",
    )
    row_selector: str = Field(
        default="table tr",
        description="CSS selector for listing rows",
    )
    expected_columns: int = Field(
        default=5,
        ge=1,
        description="Exact number of cells in a data row",
    )
    columns: ColumnMap = Field(default_factory=ColumnMap)
    date_formats: list[str] = Field(
        default_factory=lambda: ["%Y-%m-%d", "%m/%d/%Y", "%b %d, %Y"],
        description="strptime formats tried in order",
    )
    url_template: str = Field(
        default="{base_url}/tenders/{id}",
        description="Fallback URL when a row has no detail link",
    )

    @model_validator(mode="after")
    def columns_fit_row(self) -> "FormSessionConfig":
        """Every mapped column must exist in a row of ``expected_columns`` cells."""
        out_of_range = {
            name: index
            for name, index in self.columns.model_dump().items()
            if index is not None and index >= self.expected_columns
        }
        if out_of_range:
            mapped = ", ".join(f"{name}={index}" for name, index in out_of_range.items())
            raise ValueError(
                f"Column indexes out of range for expected_columns={self.expected_columns}: {mapped}"
            )
        return self


# =============================================================================
# Token Session Configuration
# =============================================================================


class FilterItem(BaseModel):
    """A key/value listing filter."""

    key: str
    value: str


class TokenSessionConfig(BaseModel):
    """JSON API behind a bearer-token login."""

    auth_path: str = Field(default="/procurementui/authenticate")
    auth_payload: dict[str, Any] = Field(default_factory=lambda: {"rpid": "GUEST"})
    token_field: str = Field(default="JWTToken")
    list_path: str = Field(default="/procurementui/tenders")
    page_size: int = Field(default=25, ge=1, le=500)
    sort_type: str = Field(default="DATE_CREATED_DESC")
    filters: list[FilterItem] = Field(default_factory=list)
    resolve_detail_urls: bool = Field(
        default=True,
        description="Look up each tender's closing location for a canonical URL",
    )
    detail_marker: str = Field(
        default="Detail",
        description="Substring a closing location must contain to be used as the URL",
    )
    url_template: str = Field(default="{base_url}/tenders/{id}")


# =============================================================================
# Browser Session Configuration
# =============================================================================


class BrowserSessionConfig(BaseModel):
    """Single-page app whose data arrives as background JSON responses."""

    start_url: str = Field(..., description="SPA entry point")
    data_url_pattern: str = Field(
        ...,
        description="Regular expression matched against response URLs",
    )
    filter_selector: str | None = Field(
        default=None,
        description="Control toggled once after navigation to narrow the listing",
    )
    next_selector: str = Field(..., description="'Next page' control")
    results_selector: str | None = Field(
        default=None,
        description="Element that signals the listing has rendered",
    )
    settle_delay_ms: int = Field(
        default=1500,
        ge=0,
        le=60000,
        description="Fixed wait after each page action for secondary UI updates",
    )
    records_key: str = Field(default="data", description="Dotted path to the record list")
    id_key: str = Field(default="id")
    title_key: str = Field(default="title")
    agency_key: str = Field(default="agency")
    issued_key: str = Field(default="issued")
    close_key: str = Field(default="close")
    date_formats: list[str] | None = Field(default=None)
    url_template: str = Field(default="{base_url}/tenders/{id}")
    browser: str = Field(default="chromium", description="chromium, firefox, or webkit")
    headless: bool = Field(default=True)
    user_agent: str | None = Field(default=None)

    @field_validator("browser")
    @classmethod
    def known_browser(cls, v: str) -> str:
        if v not in ("chromium", "firefox", "webkit"):
            raise ValueError("browser must be chromium, firefox, or webkit")
        return v


# =============================================================================
# Source Configuration
# =============================================================================


class SourceConfig(BaseModel):
    """Complete configuration for one listing source."""

    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Unique source identifier (also the store scope)",
    )
    display_name: str | None = Field(default=None)
    client_type: ClientType
    watermark_policy: WatermarkPolicy = Field(default=WatermarkPolicy.ISSUED)
    base_url: HttpUrl
    timeout_seconds: float = Field(
        default=30.0,
        ge=1.0,
        le=300.0,
        description="Per-request transport deadline",
    )
    max_pages: int | None = Field(
        default=None,
        ge=1,
        description="Safety cap on pages per run (unlimited when unset)",
    )
    enabled: bool = Field(default=True)

    form: FormSessionConfig | None = None
    token: TokenSessionConfig | None = None
    browser: BrowserSessionConfig | None = None

    @model_validator(mode="after")
    def section_matches_client(self) -> "SourceConfig":
        """Require the settings section for the chosen transport."""
        section = {
            ClientType.FORM_SESSION: "form",
            ClientType.TOKEN_SESSION: "token",
            ClientType.BROWSER_SESSION: "browser",
        }[self.client_type]
        if section == "token" and self.token is None:
            self.token = TokenSessionConfig()
        if getattr(self, section) is None:
            raise ValueError(f"client_type {self.client_type.value} requires a '{section}' section")
        return self

    @property
    def effective_display_name(self) -> str:
        """Get display name, falling back to name."""
        return self.display_name or self.name

    @property
    def root_url(self) -> str:
        """Base URL without a trailing slash."""
        return str(self.base_url).rstrip("/")


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseModel):
    """Database connection settings."""

    url: str = Field(
        default="sqlite:///data/tenderwatch.db",
        description="SQLAlchemy database URL",
    )
    echo: bool = Field(default=False, description="Echo SQL statements (debugging)")


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: str = Field(default="INFO", description="Log level (DEBUG, INFO, WARNING, ERROR)")
    file: Path | None = Field(default=Path("logs/tenderwatch.log"))
    json_format: bool = Field(default=True, description="Use JSON format for file logs")
    rich_console: bool = Field(default=True, description="Use Rich for console output")


# =============================================================================
# Notification Configuration
# =============================================================================


class NotifyConfig(BaseModel):
    """Digest email settings."""

    sendgrid_api_key: str = Field(default="", description="Empty disables sending")
    from_name: str = Field(default="TenderWatch")
    from_email: str = Field(default="")
    to_emails: list[str] = Field(default_factory=list)
    subject_prefix: str = Field(default="New Tenders")
    intro: str = Field(default="These new tenders have appeared:")

    @field_validator("to_emails", mode="before")
    @classmethod
    def split_recipients(cls, v: Any) -> Any:
        """Accept a ';'-separated string as well as a list."""
        if isinstance(v, str):
            return [part.strip() for part in v.split(";") if part.strip()]
        return v

    @property
    def enabled(self) -> bool:
        return bool(self.sendgrid_api_key)


# =============================================================================
# Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """Root application configuration loaded from app.yaml."""

    config_dir: Path = Field(default=Path("configs"))
    data_dir: Path = Field(default=Path("data"))

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    notify: NotifyConfig = Field(default_factory=NotifyConfig)

    @property
    def sources_dir(self) -> Path:
        return self.config_dir / "sources"

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        for dir_path in [self.config_dir, self.sources_dir, self.data_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)

        if self.logging.file:
            self.logging.file.parent.mkdir(parents=True, exist_ok=True)
