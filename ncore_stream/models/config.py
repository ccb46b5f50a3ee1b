"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MIB = 1024 * 1024


class StreamConfig(BaseModel):
    """A validated, immutable configuration model for the addon server."""

    # Tracker & metadata services
    ncore_username: str
    ncore_password: str = Field(..., repr=False)
    ncore_url: str = "https://ncore.pro"
    cinemeta_url: str = "https://v3-cinemeta.strem.io"

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 4000
    public_url: str = ""
    admin_token: str = Field("", repr=False)

    # Storage locations
    addon_dir: str = "/addon"
    torrent_dir: str = "/downloads"
    torrents_dir: str = ""
    downloads_dir: str = ""
    state_file: str = ""
    log_dir: str = ""

    # Search behaviour
    search_cache_ttl_seconds: float = 3600.0
    search_cache_max_entries: int = 100
    batch_size: int = 5
    batch_delay_seconds: float = 0.5
    request_timeout_seconds: float = 30.0

    # Streaming behaviour
    initial_window_bytes: int = 5 * MIB
    resume_window_bytes: int = 20 * MIB
    stream_chunk_bytes: int = 256 * 1024
    # Longest response for an open-ended `bytes=N-` range, 0 for no limit.
    max_chunk_bytes: int = 0

    # Maintenance
    cleanup_interval_hours: float = 0.0

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    @model_validator(mode="before")
    @classmethod
    def fill_derived_paths(cls, data: Any) -> Any:
        """Derives directory and URL defaults from the base settings."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        torrent_dir = data.get("torrent_dir") or "/downloads"
        addon_dir = data.get("addon_dir") or "/addon"
        if not data.get("torrents_dir"):
            data["torrents_dir"] = f"{torrent_dir.rstrip('/')}/torrents"
        if not data.get("downloads_dir"):
            data["downloads_dir"] = f"{torrent_dir.rstrip('/')}/downloads"
        if not data.get("state_file"):
            data["state_file"] = f"{addon_dir.rstrip('/')}/torrents.json"
        if not data.get("public_url"):
            data["public_url"] = f"http://localhost:{data.get('port') or 4000}"
        return data

    @field_validator("ncore_username", "ncore_password")
    @classmethod
    def validate_credentials(cls, v: str) -> str:
        """Ensures tracker credentials are present."""
        if not v:
            raise ValueError("nCore username and password are required.")
        return v

    @field_validator("ncore_url", "cinemeta_url", "public_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Ensures service URLs are absolute http(s) URLs without a trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v.rstrip("/")

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535.")
        return v

    @field_validator(
        "search_cache_ttl_seconds",
        "request_timeout_seconds",
        "initial_window_bytes",
        "resume_window_bytes",
        "stream_chunk_bytes",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Value must be greater than zero.")
        return v

    @field_validator("search_cache_max_entries", "batch_size")
    @classmethod
    def validate_counts(cls, v: int) -> int:
        if v < 1 or v > 1000:
            raise ValueError("Value must be between 1 and 1000.")
        return v

    @field_validator(
        "batch_delay_seconds", "cleanup_interval_hours", "max_chunk_bytes"
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Value cannot be negative.")
        return v

    @model_validator(mode="after")
    def validate_windows(self) -> "StreamConfig":
        """The resume prefetch window must cover at least one initial window."""
        if self.resume_window_bytes < self.initial_window_bytes:
            raise ValueError(
                "resume_window_bytes must be at least initial_window_bytes."
            )
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI file."""
        return set(cls.model_fields)
