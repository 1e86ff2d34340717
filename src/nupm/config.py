"""Settings for the install sequencer and metadata fetcher.

Settings are stored as a small YAML document (``nupm.yaml`` by default).
The core only reads them; the CLI is the only writer.

Raw values are kept as the user wrote them.  The ``effective_*``
properties apply the lower/upper bounds the sequencer relies on, so a
settings file with ``idle_stable_seconds: 0`` still produces a usable
stability window.
"""
from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = "nupm.yaml"


class NupmSettings(BaseModel):
    """Tunable timings plus the list of user-added package sources.

    Attributes
    ----------
    idle_stable_seconds:
        Continuous quiet time required before the next queued operation starts.
    post_reload_cooldown_seconds:
        Minimum time after a host reload before anything may start.
    poll_interval_ms:
        Interval for backend polling and stability/presence loops.
    install_timeout_seconds:
        Upper bound for the post-install presence/idle wait and for backend requests.
    extra_post_install_delay_seconds:
        Fixed grace delay after each successful operation.
    request_timeout_seconds:
        Per-request timeout for descriptor downloads.
    revision_timeout_seconds:
        Per-request timeout for head-revision lookups.
    wait_for_presence:
        Whether to wait for the installed package to show up before finishing.
    sources:
        Extra source locators appended to the static registry.
    """

    idle_stable_seconds: float = 2.0
    post_reload_cooldown_seconds: float = 1.5
    poll_interval_ms: int = 80
    install_timeout_seconds: int = 300
    extra_post_install_delay_seconds: float = 1.0
    request_timeout_seconds: float = 12.0
    revision_timeout_seconds: float = 8.0
    wait_for_presence: bool = True
    sources: list[str] = Field(default_factory=list)

    @field_validator("sources")
    @classmethod
    def _normalise_sources(cls, value: list[str]) -> list[str]:
        seen: list[str] = []
        for source in value:
            cleaned = source.strip()
            if cleaned and cleaned not in seen:
                seen.append(cleaned)
        return seen

    # ------------------------------------------------------------------
    # Effective (clamped) values
    # ------------------------------------------------------------------

    @property
    def effective_idle_stable_seconds(self) -> float:
        return max(0.2, self.idle_stable_seconds)

    @property
    def effective_cooldown_seconds(self) -> float:
        return max(0.0, self.post_reload_cooldown_seconds)

    @property
    def effective_poll_interval(self) -> float:
        """Poll interval in seconds, clamped to 20–500 ms."""
        return min(max(self.poll_interval_ms, 20), 500) / 1000.0

    @property
    def effective_install_timeout(self) -> float:
        return float(max(30, self.install_timeout_seconds))

    @property
    def effective_grace_delay(self) -> float:
        return max(0.0, self.extra_post_install_delay_seconds)

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    def add_source(self, locator: str) -> bool:
        """Append *locator* if not already present.  Returns True when added."""
        cleaned = locator.strip()
        if not cleaned or cleaned in self.sources:
            return False
        self.sources.append(cleaned)
        return True

    def remove_source(self, locator: str) -> bool:
        """Remove *locator*.  Returns True when it was present."""
        cleaned = locator.strip()
        if cleaned not in self.sources:
            return False
        self.sources.remove(cleaned)
        return True


def load_settings(path: str | Path | None = None) -> NupmSettings:
    """Load settings from a YAML file, falling back to defaults.

    A missing file yields default settings.  A file that is not a YAML
    mapping raises ``ValueError``; invalid field values raise pydantic's
    ``ValidationError``.
    """
    settings_path = Path(path) if path is not None else Path(DEFAULT_SETTINGS_FILE)
    if not settings_path.exists():
        logger.debug("Settings file %s not found; using defaults", settings_path)
        return NupmSettings()

    data = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    if data is None:
        return NupmSettings()
    if not isinstance(data, dict):
        raise ValueError(
            f"Settings file {settings_path} must contain a mapping, got {type(data).__name__}"
        )
    return NupmSettings.model_validate(data)


def save_settings(settings: NupmSettings, path: str | Path | None = None) -> Path:
    """Write *settings* as YAML and return the path written."""
    settings_path = Path(path) if path is not None else Path(DEFAULT_SETTINGS_FILE)
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(
        yaml.safe_dump(settings.model_dump(), sort_keys=False),
        encoding="utf-8",
    )
    return settings_path


__all__ = [
    "DEFAULT_SETTINGS_FILE",
    "NupmSettings",
    "load_settings",
    "save_settings",
]
