"""Tests for nupm.config settings loading and clamping."""
from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from nupm.config import NupmSettings, load_settings, save_settings


class TestDefaults:
    def test_default_timings(self) -> None:
        settings = NupmSettings()
        assert settings.idle_stable_seconds == 2.0
        assert settings.post_reload_cooldown_seconds == 1.5
        assert settings.poll_interval_ms == 80
        assert settings.install_timeout_seconds == 300
        assert settings.extra_post_install_delay_seconds == 1.0
        assert settings.wait_for_presence is True
        assert settings.sources == []

    def test_default_poll_interval_in_seconds(self) -> None:
        assert NupmSettings().effective_poll_interval == pytest.approx(0.08)


class TestEffectiveValues:
    def test_idle_floor(self) -> None:
        assert NupmSettings(idle_stable_seconds=0).effective_idle_stable_seconds == 0.2

    def test_negative_cooldown_becomes_zero(self) -> None:
        assert NupmSettings(post_reload_cooldown_seconds=-3).effective_cooldown_seconds == 0.0

    @pytest.mark.parametrize("raw, expected", [(1, 0.02), (80, 0.08), (5000, 0.5)])
    def test_poll_interval_clamped(self, raw: int, expected: float) -> None:
        assert NupmSettings(poll_interval_ms=raw).effective_poll_interval == pytest.approx(expected)

    def test_install_timeout_floor(self) -> None:
        assert NupmSettings(install_timeout_seconds=5).effective_install_timeout == 30

    def test_negative_grace_becomes_zero(self) -> None:
        assert NupmSettings(extra_post_install_delay_seconds=-1).effective_grace_delay == 0.0


class TestSources:
    def test_sources_are_trimmed_and_deduplicated(self) -> None:
        settings = NupmSettings(sources=[" https://github.com/a/b.git ", "https://github.com/a/b.git", ""])
        assert settings.sources == ["https://github.com/a/b.git"]

    def test_add_and_remove(self) -> None:
        settings = NupmSettings()
        assert settings.add_source("https://github.com/a/b.git")
        assert not settings.add_source("https://github.com/a/b.git")
        assert settings.remove_source(" https://github.com/a/b.git ")
        assert not settings.remove_source("https://github.com/a/b.git")
        assert settings.sources == []


class TestLoadSave:
    def test_missing_file_gives_defaults(self, tmp_path: Path) -> None:
        assert load_settings(tmp_path / "absent.yaml") == NupmSettings()

    def test_round_trip(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "nupm.yaml"
        original = NupmSettings(idle_stable_seconds=0.5, sources=["https://github.com/a/b.git"])
        assert save_settings(original, path) == path
        assert load_settings(path) == original

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "nupm.yaml"
        path.write_text("", encoding="utf-8")
        assert load_settings(path) == NupmSettings()

    def test_non_mapping_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "nupm.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_settings(path)

    def test_invalid_value_raises_validation_error(self, tmp_path: Path) -> None:
        path = tmp_path / "nupm.yaml"
        path.write_text("poll_interval_ms: fast\n", encoding="utf-8")
        with pytest.raises(ValidationError):
            load_settings(path)
