"""
Tests for pipeline settings.
"""

import json
import os
import shutil
import tempfile

import pytest
from pydantic import ValidationError

from site_snapshot.exceptions import ConfigError
from site_snapshot.utils.settings import Settings


class TestSettings:
    """Tests for Settings."""

    def setup_method(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def write_config(self, data):
        path = os.path.join(self.temp_dir, "settings.json")
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        return path

    def test_defaults(self):
        settings = Settings(site_url="https://example.com")
        assert settings.timeout == 30000
        assert settings.crawl_concurrency == 3
        assert settings.single_responsive is True
        assert settings.desktop_viewport == {"width": 1920, "height": 1080}
        assert settings.mobile_viewport == {"width": 375, "height": 667}

    def test_derived_paths(self):
        settings = Settings(site_url="https://www.example.com/start", work_dir=self.temp_dir)
        assert settings.site_origin == "https://www.example.com"
        assert settings.data_dir == os.path.join(self.temp_dir, "data")
        assert settings.temp_dir == os.path.join(self.temp_dir, "temp", "pages")
        assert settings.output_dir == os.path.join(self.temp_dir, "output")

    def test_from_dict_camel_case(self):
        settings = Settings.from_dict({
            "siteUrl": "https://example.com",
            "timeout": 5000,
            "parallel": 6,
            "assetParallel": 10,
            "viewports": {"mobile": {"width": 390, "height": 844}},
            "singleResponsive": False,
            "downloadHighRes": True,
            "homePaginationMax": 12,
        })
        assert settings.timeout == 5000
        assert settings.crawl_concurrency == 6
        assert settings.capture_concurrency == 6
        assert settings.asset_concurrency == 10
        assert settings.mobile_viewport == {"width": 390, "height": 844}
        assert settings.desktop_viewport == {"width": 1920, "height": 1080}
        assert settings.single_responsive is False
        assert settings.download_high_res is True
        assert settings.home_pagination_max == 12

    def test_overrides_win(self):
        settings = Settings.from_dict(
            {"siteUrl": "https://example.com", "timeout": 5000},
            timeout=9000,
            site_url=None,
        )
        assert settings.timeout == 9000
        assert settings.site_url == "https://example.com"

    def test_from_file(self):
        path = self.write_config({"siteUrl": "https://example.com", "workDir": self.temp_dir})
        settings = Settings.from_file(path)
        assert settings.work_dir == self.temp_dir

    def test_missing_site_url(self):
        with pytest.raises(ConfigError):
            Settings.from_dict({"timeout": 1000})

    def test_invalid_site_url(self):
        with pytest.raises(ConfigError):
            Settings.from_dict({"siteUrl": "example.com"})

    def test_invalid_site_url_on_model(self):
        with pytest.raises(ValidationError):
            Settings(site_url="ftp://example.com")

    def test_non_positive_concurrency(self):
        with pytest.raises(ConfigError):
            Settings.from_dict({"siteUrl": "https://example.com", "parallel": 0})

    def test_non_numeric_timeout(self):
        with pytest.raises(ConfigError):
            Settings.from_dict({"siteUrl": "https://example.com", "timeout": "soon"})

    def test_viewport_needs_both_sizes(self):
        with pytest.raises(ConfigError):
            Settings.from_dict({
                "siteUrl": "https://example.com",
                "viewports": {"mobile": {"width": 375}},
            })

    def test_invalid_override(self):
        settings = Settings(site_url="https://example.com")
        with pytest.raises(ConfigError):
            settings.with_overrides(crawl_concurrency=-1)

    def test_unknown_keys_ignored(self):
        settings = Settings.from_dict({"siteUrl": "https://example.com", "gps": {"enabled": True}})
        assert settings.site_url == "https://example.com"

    def test_settings_are_frozen(self):
        settings = Settings(site_url="https://example.com")
        with pytest.raises(ValidationError):
            settings.timeout = 10

    def test_missing_file(self):
        with pytest.raises(ConfigError):
            Settings.from_file(os.path.join(self.temp_dir, "absent.json"))

    def test_invalid_json(self):
        path = os.path.join(self.temp_dir, "settings.json")
        with open(path, "w", encoding="utf-8") as f:
            f.write("{not json")
        with pytest.raises(ConfigError):
            Settings.from_file(path)

    def test_with_overrides_ignores_none(self):
        settings = Settings(site_url="https://example.com")
        assert settings.with_overrides(timeout=None) is settings
        assert settings.with_overrides(headless=False).headless is False
