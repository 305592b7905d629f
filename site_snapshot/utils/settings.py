"""
Pipeline configuration.

A single immutable Settings model is built once, from a JSON settings file
and/or command line overrides, and handed to every stage.
"""

import json
import os
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    ValidationError,
    field_validator,
    model_validator,
)

from ..exceptions import ConfigError
from .constants import (
    DEFAULT_TIMEOUT,
    DEFAULT_CRAWL_CONCURRENCY,
    DEFAULT_CAPTURE_CONCURRENCY,
    DEFAULT_ASSET_CONCURRENCY,
    DEFAULT_DESKTOP_VIEWPORT,
    DEFAULT_MOBILE_VIEWPORT,
    VIEWPORT_CLASSES,
)
from .paths import get_origin


def _describe(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'settings'}: {err['msg']}"
        for err in error.errors()
    )


class Settings(BaseModel):
    """Configuration shared by all pipeline stages.

    Accepts the camelCase keys of settings.json as well as the attribute
    names used by command line overrides.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    site_url: str = Field(alias="siteUrl")
    timeout: PositiveInt = DEFAULT_TIMEOUT
    crawl_concurrency: PositiveInt = Field(DEFAULT_CRAWL_CONCURRENCY, alias="parallel")
    capture_concurrency: PositiveInt = Field(DEFAULT_CAPTURE_CONCURRENCY, alias="captureParallel")
    asset_concurrency: PositiveInt = Field(DEFAULT_ASSET_CONCURRENCY, alias="assetParallel")
    desktop_viewport: Dict[str, PositiveInt] = Field(
        default_factory=lambda: dict(DEFAULT_DESKTOP_VIEWPORT)
    )
    mobile_viewport: Dict[str, PositiveInt] = Field(
        default_factory=lambda: dict(DEFAULT_MOBILE_VIEWPORT)
    )
    single_responsive: bool = Field(True, alias="singleResponsive")
    remove_tracking: bool = Field(True, alias="removeTracking")
    download_high_res: bool = Field(False, alias="downloadHighRes")
    home_pagination_max: Optional[int] = Field(None, alias="homePaginationMax")
    hash_asset_names: bool = Field(False, alias="hashAssetNames")
    headless: bool = True
    work_dir: str = Field(".", alias="workDir")

    @model_validator(mode="before")
    @classmethod
    def _expand_shorthands(cls, data: Any) -> Any:
        # Nested viewports and the shared "parallel" width
        if not isinstance(data, dict):
            return data
        data = {key: value for key, value in data.items() if value is not None}

        viewports = data.pop("viewports", None) or {}
        for label in VIEWPORT_CLASSES:
            if label in viewports:
                data.setdefault(f"{label}_viewport", viewports[label])

        parallel = data.get("parallel")
        if parallel is not None:
            data.setdefault("captureParallel", parallel)
            data.setdefault("assetParallel", parallel)
        return data

    @field_validator("site_url")
    @classmethod
    def _check_site_url(cls, value: str) -> str:
        parsed = urlsplit(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"invalid site URL {value!r}")
        return value

    @field_validator("desktop_viewport", "mobile_viewport")
    @classmethod
    def _check_viewport(cls, value: Dict[str, int]) -> Dict[str, int]:
        if not {"width", "height"} <= set(value):
            raise ValueError("viewport needs width and height")
        return value

    @property
    def site_origin(self) -> str:
        return get_origin(self.site_url)

    @property
    def data_dir(self) -> str:
        return os.path.join(self.work_dir, "data")

    @property
    def temp_dir(self) -> str:
        return os.path.join(self.work_dir, "temp", "pages")

    @property
    def output_dir(self) -> str:
        return os.path.join(self.work_dir, "output")

    def viewport(self, label: str) -> Dict[str, int]:
        """Viewport size for a viewport class."""
        return self.mobile_viewport if label == "mobile" else self.desktop_viewport

    def with_overrides(self, **overrides: Any) -> "Settings":
        """
        Return a validated copy with non-None overrides applied.

        Raises:
            ConfigError: If an override is invalid
        """
        changes = {k: v for k, v in overrides.items() if v is not None}
        if not changes:
            return self
        try:
            return type(self).model_validate({**self.model_dump(), **changes})
        except ValidationError as e:
            raise ConfigError(_describe(e)) from e

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **overrides: Any) -> "Settings":
        """
        Build settings from a camelCase settings mapping.

        Args:
            data: Parsed settings.json content
            **overrides: Attribute values that win over the mapping

        Returns:
            Settings instance

        Raises:
            ConfigError: If a value is missing or invalid
        """
        payload = dict(data)
        if overrides.get("site_url"):
            payload["siteUrl"] = overrides["site_url"]

        try:
            settings = cls.model_validate(payload)
        except ValidationError as e:
            raise ConfigError(_describe(e)) from e

        return settings.with_overrides(**overrides)

    @classmethod
    def from_file(cls, path: str, **overrides: Any) -> "Settings":
        """
        Load settings from a JSON file.

        Args:
            path: Path to settings.json
            **overrides: Attribute values that win over the file

        Returns:
            Settings instance
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read settings file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain an object")

        return cls.from_dict(data, **overrides)
