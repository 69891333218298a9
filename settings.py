"""
settings.py

Persistent settings management for mermaid2excalidraw.

Handles cross-platform settings storage using TOML format with platformdirs
for proper user config directory detection.

Settings file location:
    - Windows: %APPDATA%/mermaid2excalidraw/settings.toml
    - macOS: ~/Library/Application Support/mermaid2excalidraw/settings.toml
    - Linux: ~/.config/mermaid2excalidraw/settings.toml

Default values are documented in comments throughout this file.
If settings.toml is corrupted, these defaults will be used.
"""

from __future__ import annotations

import copy
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import platformdirs

# TOML reading - use tomllib for Python 3.11+, tomli for earlier versions
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

APP_NAME = "mermaid2excalidraw"

# Font size used when themeVariables.fontSize is missing or unparseable
DEFAULT_FONT_SIZE = 16

# Global settings manager instance (singleton)
_settings_manager: Optional["SettingsManager"] = None


def get_settings() -> "SettingsManager":
    """Get the global settings manager instance.

    Returns:
        The singleton SettingsManager instance.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager()
    return _settings_manager


# =============================================================================
# General Settings
# =============================================================================

@dataclass
class GeneralSettings:
    """Output placement and scene identity.

    Defaults:
        output_grouped_by_name: False
        source: "mermaid2excalidraw"
    """
    output_grouped_by_name: bool = False   # Default: False (write next to each other)
    source: str = APP_NAME                 # Default: producer id stored in the scene


# =============================================================================
# Mermaid Settings
# =============================================================================

@dataclass
class MermaidSettings:
    """Mermaid CLI (mmdc) invocation settings.

    Defaults:
        mmdc_path: ""
        timeout_seconds: 60
        font_size: "16px"
        image_format: "svg"
        png_scale: 2.0
    """
    mmdc_path: str = ""              # Default: "" (search MMDC_PATH, then PATH)
    timeout_seconds: float = 60.0    # Default: 60 seconds per render
    font_size: str = "16px"          # Default: "16px" (themeVariables.fontSize)
    image_format: str = "svg"        # Default: "svg" | "png" for image fallback
    png_scale: float = 2.0           # Default: 2x raster when image_format is png


# =============================================================================
# Bulk Settings
# =============================================================================

@dataclass
class BulkSettings:
    """Bulk conversion settings.

    Defaults:
        unsupported_kinds: []
        delay_seconds: 1.0
    """
    unsupported_kinds: List[str] = field(default_factory=list)  # Default: nothing skipped
    delay_seconds: float = 1.0       # Default: 1 second between renders


# =============================================================================
# Scene Settings
# =============================================================================

@dataclass
class SceneSettings:
    """Persisted scene encoding.

    Defaults:
        codec: "compressed-json"
    """
    codec: str = "compressed-json"   # Default: deflate + base64 | "json"


# =============================================================================
# Main App Settings
# =============================================================================

@dataclass
class AppSettings:
    """Application settings with default values.

    Attributes:
        general: Output placement settings.
        mermaid: Renderer settings.
        bulk: Bulk conversion settings.
        scene: Persisted scene settings.
    """
    general: GeneralSettings = field(default_factory=GeneralSettings)
    mermaid: MermaidSettings = field(default_factory=MermaidSettings)
    bulk: BulkSettings = field(default_factory=BulkSettings)
    scene: SceneSettings = field(default_factory=SceneSettings)


# =============================================================================
# Per-call conversion config
# =============================================================================

def _default_mermaid_config() -> Dict[str, Any]:
    return {"themeVariables": {"fontSize": f"{DEFAULT_FONT_SIZE}px"}}


@dataclass
class ConversionConfig:
    """Options for one conversion call.

    ``output_grouped_by_name`` is consumed by the host side when writing
    files.  Everything in ``mermaid`` is forwarded to the renderer
    unvalidated (``themeVariables.fontSize`` is also read back as the label
    font size).
    """
    output_grouped_by_name: bool = False
    mermaid: Dict[str, Any] = field(default_factory=_default_mermaid_config)

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "ConversionConfig":
        """Create a config from the host's camelCase option mapping.

        ``outputGroupedByName`` is lifted out; every other key is kept in
        ``mermaid`` as-is.

        Args:
            d: Option mapping, e.g. ``{"themeVariables": {"fontSize": "16px"}}``.

        Returns:
            A ``ConversionConfig``.
        """
        if not isinstance(d, dict):
            return cls()
        forwarded = copy.deepcopy(d)
        grouped = bool(forwarded.pop("outputGroupedByName", False))
        if not forwarded:
            forwarded = _default_mermaid_config()
        return cls(output_grouped_by_name=grouped, mermaid=forwarded)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ConversionConfig":
        """Build a config from persistent settings."""
        return cls(
            output_grouped_by_name=settings.general.output_grouped_by_name,
            mermaid={"themeVariables": {"fontSize": settings.mermaid.font_size}},
        )

    @property
    def font_size(self) -> int:
        """Label font size parsed from ``themeVariables.fontSize``."""
        theme = self.mermaid.get("themeVariables") or {}
        raw = theme.get("fontSize") if isinstance(theme, dict) else None
        if isinstance(raw, (int, float)) and raw > 0:
            return int(raw)
        m = re.match(r"\s*(\d+(?:\.\d+)?)", str(raw or ""))
        if m and float(m.group(1)) > 0:
            return int(float(m.group(1)))
        return DEFAULT_FONT_SIZE


# =============================================================================
# Settings Manager
# =============================================================================

class SettingsManager:
    """Manages loading, saving, and accessing application settings.

    Settings are stored in a TOML file at the platform-appropriate location.
    If the settings file doesn't exist, defaults are used and the file is
    created on first save.

    Args:
        app_name: Application name used for the config directory.
        settings_dir: Explicit directory, overriding the platform default.
    """

    def __init__(self, app_name: str = APP_NAME, settings_dir: Optional[Path] = None):
        if settings_dir is None:
            settings_dir = Path(platformdirs.user_config_dir(app_name))
        self.settings_dir = Path(settings_dir)
        self.settings_file = self.settings_dir / "settings.toml"
        self.settings = self.load()

    def load(self) -> AppSettings:
        """Load settings from the TOML file.

        Returns:
            AppSettings instance with values from file or defaults if file
            doesn't exist or is invalid.
        """
        if not self.settings_file.exists():
            return AppSettings()

        try:
            with open(self.settings_file, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError):
            # If file is corrupted or invalid, return defaults
            return AppSettings()

        return self._parse_toml(data)

    def _parse_toml(self, data: Dict[str, Any]) -> AppSettings:
        """Parse TOML data into AppSettings.

        Args:
            data: Parsed TOML dictionary.

        Returns:
            AppSettings instance populated from TOML data.
        """
        settings = AppSettings()

        general = data.get("general", {})
        settings.general.output_grouped_by_name = bool(
            general.get("output_grouped_by_name", settings.general.output_grouped_by_name)
        )
        settings.general.source = general.get("source", settings.general.source)

        mermaid = data.get("mermaid", {})
        settings.mermaid.mmdc_path = mermaid.get("mmdc_path", settings.mermaid.mmdc_path)
        settings.mermaid.timeout_seconds = float(mermaid.get("timeout_seconds", settings.mermaid.timeout_seconds))
        settings.mermaid.font_size = str(mermaid.get("font_size", settings.mermaid.font_size))
        settings.mermaid.image_format = mermaid.get("image_format", settings.mermaid.image_format)
        settings.mermaid.png_scale = float(mermaid.get("png_scale", settings.mermaid.png_scale))

        bulk = data.get("bulk", {})
        settings.bulk.unsupported_kinds = [
            str(k).lower() for k in bulk.get("unsupported_kinds", settings.bulk.unsupported_kinds)
        ]
        settings.bulk.delay_seconds = float(bulk.get("delay_seconds", settings.bulk.delay_seconds))

        scene = data.get("scene", {})
        settings.scene.codec = scene.get("codec", settings.scene.codec)

        return settings

    def save(self) -> None:
        """Save current settings to the TOML file.

        Creates the settings directory if it doesn't exist.
        """
        self.settings_dir.mkdir(parents=True, exist_ok=True)

        data = self._to_toml_dict()

        with open(self.settings_file, "wb") as f:
            tomli_w.dump(data, f)

    def _to_toml_dict(self) -> Dict[str, Any]:
        """Convert settings to a TOML-compatible dictionary structure.

        Returns:
            Dictionary organized by TOML sections.
        """
        s = self.settings
        return {
            "general": {
                "output_grouped_by_name": s.general.output_grouped_by_name,
                "source": s.general.source,
            },
            "mermaid": {
                "mmdc_path": s.mermaid.mmdc_path,
                "timeout_seconds": s.mermaid.timeout_seconds,
                "font_size": s.mermaid.font_size,
                "image_format": s.mermaid.image_format,
                "png_scale": s.mermaid.png_scale,
            },
            "bulk": {
                "unsupported_kinds": list(s.bulk.unsupported_kinds),
                "delay_seconds": s.bulk.delay_seconds,
            },
            "scene": {
                "codec": s.scene.codec,
            },
        }

    def to_toml(self) -> str:
        """Convert current settings to a TOML-formatted string.

        Returns:
            TOML representation of the current settings.
        """
        return tomli_w.dumps(self._to_toml_dict())

    def conversion_config(self) -> ConversionConfig:
        """Per-call conversion config seeded from these settings."""
        return ConversionConfig.from_settings(self.settings)

    def get_settings_path(self) -> Path:
        """Get the path to the settings file.

        Returns:
            Path object pointing to the settings file location.
        """
        return self.settings_file
