"""
Consolidated configuration system for seqcrop.

This module provides a Pydantic-based configuration system that gathers the
render constants, overlay styling and enums used across the codebase into a
single structure with environment variable support and validation.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# =============================================================================
# CATALOG SETTINGS
# =============================================================================

class CatalogSettings(BaseModel):
    """Configuration for discovering the input frames of a sequence."""

    supported_image_exts: Annotated[set[str], Field(
        description="Input image extensions, matched case-insensitively"
    )] = {".jpg", ".png"}

    default_numbering_width: Annotated[int, Field(
        ge=1,
        le=12,
        description="Padding width used when no file name contains a digit run"
    )] = 4

    @field_validator("supported_image_exts")
    @classmethod
    def normalize_extensions(cls, v):
        """Lower-case the extensions and make sure they start with a dot."""
        return {e.lower() if e.startswith(".") else f".{e.lower()}" for e in v}


# =============================================================================
# RENDER SETTINGS
# =============================================================================

class RenderSettings(BaseModel):
    """Frame rate and encoder pacing."""

    frame_rate: Annotated[int, Field(
        ge=1,
        le=120,
        description="Fixed output frame rate for video renders (fps)"
    )] = 30

    readiness_poll_interval: Annotated[float, Field(
        gt=0.0,
        le=1.0,
        description="Seconds to sleep between encoder readiness checks"
    )] = 0.01

    encoder_queue_size: Annotated[int, Field(
        ge=1,
        le=256,
        description="Frames the encoder session buffers before reporting not-ready"
    )] = 8

    finish_timeout_sec: Annotated[int, Field(
        gt=0,
        description="Seconds to wait for the encoder to flush and exit"
    )] = 300


# =============================================================================
# OVERLAY SETTINGS
# =============================================================================

class OverlaySettings(BaseModel):
    """Geometry and styling of the text overlays, relative to the frame size."""

    frame_number_font_ratio: Annotated[float, Field(gt=0.0, le=1.0)] = 0.06
    date_time_font_ratio: Annotated[float, Field(gt=0.0, le=1.0)] = 0.045
    frame_number_top_ratio: Annotated[float, Field(ge=0.0, le=1.0)] = 0.10
    date_time_bottom_ratio: Annotated[float, Field(ge=0.0, le=1.0)] = 0.08
    date_time_right_ratio: Annotated[float, Field(ge=0.0, le=1.0)] = 0.02

    padding_ratio: Annotated[float, Field(
        ge=0.0,
        description="Backing box padding as a fraction of the font size"
    )] = 0.5

    corner_ratio: Annotated[float, Field(
        ge=0.0,
        description="Backing box corner radius as a fraction of the padding"
    )] = 0.4

    box_opacity: Annotated[float, Field(ge=0.0, le=1.0)] = 0.6

    stroke_ratio: Annotated[float, Field(
        ge=0.0,
        description="Text outline width as a fraction of the font size"
    )] = 0.02

    font_path: Annotated[Path | None, Field(
        description="TrueType font for overlays; a monospaced system font is tried when unset"
    )] = None


# =============================================================================
# ASPECT RATIO ENUM
# =============================================================================

class AspectRatio(str, Enum):
    """Crop aspect constraint. The value doubles as the file name label."""

    FREE = "free"
    RATIO_16_9 = "16x9"
    RATIO_4_3 = "4x3"
    RATIO_9_16 = "9x16"

    @property
    def ratio(self) -> float | None:
        """Width / height, or None when unconstrained."""
        if self == AspectRatio.RATIO_16_9:
            return 16.0 / 9.0
        if self == AspectRatio.RATIO_4_3:
            return 4.0 / 3.0
        if self == AspectRatio.RATIO_9_16:
            return 9.0 / 16.0
        return None

    @property
    def label(self) -> str:
        return self.value


# =============================================================================
# OUTPUT RESOLUTION ENUM
# =============================================================================

class OutputResolution(str, Enum):
    """Target pixel size of every rendered frame."""

    NATIVE = "native"
    HD = "HD"
    UHD = "UHD"

    @property
    def size(self) -> tuple[int, int] | None:
        """(width, height) for fixed resolutions, None for native crop size."""
        if self == OutputResolution.HD:
            return 1920, 1080
        if self == OutputResolution.UHD:
            return 3840, 2160
        return None

    @property
    def label(self) -> str:
        return self.value


# =============================================================================
# OUTPUT FORMAT ENUM WITH CODEC METHODS
# =============================================================================

class OutputFormat(str, Enum):
    """Delivery modes: a PNG frame sequence or a single-track video file."""

    IMAGE_SEQUENCE = "sequence"
    MP4 = "mp4"
    PRORES = "prores"

    @property
    def extension(self) -> str:
        """File extension for outputs."""
        if self == OutputFormat.MP4:
            return "mp4"
        if self == OutputFormat.PRORES:
            return "mov"
        return "png"

    @property
    def is_video(self) -> bool:
        return self != OutputFormat.IMAGE_SEQUENCE

    def video_codec_args(self, width: int, height: int) -> list[str]:
        """FFmpeg codec arguments for the video profiles."""
        if self == OutputFormat.MP4:
            # yuv420p needs even dimensions; odd crops keep full chroma instead
            pix_fmt = "yuv420p" if width % 2 == 0 and height % 2 == 0 else "yuv444p"
            return [
                "-c:v", "libx264",
                "-preset", "medium",
                "-crf", "18",
                "-pix_fmt", pix_fmt,
                "-movflags", "+faststart",
                "-f", "mp4",
            ]

        if self == OutputFormat.PRORES:
            return [
                "-c:v", "prores_ks",
                "-profile:v", "2",
                "-pix_fmt", "yuv422p10le",
                "-vendor", "apl0",
                "-f", "mov",
            ]

        raise ValueError(f"Not a video format: {self}")


# =============================================================================
# OVERLAYS
# =============================================================================

class OverlayKind(str, Enum):
    """Per-frame text overlays. The value is the file name tag."""

    FRAME_NUMBER = "frameNum"
    DATE_TIME = "dateTime"


OVERLAY_ORDER = (OverlayKind.FRAME_NUMBER, OverlayKind.DATE_TIME)


# =============================================================================
# OUTPUT SPEC
# =============================================================================

class OutputSpec(BaseModel):
    """What a render produces: delivery format, target size and overlays."""

    model_config = ConfigDict(frozen=True)

    format: OutputFormat = OutputFormat.IMAGE_SEQUENCE
    resolution: OutputResolution = OutputResolution.NATIVE
    overlays: frozenset[OverlayKind] = frozenset()

    @property
    def ordered_overlays(self) -> list[OverlayKind]:
        """Active overlays in their fixed application and naming order."""
        return [kind for kind in OVERLAY_ORDER if kind in self.overlays]

    def has_overlay(self, kind: OverlayKind) -> bool:
        return kind in self.overlays


# =============================================================================
# MAIN APPLICATION CONFIGURATION
# =============================================================================

class AppConfig(BaseSettings):
    """
    Main application configuration with environment variable support.

    All settings can be overridden via environment variables with SEQCROP_ prefix.
    Example: SEQCROP_RENDER__FRAME_RATE=24
    """

    model_config = SettingsConfigDict(
        env_prefix="SEQCROP_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    catalog: CatalogSettings = CatalogSettings()
    render: RenderSettings = RenderSettings()
    overlay: OverlaySettings = OverlaySettings()


# =============================================================================
# DEFAULT INSTANCE
# =============================================================================

app_config = AppConfig()

FRAME_RATE = app_config.render.frame_rate
DEFAULT_NUMBERING_WIDTH = app_config.catalog.default_numbering_width
SUPPORTED_IMAGE_EXTS = app_config.catalog.supported_image_exts
WRITE_PROBE_NAME = ".test_write_permission"


def create_config_from_env() -> AppConfig:
    """Create a new configuration instance from environment variables."""
    return AppConfig()
