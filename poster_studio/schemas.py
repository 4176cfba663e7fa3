from __future__ import annotations

import re
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from poster_studio.config import get_settings

DATA_URL_RX = re.compile(r"^data:image/([a-z0-9.+-]+);base64,", re.IGNORECASE)
ASPECT_RATIO_RX = re.compile(r"^\d+:\d+$")

ALLOWED_ASPECT_RATIOS = (
    "1:1",
    "2:3",
    "3:2",
    "3:4",
    "4:3",
    "4:5",
    "5:4",
    "9:16",
    "16:9",
    "21:9",
    "4:1",
    "3:1",
    "1:3",
)
LOGO_POSITIONS = ("top-left", "top-right", "center", "bottom-left", "bottom-right")

Resolution = Literal["1K", "2K", "4K"]
OutputFormat = Literal["png", "jpg", "webp"]


class _CompatModel(BaseModel):
    """Base model that ignores unknown fields and accepts both alias and field names."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


def _check_inline_size(value: str | None) -> str | None:
    """Reject inline data URLs whose decoded size exceeds the asset ceiling."""

    if not value:
        return value
    text = value.strip()
    if not DATA_URL_RX.match(text):
        return text
    encoded = text.split(",", 1)[1]
    limit = get_settings().limits.max_asset_bytes
    if len(encoded) * 3 // 4 > limit:
        raise ValueError(f"inline image exceeds {limit} bytes")
    return text


class SecondaryImage(_CompatModel):
    """An extra picture with a free-text placement instruction."""

    image_url: str = Field(..., alias="imageUrl", min_length=1)
    instructions: str = Field("", description="Where and how to place the image")

    @field_validator("image_url")
    @classmethod
    def _validate_payload(cls, value: str) -> str:
        return _check_inline_size(value) or value


class GenerationRequest(_CompatModel):
    """Inbound body of ``POST /api/generate-image``."""

    prompt: str = Field(..., description="Free-text brief written by the user")
    aspect_ratio: str = Field("3:4", alias="aspectRatio")
    resolution: Resolution = "2K"
    output_format: OutputFormat = Field("png", alias="outputFormat")
    reference_image: Optional[str] = Field(None, alias="referenceImage")
    logo_images: List[str] = Field(default_factory=list, alias="logoImages")
    logo_positions: List[str] = Field(default_factory=list, alias="logoPositions")
    content_image: Optional[str] = Field(None, alias="contentImage")
    secondary_images: List[SecondaryImage] = Field(default_factory=list, alias="secondaryImages")
    domain: Optional[str] = Field(None, description="Domain hint chosen in the wizard")
    is_clone_mode: bool = Field(False, alias="isCloneMode")
    scene_preference: Optional[str] = Field(None, alias="scenePreference")

    @field_validator("prompt")
    @classmethod
    def _validate_prompt(cls, value: str) -> str:
        text = (value or "").strip()
        if not text:
            raise ValueError("prompt is required")
        limit = get_settings().limits.max_prompt_chars
        if len(text) > limit:
            raise ValueError(f"prompt exceeds {limit} characters")
        return text

    @field_validator("aspect_ratio")
    @classmethod
    def _validate_aspect(cls, value: str) -> str:
        text = (value or "").strip()
        if text in ALLOWED_ASPECT_RATIOS or ASPECT_RATIO_RX.match(text):
            return text
        raise ValueError(f"unsupported aspect ratio: {value}")

    @field_validator("output_format", mode="before")
    @classmethod
    def _normalise_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return "jpg" if lowered == "jpeg" else lowered
        return value

    @field_validator("reference_image", "content_image", "domain", "scene_preference", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("reference_image", "content_image")
    @classmethod
    def _validate_single_image(cls, value: str | None) -> str | None:
        return _check_inline_size(value)

    @field_validator("logo_images")
    @classmethod
    def _validate_logos(cls, value: List[str]) -> List[str]:
        logos = [item.strip() for item in value if isinstance(item, str) and item.strip()]
        limit = get_settings().limits.max_logos
        if len(logos) > limit:
            raise ValueError(f"at most {limit} logo images are allowed")
        return [_check_inline_size(item) or item for item in logos]

    @field_validator("logo_positions")
    @classmethod
    def _validate_positions(cls, value: List[str]) -> List[str]:
        positions = [item.strip().lower() for item in value]
        for item in positions:
            if item and item not in LOGO_POSITIONS:
                raise ValueError(f"unsupported logo position: {item}")
        return positions

    @model_validator(mode="after")
    def _positions_fit_logos(self) -> "GenerationRequest":
        if len(self.logo_positions) > len(self.logo_images):
            self.logo_positions = self.logo_positions[: len(self.logo_images)]
        return self

    @property
    def has_reference_image(self) -> bool:
        return bool(self.reference_image)


class GenerationResponse(_CompatModel):
    success: bool = True
    image_url: str = Field(..., alias="imageUrl")
    task_id: str = Field(..., alias="taskId")
    provider: str = "nano-banana-pro"
    watermark_required: bool = Field(False, alias="watermarkRequired")
    template_used: Optional[str] = Field(None, alias="templateUsed")


class CreditDeniedResponse(_CompatModel):
    success: bool = False
    granted: bool = False
    error: str
    message: str
    remaining: int = 0
    needed: int = 0
    is_free: bool = False


class ErrorResponse(_CompatModel):
    success: bool = False
    error: str
    kind: Optional[str] = None
    retryable: Optional[bool] = None
    message: Optional[str] = None
    details: Optional[Any] = None


__all__ = [
    "ALLOWED_ASPECT_RATIOS",
    "CreditDeniedResponse",
    "DATA_URL_RX",
    "ErrorResponse",
    "GenerationRequest",
    "GenerationResponse",
    "LOGO_POSITIONS",
    "SecondaryImage",
]
