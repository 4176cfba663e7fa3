"""Normalise user- and system-supplied images into durable temporary URLs.

An image may arrive as an inline ``data:image/<type>;base64,`` payload, an
absolute http(s) URL, or a path relative to the front-end / templates bucket.
Whatever the form, the bytes are copied into the temporary bucket under a
request-scoped key and the resulting URL is what the provider receives.
Every staged object is tracked so :meth:`AssetResolver.cleanup` can delete it
however the request ends.
"""
from __future__ import annotations

import base64
import binascii
import enum
import logging
import mimetypes
from dataclasses import dataclass, field
from io import BytesIO
from typing import List, Optional
from urllib.parse import urljoin

import httpx
from PIL import Image, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from poster_studio.errors import (
    AssetFetchFailed,
    AssetTooLarge,
    InvalidAssetFormat,
    UnresolvedRelativePath,
)
from poster_studio.schemas import DATA_URL_RX
from poster_studio.services.r2_client import R2TempStorage, make_key

logger = logging.getLogger(__name__)

ACCEPTED_INLINE_SUBTYPES = {"jpeg": "jpeg", "jpg": "jpeg", "png": "png", "webp": "webp"}
_PIL_FORMATS = {"JPEG": "jpeg", "PNG": "png", "WEBP": "webp"}
_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png", "image/webp": "webp"}


class SourceForm(str, enum.Enum):
    INLINE = "inline-encoded"
    REMOTE_URL = "remote-url"
    TEMPLATE_PATH = "relative-template-path"


class AssetRole(str, enum.Enum):
    REFERENCE = "reference"
    LOGO = "logo"
    CONTENT = "content"
    SECONDARY = "secondary"


@dataclass
class StagedAsset:
    source_form: SourceForm
    resolved_url: str
    storage_key: str
    role: AssetRole
    content_type: str
    size: int = 0


def _shorten(value: str, limit: int = 64) -> str:
    text = value.strip()
    if text.lower().startswith("data:"):
        return text.split(",", 1)[0] + ",…"
    if len(text) <= limit:
        return text
    return f"{text[:32]}…{text[-16:]}"


def _extension_for(content_type: str) -> str:
    if content_type in _EXTENSIONS:
        return _EXTENSIONS[content_type]
    guessed = mimetypes.guess_extension(content_type) or ".bin"
    return guessed.lstrip(".")


def _sniff_subtype(data: bytes) -> str | None:
    try:
        with Image.open(BytesIO(data)) as image:
            return _PIL_FORMATS.get((image.format or "").upper())
    except (UnidentifiedImageError, OSError):
        return None


@dataclass
class AssetResolver:
    """Per-request asset stager; never shared between requests."""

    storage: R2TempStorage
    http: httpx.AsyncClient
    request_id: str
    max_bytes: int
    origin: Optional[str] = None
    templates_base: Optional[str] = None
    staged: List[StagedAsset] = field(default_factory=list)

    async def __aenter__(self) -> "AssetResolver":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cleanup()

    async def resolve(self, reference: str, role: AssetRole) -> str:
        """Stage ``reference`` and return its durable URL."""

        value = (reference or "").strip()
        if not value:
            raise InvalidAssetFormat(f"empty {role.value} image reference")

        if value.lower().startswith("data:"):
            staged = await self._stage_inline(value, role)
        elif value.lower().startswith(("http://", "https://")):
            staged = await self._stage_remote(value, role, SourceForm.REMOTE_URL)
        elif value.startswith("/") and not value.startswith("//"):
            staged = await self._stage_remote(
                self._absolute_template_url(value), role, SourceForm.TEMPLATE_PATH
            )
        else:
            raise InvalidAssetFormat(
                f"unsupported {role.value} image reference: {_shorten(value)}"
            )

        logger.info(
            "asset staged",
            extra={
                "trace": self.request_id,
                "role": role.value,
                "source_form": staged.source_form.value,
                "key": staged.storage_key,
                "bytes": staged.size,
            },
        )
        return staged.resolved_url

    def _absolute_template_url(self, path: str) -> str:
        base = self.origin or self.templates_base
        if not base:
            raise UnresolvedRelativePath(
                f"no origin available to resolve relative path {_shorten(path)}"
            )
        return urljoin(f"{base.rstrip('/')}/", path.lstrip("/"))

    async def _stage_inline(self, data_url: str, role: AssetRole) -> StagedAsset:
        match = DATA_URL_RX.match(data_url)
        if not match:
            raise InvalidAssetFormat("inline image must use a data:image/<type>;base64, envelope")
        subtype = ACCEPTED_INLINE_SUBTYPES.get(match.group(1).lower())
        if subtype is None:
            raise InvalidAssetFormat(f"unsupported inline image type: image/{match.group(1)}")

        encoded = data_url[match.end():]
        estimated = len(encoded) * 3 // 4
        if estimated > self.max_bytes:
            raise AssetTooLarge(
                f"{role.value} image is {estimated} bytes; limit is {self.max_bytes}",
                detail={"size": estimated, "limit": self.max_bytes},
            )

        try:
            raw = base64.b64decode("".join(encoded.split()), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise InvalidAssetFormat(f"{role.value} image is not valid base64") from exc

        sniffed = _sniff_subtype(raw)
        if sniffed != subtype:
            raise InvalidAssetFormat(
                f"{role.value} image declared as image/{subtype} but decodes as {sniffed or 'unknown'}"
            )

        return await self._upload(raw, f"image/{subtype}", role, SourceForm.INLINE)

    async def _stage_remote(self, url: str, role: AssetRole, form: SourceForm) -> StagedAsset:
        try:
            async with self.http.stream("GET", url, follow_redirects=True) as response:
                if not response.is_success:
                    raise AssetFetchFailed(
                        f"fetching {role.value} image returned HTTP {response.status_code}",
                        detail={"status": response.status_code, "url": _shorten(url)},
                    )

                content_type = (
                    (response.headers.get("content-type") or "").split(";", 1)[0].strip().lower()
                )
                if not content_type.startswith("image/"):
                    raise AssetFetchFailed(
                        f"{role.value} image has non-image content-type {content_type or 'missing'}",
                        detail={"content_type": content_type, "url": _shorten(url)},
                    )

                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_bytes:
                    raise self._too_large(role, int(declared))

                buffer = bytearray()
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    if len(buffer) > self.max_bytes:
                        raise self._too_large(role, len(buffer))
        except httpx.HTTPError as exc:
            raise AssetFetchFailed(f"failed to fetch {role.value} image: {exc}") from exc

        return await self._upload(bytes(buffer), content_type, role, form)

    def _too_large(self, role: AssetRole, size: int) -> AssetTooLarge:
        return AssetTooLarge(
            f"{role.value} image is at least {size} bytes; limit is {self.max_bytes}",
            detail={"size": size, "limit": self.max_bytes},
        )

    async def _upload(
        self, raw: bytes, content_type: str, role: AssetRole, form: SourceForm
    ) -> StagedAsset:
        filename = f"{role.value}-{len(self.staged)}.{_extension_for(content_type)}"
        key = make_key(self.storage.prefix, self.request_id, filename)
        await run_in_threadpool(self.storage.put_bytes, key, raw, content_type=content_type)
        # Track before the URL lookup so a failing lookup still gets cleaned up.
        staged = StagedAsset(
            source_form=form,
            resolved_url="",
            storage_key=key,
            role=role,
            content_type=content_type,
            size=len(raw),
        )
        self.staged.append(staged)
        staged.resolved_url = await run_in_threadpool(self.storage.durable_url, key)
        return staged

    async def cleanup(self) -> int:
        """Delete every staged object; failures are logged, never raised."""

        removed = 0
        while self.staged:
            staged = self.staged.pop()
            try:
                await run_in_threadpool(self.storage.delete, staged.storage_key)
            except Exception as exc:  # noqa: BLE001 - cleanup is best-effort
                logger.warning(
                    "staged asset cleanup failed",
                    extra={"trace": self.request_id, "key": staged.storage_key, "error": str(exc)},
                )
                continue
            removed += 1
        if removed:
            logger.info("staged assets removed", extra={"trace": self.request_id, "count": removed})
        return removed


__all__ = ["AssetResolver", "AssetRole", "SourceForm", "StagedAsset"]
