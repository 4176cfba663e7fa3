"""End-to-end generation pipeline for a single request.

Credit admission, asset staging, template selection, prompt assembly, task
submission and polling run strictly in that order inside one coroutine.
Staged assets live in an :class:`AssetResolver` context, so they are removed
on success, on every error, and when the coroutine is cancelled.
"""
from __future__ import annotations

import asyncio
import logging
import random
import uuid
from dataclasses import asdict, dataclass
from typing import List, Optional, Protocol, Sequence

import httpx

from poster_studio.config import Settings
from poster_studio.errors import (
    AssetFetchFailed,
    AssetTooLarge,
    InsufficientCredits,
    InvalidAssetFormat,
    InvalidCredentials,
    NoTemplateAvailable,
    UnresolvedRelativePath,
)
from poster_studio.schemas import GenerationRequest
from poster_studio.services.asset_resolver import AssetResolver, AssetRole
from poster_studio.services.credits import CreditDecision, CreditGate
from poster_studio.services.kie_client import TaskStatus
from poster_studio.services.polling import PollResult, Sleep, poll_until_complete
from poster_studio.services.prompt_builder import AssetFlags, build_prompt, is_clone_mode
from poster_studio.services.r2_client import R2TempStorage
from poster_studio.services.template_selector import TemplateRepository, select_template

logger = logging.getLogger(__name__)


class GenerationProvider(Protocol):
    async def create_task(
        self,
        *,
        prompt: str,
        image_urls: Sequence[str],
        aspect_ratio: str,
        resolution: str,
        output_format: str,
    ) -> str:
        ...

    async def get_task(self, task_id: str) -> TaskStatus:
        ...


@dataclass
class GenerationOutcome:
    image_url: str
    task_id: str
    watermark_required: bool
    template_used: Optional[str]
    remaining_credits: int
    attempts: int
    elapsed: float
    clone_mode: bool


@dataclass
class StagedInputs:
    urls: List[str]
    flags: AssetFlags
    template_used: Optional[str] = None


class GenerationOrchestrator:
    def __init__(
        self,
        *,
        settings: Settings,
        credit_gate: CreditGate,
        storage: R2TempStorage,
        http: httpx.AsyncClient,
        provider: GenerationProvider,
        templates: TemplateRepository,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.settings = settings
        self.credit_gate = credit_gate
        self.storage = storage
        self.http = http
        self.provider = provider
        self.templates = templates
        self.sleep = sleep
        self.rng = rng

    async def generate(
        self,
        request: GenerationRequest,
        *,
        user_id: Optional[str],
        origin: Optional[str] = None,
        trace: Optional[str] = None,
    ) -> GenerationOutcome:
        trace = trace or uuid.uuid4().hex[:8]

        if not self.settings.provider.is_configured:
            raise InvalidCredentials("KIE_AI_API_KEY is not configured")

        decision = await self.credit_gate.admit(user_id, request.resolution)
        if not decision.granted:
            raise InsufficientCredits(
                decision.message or "insufficient credits",
                detail=asdict(decision),
            )

        limits = self.settings.limits
        resolver = AssetResolver(
            storage=self.storage,
            http=self.http,
            request_id=trace,
            max_bytes=limits.max_asset_bytes,
            origin=origin,
            templates_base=self.settings.storage.templates_public_base,
        )
        async with resolver:
            staged = await self._stage_inputs(request, resolver, trace)
            prompt = build_prompt(
                request,
                staged.flags,
                ceiling=limits.prompt_char_ceiling,
                language=limits.prompt_language,
                rng=self.rng,
            )
            task_id = await self.provider.create_task(
                prompt=prompt,
                image_urls=staged.urls,
                aspect_ratio=request.aspect_ratio,
                resolution=request.resolution,
                output_format=request.output_format,
            )
            result = await poll_until_complete(
                self.provider,
                task_id,
                request.resolution,
                self.settings.polling,
                sleep=self.sleep,
                trace=trace,
            )

        return self._outcome(request, decision, staged, result)

    async def _stage_inputs(
        self, request: GenerationRequest, resolver: AssetResolver, trace: str
    ) -> StagedInputs:
        urls: List[str] = []
        flags = AssetFlags(logo_positions=list(request.logo_positions))
        template_used: Optional[str] = None

        if request.reference_image:
            urls.append(await resolver.resolve(request.reference_image, AssetRole.REFERENCE))
            flags.reference_index = len(urls)
        else:
            template_used = await self._stage_template(request, resolver, urls, trace)
            if template_used:
                flags.reference_index = len(urls)
                flags.template_selected = True

        for logo in request.logo_images:
            urls.append(await resolver.resolve(logo, AssetRole.LOGO))
            flags.logo_indices.append(len(urls))

        if request.content_image:
            urls.append(await resolver.resolve(request.content_image, AssetRole.CONTENT))
            flags.content_index = len(urls)

        for secondary in request.secondary_images:
            urls.append(await resolver.resolve(secondary.image_url, AssetRole.SECONDARY))
            flags.secondary.append((len(urls), secondary.instructions))

        return StagedInputs(urls=urls, flags=flags, template_used=template_used)

    async def _stage_template(
        self,
        request: GenerationRequest,
        resolver: AssetResolver,
        urls: List[str],
        trace: str,
    ) -> Optional[str]:
        try:
            selection = await select_template(
                request.prompt, self.templates, domain_hint=request.domain, rng=self.rng
            )
        except NoTemplateAvailable as exc:
            logger.info(
                "no template available, generating without reference",
                extra={"trace": trace, "detail": exc.detail},
            )
            return None

        path = selection.candidate.stored_path
        try:
            urls.append(await resolver.resolve(path, AssetRole.REFERENCE))
        except (AssetFetchFailed, AssetTooLarge, InvalidAssetFormat, UnresolvedRelativePath) as exc:
            logger.warning(
                "selected template could not be staged, generating without reference",
                extra={"trace": trace, "template": path, "error": exc.message},
            )
            return None
        return path

    def _outcome(
        self,
        request: GenerationRequest,
        decision: CreditDecision,
        staged: StagedInputs,
        result: PollResult,
    ) -> GenerationOutcome:
        return GenerationOutcome(
            image_url=result.image_url,
            task_id=result.task_id,
            watermark_required=decision.watermark_required,
            template_used=staged.template_used,
            remaining_credits=decision.remaining,
            attempts=result.attempts,
            elapsed=result.elapsed,
            clone_mode=is_clone_mode(request, staged.flags),
        )


__all__ = ["GenerationOrchestrator", "GenerationOutcome", "GenerationProvider", "StagedInputs"]
