import asyncio
import random
from typing import List, Optional

import pytest

from poster_studio.config import ProviderConfig
from poster_studio.errors import (
    InsufficientCredits,
    InvalidAssetFormat,
    InvalidCredentials,
    ProviderTaskFailed,
)
from poster_studio.schemas import GenerationRequest
from poster_studio.services.credits import CreditGate
from poster_studio.services.kie_client import KieClient
from poster_studio.services.orchestrator import GenerationOrchestrator
from poster_studio.services.polling import interval_for_attempt
from poster_studio.services.prompt_builder import CLONE_MODE_TITLE, EXPERT_STYLING_TITLE
from poster_studio.services.template_selector import TemplateCandidate
from support import (
    KIE_BASE,
    TEMP_PUBLIC_BASE,
    TEMPLATES_BASE,
    FakeCreditStore,
    FakeProviderApi,
    FakeTemplateRepository,
    InMemoryS3,
    MockNetwork,
    data_url,
    failed,
    image_bytes,
    make_settings,
    make_storage,
    recording_sleep,
    succeeded,
    waiting,
)


class Harness:
    def __init__(
        self,
        *,
        provider: Optional[FakeProviderApi] = None,
        credit_reply: Optional[dict] = None,
        templates: Optional[dict] = None,
    ) -> None:
        self.network = MockNetwork(provider)
        self.s3 = InMemoryS3()
        self.credits = FakeCreditStore(credit_reply)
        self.templates = FakeTemplateRepository(templates)
        self.settings = make_settings()
        self.sleeps: List[float] = []

    def orchestrator(self, http, sleep=None) -> GenerationOrchestrator:
        return GenerationOrchestrator(
            settings=self.settings,
            credit_gate=CreditGate(self.credits),
            storage=make_storage(self.s3),
            http=http,
            provider=KieClient(self.settings.provider, http),
            templates=self.templates,
            sleep=sleep or recording_sleep(self.sleeps),
            rng=random.Random(3),
        )

    def generate(self, payload: dict, origin: Optional[str] = None):
        request = GenerationRequest.model_validate(payload)

        async def _main():
            async with self.network.client() as http:
                return await self.orchestrator(http).generate(
                    request, user_id="user-1", origin=origin, trace="trace-1"
                )

        return asyncio.run(_main())

    @property
    def created(self) -> List[dict]:
        return self.network.provider.created


def _church_templates() -> dict:
    return {
        "church": [
            TemplateCandidate(f"/templates/church/{i}.png", "church", "Affiche de culte avec lumière dorée")
            for i in range(3)
        ],
        "other": [TemplateCandidate("/templates/other/0.png", "other")],
    }


def test_church_brief_without_reference_clones_a_church_template() -> None:
    harness = Harness(templates=_church_templates())
    for i in range(3):
        harness.network.add_asset(f"{TEMPLATES_BASE}/templates/church/{i}.png", image_bytes("PNG"))

    outcome = harness.generate({"prompt": "affiche culte dimanche église", "resolution": "1K"})

    assert harness.templates.queries[0] == ("church", 20)
    assert outcome.template_used.startswith("/templates/church/")
    assert outcome.clone_mode
    body = harness.created[0]
    assert CLONE_MODE_TITLE in body["input"]["prompt"]
    assert len(body["input"]["image_input"]) == 1
    assert body["input"]["image_input"][0].startswith(TEMP_PUBLIC_BASE)
    assert body["input"]["resolution"] == "1K"
    assert harness.s3.objects == {}


def test_reference_image_at_4k_uses_the_4k_schedule_and_skips_templates() -> None:
    provider = FakeProviderApi([waiting()] * 12 + [succeeded("https://cdn.kie.test/final.png")])
    harness = Harness(provider=provider, templates=_church_templates())

    outcome = harness.generate(
        {
            "prompt": "affiche culte dimanche église",
            "resolution": "4K",
            "referenceImage": data_url("PNG"),
            "logoImages": [],
        }
    )

    polling = harness.settings.polling
    four_k = polling.schedule_for("4K")
    assert outcome.image_url == "https://cdn.kie.test/final.png"
    assert outcome.attempts == 13
    assert harness.sleeps == [interval_for_attempt(n, four_k, polling) for n in range(1, 14)]
    assert harness.sleeps[-1] == four_k.interval
    assert harness.templates.queries == []
    prompt = harness.created[0]["input"]["prompt"]
    assert EXPERT_STYLING_TITLE not in prompt
    assert CLONE_MODE_TITLE in prompt
    assert outcome.template_used is None


def test_credit_denial_makes_no_other_call() -> None:
    harness = Harness(
        credit_reply={"success": False, "error": "INSUFFICIENT_CREDITS", "remaining": 0, "needed": 1}
    )

    with pytest.raises(InsufficientCredits) as excinfo:
        harness.generate(
            {"prompt": "affiche culte", "resolution": "1K", "referenceImage": data_url("PNG")}
        )

    assert excinfo.value.detail["granted"] is False
    assert excinfo.value.detail["remaining"] == 0
    assert harness.created == []
    assert harness.network.requests == []
    assert harness.templates.queries == []
    assert harness.s3.objects == {} and harness.s3.deleted == []
    assert len(harness.credits.calls) == 1


def test_assets_are_sent_in_role_order_and_cleaned_up() -> None:
    harness = Harness()
    harness.network.add_asset("https://cdn.example.com/content.jpg", image_bytes("JPEG"), "image/jpeg")

    outcome = harness.generate(
        {
            "prompt": "Promo boutique",
            "referenceImage": data_url("PNG"),
            "logoImages": [data_url("PNG"), data_url("WEBP")],
            "logoPositions": ["top-right", "bottom-left"],
            "contentImage": "https://cdn.example.com/content.jpg",
            "secondaryImages": [{"imageUrl": data_url("JPEG", "jpeg"), "instructions": "coin bas"}],
        }
    )

    urls = harness.created[0]["input"]["image_input"]
    roles = ["reference", "logo", "logo", "content", "secondary"]
    assert len(urls) == len(roles)
    for url, role in zip(urls, roles):
        assert f"-{role}-" in url
    prompt = harness.created[0]["input"]["prompt"]
    assert "LOGO 1 (image 2): in the top-right corner" in prompt
    assert "SECONDARY IMAGE (image 5): coin bas" in prompt
    assert harness.s3.objects == {}
    assert len(harness.s3.deleted) == 5
    assert outcome.watermark_required is False


def test_free_tier_grant_threads_watermark_flag() -> None:
    harness = Harness(credit_reply={"success": True, "remaining": 4, "is_free": True})
    outcome = harness.generate({"prompt": "Soldes", "resolution": "1K", "referenceImage": data_url("PNG")})
    assert outcome.watermark_required
    assert outcome.remaining_credits == 4


def test_empty_template_catalogue_generates_in_free_mode() -> None:
    harness = Harness(templates={})

    outcome = harness.generate({"prompt": "affiche culte dimanche"})

    prompt = harness.created[0]["input"]["prompt"]
    assert outcome.template_used is None
    assert not outcome.clone_mode
    assert EXPERT_STYLING_TITLE in prompt
    assert harness.created[0]["input"]["image_input"] == []


def test_unfetchable_template_is_skipped() -> None:
    harness = Harness(templates=_church_templates())

    outcome = harness.generate({"prompt": "affiche culte dimanche"})

    assert outcome.template_used is None
    assert harness.created[0]["input"]["image_input"] == []


def test_caller_origin_resolves_relative_template_paths() -> None:
    harness = Harness(templates={"church": [TemplateCandidate("/templates/church/x.png", "church")]})
    harness.network.add_asset("https://app.example.com/templates/church/x.png", image_bytes("PNG"))

    outcome = harness.generate({"prompt": "culte"}, origin="https://app.example.com")

    assert outcome.template_used == "/templates/church/x.png"


def test_provider_failure_still_cleans_up() -> None:
    harness = Harness(provider=FakeProviderApi([waiting(), failed("content policy violation", "400")]))

    with pytest.raises(ProviderTaskFailed):
        harness.generate({"prompt": "Soldes", "referenceImage": data_url("PNG"), "logoImages": [data_url("PNG")]})

    assert harness.s3.objects == {}
    assert len(harness.s3.deleted) == 2


def test_invalid_asset_aborts_before_provider_and_cleans_up() -> None:
    harness = Harness()

    with pytest.raises(InvalidAssetFormat):
        harness.generate(
            {"prompt": "Soldes", "referenceImage": data_url("PNG"), "logoImages": [data_url("PNG", "jpeg")]}
        )

    assert harness.created == []
    assert harness.s3.objects == {}


def test_cancellation_mid_poll_triggers_cleanup() -> None:
    harness = Harness(provider=FakeProviderApi([waiting()]))
    request = GenerationRequest.model_validate({"prompt": "Soldes", "referenceImage": data_url("PNG")})

    async def _main():
        polled = asyncio.Event()
        sleeps: List[float] = []

        async def _sleep(seconds: float) -> None:
            sleeps.append(seconds)
            if len(sleeps) >= 2:
                polled.set()
                await asyncio.Event().wait()

        async with harness.network.client() as http:
            task = asyncio.create_task(
                harness.orchestrator(http, sleep=_sleep).generate(request, user_id="user-1")
            )
            await polled.wait()
            assert harness.s3.objects
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

    asyncio.run(_main())
    assert harness.s3.objects == {}
    assert len(harness.s3.deleted) == 1


def test_missing_provider_key_fails_before_any_debit() -> None:
    harness = Harness()
    harness.settings = make_settings(provider=ProviderConfig(api_key=None, api_base=KIE_BASE))

    with pytest.raises(InvalidCredentials):
        harness.generate({"prompt": "Soldes", "referenceImage": data_url("PNG")})

    assert harness.credits.calls == []
    assert harness.network.requests == []
    assert harness.s3.objects == {} and harness.s3.deleted == []
