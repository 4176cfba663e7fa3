import base64

import pytest
from pydantic import ValidationError

from poster_studio.schemas import GenerationRequest, GenerationResponse


def test_defaults_and_camel_case_aliases() -> None:
    request = GenerationRequest.model_validate(
        {
            "prompt": "  Concert gospel samedi  ",
            "logoImages": ["https://cdn.example.com/logo.png"],
            "logoPositions": ["Top-Right"],
            "secondaryImages": [{"imageUrl": "https://cdn.example.com/a.png", "instructions": "bas"}],
            "isCloneMode": True,
            "unknownField": "ignored",
        }
    )

    assert request.prompt == "Concert gospel samedi"
    assert request.aspect_ratio == "3:4"
    assert request.resolution == "2K"
    assert request.output_format == "png"
    assert request.logo_positions == ["top-right"]
    assert request.secondary_images[0].instructions == "bas"
    assert request.is_clone_mode
    assert not request.has_reference_image


def test_jpeg_output_format_is_normalised() -> None:
    request = GenerationRequest.model_validate({"prompt": "x", "outputFormat": "JPEG"})
    assert request.output_format == "jpg"


@pytest.mark.parametrize("ratio", ["16:9", "7:5"])
def test_aspect_ratio_allow_list_or_pattern(ratio: str) -> None:
    assert GenerationRequest(prompt="x", aspectRatio=ratio).aspect_ratio == ratio


@pytest.mark.parametrize(
    "payload",
    [
        {"prompt": "   "},
        {"prompt": "x", "aspectRatio": "wide"},
        {"prompt": "x", "resolution": "8K"},
        {"prompt": "x", "outputFormat": "gif"},
        {"prompt": "x", "logoImages": [f"https://cdn.example.com/{i}.png" for i in range(6)]},
        {"prompt": "x", "logoImages": ["https://cdn.example.com/a.png"], "logoPositions": ["middle"]},
    ],
)
def test_invalid_requests_are_rejected(payload: dict) -> None:
    with pytest.raises(ValidationError):
        GenerationRequest.model_validate(payload)


def test_prompt_length_ceiling_comes_from_settings(monkeypatch) -> None:
    monkeypatch.setenv("MAX_PROMPT_CHARS", "10")
    with pytest.raises(ValidationError):
        GenerationRequest(prompt="x" * 11)


def test_oversized_inline_image_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("MAX_ASSET_BYTES", "100")
    payload = base64.b64encode(b"\x89PNG" + b"\x00" * 400).decode()
    with pytest.raises(ValidationError):
        GenerationRequest(prompt="x", referenceImage=f"data:image/png;base64,{payload}")


def test_extra_logo_positions_are_dropped() -> None:
    request = GenerationRequest(
        prompt="x",
        logoImages=["https://cdn.example.com/a.png"],
        logoPositions=["center", "bottom-left"],
    )
    assert request.logo_positions == ["center"]


def test_response_serialises_with_aliases() -> None:
    response = GenerationResponse(image_url="https://cdn/x.png", task_id="t1", watermark_required=True)
    dumped = response.model_dump(by_alias=True, exclude_none=True)
    assert dumped == {
        "success": True,
        "imageUrl": "https://cdn/x.png",
        "taskId": "t1",
        "provider": "nano-banana-pro",
        "watermarkRequired": True,
    }
