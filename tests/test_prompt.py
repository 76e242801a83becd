# tests/test_prompt.py

from __future__ import annotations

from taskpix.core.models import ArtStyle, GenerationOptions, GenerationRequest
from taskpix.core.prompt import REFERENCE_IMAGE_HINT, STYLE_PHRASES, build_prompt, with_reference_hint


def test_prompt_directive_order() -> None:
    req = GenerationRequest.build(
        "Write report",
        "quarterly numbers",
        "a woman in her 20s",
        GenerationOptions(style=ArtStyle.PIXEL, location="office"),
    )
    prompt = build_prompt(req)
    parts = prompt.split("\n\n")

    assert parts[0].startswith("High-quality illustration")
    assert '"Write report" - quarterly numbers.' in parts[1]
    assert "Location: office." in parts[1]
    assert parts[2].startswith("The person is a woman in her 20s")
    assert parts[3].startswith("Composition:")
    assert parts[4].startswith("Environment: clearly visible office")
    assert parts[5].startswith("No text")
    assert STYLE_PHRASES[ArtStyle.PIXEL] in parts[6]
    assert parts[7].startswith("Goal:")


def test_prompt_without_optional_parts() -> None:
    prompt = build_prompt(GenerationRequest.build("Run"))
    assert "The person is" not in prompt
    assert "Location:" not in prompt
    assert STYLE_PHRASES[ArtStyle.ANIME] in prompt
    assert len(prompt.split("\n\n")) == 7


def test_reference_hint_is_appended() -> None:
    assert with_reference_hint("base").endswith("\n\n" + REFERENCE_IMAGE_HINT)


def test_options_from_mapping_accepts_camel_case() -> None:
    opts = GenerationOptions.from_mapping(
        {"style": "WATERCOLOR", "referenceImagePath": "/tmp/me.png", "quality": "High", "size": "1024x1536"}
    )
    assert opts.style == ArtStyle.WATERCOLOR
    assert opts.reference_image_path == "/tmp/me.png"
    assert opts.quality == "high"
    assert opts.size == "1024x1536"


def test_unknown_style_falls_back_to_anime() -> None:
    assert ArtStyle.parse("baroque") == ArtStyle.ANIME
    assert ArtStyle.parse(None) == ArtStyle.ANIME
