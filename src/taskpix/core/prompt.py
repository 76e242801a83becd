# src/taskpix/core/prompt.py

"""
Prompt construction shared by every provider.

The prompt is a fixed-order list of directives joined by blank lines. The order
is part of the output contract: reordering changes what backends produce.
"""

from __future__ import annotations

from .models import ArtStyle, GenerationRequest

STYLE_PHRASES: dict[ArtStyle, str] = {
    ArtStyle.ANIME: "anime style, clean line art, cel shading, vibrant colors, soft rim light, studio-quality",
    ArtStyle.CARTOON: "flat illustration, bold outlines, simplified shapes, playful, bright palette",
    ArtStyle.MINIMALIST: "minimal flat icon style, 2-3 color palette, thick outline, large shapes, high contrast",
    ArtStyle.WATERCOLOR: "watercolor style, soft textures, pastel tones, gentle lighting",
    ArtStyle.REALISTIC: "photorealistic, soft light, shallow depth of field, natural colors",
    ArtStyle.PIXEL: "pixel art, 16-bit feeling, limited palette, crisp contrast",
    ArtStyle.SKETCH: "pencil sketch, clean shading, simple background",
}

REFERENCE_IMAGE_HINT = (
    "Use the provided reference image to match the person's face, hair, skin tone, "
    "and outfit style, but create a new pose and a new environment. "
    "Do not copy the original background."
)


def build_prompt(request: GenerationRequest) -> str:
    parts: list[str] = ["High-quality illustration for a visual to-do app."]

    subject = f'Depict a single person actively performing: "{request.title}"'
    if request.description:
        subject += f" - {request.description}."
    if request.location:
        subject += f" Location: {request.location}."
    parts.append(subject)

    if request.profile_text:
        parts.append(f"The person is {request.profile_text}; show them happy and focused.")

    parts.append(
        "Composition: centered subject, medium shot (waist-up), eye-level, clear silhouette, "
        "10-15% margin around the subject, no cropping of head or hands."
    )

    if request.location:
        parts.append(
            f"Environment: clearly visible {request.location} background, "
            "detailed but slightly blurred depth of field."
        )
    else:
        parts.append(
            "Environment: a few subtle props relevant to the task; minimal, slightly blurred background."
        )

    parts.append("No text, numbers, logos, or UI elements.")

    phrase = STYLE_PHRASES.get(request.style, STYLE_PHRASES[ArtStyle.ANIME])
    parts.append(
        f"Style: {phrase}. Consistent color palette, vivid colors, soft lighting, "
        "clean edges, high contrast. Safe for work."
    )
    parts.append("Goal: readable as a 64x64 thumbnail; iconic, simple, motivational.")

    return "\n\n".join(parts)


def with_reference_hint(prompt: str) -> str:
    return f"{prompt}\n\n{REFERENCE_IMAGE_HINT}"
