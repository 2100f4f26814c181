"""Instructions sent to the generative-AI models.

Two instructions are used:

- :data:`ANALYSIS_INSTRUCTION` accompanies every uploaded image sent to the
  vision model.  It is fixed; the structured output schema (name,
  description, keywords) is enforced separately through the request's
  response schema.
- :func:`build_visualization_prompt` composes the instruction for the image
  model from a stored profile and the user's scene prompt.

Visualization Structure::

    [Reference directive]

    Character: [name]

    Description: [description]

    Keywords: [keyword, keyword, ...]

    Scene:

    [Scene prompt]

    [Fixed consistency directive]

Sections are separated by double newlines.  Empty profile fields are
omitted rather than sent as blank labels.
"""

from __future__ import annotations

from charstudio.core.models import CharacterProfile

ANALYSIS_INSTRUCTION = (
    "Analyze this character image. Provide a creative name, a brief 2-3 sentence "
    "description, and 5 keywords that describe their appearance or mood."
)

_REFERENCE_DIRECTIVE = (
    "Using the attached image as the character reference, create a new image of "
    "this same character based on the scene below."
)

_CONSISTENCY_DIRECTIVE = (
    "Keep the character's face, build, clothing and colour palette consistent "
    "with the reference image."
)


def build_visualization_prompt(profile: CharacterProfile, scene_prompt: str) -> str:
    """Compose the image-model instruction for a character visualization.

    Args:
        profile: The stored character whose reference image is attached.
        scene_prompt: Free-text scene supplied by the user.  Always included.

    Returns:
        The compiled instruction with sections separated by ``\\n\\n``.
    """
    parts: list[str] = [_REFERENCE_DIRECTIVE]

    name = profile.name.strip()
    if name:
        parts.append(f"Character: {name}")

    description = profile.description.strip()
    if description:
        parts.append(f"Description: {description}")

    keywords = [k.strip() for k in profile.keywords if k.strip()]
    if keywords:
        parts.append(f"Keywords: {', '.join(keywords)}")

    parts.append("Scene:")
    parts.append(f'"{scene_prompt.strip()}"')
    parts.append(_CONSISTENCY_DIRECTIVE)

    return "\n\n".join(parts)
