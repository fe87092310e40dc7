"""
Boundary to the remote image-generation service.

The adjustment pipeline never talks to the network. Whatever backend turns
a prepared frame into a generated headshot sits behind TransformProvider;
retries, backoff and rate-limit handling are the provider's business.
"""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Dict

from ..errors import TransformError

BASE_PROMPT = (
    "Ultra-realistic 8K corporate headshot of the person in the input photo. "
    "Keep their exact face, identity, age, gender, ethnicity, hairstyle and expression; "
    "do not alter unique facial features. {clothing} "
    "Clean dark gray studio backdrop with a soft center-light gradient and subtle vignette, no objects. "
    "Style as an 85mm f/1.4 studio portrait in portrait orientation with shallow depth of field: "
    "subject sharp, background softly blurred. Soft three-point lighting with gentle shadows "
    "and a subtle rim light on hair and shoulders. Preserve natural skin texture, no plastic smoothing. "
    "Final image: high-end LinkedIn-ready studio portrait."
)

CLOTHING: Dict[str, str] = {
    "traditional": "Replace clothing with a tailored navy blue wool business suit and crisp white shirt.",
    "modern": "Replace clothing with a slim-fit charcoal blazer over a plain dark crew-neck top.",
    "relaxed": "Replace clothing with a smart-casual light button-down shirt, no jacket.",
}

VALID_STYLES = tuple(CLOTHING)

STYLE_PROMPTS: Dict[str, str] = {
    style: BASE_PROMPT.format(clothing=clothing) for style, clothing in CLOTHING.items()
}


def validate_style(style: str | None) -> str:
    if not style or style not in CLOTHING:
        raise TransformError(
            f"Invalid style {style!r}; expected one of {', '.join(VALID_STYLES)}", status=400
        )
    return style


class TransformProvider(ABC):
    """
    transform(image_bytes, style) -> image_bytes

    `image_bytes` is an encoded PNG of the prepared frame. Implementations
    return encoded image bytes or raise TransformError.
    """

    @abstractmethod
    def transform(self, image_bytes: bytes, style: str) -> bytes:
        raise NotImplementedError

    @staticmethod
    def prompt_for(style: str) -> str:
        return STYLE_PROMPTS[validate_style(style)]
