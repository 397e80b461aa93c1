"""
client.py — Gemini calls that produce and edit product mockups.

Two request shapes, both one inline image part + one text part:

  generate  — logo + product type (+ optional instruction) → new mockup
  edit      — existing mockup + free-text instruction      → modified mockup

The first candidate part carrying inline image data is the result. Nothing
is retried or cached here; every call is independent and the caller decides
whether to try again.
"""

from __future__ import annotations

import asyncio
import base64
from typing import Optional, Type

from google import genai
from google.genai import types
from rich.console import Console

from .codec import decode_payload, payload_mime
from .config import DEFAULT_MODEL, Settings
from .errors import EditFailed, GenerationFailed, NoImageReturned
from .products import ProductType

console = Console()

DEFAULT_RESULT_MIME = "image/png"


def build_generate_prompt(product_type: ProductType, custom_instruction: str = "") -> str:
    lines = [
        f"Create a high-quality, photorealistic product shot of a {product_type.label}.",
        "Place the provided logo design onto the product naturally.",
        "The product should be well-lit and look like a professional e-commerce photo.",
    ]
    if custom_instruction.strip():
        lines.append(f"Additional instructions: {custom_instruction.strip()}")
    lines += [
        "Ensure the logo is clearly visible and centered where appropriate for the item.",
        "Return only the image.",
    ]
    return "\n".join(lines)


def build_edit_prompt(edit_instruction: str) -> str:
    return (
        f"Edit this image: {edit_instruction.strip()}. "
        "Maintain the core product and logo visibility, but apply the requested changes."
    )


def extract_image_payload(response) -> str:
    """Return the first inline image of the first candidate as a data URL."""
    candidates = getattr(response, "candidates", None) or []
    if candidates:
        content = getattr(candidates[0], "content", None)
        for part in getattr(content, "parts", None) or []:
            inline = getattr(part, "inline_data", None)
            if inline and inline.data:
                data = inline.data
                if isinstance(data, (bytes, bytearray)):
                    data = base64.b64encode(data).decode("ascii")
                mime = getattr(inline, "mime_type", None) or DEFAULT_RESULT_MIME
                return f"data:{mime};base64,{data}"
    raise NoImageReturned()


class MockupClient:
    """Async wrapper around one Gemini image model."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client: Optional[genai.Client] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "MockupClient":
        return cls(api_key=settings.api_key, model=settings.model, timeout=settings.request_timeout)

    def _genai(self) -> genai.Client:
        # Created lazily so a missing key fails the call, not the constructor.
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def generate(
        self,
        logo_payload: str,
        product_type: ProductType,
        custom_instruction: str = "",
    ) -> str:
        prompt = build_generate_prompt(product_type, custom_instruction)
        return await self._request(logo_payload, prompt, GenerationFailed, product_type.label)

    async def edit(self, image_payload: str, edit_instruction: str) -> str:
        prompt = build_edit_prompt(edit_instruction)
        return await self._request(image_payload, prompt, EditFailed, "edit")

    async def _request(
        self,
        image_payload: str,
        prompt: str,
        failure: Type[Exception],
        label: str,
    ) -> str:
        parts = [
            types.Part.from_bytes(data=decode_payload(image_payload), mime_type=payload_mime(image_payload)),
            types.Part.from_text(text=prompt),
        ]
        try:
            call = self._genai().aio.models.generate_content(
                model=self.model,
                contents=parts,
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE", "TEXT"],
                ),
            )
            if self.timeout:
                response = await asyncio.wait_for(call, timeout=self.timeout)
            else:
                response = await call
        except Exception as exc:
            console.print(f"  [yellow]⚠ {label} request failed ({exc!r})[/yellow]")
            raise failure(exc) from exc

        payload = extract_image_payload(response)
        console.print(f"  [green]✓ {label}[/green] [dim]({self.model})[/dim]")
        return payload
