"""Pytest configuration and fixtures for MerchAI Studio tests."""

import asyncio
import io
from types import SimpleNamespace
from typing import Dict, List, Optional, Tuple

import pytest
from PIL import Image

from merchai.codec import encode_to_data_payload
from merchai.models import GeneratedImage
from merchai.products import ProductType
from merchai.session import Studio


def payload_for(product_type: ProductType) -> str:
    """Distinct fake mockup payload per product type."""
    return encode_to_data_payload(f"mockup-{product_type.value}".encode(), "image/png")


class StubClient:
    """Stands in for MockupClient: scripted successes, failures and delays."""

    def __init__(self) -> None:
        self.fail: Dict[ProductType, Exception] = {}
        self.delays: Dict[ProductType, float] = {}
        self.edit_result: str = encode_to_data_payload(b"edited-P1", "image/png")
        self.edit_error: Optional[Exception] = None
        self.edit_gate: Optional[asyncio.Event] = None
        self.generate_calls: List[Tuple[ProductType, str]] = []
        self.edit_calls: List[Tuple[str, str]] = []

    async def generate(self, logo_payload: str, product_type: ProductType, custom_instruction: str = "") -> str:
        self.generate_calls.append((product_type, custom_instruction))
        await asyncio.sleep(self.delays.get(product_type, 0))
        if product_type in self.fail:
            raise self.fail[product_type]
        return payload_for(product_type)

    async def edit(self, image_payload: str, edit_instruction: str) -> str:
        self.edit_calls.append((image_payload, edit_instruction))
        if self.edit_gate is not None:
            await self.edit_gate.wait()
        if self.edit_error is not None:
            raise self.edit_error
        return self.edit_result


def gemini_response(*parts) -> SimpleNamespace:
    """Fake google-genai GenerateContentResponse with one candidate."""
    return SimpleNamespace(
        candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))]
    )


def image_part(data: bytes, mime_type: str = "image/png") -> SimpleNamespace:
    return SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type=mime_type), text=None)


def text_part(text: str) -> SimpleNamespace:
    return SimpleNamespace(inline_data=None, text=text)


@pytest.fixture
def png_bytes() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), "#4f46e5").save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def logo_payload(png_bytes) -> str:
    return encode_to_data_payload(png_bytes, "image/png")


@pytest.fixture
def stub_client() -> StubClient:
    return StubClient()


@pytest.fixture
def studio(stub_client, png_bytes) -> Studio:
    s = Studio(stub_client)
    s.upload_logo(png_bytes, "image/png")
    return s


@pytest.fixture
def mug_image() -> GeneratedImage:
    return GeneratedImage.create(
        image_data=encode_to_data_payload(b"original-P0", "image/png"),
        product_type=ProductType.MUG,
        source_prompt="Mockup for Coffee Mug",
    )
