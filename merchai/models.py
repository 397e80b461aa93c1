"""
models.py — Data model shared by the orchestrator, the studio and the UIs.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .products import ProductType


def now_ms() -> int:
    return int(time.time() * 1000)


def new_image_id() -> str:
    return uuid.uuid4().hex


# ── Gallery entry ─────────────────────────────────────────────────────────────

class GeneratedImage(BaseModel):
    """One mockup in the gallery. Immutable; edits are saved as new entries."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_image_id, description="Opaque unique id, never reused")
    image_data: str = Field(description="Self-contained data-URL payload")
    source_prompt: str = Field(description="e.g. 'Mockup for Coffee Mug' or 'Edited: add sparkles'")
    product_type: ProductType
    created_at: int = Field(default_factory=now_ms, description="Epoch milliseconds")

    @classmethod
    def create(cls, image_data: str, product_type: ProductType, source_prompt: str) -> "GeneratedImage":
        """Build an entry with a fresh id and the current timestamp."""
        return cls(image_data=image_data, product_type=product_type, source_prompt=source_prompt)


# ── Batch outcome ─────────────────────────────────────────────────────────────

class GenerationStatus(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class BatchFailure:
    product_type: ProductType
    error: Exception


@dataclass
class BatchResult:
    """Partial-success outcome of one generate action."""
    requested: List[ProductType] = field(default_factory=list)
    images: List[GeneratedImage] = field(default_factory=list)
    failures: List[BatchFailure] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def partial(self) -> bool:
        return len(self.images) < len(self.requested)

    def failed_types(self) -> List[ProductType]:
        return [f.product_type for f in self.failures]

    def image_for(self, product_type: ProductType) -> Optional[GeneratedImage]:
        return next((img for img in self.images if img.product_type == product_type), None)
