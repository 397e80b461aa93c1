"""
session.py — In-memory state for one user's mockup studio.

  SelectionSet  — product types picked for the next generate action
  Gallery       — every mockup produced this session, newest first
  EditSession   — the single open editor: origin image + current version
  Studio        — ties the three together with the logo and the client

Nothing here is persisted; a Studio lives as long as its owner (a CLI run,
a Telegram chat's user_data).

Edit session lifecycle:

    open_editor ──► OPEN ──apply_edit──► EDITING ──ok/fail──► OPEN
                     │                                          │
                     ├── save_edit  ──► SAVED     (gallery +1)  │
                     └── close_editor ► DISCARDED (no change) ◄─┘
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Set, Tuple

from rich.console import Console

from .codec import decode_payload, encode_to_data_payload, read_image_file
from .errors import EditorBusy, SessionStateError
from .models import BatchResult, GeneratedImage, GenerationStatus, now_ms
from .orchestrator import FailureCallback, generate_batch
from .products import ProductType, catalog_order

console = Console()


# ── Selection ─────────────────────────────────────────────────────────────────

class SelectionSet:
    """Product types chosen for the next batch. Toggle semantics, no duplicates."""

    def __init__(self) -> None:
        self._items: Set[ProductType] = set()

    def toggle(self, product_type: ProductType) -> bool:
        """Flip membership; return True if the product is now selected."""
        if product_type in self._items:
            self._items.discard(product_type)
            return False
        self._items.add(product_type)
        return True

    def clear(self) -> None:
        self._items.clear()

    def ordered(self) -> List[ProductType]:
        return catalog_order(self._items)

    def __contains__(self, product_type: object) -> bool:
        return product_type in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[ProductType]:
        return iter(self.ordered())


# ── Gallery ───────────────────────────────────────────────────────────────────

class Gallery:
    """Newest-first sequence of GeneratedImage. Only ever grows."""

    def __init__(self) -> None:
        self._images: List[GeneratedImage] = []
        self._ids: Set[str] = set()

    def prepend(self, images: List[GeneratedImage]) -> None:
        """Put a batch at the head, keeping the batch's own order."""
        incoming = [img.id for img in images]
        if len(set(incoming)) != len(incoming) or self._ids.intersection(incoming):
            raise ValueError("Gallery ids must be unique")
        self._images[:0] = images
        self._ids.update(incoming)

    def add(self, image: GeneratedImage) -> None:
        self.prepend([image])

    def get(self, image_id: str) -> Optional[GeneratedImage]:
        return next((img for img in self._images if img.id == image_id), None)

    def latest(self, n: int) -> List[GeneratedImage]:
        return self._images[:n]

    def __len__(self) -> int:
        return len(self._images)

    def __iter__(self) -> Iterator[GeneratedImage]:
        return iter(list(self._images))

    def __getitem__(self, index: int) -> GeneratedImage:
        return self._images[index]


# ── Edit session ──────────────────────────────────────────────────────────────

class EditState(str, Enum):
    OPEN = "open"
    EDITING = "editing"
    SAVED = "saved"
    DISCARDED = "discarded"


def download_name(product_type: ProductType, timestamp_ms: Optional[int] = None) -> str:
    return f"mockup-{product_type.value}-{timestamp_ms if timestamp_ms is not None else now_ms()}.png"


class EditSession:
    """One open editor. The origin image is never mutated."""

    def __init__(self, origin: GeneratedImage) -> None:
        self.origin = origin
        self.current_payload = origin.image_data
        self.versions: List[str] = [origin.image_data]
        self.last_instruction = ""
        self.state = EditState.OPEN

    @property
    def is_open(self) -> bool:
        return self.state in (EditState.OPEN, EditState.EDITING)

    def _require(self, *states: EditState) -> None:
        if self.state not in states:
            raise SessionStateError(
                f"Edit session is {self.state.value}; expected {' or '.join(s.value for s in states)}"
            )

    async def apply_edit(self, client, instruction: str) -> str:
        """
        Send the current version plus ``instruction`` to the client.

        On success the returned payload becomes the current version. On
        failure the current version is kept, the session goes back to OPEN
        and the client's error is re-raised so the user can retry.
        """
        self._require(EditState.OPEN)
        if not instruction or not instruction.strip():
            raise SessionStateError("Edit instruction is empty")

        self.state = EditState.EDITING
        try:
            payload = await client.edit(self.current_payload, instruction)
        finally:
            self.state = EditState.OPEN

        self.current_payload = payload
        self.versions.append(payload)
        self.last_instruction = instruction.strip()
        return payload

    @property
    def has_changes(self) -> bool:
        return self.current_payload != self.origin.image_data

    def save_copy(self) -> GeneratedImage:
        self._require(EditState.OPEN)
        image = GeneratedImage.create(
            image_data=self.current_payload,
            product_type=self.origin.product_type,
            source_prompt=f"Edited: {self.last_instruction}",
        )
        self.state = EditState.SAVED
        return image

    def discard(self) -> None:
        self._require(EditState.OPEN)
        self.state = EditState.DISCARDED

    def export(self) -> Tuple[str, bytes]:
        """Filename and raw bytes of the current version, for download."""
        return download_name(self.origin.product_type), decode_payload(self.current_payload)


# ── Studio ────────────────────────────────────────────────────────────────────

class Studio:
    """Everything one user has in flight: logo, selection, gallery, editor."""

    def __init__(self, client) -> None:
        self.client = client
        self.logo_payload: Optional[str] = None
        self.selection = SelectionSet()
        self.gallery = Gallery()
        self.editor: Optional[EditSession] = None
        self.status = GenerationStatus.IDLE
        self.last_batch: Optional[BatchResult] = None

    # ── Logo ──────────────────────────────────────────────────────────────────

    def upload_logo(self, raw_bytes: bytes, mime_hint: Optional[str]) -> str:
        """Accept a new logo, replacing any previous one. Non-images change nothing."""
        payload = encode_to_data_payload(raw_bytes, mime_hint)
        self.logo_payload = payload
        return payload

    def load_logo_file(self, path: Path, mime_hint: Optional[str] = None) -> str:
        payload = read_image_file(path, mime_hint)
        self.logo_payload = payload
        return payload

    @property
    def has_logo(self) -> bool:
        return self.logo_payload is not None

    # ── Selection ─────────────────────────────────────────────────────────────

    def toggle_product(self, product_type: ProductType) -> bool:
        return self.selection.toggle(product_type)

    def clear_selection(self) -> None:
        self.selection.clear()

    # ── Generate ──────────────────────────────────────────────────────────────

    @property
    def is_generating(self) -> bool:
        return self.status is GenerationStatus.GENERATING

    async def generate(
        self,
        custom_instruction: str = "",
        on_failure: Optional[FailureCallback] = None,
    ) -> BatchResult:
        """Run one batch for the current selection and prepend the successes."""
        if self.logo_payload is None:
            raise SessionStateError("Upload a logo before generating")
        if self.is_generating:
            raise SessionStateError("A batch is already generating")

        requested = self.selection.ordered()
        if not requested:
            return BatchResult()

        self.status = GenerationStatus.GENERATING
        try:
            result = await generate_batch(
                self.client,
                self.logo_payload,
                requested,
                custom_instruction=custom_instruction,
                on_failure=on_failure,
            )
        except BaseException:
            self.status = GenerationStatus.ERROR
            raise

        self.gallery.prepend(result.images)
        self.last_batch = result
        self.status = GenerationStatus.SUCCESS if result.images else GenerationStatus.ERROR
        return result

    # ── Editor ────────────────────────────────────────────────────────────────

    def open_editor(self, image_id: str) -> EditSession:
        if self.editor is not None and self.editor.is_open:
            raise EditorBusy(self.editor.origin.id)
        origin = self.gallery.get(image_id)
        if origin is None:
            raise SessionStateError(f"No gallery image with id {image_id}")
        self.editor = EditSession(origin)
        return self.editor

    def _open_editor(self) -> EditSession:
        if self.editor is None or not self.editor.is_open:
            raise SessionStateError("No editor is open")
        return self.editor

    async def apply_edit(self, instruction: str) -> str:
        return await self._open_editor().apply_edit(self.client, instruction)

    def save_edit(self) -> GeneratedImage:
        image = self._open_editor().save_copy()
        self.gallery.add(image)
        self.editor = None
        console.print(f"  [green]✓ Saved edited {image.product_type.label}[/green] [dim]({image.id[:8]})[/dim]")
        return image

    def close_editor(self) -> None:
        self._open_editor().discard()
        self.editor = None

    def export_current(self) -> Tuple[str, bytes]:
        return self._open_editor().export()
