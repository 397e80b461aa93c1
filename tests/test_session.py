"""Tests for selection, gallery, edit sessions and the studio."""

import asyncio
import re

import pytest
from pydantic import ValidationError

from conftest import payload_for
from merchai.codec import decode_payload, encode_to_data_payload
from merchai.errors import (
    EditFailed,
    EditorBusy,
    NoImageReturned,
    SessionStateError,
    UnsupportedMediaKind,
)
from merchai.models import GeneratedImage, GenerationStatus
from merchai.products import ProductType
from merchai.session import EditSession, EditState, Gallery, SelectionSet, Studio

P1 = encode_to_data_payload(b"edited-P1", "image/png")


# ── Selection ─────────────────────────────────────────────────────────────────

def test_selection_toggle_semantics():
    selection = SelectionSet()
    assert selection.toggle(ProductType.MUG) is True
    assert selection.toggle(ProductType.CAP) is True
    assert selection.toggle(ProductType.MUG) is False
    assert list(selection) == [ProductType.CAP]
    assert ProductType.MUG not in selection


def test_clearing_selection_keeps_gallery(studio):
    studio.toggle_product(ProductType.MUG)
    asyncio.run(studio.generate())
    studio.clear_selection()
    assert len(studio.selection) == 0
    assert len(studio.gallery) == 1


# ── Gallery ───────────────────────────────────────────────────────────────────

def _img(product=ProductType.MUG, tag=b"x"):
    return GeneratedImage.create(encode_to_data_payload(tag, "image/png"), product, "p")


def test_gallery_prepends_batches_newest_first():
    gallery = Gallery()
    first = [_img(ProductType.TSHIRT), _img(ProductType.MUG)]
    second = [_img(ProductType.CAP)]
    gallery.prepend(first)
    gallery.prepend(second)
    assert [img.product_type for img in gallery] == [ProductType.CAP, ProductType.TSHIRT, ProductType.MUG]
    assert gallery.latest(1) == second


def test_gallery_rejects_duplicate_ids():
    gallery = Gallery()
    image = _img()
    gallery.add(image)
    with pytest.raises(ValueError):
        gallery.add(image)
    assert len(gallery) == 1


def test_generated_image_is_immutable(mug_image):
    with pytest.raises(ValidationError):
        mug_image.image_data = P1


# ── Edit session ──────────────────────────────────────────────────────────────

def test_edit_then_save_copy(studio, stub_client, mug_image):
    studio.gallery.add(mug_image)
    stub_client.edit_result = P1
    before = len(studio.gallery)

    editor = studio.open_editor(mug_image.id)
    assert editor.current_payload == mug_image.image_data
    asyncio.run(studio.apply_edit("add sparkles"))

    assert editor.current_payload == P1
    assert editor.state is EditState.OPEN
    assert mug_image.image_data == encode_to_data_payload(b"original-P0", "image/png")

    saved = studio.save_edit()
    assert len(studio.gallery) == before + 1
    assert studio.gallery[0] is saved
    assert saved.image_data == P1
    assert saved.source_prompt == "Edited: add sparkles"
    assert saved.product_type is ProductType.MUG
    assert saved.id != mug_image.id
    assert editor.state is EditState.SAVED
    assert studio.editor is None


def test_discard_leaves_gallery_unchanged(studio, stub_client, mug_image):
    studio.gallery.add(mug_image)
    stub_client.edit_result = P1
    editor = studio.open_editor(mug_image.id)
    asyncio.run(studio.apply_edit("add sparkles"))
    assert editor.current_payload == P1

    studio.close_editor()
    assert len(studio.gallery) == 1
    assert studio.gallery[0] is mug_image
    assert editor.state is EditState.DISCARDED
    assert studio.editor is None


def test_edits_chain_on_the_current_version(studio, stub_client, mug_image):
    studio.gallery.add(mug_image)
    editor = studio.open_editor(mug_image.id)
    asyncio.run(studio.apply_edit("warmer light"))
    stub_client.edit_result = encode_to_data_payload(b"P2", "image/png")
    asyncio.run(studio.apply_edit("wooden table"))

    assert stub_client.edit_calls[1][0] == P1
    assert len(editor.versions) == 3
    assert studio.save_edit().source_prompt == "Edited: wooden table"


@pytest.mark.parametrize("error", [EditFailed(RuntimeError("503")), NoImageReturned()])
def test_failed_edit_keeps_session_open_for_retry(studio, stub_client, mug_image, error):
    studio.gallery.add(mug_image)
    editor = studio.open_editor(mug_image.id)
    stub_client.edit_error = error

    with pytest.raises(type(error)):
        asyncio.run(studio.apply_edit("add sparkles"))
    assert editor.state is EditState.OPEN
    assert editor.current_payload == mug_image.image_data
    assert studio.editor is editor

    stub_client.edit_error = None
    asyncio.run(studio.apply_edit("add sparkles"))
    assert editor.current_payload == P1


def test_blank_instruction_is_rejected_without_a_call(studio, stub_client, mug_image):
    studio.gallery.add(mug_image)
    studio.open_editor(mug_image.id)
    with pytest.raises(SessionStateError):
        asyncio.run(studio.apply_edit("   "))
    assert stub_client.edit_calls == []


def test_only_one_editor_at_a_time(studio, mug_image):
    other = _img(ProductType.CAP)
    studio.gallery.prepend([mug_image, other])
    studio.open_editor(mug_image.id)
    with pytest.raises(EditorBusy) as excinfo:
        studio.open_editor(other.id)
    assert excinfo.value.open_image_id == mug_image.id
    studio.close_editor()
    assert studio.open_editor(other.id).origin is other


def test_second_edit_while_editing_is_refused(studio, stub_client, mug_image):
    studio.gallery.add(mug_image)
    editor = studio.open_editor(mug_image.id)

    async def scenario():
        stub_client.edit_gate = asyncio.Event()
        first = asyncio.create_task(studio.apply_edit("one"))
        await asyncio.sleep(0)
        assert editor.state is EditState.EDITING
        with pytest.raises(SessionStateError):
            await studio.apply_edit("two")
        with pytest.raises(SessionStateError):
            studio.save_edit()
        stub_client.edit_gate.set()
        await first

    asyncio.run(scenario())
    assert editor.state is EditState.OPEN
    assert len(stub_client.edit_calls) == 1


def test_closed_session_refuses_actions(mug_image):
    session = EditSession(mug_image)
    session.discard()
    with pytest.raises(SessionStateError):
        session.save_copy()
    with pytest.raises(SessionStateError):
        session.discard()


def test_editor_actions_without_open_editor(studio):
    with pytest.raises(SessionStateError):
        studio.save_edit()
    with pytest.raises(SessionStateError):
        studio.export_current()
    with pytest.raises(SessionStateError):
        studio.open_editor("missing")


def test_export_current_download_name(studio, stub_client, mug_image):
    studio.gallery.add(mug_image)
    studio.open_editor(mug_image.id)
    asyncio.run(studio.apply_edit("add sparkles"))
    filename, data = studio.export_current()
    assert re.fullmatch(r"mockup-mug-\d{13}\.png", filename)
    assert data == decode_payload(P1)


# ── Studio ────────────────────────────────────────────────────────────────────

def test_rejected_upload_changes_nothing(studio, mug_image):
    studio.toggle_product(ProductType.MUG)
    studio.gallery.add(mug_image)
    logo = studio.logo_payload

    with pytest.raises(UnsupportedMediaKind):
        studio.upload_logo(b"%PDF-1.7", "application/pdf")

    assert studio.logo_payload == logo
    assert list(studio.selection) == [ProductType.MUG]
    assert list(studio.gallery) == [mug_image]
    assert studio.status is GenerationStatus.IDLE


def test_upload_replaces_logo(studio, png_bytes):
    studio.upload_logo(b"new-logo", "image/jpeg")
    assert studio.logo_payload.startswith("data:image/jpeg;base64,")


def test_generate_requires_logo(stub_client):
    studio = Studio(stub_client)
    studio.toggle_product(ProductType.MUG)
    with pytest.raises(SessionStateError):
        asyncio.run(studio.generate())


def test_generate_with_empty_selection_is_a_no_op(studio, stub_client):
    result = asyncio.run(studio.generate())
    assert result.images == []
    assert stub_client.generate_calls == []
    assert studio.status is GenerationStatus.IDLE


def test_generate_prepends_and_tracks_status(studio, stub_client):
    studio.toggle_product(ProductType.TSHIRT)
    studio.toggle_product(ProductType.MUG)
    first = asyncio.run(studio.generate("studio lighting"))
    assert studio.status is GenerationStatus.SUCCESS
    assert [c[1] for c in stub_client.generate_calls] == ["studio lighting"] * 2

    studio.clear_selection()
    studio.toggle_product(ProductType.CAP)
    stub_client.fail = {ProductType.CAP: NoImageReturned()}
    second = asyncio.run(studio.generate())

    assert second.images == []
    assert studio.status is GenerationStatus.ERROR
    assert studio.last_batch is second
    assert list(studio.gallery) == first.images
    assert studio.gallery[0].image_data == payload_for(ProductType.TSHIRT)


def test_generate_is_not_reentrant(studio, stub_client):
    studio.toggle_product(ProductType.MUG)
    stub_client.delays = {ProductType.MUG: 0.05}

    async def scenario():
        first = asyncio.create_task(studio.generate())
        await asyncio.sleep(0)
        assert studio.is_generating
        with pytest.raises(SessionStateError):
            await studio.generate()
        await first

    asyncio.run(scenario())
    assert len(studio.gallery) == 1
    assert studio.status is GenerationStatus.SUCCESS


def test_load_logo_file(stub_client, tmp_path, png_bytes):
    path = tmp_path / "logo.png"
    path.write_bytes(png_bytes)
    studio = Studio(stub_client)
    studio.load_logo_file(path)
    assert decode_payload(studio.logo_payload) == png_bytes
