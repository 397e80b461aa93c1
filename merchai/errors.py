"""
errors.py — Error taxonomy for mockup generation and editing.

  UnsupportedMediaKind  — local input is not an image; rejected before any call
  MalformedPayload      — a payload string lacks the data-URL envelope
  GenerationFailed      — Gemini transport/service failure during generate()
  EditFailed            — Gemini transport/service failure during edit()
  NoImageReturned       — Gemini answered, but without an inline image part
  SessionStateError     — studio / edit session used out of order
  EditorBusy            — a second editor was opened while one is still open
"""

from __future__ import annotations

from typing import Optional


class MerchAIError(Exception):
    """Base class for every error raised by the merchai package."""


class UnsupportedMediaKind(MerchAIError):
    def __init__(self, mime_type: Optional[str]) -> None:
        self.mime_type = mime_type
        super().__init__(f"Unsupported media type: {mime_type or 'unknown'} (expected image/*)")


class MalformedPayload(MerchAIError, ValueError):
    pass


class _RemoteCallFailed(MerchAIError):
    action = "request"

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"{self.action} failed: {cause}")


class GenerationFailed(_RemoteCallFailed):
    action = "Mockup generation"


class EditFailed(_RemoteCallFailed):
    action = "Mockup edit"


class NoImageReturned(MerchAIError):
    def __init__(self, message: str = "No image generated.") -> None:
        super().__init__(message)


class SessionStateError(MerchAIError):
    pass


class EditorBusy(SessionStateError):
    def __init__(self, open_image_id: str) -> None:
        self.open_image_id = open_image_id
        super().__init__(f"An editor is already open for image {open_image_id}")
