import logging
import os
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from reviewer.backends import InferenceBackend
from reviewer.config import Settings
from reviewer.constants import PREVIEW_LENGTH, REVIEW_PROMPT, TRUNCATION_MARKER
from reviewer.errors import (
    EmptyInput,
    InternalError,
    NoFileUploaded,
    PayloadTooLarge,
    ReviewError,
)
from reviewer.uploads import UploadedFile, cleanup_file, receive_upload


@dataclass
class ReviewResult:
    model: str
    duration_ms: int
    text: str
    preview: str
    truncated: bool
    original_file: str
    original_size: int
    review_file: Optional[str] = None

    def to_response(self, request_id: str) -> Dict[str, Any]:
        return {
            "success": True,
            "message": "Review generated successfully",
            "model": self.model,
            "processingTime": f"{self.duration_ms}ms",
            "reviewFile": self.review_file,
            "reviewPreview": self.preview,
            "originalFile": self.original_file,
            "requestId": request_id,
            "truncated": self.truncated,
        }


def check_content(content: str, max_chars: int) -> None:
    if not content.strip():
        raise EmptyInput()
    if len(content) > max_chars:
        raise PayloadTooLarge(
            f"File too large for review (max {max_chars // 1000}KB). Please upload smaller files."
        )


def truncate_content(content: str, limit: int) -> Tuple[str, bool]:
    if len(content) > limit:
        return content[:limit] + TRUNCATION_MARKER, True
    return content, False


def build_prompt(filename: str, content: str) -> str:
    return REVIEW_PROMPT.format(filename=filename, content=content)


def make_preview(text: str, length: int = PREVIEW_LENGTH) -> str:
    if len(text) > length:
        return text[:length] + "..."
    return text


def sanitize_filename(filename: str) -> str:
    return re.sub(r"[^a-zA-Z0-9.-]", "_", os.path.basename(filename))


def render_markdown(result: ReviewResult, generated_at: datetime) -> str:
    footnote = "was truncated" if result.truncated else "reviewed in full"
    # two trailing spaces force a Markdown line break
    metadata = "".join(
        f"{line}  \n"
        for line in [
            f"**Generated by:** {result.model}",
            f"**Timestamp:** {generated_at.isoformat()}",
            f"**Processing time:** {result.duration_ms}ms",
            f"**File size:** {result.original_size} bytes",
        ]
    )
    return f"""# Code Review: {result.original_file}

{metadata}
---

{result.text}

---

*Original file {footnote}*
"""


def save_review(result: ReviewResult, reviews_dir: str) -> str:
    """Write the Markdown artifact and return its path."""
    generated_at = datetime.now(timezone.utc)
    timestamp = int(generated_at.timestamp() * 1000)
    Path(reviews_dir).mkdir(parents=True, exist_ok=True)
    md_path = os.path.join(reviews_dir, f"review_{timestamp}_{sanitize_filename(result.original_file)}.md")
    Path(md_path).write_text(render_markdown(result, generated_at), encoding="utf-8")
    return md_path


class ReviewHandler:
    """
    Runs one upload through validation, the inference backend and the
    artifact store. The temporary upload is removed on every exit path.
    """

    def __init__(self, settings: Settings, backend: InferenceBackend):
        self.settings = settings
        self.backend = backend

    async def review(self, upload: Optional[UploadFile], request_id: str) -> ReviewResult:
        if upload is None or not upload.filename:
            raise NoFileUploaded()

        logging.info(f"[{request_id}] File upload: {upload.filename}")
        uploaded: Optional[UploadedFile] = None
        try:
            uploaded = await receive_upload(upload, self.settings.UPLOAD_DIR, self.settings.MAX_UPLOAD_BYTES)
            logging.info(f"[{request_id}] File: {uploaded.filename} ({uploaded.size} bytes)")
            return await self._review_file(uploaded, request_id)
        except ReviewError as e:
            logging.error(f"[{request_id}] Failed: {e}")
            raise
        except Exception as e:
            logging.exception(f"[{request_id}] Failed: {e}")
            raise InternalError(details=str(e))
        finally:
            if uploaded is not None:
                cleanup_file(uploaded.path)

    async def _review_file(self, uploaded: UploadedFile, request_id: str) -> ReviewResult:
        content = await run_in_threadpool(uploaded.read_text)
        logging.info(f"[{request_id}] Content read ({len(content)} chars)")
        check_content(content, self.settings.MAX_CONTENT_CHARS)

        prompt_content, truncated = truncate_content(content, self.settings.TRUNCATE_AT)
        prompt = build_prompt(uploaded.filename, prompt_content)

        logging.info(
            f"[{request_id}] Sending to {self.backend.name} (timeout: {self.settings.timeout_seconds:g}s)..."
        )
        start = time.monotonic()
        text = await self.backend.generate(prompt, timeout=self.settings.timeout_seconds)
        duration_ms = int((time.monotonic() - start) * 1000)
        logging.info(f"[{request_id}] Review generated ({len(text)} chars, {duration_ms}ms)")

        result = ReviewResult(
            model=self.backend.model,
            duration_ms=duration_ms,
            text=text,
            preview=make_preview(text),
            truncated=truncated,
            original_file=uploaded.filename,
            original_size=uploaded.size,
        )

        if self.settings.SAVE_REVIEWS:
            result.review_file = await run_in_threadpool(save_review, result, self.settings.REVIEWS_DIR)
            logging.info(f"[{request_id}] Saved to: {result.review_file}")

        return result
