"""
Upload receiving: extension allow-list, size ceiling, temporary storage.
"""

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from reviewer.constants import ALLOWED_EXTENSIONS
from reviewer.errors import PayloadTooLarge, UnsupportedFileType

CHUNK_SIZE = 64 * 1024
# room for multipart boundaries and part headers on top of the file bytes
MULTIPART_OVERHEAD = 64 * 1024


@dataclass
class UploadedFile:
    filename: str
    size: int
    path: str
    extension: str

    def read_text(self) -> str:
        return Path(self.path).read_text(encoding="utf-8", errors="replace")


def file_extension(filename: str) -> str:
    return os.path.splitext(filename)[1].lstrip(".").lower()


def validate_extension(filename: str) -> str:
    extension = file_extension(filename)
    if extension not in ALLOWED_EXTENSIONS:
        raise UnsupportedFileType()
    return extension


async def receive_upload(upload: UploadFile, upload_dir: str, max_bytes: int) -> UploadedFile:
    """
    Stream an upload into a temporary file under ``upload_dir``.

    The extension is checked before anything touches the disk. When the
    stream grows past ``max_bytes`` the partial file is removed and
    PayloadTooLarge is raised.
    """
    filename = upload.filename or ""
    extension = validate_extension(filename)

    Path(upload_dir).mkdir(parents=True, exist_ok=True)
    size = 0
    with tempfile.NamedTemporaryFile(dir=upload_dir, prefix="upload_", suffix=f".{extension}", delete=False) as tmp:
        try:
            while chunk := await upload.read(CHUNK_SIZE):
                size += len(chunk)
                if size > max_bytes:
                    raise PayloadTooLarge(f"File too large (max {max_bytes} bytes)")
                await run_in_threadpool(tmp.write, chunk)
        except Exception:
            tmp.close()
            cleanup_file(tmp.name)
            raise

    return UploadedFile(filename=filename, size=size, path=tmp.name, extension=extension)


def cleanup_file(path: str) -> None:
    """Remove a temporary file. Missing files are ignored, other failures logged."""
    try:
        os.remove(path)
        logging.info(f"Cleaned up: {path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logging.error(f"Cleanup failed {path}: {e}")


class UploadLimitMiddleware:
    """
    Rejects an oversized POST to ``path`` before the multipart form is parsed.

    A declared Content-Length above the ceiling is refused without reading
    the body. Bodies without one are counted as they arrive and cut off once
    they pass the ceiling.
    """

    def __init__(self, app: ASGIApp, path: str, max_bytes: int):
        self.app = app
        self.path = path
        self.max_bytes = max_bytes
        self.limit = max_bytes + MULTIPART_OVERHEAD

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"] != "POST" or scope["path"] != self.path:
            await self.app(scope, receive, send)
            return

        error = PayloadTooLarge(f"File too large (max {self.max_bytes} bytes)")
        content_length = Headers(scope=scope).get("content-length", "")
        if content_length.isdigit() and int(content_length) > self.limit:
            logging.error(f"Rejected upload of {content_length} bytes (max {self.max_bytes})")
            await JSONResponse(status_code=error.status_code, content=error.to_dict())(scope, receive, send)
            return

        received = 0
        exceeded = False

        async def limited_receive() -> Message:
            nonlocal received, exceeded
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.limit:
                    exceeded = True
                    raise error
            return message

        async def guarded_send(message: Message) -> None:
            if not exceeded:
                await send(message)

        try:
            await self.app(scope, limited_receive, guarded_send)
        except PayloadTooLarge:
            if not exceeded:
                raise

        if exceeded:
            logging.error(f"Upload cut off after {received} bytes (max {self.max_bytes})")
            await JSONResponse(status_code=error.status_code, content=error.to_dict())(scope, receive, send)
