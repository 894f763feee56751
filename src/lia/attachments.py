"""File preparation: turn uploaded files into ``Attachment`` values.

Validation runs before any work so limit violations never reach a vendor.
Images are downscaled with Pillow when they exceed a maximum dimension;
animated formats are passed through untouched so animation is not collapsed
to a single frame.
"""

from __future__ import annotations

import asyncio
import base64
from dataclasses import dataclass, field
import io
import logging
from typing import TYPE_CHECKING, Protocol

from PIL import Image

from lia.errors import FileValidationError
from lia.types import Attachment

if TYPE_CHECKING:
    from collections.abc import Sequence

    from lia.types import Message

logger = logging.getLogger(__name__)

MIB = 1024 * 1024

IMAGE_MIME_TYPES = frozenset(
    {
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/bmp",
        "image/svg+xml",
    }
)
TEXT_MIME_TYPES = frozenset({"text/plain", "text/csv", "text/markdown"})
PDF_MIME_TYPE = "application/pdf"

ALLOWED_MIME_TYPES = frozenset(
    IMAGE_MIME_TYPES
    | TEXT_MIME_TYPES
    | {
        PDF_MIME_TYPE,
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "application/vnd.oasis.opendocument.text",
        "application/vnd.oasis.opendocument.spreadsheet",
        "application/vnd.oasis.opendocument.presentation",
    }
)

DEFAULT_MAX_DIMENSION = 2048
_JPEG_QUALITY = 85
# Vector or possibly-animated formats are never re-encoded.
_PASSTHROUGH_IMAGE_TYPES = frozenset({"image/gif", "image/svg+xml"})


@dataclass(frozen=True)
class FileLimits:
    """Per-message upload ceilings."""

    max_files_per_message: int = 10
    max_total_size: int = 50 * MIB
    max_individual_size: int = 10 * MIB
    allowed_mime_types: frozenset[str] = field(default=ALLOWED_MIME_TYPES)


DEFAULT_FILE_LIMITS = FileLimits()


@dataclass(frozen=True)
class UploadedFile:
    """Raw upload as received from a caller."""

    name: str
    mime_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(frozen=True)
class FileValidationWarning:
    """A file dropped by best-effort filtering, and why."""

    file_name: str
    reason: str


class TextExtractor(Protocol):
    """OCR/document extraction collaborator (buffer + MIME type -> text)."""

    async def extract_text(self, data: bytes, mime_type: str) -> str: ...


def _format_size(size: int) -> str:
    return f"{size / MIB:.1f} MB"


def _file_problem(
    name: str, mime_type: str, size: int, limits: FileLimits
) -> str | None:
    if size == 0:
        return "File is empty"
    if size > limits.max_individual_size:
        return (
            f"File size ({_format_size(size)}) exceeds the maximum of "
            f"{_format_size(limits.max_individual_size)}"
        )
    if mime_type not in limits.allowed_mime_types:
        return f'File type "{mime_type}" is not allowed'
    return None


def validate_files(
    files: Sequence[UploadedFile], limits: FileLimits = DEFAULT_FILE_LIMITS
) -> None:
    """Check count, per-file and aggregate limits.

    The count ceiling is checked before any per-file work.

    Raises:
        FileValidationError: On the first violation, naming the file where
            one file is at fault.
    """
    if len(files) > limits.max_files_per_message:
        raise FileValidationError(
            f"Too many files: {len(files)} attached, maximum is "
            f"{limits.max_files_per_message} per message",
            hint="Split the upload across several messages.",
        )

    total = 0
    for file in files:
        problem = _file_problem(file.name, file.mime_type, file.size, limits)
        if problem is not None:
            raise FileValidationError(f"{file.name}: {problem}", file_name=file.name)
        total += file.size

    if total > limits.max_total_size:
        raise FileValidationError(
            f"Total upload size ({_format_size(total)}) exceeds the maximum of "
            f"{_format_size(limits.max_total_size)}",
            hint="Attach fewer or smaller files.",
        )


def _attachment_size(attachment: Attachment) -> int:
    if attachment.size is not None:
        return attachment.size
    if attachment.data:
        return len(attachment.data) * 3 // 4
    if attachment.extracted_text:
        return len(attachment.extracted_text.encode("utf-8"))
    # URL-only attachments are hosted elsewhere and cost nothing inline.
    return 1


def filter_message_files(
    messages: Sequence[Message], limits: FileLimits = DEFAULT_FILE_LIMITS
) -> tuple[list[Message], list[FileValidationWarning]]:
    """Drop attachments that break the limits instead of failing the request.

    Returns the messages with offending attachments removed, plus one warning
    per dropped attachment. The aggregate budget is shared across messages.
    """
    warnings: list[FileValidationWarning] = []
    result: list[Message] = []
    total = 0

    for message in messages:
        if not message.files:
            result.append(message)
            continue

        kept: list[Attachment] = []
        for attachment in message.files:
            if len(kept) >= limits.max_files_per_message:
                reason = (
                    f"Exceeds the limit of {limits.max_files_per_message} "
                    "files per message"
                )
            else:
                size = _attachment_size(attachment)
                reason = _file_problem(attachment.name, attachment.type, size, limits)
                if reason is None and total + size > limits.max_total_size:
                    reason = (
                        "Exceeds the total upload limit of "
                        f"{_format_size(limits.max_total_size)}"
                    )
                if reason is None:
                    total += size
                    kept.append(attachment)
                    continue
            logger.warning("Dropping attachment %s: %s", attachment.name, reason)
            warnings.append(FileValidationWarning(file_name=attachment.name, reason=reason))

        if len(kept) == len(message.files):
            result.append(message)
        else:
            result.append(message.model_copy(update={"files": tuple(kept)}))

    return result, warnings


def compress_image_if_needed(
    data: bytes, mime_type: str, max_dimension: int = DEFAULT_MAX_DIMENSION
) -> bytes:
    """Downscale an image so its longest side is at most *max_dimension*.

    GIFs, SVGs and animated WebP/APNG are returned byte-identical. Images
    Pillow cannot decode are returned unchanged.
    """
    if mime_type in _PASSTHROUGH_IMAGE_TYPES:
        return data

    try:
        with Image.open(io.BytesIO(data)) as img:
            if getattr(img, "is_animated", False):
                return data
            if max(img.size) <= max_dimension:
                return data

            image_format = img.format or "PNG"
            original_size = img.size
            img.thumbnail((max_dimension, max_dimension))
            resized = img
            if image_format == "JPEG" and resized.mode not in ("RGB", "L"):
                resized = resized.convert("RGB")

            buffer = io.BytesIO()
            save_kwargs = {"quality": _JPEG_QUALITY} if image_format in ("JPEG", "WEBP") else {}
            resized.save(buffer, format=image_format, **save_kwargs)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        logger.warning("Image compression skipped (%s): %s", mime_type, e)
        return data

    logger.debug(
        "Downscaled %s image from %dx%d to %dx%d",
        mime_type,
        original_size[0],
        original_size[1],
        resized.size[0],
        resized.size[1],
    )
    return buffer.getvalue()


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


async def prepare_attachment(
    file: UploadedFile,
    *,
    compress_images: bool = True,
    extract_text: bool = False,
    extractor: TextExtractor | None = None,
    allowed_mime_types: frozenset[str] = ALLOWED_MIME_TYPES,
) -> Attachment:
    """Convert one upload into an ``Attachment``.

    Images become base64 (optionally downscaled first). PDFs stay base64
    unless text extraction is requested and an extractor is supplied. Text
    files are decoded into ``extracted_text`` when requested. Unsupported
    types produce an attachment carrying only ``error``.
    """
    mime_type = file.mime_type
    if mime_type not in allowed_mime_types:
        return Attachment(
            name=file.name,
            type=mime_type,
            size=file.size,
            error=f"Unsupported file type: {mime_type}",
        )

    if mime_type in IMAGE_MIME_TYPES:
        content = file.content
        method = "base64"
        if compress_images:
            content = await asyncio.to_thread(compress_image_if_needed, file.content, mime_type)
            if content is not file.content:
                method = "compressed"
        return Attachment(
            name=file.name,
            type=mime_type,
            size=len(content),
            data=_b64(content),
            processing_method=method,
        )

    if mime_type in TEXT_MIME_TYPES and extract_text:
        return Attachment(
            name=file.name,
            type=mime_type,
            size=file.size,
            extracted_text=file.content.decode("utf-8", errors="replace"),
            processing_method="text",
        )

    if extract_text and extractor is not None:
        try:
            text = await extractor.extract_text(file.content, mime_type)
        except Exception as e:
            logger.warning("Text extraction failed for %s: %s", file.name, e)
            return Attachment(
                name=file.name,
                type=mime_type,
                size=file.size,
                error=f"Text extraction failed: {e}",
            )
        return Attachment(
            name=file.name,
            type=mime_type,
            size=file.size,
            extracted_text=text,
            processing_method="ocr",
        )

    if extract_text:
        logger.debug("No extractor for %s; attaching %s as base64", mime_type, file.name)
    return Attachment(
        name=file.name,
        type=mime_type,
        size=file.size,
        data=_b64(file.content),
        processing_method="base64",
    )


async def prepare_attachments(
    files: Sequence[UploadedFile],
    *,
    compress_images: bool = True,
    extract_text: bool = False,
    extractor: TextExtractor | None = None,
    limits: FileLimits = DEFAULT_FILE_LIMITS,
) -> list[Attachment]:
    """Validate *files* then prepare them concurrently, preserving order."""
    validate_files(files, limits)
    return list(
        await asyncio.gather(
            *(
                prepare_attachment(
                    f,
                    compress_images=compress_images,
                    extract_text=extract_text,
                    extractor=extractor,
                    allowed_mime_types=limits.allowed_mime_types,
                )
                for f in files
            )
        )
    )


def supports_native_vision(model: str) -> bool:
    """Whether *model* reads images directly (no OCR needed)."""
    return "claude" in model or model.startswith("gpt-")


def supports_native_pdf(model: str) -> bool:
    """Whether *model* reads PDFs directly."""
    return "claude" in model
