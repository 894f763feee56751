"""lia: one normalized interface over several hosted LLM vendors.

Public API:
    - AIService: strict router over configured provider adapters
    - ServiceConfig / ProviderConfig: frozen configuration
    - Message, Attachment, GenerationOptions: request shapes
    - AIResponse, StreamChunk, Usage: result shapes
    - get_enabled_tools(): hosted tool registry
    - prepare_attachments(): upload validation and preparation
"""

from __future__ import annotations

import logging

from lia.attachments import (
    FileLimits,
    FileValidationWarning,
    UploadedFile,
    filter_message_files,
    prepare_attachment,
    prepare_attachments,
    validate_files,
)
from lia.config import ProviderConfig, ServiceConfig
from lia.errors import (
    AIError,
    ConfigurationError,
    FileValidationError,
    LiaError,
    ProviderNotAvailableError,
)
from lia.limits import recommended_max_tokens
from lia.service import AIService, create_ai_service, create_message, infer_provider
from lia.tools import get_enabled_tools
from lia.types import (
    AIResponse,
    Attachment,
    GenerationOptions,
    Message,
    StreamChunk,
    Usage,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("lia-ai")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("lia").addHandler(logging.NullHandler())

__all__ = [
    "AIError",
    "AIResponse",
    "AIService",
    "Attachment",
    "ConfigurationError",
    "FileLimits",
    "FileValidationError",
    "FileValidationWarning",
    "GenerationOptions",
    "LiaError",
    "Message",
    "ProviderConfig",
    "ProviderNotAvailableError",
    "ServiceConfig",
    "StreamChunk",
    "UploadedFile",
    "Usage",
    "create_ai_service",
    "create_message",
    "filter_message_files",
    "get_enabled_tools",
    "infer_provider",
    "prepare_attachment",
    "prepare_attachments",
    "recommended_max_tokens",
    "validate_files",
]
