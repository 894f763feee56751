"""Hosted tool registry: decides which vendor-hosted tools a request carries.

Web search is on unless explicitly disabled. File search is off unless
explicitly enabled or inferred from document (non-image) attachments.
"""

from __future__ import annotations

from copy import deepcopy
from typing import TYPE_CHECKING

from lia.types import CustomToolDefinition, HostedToolDefinition

if TYPE_CHECKING:
    from lia.types import ToolDefinition

WEB_SEARCH_TOOL_TYPE = "web_search_preview"
FILE_SEARCH_TOOL_NAME = "file_search"

WEB_SEARCH_TOOL: HostedToolDefinition = {"type": WEB_SEARCH_TOOL_TYPE}

FILE_SEARCH_TOOL: CustomToolDefinition = {
    "type": "custom",
    "custom": {
        "name": FILE_SEARCH_TOOL_NAME,
        "description": (
            "Search through uploaded documents and files to find relevant "
            "information and answer questions"
        ),
    },
}


def should_enable_web_search(enable_web_search: bool | None = None) -> bool:
    return enable_web_search is not False


def should_enable_file_search(
    enable_file_search: bool | None = None, *, has_documents: bool = False
) -> bool:
    return enable_file_search is True or (
        has_documents and enable_file_search is not False
    )


def get_enabled_tools(
    *,
    enable_web_search: bool | None = None,
    enable_file_search: bool | None = None,
    has_documents: bool = False,
) -> list[ToolDefinition]:
    """Return fresh copies of the tool definitions enabled for a request."""
    tools: list[ToolDefinition] = []
    if should_enable_web_search(enable_web_search):
        tools.append(deepcopy(WEB_SEARCH_TOOL))
    if should_enable_file_search(enable_file_search, has_documents=has_documents):
        tools.append(deepcopy(FILE_SEARCH_TOOL))
    return tools


def has_enabled_tools(
    *,
    enable_web_search: bool | None = None,
    enable_file_search: bool | None = None,
    has_documents: bool = False,
) -> bool:
    return bool(
        get_enabled_tools(
            enable_web_search=enable_web_search,
            enable_file_search=enable_file_search,
            has_documents=has_documents,
        )
    )


def is_web_search_tool(tool: ToolDefinition) -> bool:
    return tool.get("type") == WEB_SEARCH_TOOL_TYPE


def is_file_search_tool(tool: ToolDefinition) -> bool:
    custom = tool.get("custom")
    return (
        tool.get("type") == "custom"
        and isinstance(custom, dict)
        and custom.get("name") == FILE_SEARCH_TOOL_NAME
    )
