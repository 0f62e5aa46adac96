"""Utilities for interacting with Notion."""

from .client import (
    MAX_BLOCKS_PER_REQUEST,
    NotionPublisher,
    NotionUser,
    PageInfo,
    PublishedPage,
    chunk_blocks,
    format_error,
)  # noqa: F401
from .markdown import extract_title, markdown_to_blocks, preview  # noqa: F401
