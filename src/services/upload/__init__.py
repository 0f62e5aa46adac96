"""Publishing Markdown to Notion and recording the attempt."""

from .results import UploadResult  # noqa: F401
from .service import (
    ALLOWED_EXTENSIONS,
    publish_markdown,
    read_upload,
    resolve_target_page,
)  # noqa: F401
