"""Model provider adapters."""

from .openai_responses import (
    OPENAI_RESPONSES_URL,
    WEB_SEARCH_TOOL,
    call_openai_responses,
    extract_output_text,
    extract_usage,
)
