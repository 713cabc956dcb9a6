"""Helpers to parse Responses API outputs."""

from typing import Any, Dict, Optional


def extract_output_text(response: Any) -> str:
    """Return the concatenated text output of a Responses API call.

    Prefers the SDK's `output_text` convenience property and falls back to
    walking `output[*].content[*]` for `output_text` parts.
    """
    text = getattr(response, "output_text", None)
    if isinstance(text, str) and text.strip():
        return text.strip()

    parts = []
    for item in getattr(response, "output", None) or []:
        for content in getattr(item, "content", None) or []:
            if getattr(content, "type", None) == "output_text":
                parts.append(getattr(content, "text", "") or "")
    joined = "".join(parts).strip()
    if not joined:
        raise RuntimeError("Responses API output did not include any text.")
    return joined


def extract_usage(response: Any) -> Dict[str, Optional[int]]:
    """Return token usage information from the response, if present."""
    usage = getattr(response, "usage", None)
    return {
        "input_tokens": getattr(usage, "input_tokens", None) if usage else None,
        "output_tokens": getattr(usage, "output_tokens", None) if usage else None,
    }
