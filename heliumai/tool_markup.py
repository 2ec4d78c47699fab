"""Tool-invocation markup embedded in model output.

Models driven in agent mode request tools inline, as a JSON payload wrapped
in tags::

    <tool_call>{"name": "list_directory", "arguments": {"path": "/tmp"}}</tool_call>

Results go back to the model wrapped in ``<tool_result>`` tags. None of this
markup is meant for display; `strip_tool_markup` removes it from final text.
"""

import json
import re
from html import escape

from heliumai.logging_config import get_logger
from heliumai.tools import ToolCall

logger = get_logger(__name__)

_TOOL_CALL_RE = re.compile(r"<tool_call>\s*(.*?)\s*</tool_call>", re.DOTALL | re.IGNORECASE)
_TOOL_RESULT_RE = re.compile(r"<tool_result\b[^>]*>.*?</tool_result>", re.DOTALL | re.IGNORECASE)
# A call the model started but never closed (truncated output)
_DANGLING_CALL_RE = re.compile(r"<tool_call>(?:(?!</tool_call>).)*\Z", re.DOTALL | re.IGNORECASE)
_BLANK_RUN_RE = re.compile(r"\n{3,}")


def has_tool_call(text: str) -> bool:
    return bool(_TOOL_CALL_RE.search(text))


def extract_tool_calls(text: str) -> list[ToolCall]:
    """Parse every well-formed tool call in `text`, in order.

    Payloads that are not JSON objects with a string "name" are skipped.
    """
    calls = []
    for match in _TOOL_CALL_RE.finditer(text):
        payload = match.group(1)
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed tool call payload: {e}")
            continue
        if not isinstance(data, dict) or not isinstance(data.get("name"), str):
            logger.warning(f"Skipping tool call without a name: {payload[:100]}")
            continue
        arguments = data.get("arguments") or {}
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {"input": arguments}
        if not isinstance(arguments, dict):
            arguments = {"input": arguments}
        calls.append(ToolCall(name=data["name"], arguments=arguments))
    return calls


def format_tool_result(tool_name: str, content: str, is_error: bool = False) -> str:
    status = "error" if is_error else "success"
    return f'<tool_result name="{escape(tool_name)}" status="{status}">\n{content}\n</tool_result>'


def strip_tool_markup(text: str) -> str:
    """Remove tool-call and tool-result markup from display text.

    If stripping leaves nothing of a non-empty input, the input is returned
    unchanged; a parsing miss must not erase visible content.
    """
    if not text:
        return text

    stripped = _TOOL_CALL_RE.sub("", text)
    stripped = _TOOL_RESULT_RE.sub("", stripped)
    stripped = _DANGLING_CALL_RE.sub("", stripped)
    stripped = _BLANK_RUN_RE.sub("\n\n", stripped).strip()

    if not stripped:
        return text
    return stripped
