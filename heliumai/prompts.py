"""System prompt templates per mode, and file-system context rendering."""

from jinja2 import Environment, StrictUndefined

from heliumai.models.inference import FileSystemContext
from heliumai.models.model_config import AIMode

_env = Environment(trim_blocks=True, lstrip_blocks=True, undefined=StrictUndefined, autoescape=False)

QA_SYSTEM_PROMPT = _env.from_string(
    """You are a helpful file system expert assistant. Your role is to answer questions about the user's files and folders based on the provided context.

Guidelines:
- Provide clear, concise answers based on the file system data
- If you don't have enough information, say so
- Reference specific files and folders by their paths
- Format file sizes in human-readable format (KB, MB, GB)
- Be helpful and friendly

File System Context:
{{ fs_context }}"""
)

AGENT_SYSTEM_PROMPT = _env.from_string(
    """You are an AI agent with access to file system operations via tools. You can help users manage, analyze, and organize their files.

Available Tools:
{% for tool in tools %}
- {{ tool.name }}: {{ tool.description }}
{% else %}
(no tools available)
{% endfor %}

To use a tool, reply with a tool call on its own line and wait for the result:
<tool_call>{"name": "<tool name>", "arguments": {<arguments as JSON>}}</tool_call>
Results come back inside <tool_result> tags. When you have what you need, answer without a tool call.

Guidelines:
- Think step-by-step before using tools
- Use tools to gather information before answering
- Explain what you're doing and why
- Be cautious with destructive operations
- Always confirm before deleting or moving files

Current Directory: {{ current_path }}
File System Context: {{ fs_context }}"""
)

NO_CONTEXT = "No file system context available."


def format_file_size(num_bytes: int | float) -> str:
    units = ["B", "KB", "MB", "GB", "TB"]
    size = float(num_bytes)
    unit_index = 0
    while size >= 1024 and unit_index < len(units) - 1:
        size /= 1024
        unit_index += 1
    return f"{size:.2f} {units[unit_index]}"


def build_file_system_context(context: FileSystemContext) -> str:
    parts: list[str] = []

    if context.current_path:
        parts.append(f"Current Directory: {context.current_path}")

    if context.selected_paths:
        parts.append("\nSelected Items:")
        parts.extend(f"- {path}" for path in context.selected_paths)

    if context.visible_files:
        parts.append("\nVisible Items:")
        for item in context.visible_files[:50]:
            kind = "dir" if item.is_dir else format_file_size(item.size)
            parts.append(f"- {item.name} ({kind})")

    scan = context.scan_data
    if scan:
        parts.append("\nFile System Summary:")
        parts.append(f"- Total Files: {scan.total_files:,}")
        parts.append(f"- Total Size: {format_file_size(scan.total_size)}")

        if scan.largest_files:
            parts.append("\nLargest Files:")
            for index, file in enumerate(scan.largest_files[:10], start=1):
                parts.append(f"{index}. {file.path} - {format_file_size(file.size)}")

        if scan.file_types:
            parts.append("\nFile Type Distribution:")
            ranked = sorted(scan.file_types.items(), key=lambda item: item[1], reverse=True)[:10]
            parts.extend(f"- {file_type}: {count:,} files" for file_type, count in ranked)

    return "\n".join(parts)


def truncate_context(context: str, max_chars: int = 4000) -> str:
    """Character-based truncation, cut at the last full line when possible."""
    if len(context) <= max_chars:
        return context

    truncated = context[:max_chars]
    last_newline = truncated.rfind("\n")
    if last_newline > 0:
        truncated = truncated[:last_newline]
    return truncated + "\n\n[Context truncated...]"


def render_system_prompt(
    mode: AIMode,
    fs_context: FileSystemContext | None = None,
    tools: list[dict[str, str]] | None = None,
) -> str:
    context_text = truncate_context(build_file_system_context(fs_context)) if fs_context else NO_CONTEXT
    if mode == AIMode.AGENT:
        return AGENT_SYSTEM_PROMPT.render(
            tools=tools or [],
            current_path=fs_context.current_path if fs_context else "/",
            fs_context=context_text,
        ).strip()
    return QA_SYSTEM_PROMPT.render(fs_context=context_text).strip()
