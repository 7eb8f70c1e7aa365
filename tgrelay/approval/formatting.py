"""Telegram (HTML) rendering of tool calls and approval prompts."""

from __future__ import annotations

import html
import json
from typing import Any

from tgrelay.utils.helpers import truncate_string


def _code(text: str, limit: int) -> str:
    return f"<code>{html.escape(truncate_string(text, limit), quote=False)}</code>"


def format_tool_info(tool_name: str, tool_input: Any) -> str:
    """Summarise a tool call for a human reviewer."""
    name = html.escape(str(tool_name or "unknown"), quote=False)
    info = f"🔧 <b>Tool:</b> {name}\n"
    data = tool_input if isinstance(tool_input, dict) else {}

    if tool_name == "Bash" and data.get("command"):
        info += f"📝 <b>Command:</b>\n{_code(str(data['command']), 500)}"
    elif tool_name == "Edit" and data.get("file_path"):
        info += f"📁 <b>File:</b> {html.escape(str(data['file_path']), quote=False)}\n"
        if data.get("old_string"):
            info += f"➖ <b>Remove:</b>\n{_code(str(data['old_string']), 200)}\n"
        if data.get("new_string"):
            info += f"➕ <b>Add:</b>\n{_code(str(data['new_string']), 200)}"
    elif tool_name == "Write" and data.get("file_path"):
        info += f"📁 <b>File:</b> {html.escape(str(data['file_path']), quote=False)}\n"
        info += f"📝 <b>Content:</b> {len(str(data.get('content') or ''))} chars"
    else:
        try:
            dumped = json.dumps(tool_input, indent=2, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            dumped = str(tool_input)
        info += f"📝 <b>Input:</b>\n{_code(dumped, 300)}"

    return info.rstrip("\n")


def format_approval_prompt(description: str, timeout_s: float) -> str:
    """Wrap a (HTML) description in the permission request frame."""
    return (
        f"⚠️ <b>Permission Request</b>\n\n{description}\n\n"
        f"Reply <b>Y</b> to approve or <b>N</b> to deny\n"
        f"(Timeout: {timeout_s:g}s)"
    )


def format_tool_result(
    tool_name: str,
    tool_output: Any = None,
    error: Any = None,
    is_error: bool = False,
) -> str:
    """Post-tool notification body."""
    name = html.escape(str(tool_name or "unknown"), quote=False)
    if is_error:
        body = str(error or tool_output or "Unknown error")
        return f"❌ <b>Tool Error</b>\n\n🔧 <b>Tool:</b> {name}\n📝 <b>Error:</b>\n{_code(body, 500)}"

    message = f"✅ <b>Tool Completed</b>\n\n🔧 <b>Tool:</b> {name}\n📝 <b>Result:</b> Success"
    if tool_name == "Bash" and tool_output:
        message += f"\n{_code(str(tool_output), 200)}"
    return message
