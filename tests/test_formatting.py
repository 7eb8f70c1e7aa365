from __future__ import annotations

from tgrelay.approval.formatting import format_approval_prompt, format_tool_info, format_tool_result


def test_bash_command_is_escaped_and_capped() -> None:
    info = format_tool_info("Bash", {"command": "echo '<b>' && " + "a" * 600})

    assert info.startswith("🔧 <b>Tool:</b> Bash\n📝 <b>Command:</b>\n<code>")
    assert "echo '&lt;b&gt;' &amp;&amp; " in info
    assert "a" * 600 not in info
    assert info.endswith("...</code>")


def test_edit_shows_file_and_both_snippets() -> None:
    info = format_tool_info("Edit", {"file_path": "src/app.py", "old_string": "x = 1", "new_string": "x = 2"})

    assert "📁 <b>File:</b> src/app.py" in info
    assert "➖ <b>Remove:</b>\n<code>x = 1</code>" in info
    assert "➕ <b>Add:</b>\n<code>x = 2</code>" in info


def test_write_reports_content_length_only() -> None:
    info = format_tool_info("Write", {"file_path": "notes.md", "content": "secret stuff"})

    assert "📝 <b>Content:</b> 12 chars" in info
    assert "secret stuff" not in info


def test_other_tools_show_json_input() -> None:
    info = format_tool_info("NotebookEdit", {"notebook_path": "a.ipynb", "cell": 3})

    assert '"notebook_path": "a.ipynb"' in info
    assert info.startswith("🔧 <b>Tool:</b> NotebookEdit")


def test_prompt_frame() -> None:
    prompt = format_approval_prompt("body", 60.0)
    assert prompt == (
        "⚠️ <b>Permission Request</b>\n\nbody\n\n"
        "Reply <b>Y</b> to approve or <b>N</b> to deny\n(Timeout: 60s)"
    )


def test_error_result_prefers_error_field_and_caps_length() -> None:
    text = format_tool_result("Bash", tool_output="ignored", error="E" * 800, is_error=True)

    assert text.startswith("❌ <b>Tool Error</b>\n\n🔧 <b>Tool:</b> Bash\n📝 <b>Error:</b>\n<code>")
    assert "ignored" not in text
    assert "E" * 497 + "..." in text


def test_success_result_only_adds_output_for_bash() -> None:
    assert format_tool_result("Read", tool_output="file body").endswith("📝 <b>Result:</b> Success")
    assert "<code>ok</code>" in format_tool_result("Bash", tool_output="ok")
