"""Provider-neutral schemas for every tool the model may call on the vault."""
from __future__ import annotations

from nudge.agent.providers.base import ToolDefinition


def _string(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


def _object(properties: dict[str, dict[str, str]], required: list[str]) -> dict:
    return {"type": "object", "properties": properties, "required": required}


VAULT_TOOLS: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="read_file",
        description="Read the contents of a file in the vault. Use this to check tasks, ideas, config, daily logs, etc.",
        parameters=_object(
            {"path": _string('File path relative to vault root (e.g., "tasks.md", "ideas/my-idea.md")')},
            ["path"],
        ),
    ),
    ToolDefinition(
        name="write_file",
        description="Write or overwrite a file in the vault.",
        parameters=_object(
            {
                "path": _string("File path relative to vault root"),
                "content": _string("Full file content to write"),
            },
            ["path", "content"],
        ),
    ),
    ToolDefinition(
        name="edit_file",
        description=(
            "Make a targeted edit to a file by replacing specific text. "
            "Use this for checking off tasks, updating status, etc."
        ),
        parameters=_object(
            {
                "path": _string("File path relative to vault root"),
                "old_text": _string("The exact text to find and replace"),
                "new_text": _string("The text to replace it with"),
            },
            ["path", "old_text", "new_text"],
        ),
    ),
    ToolDefinition(
        name="list_files",
        description="List files in a vault directory.",
        parameters=_object(
            {"directory": _string('Directory path relative to vault root (e.g., "ideas/", "daily/")')},
            ["directory"],
        ),
    ),
    ToolDefinition(
        name="create_file",
        description="Create a new file in the vault. Fails if the file already exists.",
        parameters=_object(
            {
                "path": _string("File path relative to vault root"),
                "content": _string("File content"),
            },
            ["path", "content"],
        ),
    ),
    ToolDefinition(
        name="move_file",
        description=(
            "Move a file from one location to another within the vault. Use this to archive "
            "completed idea files by moving them from ideas/ to archive/."
        ),
        parameters=_object(
            {
                "source": _string('Source file path relative to vault root (e.g., "ideas/my-idea.md")'),
                "destination": _string('Destination file path relative to vault root (e.g., "archive/my-idea.md")'),
            },
            ["source", "destination"],
        ),
    ),
    ToolDefinition(
        name="archive_tasks",
        description=(
            'Archive completed tasks from the Today section of tasks.md. Moves all "- [x]" tasks '
            "from the Today section to archive/archived_tasks.md with a date header, and removes "
            "them from tasks.md. Recurring sections (Recurring Daily, Recurring Weekly) are left "
            "untouched. Call this when the user asks to clean up completed tasks or during end-of-day."
        ),
        parameters=_object(
            {"date": _string('The date to use for the archive header in YYYY-MM-DD format (e.g., "2026-02-17")')},
            ["date"],
        ),
    ),
)
