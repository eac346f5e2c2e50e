"""End-of-day task archiving for the vault's ``tasks.md``.

Only the ``## Today`` section is scanned. Completed checklist items are
appended to ``archive/archived_tasks.md`` under a ``## <date>`` heading and
dropped from Today; every other line of ``tasks.md`` is written back
unchanged, which keeps the Recurring sections byte-identical.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

from nudge.security.path_guard import resolve_in_vault
from nudge.tools.vault_tools import atomic_write_text, read_text

TASKS_FILE = "tasks.md"
ARCHIVE_FILE = "archive/archived_tasks.md"
ARCHIVE_TITLE = "# Archived Tasks\n"

_TODAY_HEADING = re.compile(r"^##\s+Today\b", re.IGNORECASE)
_SECTION_HEADING = re.compile(r"^#{1,2}\s")
_COMPLETED_ITEM = re.compile(r"^\s*[-*]\s+\[[xX]\]")


@dataclass(slots=True)
class TodaySplit:
    remaining: str
    completed: list[str] = field(default_factory=list)


def split_completed_today(text: str) -> TodaySplit | None:
    """Pull completed items out of the Today section; ``None`` if there is no such section."""
    lines = text.splitlines(keepends=True)
    start = next((i for i, line in enumerate(lines) if _TODAY_HEADING.match(line)), None)
    if start is None:
        return None

    end = next(
        (i for i in range(start + 1, len(lines)) if _SECTION_HEADING.match(lines[i])),
        len(lines),
    )

    kept: list[str] = []
    completed: list[str] = []
    for line in lines[start + 1:end]:
        if _COMPLETED_ITEM.match(line):
            completed.append(line.rstrip("\r\n"))
        else:
            kept.append(line)

    remaining = "".join(lines[:start + 1] + kept + lines[end:])
    return TodaySplit(remaining=remaining, completed=completed)


def append_archive_block(archive_text: str, date: str, items: list[str]) -> str:
    if not archive_text.strip():
        archive_text = ARCHIVE_TITLE

    header = f"## {date}"
    block = [f"{item}\n" for item in items]
    lines = archive_text.splitlines(keepends=True)
    header_at = next((i for i, line in enumerate(lines) if line.rstrip("\r\n") == header), None)

    if header_at is None:
        if not archive_text.endswith("\n"):
            archive_text += "\n"
        return f"{archive_text}\n{header}\n\n" + "".join(block)

    end = next(
        (i for i in range(header_at + 1, len(lines)) if _SECTION_HEADING.match(lines[i])),
        len(lines),
    )
    insert_at = end
    while insert_at > header_at + 1 and not lines[insert_at - 1].strip():
        insert_at -= 1
    if not lines[insert_at - 1].endswith("\n"):
        lines[insert_at - 1] += "\n"
    lines[insert_at:insert_at] = block
    return "".join(lines)


def archive_tasks(vault_path: str, date: str) -> str:
    try:
        datetime.strptime(date, "%Y-%m-%d")
    except (TypeError, ValueError):
        return f"Error: Invalid date '{date}', expected YYYY-MM-DD"

    tasks_target = resolve_in_vault(vault_path, TASKS_FILE)
    archive_target = resolve_in_vault(vault_path, ARCHIVE_FILE)
    if not tasks_target.is_file():
        return f"Error: File not found: {TASKS_FILE}"

    split = split_completed_today(read_text(tasks_target))
    if split is None:
        return f"Error: No '## Today' section found in {TASKS_FILE}"
    if not split.completed:
        return "No completed tasks to archive in the Today section."

    archive_text = read_text(archive_target) if archive_target.is_file() else ""
    # Archive is written before tasks.md is trimmed.
    atomic_write_text(archive_target, append_archive_block(archive_text, date, split.completed))
    atomic_write_text(tasks_target, split.remaining)

    count = len(split.completed)
    noun = "task" if count == 1 else "tasks"
    return f"Archived {count} completed {noun} to {ARCHIVE_FILE} under {date}."
