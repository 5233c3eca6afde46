"""Markdown task-line codec.

A synced task line looks like::

    - [ ] Call the plumber #home !!3 🗓️2024-05-01 ⏰09:30 ⏳1h30m #tdsync %%[tid:: [123](https://app.todoist.com/app/task/123)]%%

Building always emits the fields in that order so that
``parse(build(fields)) == fields`` for any fields this system produces.
"""

import re

import structlog

from tasksync.models.task import TaskFields

log = structlog.stdlib.get_logger()

TASK_LINE = re.compile(r"^(?P<indent>\s*)-\s+\[(?P<mark>[ xX])\]\s*(?P<rest>.*)$")
TASK_ID = re.compile(r"%%\[tid:: \[(?P<id>[A-Za-z0-9_-]+)\]")
TASK_ID_BLOCK = re.compile(r"\s*%%\[tid::.*?\]%%")
LABEL = re.compile(r"(?<![\w#\\])#([\w-]+)")
# A hashtag that would read as a label; escaped as \# inside content
CONTENT_HASHTAG = re.compile(r"(?<![\w#\\])#(?=[\w-])")
DUE_DATE = re.compile(r"(?:🗓️|📅)\s*(\d{4}-\d{2}-\d{2})")
DUE_TIME = re.compile(r"⏰\s*(\d{1,2}:\d{2})")
PRIORITY = re.compile(r"!!([1-4])")
DURATION_COMBINED = re.compile(r"⏳\s*(\d+)h\s*(\d+)m\b")
DURATION_HOURS = re.compile(r"⏳\s*(\d+)h\b")
DURATION_MINUTES = re.compile(r"⏳\s*(\d+)(?:min|m)\b")
PRIORITY_EMOJI = {"⏫": 2, "🔼": 3, "🔽": 4}

TASK_URL = "https://app.todoist.com/app/task/{task_id}"


def _strip_metadata(rest: str) -> str:
    content = TASK_ID_BLOCK.sub("", rest)
    content = DURATION_COMBINED.sub("", content)
    content = DURATION_HOURS.sub("", content)
    content = DURATION_MINUTES.sub("", content)
    content = DUE_TIME.sub("", content)
    content = DUE_DATE.sub("", content)
    content = PRIORITY.sub("", content)
    for emoji in PRIORITY_EMOJI:
        content = content.replace(emoji, "")
    content = LABEL.sub("", content)
    return " ".join(content.split()).replace("\\#", "#")


def _format_duration(minutes: int) -> str:
    if minutes < 60:
        return f"⏳{minutes}min"
    hours, mins = divmod(minutes, 60)
    if mins == 0:
        return f"⏳{hours}h"
    return f"⏳{hours}h{mins}m"


class TaskLineCodec:
    """Parses and builds single markdown task lines."""

    def __init__(self, sync_label: str = "tdsync"):
        self._sync_label = sync_label

    def is_task(self, line: str) -> bool:
        return TASK_LINE.match(line) is not None

    def split_indent(self, line: str) -> tuple[str, str]:
        """Leading whitespace and the remainder of the line."""
        stripped = line.lstrip()
        return line[: len(line) - len(stripped)], stripped

    def extract_id(self, line: str) -> str | None:
        match = TASK_ID.search(line)
        return match.group("id") if match else None

    def parse(self, line: str) -> TaskFields | None:
        """
        Parse a task line.

        Returns:
            TaskFields, or None when the line is not a task or has no content
        """
        match = TASK_LINE.match(line)
        if match is None:
            return None

        rest = match.group("rest")
        content = _strip_metadata(rest)
        if not content:
            return None

        searchable = TASK_ID_BLOCK.sub("", rest)

        labels: list[str] = []
        for label in LABEL.findall(searchable):
            if label.lower() != self._sync_label.lower() and label not in labels:
                labels.append(label)

        due_date_match = DUE_DATE.search(searchable)
        due_time_match = DUE_TIME.search(searchable)
        due_date = due_date_match.group(1) if due_date_match else None
        due_time = due_time_match.group(1).zfill(5) if due_time_match else None
        if due_time and not due_date:
            log.warning("due_time_without_date_ignored", line=line)
            due_time = None
        due_datetime = f"{due_date}T{due_time}:00" if due_date and due_time else None

        return TaskFields(
            content=content,
            completed=match.group("mark").lower() == "x",
            due_date=due_date,
            due_time=due_time,
            due_datetime=due_datetime,
            priority=self._parse_priority(searchable),
            duration_minutes=self._parse_duration(searchable),
            labels=labels,
        )

    def build(self, fields: TaskFields, task_id: str | None = None) -> str:
        """Build an unindented task line in the canonical field order."""
        parts = ["- [x]" if fields.completed else "- [ ]", CONTENT_HASHTAG.sub(r"\\#", fields.content)]

        labels = [label for label in fields.labels if label.lower() != self._sync_label.lower()]
        if labels:
            parts.append(" ".join(f"#{label}" for label in labels))
        if fields.priority and fields.priority != 1:
            parts.append(f"!!{fields.priority}")
        if fields.due_date:
            parts.append(f"🗓️{fields.due_date}")
        if fields.due_date and fields.due_time:
            parts.append(f"⏰{fields.due_time}")
        if fields.duration_minutes:
            parts.append(_format_duration(fields.duration_minutes))
        parts.append(f"#{self._sync_label}")
        if task_id:
            parts.append(f"%%[tid:: [{task_id}]({TASK_URL.format(task_id=task_id)})]%%")

        return " ".join(parts)

    @staticmethod
    def _parse_priority(text: str) -> int | None:
        explicit = PRIORITY.search(text)
        if explicit:
            priority = int(explicit.group(1))
            return priority if priority != 1 else None
        for emoji, priority in PRIORITY_EMOJI.items():
            if emoji in text:
                return priority
        return None

    @staticmethod
    def _parse_duration(text: str) -> int | None:
        """Duration in minutes; a zero duration counts as none."""
        combined = DURATION_COMBINED.search(text)
        if combined:
            return int(combined.group(1)) * 60 + int(combined.group(2)) or None
        hours = DURATION_HOURS.search(text)
        if hours:
            return int(hours.group(1)) * 60 or None
        minutes = DURATION_MINUTES.search(text)
        if minutes:
            return int(minutes.group(1)) or None
        return None
