"""Markdown rendering for mirrored entities.

Each document is YAML frontmatter, an H1 title, the summary, then the entity's
sections in ordinal order. Feature and project documents end with a status
table of their children, linked with ``[[wiki links]]`` to the child files.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone

import yaml

from taskvault.export.paths import FEATURE_FILE, sanitize_file_name
from taskvault.models import Feature, Project, Section, Task


@dataclass(frozen=True)
class MarkdownOptions:
    include_frontmatter: bool = True
    line_ending: str = "\n"
    heading_level_offset: int = 0
    default_code_language: str = ""


_TASK_STATUS_ORDER = [
    "in-progress", "testing", "in-review", "ready-for-qa", "investigating",
    "blocked", "changes-requested", "pending", "backlog", "on-hold",
    "deployed", "deferred",
]
_FEATURE_STATUS_ORDER = [
    "in-development", "testing", "validating", "pending-review", "blocked",
    "planning", "draft", "on-hold", "deployed",
]
_PRIORITY_ORDER = ["high", "medium", "low"]

_LANGUAGE_PATTERNS = {
    "kotlin": ("kotlin", "kt"),
    "java": ("java",),
    "python": ("python", "py"),
    "javascript": ("javascript", "js"),
    "typescript": ("typescript", "ts"),
    "bash": ("bash", "shell", "sh"),
    "sql": ("sql",),
    "json": ("json",),
    "yaml": ("yaml", "yml"),
    "xml": ("xml",),
    "markdown": ("markdown", "md"),
    "dockerfile": ("dockerfile", "docker"),
    "go": ("go", "golang"),
    "rust": ("rust", "rs"),
    "c++": ("c++", "cpp"),
    "c#": ("c#", "csharp"),
    "ruby": ("ruby", "rb"),
    "php": ("php",),
}

_HEADER_RE = re.compile(r"^(#+)\s+(.*)")
_MARKDOWN_FENCE_RE = re.compile(r"```\s*markdown\s*\n", re.IGNORECASE)
_MARKDOWN_FENCE_LINE_RE = re.compile(r"```\s*markdown\s*", re.IGNORECASE)


def _format_timestamp(value: str) -> str:
    """ISO timestamp without fractional seconds, in UTC with a ``Z`` suffix."""
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return value or ""
    dt = dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt.isoformat().replace("+00:00", "Z")


def _normalize_status(status: str) -> str:
    return (status or "").strip().lower().replace("_", "-")


def _display(token: str) -> str:
    words = re.split(r"[-_\s]+", (token or "").strip())
    return " ".join(w.capitalize() for w in words if w)


def _order_index(order: list[str], value: str) -> int:
    try:
        return order.index(value)
    except ValueError:
        return len(order)


class MarkdownRenderer:
    """Converts tracked entities into standalone markdown documents."""

    def __init__(self, options: MarkdownOptions | None = None):
        self.options = options or MarkdownOptions()

    # ── Documents ──────────────────────────────────────────────────

    def render_task(self, task: Task, sections: list[Section]) -> str:
        frontmatter = {
            "id": task.id,
            "type": "task",
            "title": task.title,
            "status": _normalize_status(task.status),
            "priority": task.priority.lower(),
            "complexity": task.complexity,
        }
        if task.featureId:
            frontmatter["featureId"] = task.featureId
        if task.projectId:
            frontmatter["projectId"] = task.projectId
        return self._document(frontmatter, task, task.title, task.summary, sections, [])

    def render_feature(self, feature: Feature, sections: list[Section], tasks: list[Task] | None = None) -> str:
        frontmatter = {
            "id": feature.id,
            "type": "feature",
            "name": feature.name,
            "status": _normalize_status(feature.status),
            "priority": feature.priority.lower(),
        }
        if feature.projectId:
            frontmatter["projectId"] = feature.projectId
        trailer = self._task_status_blocks(tasks or [])
        return self._document(frontmatter, feature, feature.name, feature.summary, sections, trailer)

    def render_project(self, project: Project, sections: list[Section], features: list[Feature] | None = None) -> str:
        frontmatter = {
            "id": project.id,
            "type": "project",
            "name": project.name,
            "status": _normalize_status(project.status),
        }
        trailer = self._feature_status_blocks(features or [])
        return self._document(frontmatter, project, project.name, project.summary, sections, trailer)

    def _document(self, frontmatter: dict, entity, title: str, summary: str,
                  sections: list[Section], trailer: list[str]) -> str:
        nl = self.options.line_ending
        blocks: list[str] = []
        if self.options.include_frontmatter:
            if entity.tags:
                frontmatter["tags"] = list(entity.tags)
            frontmatter["created"] = _format_timestamp(entity.createdAt)
            frontmatter["modified"] = _format_timestamp(entity.modifiedAt)
            blocks.append(self._frontmatter(frontmatter))
        blocks.append(f"# {title}")
        if summary:
            blocks.append(summary)
        for section in sorted(sections, key=lambda s: s.ordinal):
            blocks.append(self._render_section(section))
        blocks.extend(trailer)
        return (nl + nl).join(blocks).rstrip() + nl

    def _frontmatter(self, data: dict) -> str:
        body = yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)
        nl = self.options.line_ending
        return f"---{nl}{body.rstrip(chr(10)).replace(chr(10), nl)}{nl}---"

    # ── Child status tables ────────────────────────────────────────

    def _task_status_blocks(self, tasks: list[Task]) -> list[str]:
        if not tasks:
            return []
        done = {"completed"}
        dropped = {"cancelled", "deferred"}
        active = [t for t in tasks if _normalize_status(t.status) not in done | dropped]
        completed = [t for t in tasks if _normalize_status(t.status) in done]
        cancelled = [t for t in tasks if _normalize_status(t.status) in dropped]

        blocks = ["## Tasks"]
        if active:
            blocks.append(self._task_table(active))
        if completed:
            blocks += ["### Completed", self._task_table(completed)]
        if cancelled:
            blocks += ["### Cancelled", self._task_table(cancelled)]
        return blocks

    def _feature_status_blocks(self, features: list[Feature]) -> list[str]:
        if not features:
            return []
        active = [f for f in features if _normalize_status(f.status) not in {"completed", "archived"}]
        completed = [f for f in features if _normalize_status(f.status) == "completed"]
        archived = [f for f in features if _normalize_status(f.status) == "archived"]

        blocks = ["## Features"]
        if active:
            blocks.append(self._feature_table(active))
        if completed:
            blocks += ["### Completed", self._feature_table(completed)]
        if archived:
            blocks += ["### Archived", self._feature_table(archived)]
        return blocks

    def _task_table(self, tasks: list[Task]) -> str:
        ordered = sorted(
            tasks,
            key=lambda t: (
                _order_index(_TASK_STATUS_ORDER, _normalize_status(t.status)),
                _order_index(_PRIORITY_ORDER, t.priority.lower()),
                t.title,
            ),
        )
        rows = [
            "| Status | Priority | Complexity | Task |",
            "|--------|----------|------------|------|",
        ]
        for task in ordered:
            rows.append(
                f"| {_display(task.status)} | {_display(task.priority)} | {task.complexity} "
                f"| [[{sanitize_file_name(task.title)}]] |"
            )
        return self.options.line_ending.join(rows)

    def _feature_table(self, features: list[Feature]) -> str:
        ordered = sorted(
            features,
            key=lambda f: (
                _order_index(_FEATURE_STATUS_ORDER, _normalize_status(f.status)),
                _order_index(_PRIORITY_ORDER, f.priority.lower()),
                f.name,
            ),
        )
        stem = FEATURE_FILE.removesuffix(".md")
        rows = [
            "| Status | Priority | Feature |",
            "|--------|----------|---------|",
        ]
        for feature in ordered:
            rows.append(
                f"| {_display(feature.status)} | {_display(feature.priority)} "
                f"| [[{sanitize_file_name(feature.name)}/{stem}]] |"
            )
        return self.options.line_ending.join(rows)

    # ── Sections ───────────────────────────────────────────────────

    def _render_section(self, section: Section) -> str:
        content = self._render_section_content(section)
        heading = "#" * (2 + self.options.heading_level_offset) + f" {section.title}"
        # Section content sometimes already carries its own title heading.
        if content.lstrip().startswith(heading):
            return content
        nl = self.options.line_ending
        return f"{heading}{nl}{nl}{content}"

    def _render_section_content(self, section: Section) -> str:
        nl = self.options.line_ending
        fmt = (section.contentFormat or "markdown").lower()
        if fmt == "json":
            return f"```json{nl}{section.content}{nl}```"
        if fmt == "code":
            return f"```{self._detect_code_language(section)}{nl}{section.content}{nl}```"
        if fmt == "plain_text":
            return section.content
        content = self._escape_nested_markdown_blocks(section.content)
        return self._normalize_header_hierarchy(content)

    def _detect_code_language(self, section: Section) -> str:
        search_text = " ".join([section.title.lower()] + [t.lower() for t in section.tags])
        for language, patterns in _LANGUAGE_PATTERNS.items():
            if any(pattern in search_text for pattern in patterns):
                return language
        return self.options.default_code_language

    def _normalize_header_hierarchy(self, content: str) -> str:
        """Clamp heading jumps to one level (an H2 followed by an H4 becomes H2, H3)."""
        result: list[str] = []
        previous_level = 0
        in_code_block = False
        for line in content.splitlines():
            stripped = line.lstrip()
            if stripped.startswith("```"):
                in_code_block = not in_code_block
                result.append(line)
                continue
            match = None if in_code_block else _HEADER_RE.match(stripped)
            if not match:
                result.append(line)
                continue
            hashes, text = match.groups()
            level = len(hashes)
            if previous_level and level > previous_level + 1:
                level = previous_level + 1
            previous_level = level
            indent = line[: len(line) - len(stripped)]
            result.append(f"{indent}{'#' * level} {text}")
        return self.options.line_ending.join(result)

    def _escape_nested_markdown_blocks(self, content: str) -> str:
        """Re-fence ```markdown blocks with four backticks so they nest cleanly."""
        if not _MARKDOWN_FENCE_RE.search(content):
            return content
        result: list[str] = []
        in_markdown_block = False
        for line in content.splitlines():
            if not in_markdown_block and _MARKDOWN_FENCE_LINE_RE.fullmatch(line.strip()):
                result.append(_MARKDOWN_FENCE_LINE_RE.sub("````markdown", line, count=1))
                in_markdown_block = True
            elif in_markdown_block and line.strip() == "```":
                result.append("````")
                in_markdown_block = False
            else:
                result.append(line)
        return self.options.line_ending.join(result)
