"""
Built-in role catalog for role-playing mode.

A role has a title, the system instruction it installs, and the tags it is
listed under. The catalog can be replaced by a JSON file of the form
``[{"title": ..., "content": ..., "tags": [...]}, ...]``.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Role:
    title: str
    content: str
    tags: List[str] = field(default_factory=list)


DEFAULT_ROLES = [
    Role(
        title="Translator",
        content=(
            "I want you to act as a translator. I will speak to you in any language, "
            "you will detect it and answer with a faithful, fluent English translation. "
            "Only reply with the translation, no explanations."
        ),
        tags=["Daily"],
    ),
    Role(
        title="Weekly Report",
        content=(
            "Please act as a weekly report generator. I will give you a list of tasks "
            "I worked on this week; write a concise, well-structured weekly report in markdown."
        ),
        tags=["Work", "Daily"],
    ),
    Role(
        title="Code Reviewer",
        content=(
            "I want you to act as a senior software engineer doing code review. "
            "Point out bugs, risky constructs and readability issues in the code I send, "
            "and suggest concrete fixes."
        ),
        tags=["Work", "Programming"],
    ),
    Role(
        title="Linux Terminal",
        content=(
            "I want you to act as a linux terminal. I will type commands and you will reply "
            "with what the terminal should show, inside one code block, and nothing else."
        ),
        tags=["Programming", "Fun"],
    ),
    Role(
        title="Storyteller",
        content=(
            "I want you to act as a storyteller. Come up with entertaining, imaginative "
            "stories on the topics I give you, suited to the audience I describe."
        ),
        tags=["Fun"],
    ),
]


class RoleCatalog:
    """Lookup helpers over a list of roles."""

    def __init__(self, roles: Optional[Iterable[Role]] = None):
        self.roles: List[Role] = list(roles if roles is not None else DEFAULT_ROLES)

    @classmethod
    def from_file(cls, path: str) -> "RoleCatalog":
        """
        Load roles from a JSON file.

        Raises:
            OSError: If the file cannot be read
            ValueError: If the content is not a valid role list
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(data, list):
            raise ValueError(f"Role list {path} must be a JSON array")
        try:
            roles = [
                Role(title=item["title"], content=item["content"], tags=list(item.get("tags", [])))
                for item in data
            ]
        except (KeyError, TypeError, AttributeError) as e:
            raise ValueError(f"Invalid role entry in {path}: {e}") from e
        logger.info(f"Loaded {len(roles)} roles from {path}")
        return cls(roles)

    def unique_tags(self) -> List[str]:
        """All tags in first-seen order."""
        tags: List[str] = []
        for role in self.roles:
            for tag in role.tags:
                if tag not in tags:
                    tags.append(tag)
        return tags

    def titles_by_tag(self, tag: str) -> List[str]:
        return [role.title for role in self.roles if tag in role.tags]

    def content_by_title(self, title: str) -> Optional[str]:
        """Content of the first role with this title, or None."""
        for role in self.roles:
            if role.title == title:
                return role.content
        return None
