"""Template domain model: a named, ordered list of instruction sections."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class TemplateSection:
    name: str
    id: Optional[str] = field(default=None, compare=False)
    order_index: int = field(default=0, compare=False)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "TemplateSection":
        return cls(id=row["id"], name=row["name"], order_index=row.get("order_index", 0))


@dataclass
class Template:
    """A recipe template; ``sections`` are in ascending ``order_index``."""

    name: str
    id: str = ""
    sections: list[TemplateSection] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0
    deleted_at: Optional[int] = None

    @property
    def section_names(self) -> list[str]:
        return [s.name for s in self.sections]

    @classmethod
    def from_row(
        cls, row: dict[str, Any], sections: Optional[list[TemplateSection]] = None
    ) -> "Template":
        return cls(
            id=row["id"],
            name=row["name"],
            sections=sections or [],
            created_at=row.get("created_at", 0),
            updated_at=row.get("updated_at", 0),
            deleted_at=row.get("deleted_at"),
        )


@dataclass
class NewTemplate:
    """Input for ``TemplateRepository.create``."""

    name: str
    sections: list[str] = field(default_factory=list)
