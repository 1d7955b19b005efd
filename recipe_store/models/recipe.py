"""Recipe domain model: recipes with ordered ingredients, sections and tags."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Optional


@dataclass
class Ingredient:
    """One ingredient line; ``amount`` and ``unit`` are optional."""

    name: str
    amount: Optional[float] = None
    unit: Optional[str] = None
    id: Optional[str] = field(default=None, compare=False)
    order_index: int = field(default=0, compare=False)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Ingredient":
        return cls(
            id=row["id"],
            name=row["name"],
            amount=row.get("amount"),
            unit=row.get("unit"),
            order_index=row.get("order_index", 0),
        )


@dataclass
class InstructionSection:
    """A named block of steps, stored as one newline-delimited text field."""

    name: str
    steps: list[str] = field(default_factory=list)
    id: Optional[str] = field(default=None, compare=False)

    @property
    def content(self) -> str:
        return "\n".join(self.steps)

    @staticmethod
    def split_steps(content: Optional[str]) -> list[str]:
        if not content:
            return []
        return [line for line in content.split("\n") if line.strip()]

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "InstructionSection":
        return cls(
            id=row["id"],
            name=row["name"],
            steps=cls.split_steps(row.get("content")),
        )


@dataclass
class Recipe:
    """A fully hydrated recipe as returned by the repository."""

    name: str
    id: str = ""
    cook_time_minutes: Optional[int] = None
    servings: Optional[float] = None
    favorite: bool = False
    source_url: Optional[str] = None
    image_url: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    tags: list[str] = field(default_factory=list)
    ingredients: list[Ingredient] = field(default_factory=list)
    sections: list[InstructionSection] = field(default_factory=list)
    created_at: int = 0
    updated_at: int = 0
    deleted_at: Optional[int] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    @classmethod
    def from_row(
        cls,
        row: dict[str, Any],
        tags: Optional[list[str]] = None,
        ingredients: Optional[list[Ingredient]] = None,
        sections: Optional[list[InstructionSection]] = None,
    ) -> "Recipe":
        return cls(
            id=row["id"],
            name=row["name"],
            cook_time_minutes=row.get("cook_time_min"),
            servings=row.get("servings"),
            favorite=bool(row.get("favorite", 0)),
            source_url=row.get("source_url"),
            image_url=row.get("image_url"),
            image_width=row.get("image_width"),
            image_height=row.get("image_height"),
            tags=tags or [],
            ingredients=ingredients or [],
            sections=sections or [],
            created_at=row.get("created_at", 0),
            updated_at=row.get("updated_at", 0),
            deleted_at=row.get("deleted_at"),
        )


@dataclass
class NewRecipe:
    """Input for ``RecipeRepository.create``."""

    name: str
    cook_time_minutes: Optional[int] = None
    servings: Optional[float] = None
    favorite: bool = False
    source_url: Optional[str] = None
    image_url: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None
    ingredients: list[Ingredient] = field(default_factory=list)
    sections: list[InstructionSection] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass
class RecipePatch:
    """
    Partial update of a recipe row. Fields left ``UNSET`` are not written;
    ``None`` clears a nullable column.
    """

    name: Any = UNSET
    cook_time_minutes: Any = UNSET
    servings: Any = UNSET
    favorite: Any = UNSET
    source_url: Any = UNSET
    image_url: Any = UNSET
    image_width: Any = UNSET
    image_height: Any = UNSET

    # attribute -> column
    COLUMNS = {
        "name": "name",
        "cook_time_minutes": "cook_time_min",
        "servings": "servings",
        "favorite": "favorite",
        "source_url": "source_url",
        "image_url": "image_url",
        "image_width": "image_width",
        "image_height": "image_height",
    }

    def __post_init__(self) -> None:
        if self.name is None:
            raise ValueError("Recipe name cannot be cleared")

    def to_columns(self) -> dict[str, Any]:
        """Column values for every supplied field."""
        columns: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is UNSET:
                continue
            if f.name == "favorite":
                value = 1 if value else 0
            columns[self.COLUMNS[f.name]] = value
        return columns

    def is_empty(self) -> bool:
        return not self.to_columns()
