"""Domain models shared by the repositories and their callers."""

from recipe_store.models.recipe import (
    UNSET,
    Ingredient,
    InstructionSection,
    NewRecipe,
    Recipe,
    RecipePatch,
)
from recipe_store.models.template import NewTemplate, Template, TemplateSection

__all__ = [
    "UNSET",
    "Ingredient",
    "InstructionSection",
    "NewRecipe",
    "Recipe",
    "RecipePatch",
    "NewTemplate",
    "Template",
    "TemplateSection",
]
