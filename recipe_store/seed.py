"""Default templates and sample recipes for fresh installs and development."""

from __future__ import annotations

import logging
from typing import Any

from recipe_store.db.database import Database
from recipe_store.db.migrations import parse_ingredient_text
from recipe_store.db.recipe_repo import RecipeRepository
from recipe_store.db.template_repo import TemplateRepository
from recipe_store.models.recipe import Ingredient, InstructionSection, NewRecipe
from recipe_store.models.template import NewTemplate

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATES: list[dict[str, Any]] = [
    {"name": "Baking", "sections": ["Preparation", "Mixing", "Baking", "Cooling"]},
    {
        "name": "Chinese Food",
        "sections": ["Prep & Marinate", "Prepare Aromatics", "Cooking", "Finishing"],
    },
    {"name": "Quick Weeknight", "sections": ["Preparation", "Cooking"]},
    {"name": "Meal Prep", "sections": ["Preparation", "Cooking", "Storage"]},
]

SAMPLE_RECIPES: list[dict[str, Any]] = [
    {
        "name": "Kung Pao Chicken",
        "cook_time_minutes": 30,
        "servings": 4,
        "favorite": True,
        "ingredients": [
            "1.5 lb boneless chicken thighs, cut into bite-sized pieces",
            "2 tbsp soy sauce",
            "1 tbsp cornstarch",
            "1 tsp Sichuan peppercorns",
            "1/2 cup roasted peanuts",
        ],
        "sections": {
            "Prep & Marinate": "Cut chicken into cubes.\nToss with soy sauce and cornstarch.",
            "Cooking": "Stir-fry chicken until golden.\nAdd peppercorns and peanuts.",
            "Finishing": "Transfer to a serving plate.\nServe immediately with steamed rice.",
        },
        "tags": ["Spicy", "Quick", "Chinese"],
    },
    {
        "name": "Classic Banana Bread",
        "cook_time_minutes": 75,
        "servings": 8,
        "ingredients": [
            "3 ripe bananas, mashed",
            "1/3 cup melted butter",
            "1 tsp baking soda",
            "Pinch of salt",
            "3/4 cup sugar",
            "1 1/2 cups all-purpose flour",
        ],
        "sections": {
            "Preparation": "Preheat oven to 350°F.\nGrease a loaf pan.",
            "Mixing": "Mash bananas with butter.\nStir in the remaining ingredients.",
            "Baking": "Bake for 60 minutes.",
            "Cooling": "Cool in the pan for 10 minutes before slicing.",
        },
        "tags": ["Dessert", "Breakfast", "Vegetarian"],
    },
    {
        "name": "Simple Fried Rice",
        "cook_time_minutes": 20,
        "servings": 4,
        "ingredients": [
            "3 cups cooked rice, preferably day-old",
            "2 tbsp vegetable oil",
            "2 eggs, beaten",
            "2 tbsp soy sauce",
        ],
        "sections": {
            "Cooking": "Scramble the eggs and set aside.\nFry the rice in oil until hot.",
            "Finishing": "Garnish with green onions.\nServe immediately.",
        },
        "tags": ["Quick", "Leftover", "Easy"],
    },
]


def _ingredient(raw: Any) -> Ingredient:
    if isinstance(raw, str):
        parsed = parse_ingredient_text(raw)
        return Ingredient(name=parsed.name, amount=parsed.amount, unit=parsed.unit)
    return Ingredient(name=raw["name"], amount=raw.get("amount"), unit=raw.get("unit"))


def _sections(raw: Any) -> list[InstructionSection]:
    if isinstance(raw, dict):
        items = raw.items()
    else:
        items = ((s["name"], s.get("steps", [])) for s in raw)
    return [
        InstructionSection(
            name=name,
            steps=InstructionSection.split_steps(steps) if isinstance(steps, str) else list(steps),
        )
        for name, steps in items
    ]


def new_recipe_from_mapping(data: dict[str, Any]) -> NewRecipe:
    """Build a ``NewRecipe`` from a plain mapping (seed constants or YAML)."""
    return NewRecipe(
        name=data["name"],
        cook_time_minutes=data.get("cook_time_minutes"),
        servings=data.get("servings"),
        favorite=bool(data.get("favorite", False)),
        source_url=data.get("source_url"),
        image_url=data.get("image_url"),
        image_width=data.get("image_width"),
        image_height=data.get("image_height"),
        ingredients=[_ingredient(i) for i in data.get("ingredients", [])],
        sections=_sections(data.get("sections", [])),
        tags=list(data.get("tags", [])),
    )


async def seed_database(
    db: Database,
    templates: list[dict[str, Any]] | None = None,
    recipes: list[dict[str, Any]] | None = None,
) -> tuple[int, int]:
    """
    Insert templates and recipes through the repositories. Existing rows are
    kept; a template whose name is taken is skipped. Returns the counts added.
    """
    template_repo = TemplateRepository(db)
    recipe_repo = RecipeRepository(db)
    templates = DEFAULT_TEMPLATES if templates is None else templates
    recipes = SAMPLE_RECIPES if recipes is None else recipes

    added_templates = 0
    for t in templates:
        if await template_repo.get_by_name(t["name"]) is not None:
            logger.info(f"Template {t['name']!r} already exists, skipping")
            continue
        await template_repo.create(NewTemplate(name=t["name"], sections=list(t["sections"])))
        added_templates += 1

    for r in recipes:
        await recipe_repo.create(new_recipe_from_mapping(r))

    logger.info(f"Seeded {added_templates} templates and {len(recipes)} recipes")
    return added_templates, len(recipes)
