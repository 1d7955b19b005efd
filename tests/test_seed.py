"""Tests for seeding and configuration."""

from __future__ import annotations

import unittest
from pathlib import Path

import yaml

from recipe_store.config import get_db_path, get_store_config
from recipe_store.db.recipe_repo import RecipeRepository
from recipe_store.db.template_repo import TemplateRepository
from recipe_store.seed import (
    DEFAULT_TEMPLATES,
    SAMPLE_RECIPES,
    new_recipe_from_mapping,
    seed_database,
)

from tests.test_db import StoreTestCase

EXAMPLE_YAML = Path(__file__).resolve().parents[1] / "scripts" / "seed_example.yaml"


class TestSeedDatabase(StoreTestCase):
    async def test_defaults(self):
        templates, recipes = await seed_database(self.db)
        self.assertEqual(templates, len(DEFAULT_TEMPLATES))
        self.assertEqual(recipes, len(SAMPLE_RECIPES))

        baking = await TemplateRepository(self.db).get_by_name("Baking")
        self.assertEqual(baking.section_names, ["Preparation", "Mixing", "Baking", "Cooling"])

        found = await RecipeRepository(self.db).search("kung pao")
        self.assertEqual(len(found), 1)
        kung_pao = await RecipeRepository(self.db).get_by_id(found[0].id)
        self.assertTrue(kung_pao.favorite)
        self.assertEqual(kung_pao.tags, ["Chinese", "Quick", "Spicy"])
        self.assertEqual(kung_pao.ingredients[1].amount, 2)
        self.assertEqual(kung_pao.ingredients[1].unit, "tbsp")
        self.assertEqual(kung_pao.ingredients[1].name, "soy sauce")
        self.assertEqual(
            kung_pao.sections[0].steps,
            ["Cut chicken into cubes.", "Toss with soy sauce and cornstarch."],
        )

    async def test_existing_templates_skipped(self):
        await seed_database(self.db, recipes=[])
        templates, recipes = await seed_database(self.db, recipes=[])
        self.assertEqual((templates, recipes), (0, 0))
        self.assertEqual(len(await TemplateRepository(self.db).get_all()), len(DEFAULT_TEMPLATES))

    async def test_shared_tags_converge(self):
        await seed_database(self.db, templates=[])
        quick = await RecipeRepository(self.db).get_by_tag("quick")
        self.assertEqual(
            sorted(r.name for r in quick), ["Kung Pao Chicken", "Simple Fried Rice"]
        )

    async def test_example_yaml(self):
        with open(EXAMPLE_YAML, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        templates, recipes = await seed_database(
            self.db, templates=data["templates"], recipes=data["recipes"]
        )
        self.assertEqual((templates, recipes), (1, 1))
        steak = (await RecipeRepository(self.db).get_by_tag("grill"))[0]
        steak = await RecipeRepository(self.db).get_by_id(steak.id)
        self.assertEqual([s.name for s in steak.sections], ["Marinate", "Grill", "Rest"])
        garlic = steak.ingredients[2]
        self.assertEqual((garlic.amount, garlic.unit, garlic.name), (4, "cloves", "garlic, minced"))


class TestRecipeMapping(unittest.TestCase):
    def test_section_list_form(self):
        recipe = new_recipe_from_mapping(
            {
                "name": "Tea",
                "sections": [{"name": "Brew", "steps": ["Boil water.", "Steep 3 minutes."]}],
                "ingredients": [{"name": "tea leaves", "amount": 1, "unit": "tsp"}],
            }
        )
        self.assertEqual(recipe.sections[0].content, "Boil water.\nSteep 3 minutes.")
        self.assertEqual(recipe.ingredients[0].unit, "tsp")
        self.assertFalse(recipe.favorite)
        self.assertEqual(recipe.tags, [])


class TestConfig(unittest.TestCase):
    def test_db_path_from_environment(self):
        # conftest points RECIPE_STORE_DB_PATH at a per-test file
        self.assertEqual(get_db_path().name, "default.db")

    def test_defaults(self):
        config = get_store_config()
        self.assertEqual(config.journal_mode, "WAL")
        self.assertEqual(config.log_level, "INFO")
        self.assertFalse(config.in_memory)


if __name__ == "__main__":
    unittest.main()
