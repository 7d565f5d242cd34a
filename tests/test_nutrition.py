import unittest
from datetime import datetime
from types import SimpleNamespace

from matic.nutrition import (
    SOURCE_FALLBACK,
    SOURCE_KNOWN_VALUES,
    SOURCE_USDA,
    ValidationThresholds,
    daily_totals,
    parse_portion_grams,
    reconcile_food,
    reconcile_foods,
    resolve_search_term,
    round_half_up,
    sum_estimates,
    validate_per_100g,
)


def _fixed_lookup(record):
    calls = []

    def lookup(term):
        calls.append(term)
        return record

    lookup.calls = calls
    return lookup


def _no_match(term):
    return None


class ReconcileTestCase(unittest.TestCase):
    def test_scaling_matches_per_100g_record(self):
        lookup = _fixed_lookup({"calories": 185, "protein": 35, "carbs": 0, "fat": 4})
        estimate = reconcile_food("pollo", "150g", 0.9, lookup)
        self.assertEqual(estimate.source, SOURCE_USDA)
        self.assertEqual(estimate.calories, 278)
        self.assertEqual(estimate.protein, 52.5)
        self.assertEqual(estimate.carbs, 0.0)
        self.assertEqual(estimate.fat, 6.0)
        self.assertEqual(estimate.confidence, 0.9)
        self.assertEqual(lookup.calls, ["chicken breast cooked without skin"])

    def test_implausible_vegetable_record_is_rejected(self):
        lookup = _fixed_lookup({"calories": 900, "protein": 1, "carbs": 2, "fat": 0.2})
        estimate = reconcile_food("lechuga", "80g", 0.8, lookup)
        self.assertNotEqual(estimate.source, SOURCE_USDA)
        self.assertEqual(estimate.source, SOURCE_FALLBACK)
        self.assertEqual(estimate.calories, 50)

    def test_nonsense_food_gets_conservative_default(self):
        estimate = reconcile_food("zorblax crujiente", "100g", 0.6, _no_match)
        self.assertEqual(estimate.source, SOURCE_FALLBACK)
        self.assertEqual(
            (estimate.calories, estimate.protein, estimate.carbs, estimate.fat),
            (50, 1.0, 10.0, 1.0),
        )
        self.assertEqual(estimate.confidence, 0.3)

    def test_failing_lookup_degrades_to_next_tier(self):
        def broken(term):
            raise ConnectionError("offline")

        estimate = reconcile_food("huevo", "50g", 0.7, broken)
        self.assertEqual(estimate.source, SOURCE_KNOWN_VALUES)
        self.assertEqual(estimate.calories, 78)

    def test_honey_portion_from_known_values(self):
        estimate = reconcile_food("miel", "21g", 0.9, _no_match)
        self.assertEqual(estimate.source, SOURCE_KNOWN_VALUES)
        self.assertEqual(
            (estimate.calories, estimate.protein, estimate.carbs, estimate.fat),
            (64, 0.1, 17.3, 0.0),
        )

    def test_missing_confidence_defaults_to_half(self):
        estimate = reconcile_food("miel", "10g", None, _no_match)
        self.assertEqual(estimate.confidence, 0.5)

    def test_reconcile_foods_skips_unusable_rows(self):
        foods = [{"name": "miel", "estimated_portion": "21g"}, "bad", {"name": "  "}]
        estimates = reconcile_foods(foods, _no_match)
        self.assertEqual([estimate.name for estimate in estimates], ["miel"])

    def test_totals_sum_rounded_items(self):
        estimates = [
            reconcile_food("miel", "21g", 0.9, _no_match),
            reconcile_food("pan", "40g", 0.9, _no_match),
        ]
        totals = sum_estimates(estimates)
        self.assertEqual(totals["total_estimated_calories"], 64 + 106)
        self.assertEqual(totals["total_estimated_protein"], 3.7)
        self.assertEqual(totals["total_estimated_carbs"], 36.9)


class SearchTermTestCase(unittest.TestCase):
    def test_exact_match_ignores_accents_and_case(self):
        self.assertEqual(resolve_search_term("Salmón"), ("salmon atlantic cooked", "exact"))

    def test_known_partial_collisions(self):
        cases = {
            "espinacas": "spinach raw",
            "papas fritas con ketchup": "potatoes french fried",
            "empanada de pollo": "empanada beef baked",
            "arroz con leche casero": "rice pudding",
            "papaya picada": "papaya raw",
        }
        for name, expected in cases.items():
            term, rule = resolve_search_term(name)
            self.assertEqual(term, expected, name)
            self.assertEqual(rule, "partial", name)

    def test_short_names_do_not_match_inside_longer_keys(self):
        for name in ("sal", "té", "col"):
            term, rule = resolve_search_term(name)
            self.assertEqual((term, rule), (name, "passthrough"), name)

    def test_salt_is_not_reconciled_as_salmon(self):
        lookup = _fixed_lookup({"calories": 206, "protein": 22, "carbs": 0, "fat": 12})
        estimate = reconcile_food("sal", "5g", 0.9, lookup)
        self.assertEqual(lookup.calls, ["sal"])
        self.assertNotEqual(estimate.search_term, "salmon atlantic cooked")

    def test_whole_word_name_matches_longer_key(self):
        self.assertEqual(resolve_search_term("pechuga"), ("chicken breast cooked without skin", "partial"))

    def test_cooked_suffix_for_unmapped_staple(self):
        self.assertEqual(resolve_search_term("chicken wings"), ("chicken wings cooked", "cooked"))
        self.assertEqual(resolve_search_term("chicken wings fried")[1], "passthrough")

    def test_unknown_name_passes_through(self):
        self.assertEqual(resolve_search_term("kombucha"), ("kombucha", "passthrough"))


class ValidationTestCase(unittest.TestCase):
    def test_lean_protein_limits(self):
        reasons = validate_per_100g("pechuga de pollo", {"calories": 200, "protein": 10, "carbs": 12, "fat": 5})
        self.assertEqual(len(reasons), 2)

    def test_missing_values_are_rejected(self):
        self.assertTrue(validate_per_100g("pan", {"calories": 250, "protein": 9}))

    def test_negative_values_are_rejected(self):
        reasons = validate_per_100g("pan", {"calories": 250, "protein": -1, "carbs": 49, "fat": 3})
        self.assertTrue(reasons)
        self.assertIn("negative protein", reasons[0])

    def test_negative_record_falls_back_to_known_values(self):
        lookup = _fixed_lookup({"calories": 250, "protein": -1, "carbs": 49, "fat": 3})
        estimate = reconcile_food("pan", "100g", 0.8, lookup)
        self.assertEqual(estimate.source, SOURCE_KNOWN_VALUES)
        self.assertEqual(estimate.calories, 265)
        self.assertEqual(estimate.protein, 9.0)

    def test_thresholds_are_configurable(self):
        record = {"calories": 120, "protein": 2, "carbs": 25, "fat": 0.5}
        self.assertTrue(validate_per_100g("zanahorias", record))
        relaxed = ValidationThresholds(vegetable_max_kcal=150)
        self.assertEqual(validate_per_100g("zanahorias", record, relaxed), [])

    def test_thresholds_from_config(self):
        thresholds = ValidationThresholds.from_config({"NUTRITION_LEAN_PROTEIN_MIN_G": "20"})
        self.assertEqual(thresholds.lean_protein_min_g, 20.0)
        self.assertEqual(thresholds.vegetable_max_kcal, 100.0)

    def test_energy_mismatch_only_warns(self):
        record = {"calories": 10, "protein": 20, "carbs": 0, "fat": 2}
        with self.assertLogs("matic.nutrition", level="WARNING"):
            reasons = validate_per_100g("pollo", record)
        self.assertEqual(reasons, [])


class HelpersTestCase(unittest.TestCase):
    def test_round_half_up(self):
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(0.25, 1), 0.3)
        self.assertIsInstance(round_half_up(2.4), int)

    def test_portion_grams(self):
        self.assertEqual(parse_portion_grams("150g"), 150.0)
        self.assertEqual(parse_portion_grams("aprox 12.5 G"), 12.5)
        self.assertEqual(parse_portion_grams("una taza"), 15.0)
        self.assertEqual(parse_portion_grams(None), 15.0)

    def test_daily_totals_groups_by_day(self):
        food = SimpleNamespace(calories=100, protein_g=10.0, carbs_g=5.0, fat_g=2.5)
        entries = [
            SimpleNamespace(food_item=food, servings=1.5, consumed_at=datetime(2026, 3, 11, 8)),
            SimpleNamespace(food_item=food, servings=1, consumed_at=datetime(2026, 3, 11, 13)),
            SimpleNamespace(food_item=food, servings=2, consumed_at=datetime(2026, 3, 10, 20)),
        ]
        totals = daily_totals(entries)
        self.assertEqual(list(totals), ["2026-03-10", "2026-03-11"])
        self.assertEqual(totals["2026-03-11"]["calories"], 250)
        self.assertEqual(totals["2026-03-11"]["protein"], 25.0)
        self.assertEqual(totals["2026-03-11"]["entries"], 2)


if __name__ == "__main__":
    unittest.main()
