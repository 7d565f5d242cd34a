"""Turn an identified food name and a portion string into a nutrient estimate.

The lookup against the nutrition database is injected as a plain callable
(``lookup(term) -> {"calories", "protein", "carbs", "fat"} | None``, values per
100 g) so this module stays free of Flask and HTTP concerns.

Resolution order for a single food:

1. resolve a database search term from the (usually Spanish) name;
2. ask ``lookup`` for a per-100 g record and run the plausibility checks;
3. fall back to ``KNOWN_VALUES`` by exact lowercase name;
4. fall back to a conservative default with the confidence halved.

``reconcile_food`` never raises: every tier failure degrades to the next one.
"""

import logging
import re
import unicodedata
from collections import OrderedDict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, Mapping

logger = logging.getLogger(__name__)

SOURCE_USDA = "USDA"
SOURCE_KNOWN_VALUES = "known_values"
SOURCE_FALLBACK = "fallback"

DEFAULT_PORTION_GRAMS = 15.0

# Spanish common-food name -> English search term with the usual cooking state.
SEARCH_TERMS = {
    # proteins
    "pollo": "chicken breast cooked without skin",
    "pechuga de pollo": "chicken breast cooked without skin",
    "muslo de pollo": "chicken thigh cooked without skin",
    "carne": "beef cooked",
    "carne de res": "beef steak cooked",
    "carne molida": "beef ground 85% lean cooked",
    "cerdo": "pork loin cooked",
    "pavo": "turkey breast cooked",
    "pescado": "fish white cooked",
    "salmon": "salmon atlantic cooked",
    "atun": "tuna light canned in water",
    "camarones": "shrimp cooked",
    "huevo": "egg whole raw",
    "huevos": "egg whole raw",
    "huevo cocido": "egg whole hard-boiled",
    "huevo frito": "egg whole fried",
    "jamon": "ham sliced",
    "tofu": "tofu firm raw",
    # carbohydrate staples
    "arroz": "rice white cooked",
    "arroz integral": "rice brown cooked",
    "pasta": "pasta cooked",
    "espagueti": "spaghetti cooked",
    "pan": "bread white",
    "pan integral": "bread whole wheat",
    "tortilla": "tortilla corn",
    "avena": "oats raw",
    "papa": "potato boiled without skin",
    "papas": "potato boiled without skin",
    "patata": "potato boiled without skin",
    "papas fritas": "potatoes french fried",
    "camote": "sweet potato cooked",
    "batata": "sweet potato cooked",
    "quinoa": "quinoa cooked",
    # vegetables
    "lechuga": "lettuce raw",
    "tomate": "tomato raw",
    "brocoli": "broccoli cooked",
    "zanahoria": "carrots raw",
    "espinaca": "spinach raw",
    "pepino": "cucumber raw",
    "cebolla": "onion raw",
    "pimiento": "peppers sweet raw",
    "calabacin": "zucchini raw",
    "coliflor": "cauliflower cooked",
    "verduras": "vegetables mixed cooked",
    # fruits
    "manzana": "apple raw with skin",
    "platano": "banana raw",
    "banana": "banana raw",
    "naranja": "orange raw",
    "fresas": "strawberries raw",
    "uvas": "grapes raw",
    "pina": "pineapple raw",
    "mango": "mango raw",
    "pera": "pear raw",
    "sandia": "watermelon raw",
    # dairy
    "leche": "milk whole",
    "yogur": "yogurt plain whole milk",
    "yogurt": "yogurt plain whole milk",
    "queso": "cheese cheddar",
    "queso fresco": "cheese queso fresco",
    "mantequilla": "butter salted",
    # fats
    "aguacate": "avocado raw",
    "aceite": "oil vegetable",
    "aceite de oliva": "olive oil",
    "almendras": "almonds raw",
    "nueces": "walnuts raw",
    "mantequilla de mani": "peanut butter smooth",
    # legumes
    "frijoles": "beans black cooked",
    "lentejas": "lentils cooked",
    "garbanzos": "chickpeas cooked",
    # other
    "miel": "honey",
    "azucar": "sugar granulated",
    # dishes whose names contain a shorter staple key
    "empanada": "empanada beef baked",
    "panqueques": "pancakes plain",
    "papaya": "papaya raw",
    "arroz con leche": "rice pudding",
}

# Longest key first so "papas fritas" beats "papa"; ties are alphabetical.
_PARTIAL_KEYS = sorted(SEARCH_TERMS, key=lambda key: (-len(key), key))
MIN_REVERSE_MATCH_LENGTH = 4

USUALLY_COOKED_TOKENS = (
    "rice", "chicken", "meat", "fish", "pasta", "potato", "turkey", "pork",
    "beans", "lentils", "vegetable", "broccoli",
    "arroz", "pollo", "carne", "pescado", "papa", "patata", "pavo", "cerdo",
    "frijol", "lenteja", "verdura", "brocoli",
)

COOKING_STATE_MARKERS = (
    "cooked", "raw", "fried", "grilled", "boiled", "baked", "roasted", "steamed",
    "cocido", "cocida", "crudo", "cruda", "frito", "frita", "asado", "asada",
    "hervido", "hervida", "horneado", "horneada", "al vapor", "a la plancha",
)

VEGETABLE_KEYWORDS = {
    "lechuga", "tomate", "brocoli", "zanahoria", "espinaca", "pepino", "cebolla",
    "pimiento", "calabacin", "coliflor", "apio", "verdura", "col", "acelga", "repollo",
    "lettuce", "tomato", "broccoli", "carrot", "spinach", "cucumber", "onion",
    "zucchini", "cauliflower", "celery", "cabbage", "vegetable",
}

LEAN_PROTEIN_KEYWORDS = {
    "pollo", "pechuga", "pavo", "pescado", "atun", "merluza", "tilapia", "camaron",
    "chicken", "breast", "turkey", "tuna", "cod", "shrimp",
}

# Per 100 g, keyed by exact lowercase name.
KNOWN_VALUES = {
    "miel": {"calories": 304, "protein": 0.3, "carbs": 82.4, "fat": 0},
    "aguacate": {"calories": 160, "protein": 2, "carbs": 8.5, "fat": 14.7},
    "huevo": {"calories": 155, "protein": 13, "carbs": 1.1, "fat": 11},
    "pollo": {"calories": 165, "protein": 31, "carbs": 0, "fat": 3.6},
    "arroz": {"calories": 130, "protein": 2.7, "carbs": 28, "fat": 0.3},
    "pan": {"calories": 265, "protein": 9, "carbs": 49, "fat": 3.2},
}

FALLBACK_ESTIMATE = {"calories": 50, "protein": 1.0, "carbs": 10.0, "fat": 1.0}
FALLBACK_CONFIDENCE_FACTOR = 0.5

NUTRIENT_KEYS = ("calories", "protein", "carbs", "fat")

_PORTION_GRAMS_RE = re.compile(r"(\d+(?:\.\d+)?)\s*g", re.IGNORECASE)


@dataclass(frozen=True)
class ValidationThresholds:
    vegetable_max_kcal: float = 100.0
    lean_protein_min_g: float = 15.0
    lean_protein_max_carbs_g: float = 2.0
    energy_tolerance: float = 0.30

    @classmethod
    def from_config(cls, config: Mapping) -> "ValidationThresholds":
        defaults = cls()
        return cls(
            vegetable_max_kcal=float(config.get("NUTRITION_VEGETABLE_MAX_KCAL", defaults.vegetable_max_kcal)),
            lean_protein_min_g=float(config.get("NUTRITION_LEAN_PROTEIN_MIN_G", defaults.lean_protein_min_g)),
            lean_protein_max_carbs_g=float(
                config.get("NUTRITION_LEAN_PROTEIN_MAX_CARBS_G", defaults.lean_protein_max_carbs_g)
            ),
            energy_tolerance=float(config.get("NUTRITION_ENERGY_TOLERANCE", defaults.energy_tolerance)),
        )


@dataclass
class NutrientEstimate:
    name: str
    estimated_portion: str
    calories: int
    protein: float
    carbs: float
    fat: float
    confidence: float
    source: str
    search_term: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "estimated_portion": self.estimated_portion,
            "estimated_calories": self.calories,
            "estimated_protein": self.protein,
            "estimated_carbs": self.carbs,
            "estimated_fat": self.fat,
            "confidence": self.confidence,
            "source": self.source,
            "search_term": self.search_term,
        }


def round_half_up(value, places: int = 0):
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if places == 0 else float(rounded)


def fold_name(name) -> str:
    text = unicodedata.normalize("NFKD", str(name or "").strip().lower())
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"\s+", " ", text)


def _as_float(value) -> float | None:
    if value in (None, "") or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _words(folded: str) -> list[str]:
    return re.findall(r"[a-z]+", folded)


def _has_keyword(folded: str, keywords: set[str]) -> bool:
    for word in _words(folded):
        if word in keywords:
            return True
        if word.endswith("es") and word[:-2] in keywords:
            return True
        if word.endswith("s") and word[:-1] in keywords:
            return True
    return False


def is_vegetable(name: str) -> bool:
    return _has_keyword(fold_name(name), VEGETABLE_KEYWORDS)


def is_lean_protein(name: str) -> bool:
    return _has_keyword(fold_name(name), LEAN_PROTEIN_KEYWORDS)


def _is_word_of(folded: str, key: str) -> bool:
    # "sal" must not reach "salmon", nor "te" "mantequilla de mani".
    if len(folded) < MIN_REVERSE_MATCH_LENGTH:
        return False
    return f" {folded} " in f" {key} "


def resolve_search_term(name: str) -> tuple[str, str]:
    """Return ``(search_term, rule)`` with rule exact, partial, cooked or passthrough."""
    original = str(name or "").strip()
    folded = fold_name(original)

    if folded in SEARCH_TERMS:
        return (SEARCH_TERMS[folded], "exact")

    if folded:
        for key in _PARTIAL_KEYS:
            if key in folded or _is_word_of(folded, key):
                return (SEARCH_TERMS[key], "partial")

    if any(token in folded for token in USUALLY_COOKED_TOKENS) and not any(
        marker in folded for marker in COOKING_STATE_MARKERS
    ):
        return (f"{original} cooked", "cooked")

    return (original, "passthrough")


def parse_portion_grams(portion) -> float:
    match = _PORTION_GRAMS_RE.search(str(portion or ""))
    if not match:
        return DEFAULT_PORTION_GRAMS
    return float(match.group(1))


def scale_per_100g(per_100g: Mapping, grams: float) -> dict:
    factor = grams / 100
    return {
        "calories": round_half_up((_as_float(per_100g.get("calories")) or 0.0) * factor),
        "protein": round_half_up((_as_float(per_100g.get("protein")) or 0.0) * factor, 1),
        "carbs": round_half_up((_as_float(per_100g.get("carbs")) or 0.0) * factor, 1),
        "fat": round_half_up((_as_float(per_100g.get("fat")) or 0.0) * factor, 1),
    }


def validate_per_100g(name: str, per_100g: Mapping, thresholds: ValidationThresholds | None = None) -> list[str]:
    """Reasons to reject a database record for ``name``; empty when it is plausible."""
    thresholds = thresholds or ValidationThresholds()
    values = {key: _as_float(per_100g.get(key)) for key in NUTRIENT_KEYS}

    missing = [key for key, value in values.items() if value is None]
    if missing:
        return [f"missing {', '.join(missing)}"]

    reasons = []
    negative = [key for key, value in values.items() if value < 0]
    if negative:
        reasons.append(f"negative {', '.join(negative)}")

    calories = values["calories"]
    protein = values["protein"]
    carbs = values["carbs"]
    fat = values["fat"]

    expected = 4 * protein + 4 * carbs + 9 * fat
    if expected > 0 and abs(calories - expected) / expected > thresholds.energy_tolerance:
        logger.warning(
            "Energy for %r looks inconsistent: %.0f kcal reported, %.0f kcal from macros",
            name,
            calories,
            expected,
        )

    if is_vegetable(name) and calories > thresholds.vegetable_max_kcal:
        reasons.append(f"vegetable with {calories:g} kcal/100g (max {thresholds.vegetable_max_kcal:g})")

    if is_lean_protein(name):
        if protein < thresholds.lean_protein_min_g:
            reasons.append(f"lean protein with {protein:g} g protein/100g (min {thresholds.lean_protein_min_g:g})")
        if carbs > thresholds.lean_protein_max_carbs_g:
            reasons.append(f"lean protein with {carbs:g} g carbs/100g (max {thresholds.lean_protein_max_carbs_g:g})")

    return reasons


def _clamp_confidence(value) -> float:
    confidence = _as_float(value)
    if confidence is None:
        return 0.5
    return max(0.0, min(1.0, confidence))


def _estimate(name, portion, scaled, confidence, source, term) -> NutrientEstimate:
    return NutrientEstimate(
        name=name,
        estimated_portion=portion,
        calories=scaled["calories"],
        protein=scaled["protein"],
        carbs=scaled["carbs"],
        fat=scaled["fat"],
        confidence=confidence,
        source=source,
        search_term=term,
    )


def reconcile_food(
    name: str,
    portion: str,
    confidence,
    lookup: Callable[[str], Mapping | None] | None,
    thresholds: ValidationThresholds | None = None,
) -> NutrientEstimate:
    name = str(name or "").strip()
    portion = str(portion or "").strip()
    confidence = _clamp_confidence(confidence)
    grams = parse_portion_grams(portion)
    term, rule = resolve_search_term(name)

    record = None
    if lookup is not None and term:
        try:
            record = lookup(term)
        except Exception:
            logger.warning("Nutrition lookup failed for %r (term %r)", name, term, exc_info=True)
            record = None

    if record:
        reasons = validate_per_100g(name, record, thresholds)
        if not reasons:
            logger.debug("Resolved %r via %s term %r", name, rule, term)
            return _estimate(name, portion, scale_per_100g(record, grams), confidence, SOURCE_USDA, term)
        logger.info("Rejected database record for %r (%s): %s", name, term, "; ".join(reasons))

    known = KNOWN_VALUES.get(name.lower())
    if known:
        logger.debug("Using known values for %r", name)
        return _estimate(name, portion, scale_per_100g(known, grams), confidence, SOURCE_KNOWN_VALUES, term)

    logger.info("No nutrition data for %r, using conservative default", name)
    return _estimate(
        name,
        portion,
        dict(FALLBACK_ESTIMATE),
        round(confidence * FALLBACK_CONFIDENCE_FACTOR, 4),
        SOURCE_FALLBACK,
        term,
    )


def reconcile_foods(
    foods: Iterable,
    lookup: Callable[[str], Mapping | None] | None,
    thresholds: ValidationThresholds | None = None,
) -> list[NutrientEstimate]:
    estimates = []
    for food in foods or []:
        if not isinstance(food, Mapping):
            continue
        name = str(food.get("name") or "").strip()
        if not name:
            continue
        estimates.append(
            reconcile_food(name, food.get("estimated_portion"), food.get("confidence"), lookup, thresholds)
        )
    return estimates


def sum_estimates(estimates: Iterable[NutrientEstimate]) -> dict:
    estimates = list(estimates)
    return {
        "total_estimated_calories": sum(item.calories for item in estimates),
        "total_estimated_protein": round_half_up(sum(item.protein for item in estimates), 1),
        "total_estimated_carbs": round_half_up(sum(item.carbs for item in estimates), 1),
        "total_estimated_fat": round_half_up(sum(item.fat for item in estimates), 1),
    }


def entry_nutrition(food, servings) -> dict:
    multiplier = _as_float(servings)
    if multiplier is None:
        multiplier = 1.0
    return {
        "calories": round_half_up((food.calories or 0) * multiplier),
        "protein": round_half_up((food.protein_g or 0) * multiplier, 1),
        "carbs": round_half_up((food.carbs_g or 0) * multiplier, 1),
        "fat": round_half_up((food.fat_g or 0) * multiplier, 1),
    }


def daily_totals(entries: Iterable) -> "OrderedDict[str, dict]":
    """Per-day sums of meal entry nutrition, keyed by ISO date, oldest first."""
    by_day: dict[str, dict] = {}
    for entry in entries:
        if entry.food_item is None or entry.consumed_at is None:
            continue
        key = entry.consumed_at.date().isoformat()
        bucket = by_day.setdefault(key, {"calories": 0, "protein": 0.0, "carbs": 0.0, "fat": 0.0, "entries": 0})
        nutrition = entry_nutrition(entry.food_item, entry.servings)
        bucket["calories"] += nutrition["calories"]
        bucket["protein"] += nutrition["protein"]
        bucket["carbs"] += nutrition["carbs"]
        bucket["fat"] += nutrition["fat"]
        bucket["entries"] += 1

    totals = OrderedDict()
    for key in sorted(by_day):
        bucket = by_day[key]
        for macro in ("protein", "carbs", "fat"):
            bucket[macro] = round_half_up(bucket[macro], 1)
        totals[key] = bucket
    return totals
