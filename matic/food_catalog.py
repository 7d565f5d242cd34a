import logging
import os
import secrets
import string
import time
from typing import Any, Callable

import httpx
from flask import current_app, has_app_context

from matic import db
from matic.models import FoodItem
from matic.nutrition import KNOWN_VALUES

logger = logging.getLogger(__name__)

USDA_SEARCH_URL = "https://api.nal.usda.gov/fdc/v1/foods/search"

# Foundation and SR Legacy records are reported per 100 g.
PER_100G_DATA_TYPES = ["Foundation", "SR Legacy"]

# nutrientId (search API) and legacy nutrientNumber -> (field, unit)
NUTRIENT_ID_MAP = {
    1008: ("calories", "kcal"),
    1003: ("protein", "g"),
    1005: ("carbs", "g"),
    1004: ("fat", "g"),
}
NUTRIENT_NUMBER_MAP = {
    "208": ("calories", "kcal"),
    "203": ("protein", "g"),
    "205": ("carbs", "g"),
    "204": ("fat", "g"),
}

SEED_DISPLAY_NAMES = {
    "miel": "Miel",
    "aguacate": "Aguacate",
    "huevo": "Huevo",
    "pollo": "Pollo (pechuga cocida)",
    "arroz": "Arroz blanco cocido",
    "pan": "Pan blanco",
}

_COMMON_SEED_SYNCED = False
_MANUAL_ID_ALPHABET = string.ascii_lowercase + string.digits


def safe_str(value, max_len: int):
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_len]


def _usda_settings() -> tuple[str, float]:
    if has_app_context():
        return (
            current_app.config.get("USDA_API_KEY") or "DEMO_KEY",
            float(current_app.config.get("USDA_TIMEOUT_SECONDS") or 8.0),
        )
    api_key = os.getenv("USDA_API_KEY") or os.getenv("FDC_API_KEY") or "DEMO_KEY"
    return (api_key, float(os.getenv("USDA_TIMEOUT_SECONDS") or 8.0))


def _log_warning(message: str, *args) -> None:
    (current_app.logger if has_app_context() else logger).warning(message, *args)


def parse_usda_nutrients(food_row: dict[str, Any]) -> dict[str, float]:
    parsed: dict[str, float] = {}
    for nutrient in (food_row.get("foodNutrients") or []):
        nutrient_id = nutrient.get("nutrientId") or ((nutrient.get("nutrient") or {}).get("id"))
        mapped = NUTRIENT_ID_MAP.get(nutrient_id)
        if not mapped:
            nutrient_number = str(
                nutrient.get("nutrientNumber")
                or nutrient.get("number")
                or ((nutrient.get("nutrient") or {}).get("number") or "")
            )
            mapped = NUTRIENT_NUMBER_MAP.get(nutrient_number)
        if not mapped:
            continue

        field_name, unit = mapped
        unit_name = str(nutrient.get("unitName") or ((nutrient.get("nutrient") or {}).get("unitName")) or "")
        if unit_name and unit_name.lower() != unit:
            continue

        value = nutrient.get("value")
        if value is None:
            value = nutrient.get("amount")
        if value is None:
            continue
        try:
            parsed[field_name] = float(value)
        except (TypeError, ValueError):
            continue
    return parsed


def _search_usda(payload: dict, client: httpx.Client | None = None) -> list[dict]:
    api_key, timeout = _usda_settings()
    try:
        if client is not None:
            response = client.post(USDA_SEARCH_URL, params={"api_key": api_key}, json=payload, timeout=timeout)
        else:
            response = httpx.post(USDA_SEARCH_URL, params={"api_key": api_key}, json=payload, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as exc:
        _log_warning("USDA search failed for %r: %s", payload.get("query"), exc)
        return []
    except ValueError:
        _log_warning("USDA search returned a non-JSON body for %r", payload.get("query"))
        return []

    foods = data.get("foods") if isinstance(data, dict) else None
    return [row for row in (foods or []) if isinstance(row, dict)]


def search_usda_per_100g(term: str, client: httpx.Client | None = None) -> dict | None:
    term = (term or "").strip()
    if not term:
        return None

    foods = _search_usda(
        {"query": term, "dataType": PER_100G_DATA_TYPES, "pageSize": 5},
        client=client,
    )
    if not foods:
        return None

    first = foods[0]
    nutrients = parse_usda_nutrients(first)
    return {
        "fdc_id": first.get("fdcId"),
        "description": first.get("description"),
        "calories": nutrients.get("calories", 0.0),
        "protein": nutrients.get("protein", 0.0),
        "carbs": nutrients.get("carbs", 0.0),
        "fat": nutrients.get("fat", 0.0),
    }


def usda_lookup(client: httpx.Client | None = None) -> Callable[[str], dict | None]:
    def lookup(term: str) -> dict | None:
        return search_usda_per_100g(term, client=client)

    return lookup


def lookup_foods(names: list[str], client: httpx.Client | None = None) -> list[dict]:
    """Per-100 g records for ``names``; names with no hit are left out."""
    results = []
    for name in names or []:
        if not isinstance(name, str) or not name.strip():
            continue
        record = search_usda_per_100g(name, client=client)
        if record is None:
            continue
        results.append(
            {
                "name": name,
                "calories": record["calories"],
                "protein": record["protein"],
                "carbs": record["carbs"],
                "fat": record["fat"],
                "per100g": True,
            }
        )
    return results


def generate_manual_external_id() -> str:
    suffix = "".join(secrets.choice(_MANUAL_ID_ALPHABET) for _ in range(9))
    return f"manual_{int(time.time() * 1000)}_{suffix}"


def create_manual_food(
    name: str,
    calories: float | None,
    protein_g: float | None,
    carbs_g: float | None,
    fat_g: float | None,
    brand: str | None = None,
    serving_description: str | None = None,
) -> FoodItem:
    clean_name = safe_str(name, 255)
    if not clean_name:
        raise ValueError("Food name is required.")
    for label, value in (("calories", calories), ("protein", protein_g), ("carbs", carbs_g), ("fat", fat_g)):
        if value is not None and value < 0:
            raise ValueError(f"{label} cannot be negative.")

    food = FoodItem(
        external_id=generate_manual_external_id(),
        name=clean_name,
        brand=safe_str(brand, 255),
        serving_description=safe_str(serving_description, 120) or "1 porción",
        calories=calories,
        protein_g=protein_g,
        carbs_g=carbs_g,
        fat_g=fat_g,
        source="manual",
    )
    db.session.add(food)
    return food


def seed_common_foods_if_needed() -> None:
    global _COMMON_SEED_SYNCED
    if _COMMON_SEED_SYNCED:
        return

    changed = False
    for key, values in KNOWN_VALUES.items():
        external_id = f"seed:{key}"
        existing = FoodItem.query.filter_by(external_id=external_id).first()
        fields = {
            "name": SEED_DISPLAY_NAMES.get(key, key.title()),
            "serving_description": "100 g",
            "calories": values["calories"],
            "protein_g": values["protein"],
            "carbs_g": values["carbs"],
            "fat_g": values["fat"],
        }

        if existing:
            # Keep seeded rows in step with the in-code table.
            for field_name, field_value in fields.items():
                if getattr(existing, field_name) != field_value:
                    setattr(existing, field_name, field_value)
                    changed = True
            continue

        db.session.add(FoodItem(external_id=external_id, source="seed", **fields))
        changed = True

    if changed:
        db.session.commit()
    _COMMON_SEED_SYNCED = True


def import_foods_from_usda(query: str, max_results: int = 12, client: httpx.Client | None = None) -> int:
    query = (query or "").strip()
    if len(query) < 2:
        return 0

    foods = _search_usda(
        {
            "query": query,
            "pageSize": max(1, min(max_results, 25)),
            "dataType": PER_100G_DATA_TYPES,
            "sortBy": "dataType.keyword",
            "sortOrder": "asc",
        },
        client=client,
    )
    if not foods:
        return 0

    imported = 0
    for row in foods:
        fdc_id = row.get("fdcId")
        if not fdc_id:
            continue

        external_id = safe_str(f"usda:{fdc_id}", 64)
        name = safe_str(row.get("description"), 255) or "Unnamed USDA item"
        nutrients = parse_usda_nutrients(row)

        existing = FoodItem.query.filter_by(external_id=external_id).first()
        if existing:
            # USDA revises records over time.
            existing.name = name
            existing.calories = nutrients.get("calories", existing.calories)
            existing.protein_g = nutrients.get("protein", existing.protein_g)
            existing.carbs_g = nutrients.get("carbs", existing.carbs_g)
            existing.fat_g = nutrients.get("fat", existing.fat_g)
            continue

        db.session.add(
            FoodItem(
                external_id=external_id,
                name=name,
                brand=safe_str(row.get("brandOwner"), 255),
                serving_description="100 g",
                calories=nutrients.get("calories"),
                protein_g=nutrients.get("protein"),
                carbs_g=nutrients.get("carbs"),
                fat_g=nutrients.get("fat"),
                source="usda",
            )
        )
        imported += 1

    db.session.commit()
    return imported


def search_catalog(query: str, limit: int = 25) -> list[FoodItem]:
    query = (query or "").strip()
    if not query:
        return []

    source_rank = db.case(
        (FoodItem.source == "manual", 0),
        (FoodItem.source == "seed", 1),
        else_=2,
    )
    return (
        FoodItem.query.filter(FoodItem.name.ilike(f"%{query}%"))
        .order_by(source_rank, FoodItem.name.asc())
        .limit(max(1, min(limit, 100)))
        .all()
    )
