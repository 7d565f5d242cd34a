import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from matic import create_app
from matic.food_catalog import import_foods_from_usda, seed_common_foods_if_needed


def main():
    parser = argparse.ArgumentParser(
        description="Import per-100 g foods (Foundation and SR Legacy) from USDA FoodData Central into the catalog."
    )
    parser.add_argument(
        "queries",
        nargs="+",
        help="Search terms to import (example: avocado honey chicken rice).",
    )
    parser.add_argument(
        "--max-results",
        type=int,
        default=25,
        help="Max USDA results per query, capped at 25 (default: 25).",
    )
    parser.add_argument(
        "--skip-seed",
        action="store_true",
        help="Do not sync the built-in reference foods first.",
    )
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if not args.skip_seed:
            seed_common_foods_if_needed()
        total = 0
        for query in args.queries:
            imported = import_foods_from_usda(query, max_results=args.max_results)
            total += imported
            print(f"{query}: imported {imported}")
        print(f"Total imported: {total}")


if __name__ == "__main__":
    main()
