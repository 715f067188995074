"""Create one client override from the command line.

Example:
    python scripts/create_override.py C1 --product P1 --discount 10 --min-qty 5 --from 2025-01-01
"""
import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'src'))

from override_pricing.config.settings import get_settings
from override_pricing.engine.models import OverrideRecord
from override_pricing.errors import ConflictError, PricingError
from override_pricing.services.pricing_service import PricingService
from override_pricing.utils.logging import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Create a client price override")
    parser.add_argument("client_id")
    parser.add_argument("--product", dest="product_id")
    parser.add_argument("--category", dest="category_name")
    parser.add_argument("--discount", dest="discount_percent")
    parser.add_argument("--fixed-price", dest="fixed_price")
    parser.add_argument("--min-qty", dest="minimum_quantity", default=1)
    parser.add_argument("--from", dest="valid_from")
    parser.add_argument("--until", dest="valid_until")
    parser.add_argument("--notes")
    parser.add_argument("--actor", default="cli")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    service = PricingService.from_settings(settings)

    try:
        record = OverrideRecord.build(
            client_id=args.client_id,
            product_id=args.product_id,
            category_name=args.category_name,
            discount_percent=args.discount_percent,
            fixed_price=args.fixed_price,
            minimum_quantity=args.minimum_quantity,
            valid_from=args.valid_from,
            valid_until=args.valid_until,
            notes=args.notes,
        )
        created = service.admin.create(record, actor_id=args.actor)
        print(f"✅ Created override: {created.id}")
    except ConflictError as e:
        print(f"❌ Conflict with override {e.conflicting_id}: {e}")
        sys.exit(1)
    except PricingError as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
