"""Bulk-load client overrides from a CSV file.

Example:
    python scripts/import_overrides.py overrides.csv
    python scripts/import_overrides.py legacy.csv --direct   # skip registry checks
"""
import argparse
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'src'))

from override_pricing.config.settings import get_settings
from override_pricing.data.import_overrides import import_overrides, load_overrides_csv
from override_pricing.services.pricing_service import PricingService
from override_pricing.utils.logging import configure_logging


def main():
    parser = argparse.ArgumentParser(description="Import client price overrides from CSV")
    parser.add_argument("csv_path", type=Path)
    parser.add_argument("--direct", action="store_true",
                        help="insert straight into the store (no conflict checks, no audit)")
    parser.add_argument("--actor", default="import")
    args = parser.parse_args()

    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.json_logs)
    service = PricingService.from_settings(settings)

    records, errors = load_overrides_csv(args.csv_path)
    for error in errors:
        print(f"❌ {error}")

    if args.direct:
        report = import_overrides(records, store=service.admin.store)
    else:
        report = import_overrides(records, registry=service.admin, actor_id=args.actor)

    for error in report.errors:
        print(f"❌ {error}")
    print(f"✅ Imported {len(report.imported)} override(s)")
    sys.exit(0 if not errors and report.ok else 1)


if __name__ == "__main__":
    main()
