"""
Override Importer - Loads client price overrides from CSV.

Reads an overrides CSV, parses each row into an OverrideRecord and writes
the records either through the registry (validated, conflict-checked,
audited) or directly into the store for legacy data migrations.

Expected columns (blank = not set):
    id, client_id, product_id, category_name, discount_percent, fixed_price,
    minimum_quantity, valid_from, valid_until, is_active, notes, created_by
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

import pandas as pd

from ..engine.models import OverrideRecord, RECORD_FIELDS, utc_now
from ..errors import ConflictError, PricingError, ValidationError
from ..services.override_registry import OverrideRegistry
from ..storage.override_store import OverrideStore
from ..utils.logging import get_logger

log = get_logger(__name__)

REQUIRED_COLUMNS = ('client_id',)


@dataclass
class ImportReport:
    """Outcome of an import run."""
    imported: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def parse_bool(value: Optional[str]) -> bool:
    """Parse a boolean from CSV string (blank = true)."""
    if value is None:
        return True
    return value.lower() in ('true', '1', 'yes', 'on')


def _load_csv(path: Path) -> pd.DataFrame:
    df = pd.read_csv(path, dtype=str).fillna('')
    # Strip all strings and headers
    df.columns = [c.strip() for c in df.columns]
    for col in df.columns:
        df[col] = df[col].astype(str).str.strip()
    return df


def load_overrides_csv(path: Union[str, Path]) -> tuple[list[OverrideRecord], list[str]]:
    """
    Parse overrides from a CSV file.

    Returns (records, errors) - rows that fail to parse are reported with
    their CSV line number and skipped.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Overrides CSV not found at {path}")

    df = _load_csv(path)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        return [], [f"Missing required column(s): {', '.join(missing)}"]

    records = []
    errors = []
    columns = [c for c in RECORD_FIELDS if c in df.columns and c not in ('created_at', 'updated_at')]

    for index, row in df.iterrows():
        line_num = index + 2  # header is line 1
        data = {c: (row[c] or None) for c in columns}
        if not data.get('client_id'):
            errors.append(f"Line {line_num}: client_id is required")
            continue
        data['is_active'] = parse_bool(data.get('is_active'))
        try:
            records.append(OverrideRecord.build(**data))
        except ValidationError as e:
            errors.append(f"Line {line_num}: {e}")

    log.info("Parsed %d override(s) from %s (%d error(s))", len(records), path, len(errors))
    return records, errors


def import_overrides(
    records: list[OverrideRecord],
    registry: Optional[OverrideRegistry] = None,
    store: Optional[OverrideStore] = None,
    actor_id: Optional[str] = None,
) -> ImportReport:
    """
    Write parsed overrides.

    With a registry every record is validated, conflict-checked and audited;
    failures are collected per record and the rest continue. With only a
    store the records are inserted as-is in one transaction (legacy path:
    overlapping rows are possible and left to the resolver's tie-break;
    duplicate ids are reported per record).
    """
    if (registry is None) == (store is None):
        raise ValueError("Pass exactly one of registry or store")

    report = ImportReport()

    if registry is not None:
        for record in records:
            try:
                created = registry.create(record, actor_id=actor_id)
                report.imported.append(created.id)
            except PricingError as e:
                report.errors.append(f"{record.id}: {e}")
        return report

    now = utc_now()
    with store.transaction() as tx:
        for record in records:
            stamped = OverrideRecord.from_dict({
                **record.to_dict(),
                'valid_from': record.valid_from or now,
                'created_at': record.created_at or now,
                'updated_at': now,
            })
            try:
                tx.insert(stamped)
            except ConflictError as e:
                report.errors.append(f"{record.id}: {e}")
                continue
            report.imported.append(stamped.id)
    log.warning("Imported %d override(s) directly into the store without conflict checks", len(report.imported))
    return report
