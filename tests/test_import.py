"""
Bulk override import from CSV.
"""
from decimal import Decimal

import pytest

from conftest import make_record, utc
from override_pricing.data.import_overrides import import_overrides, load_overrides_csv
from override_pricing.engine.resolver import Resolver
from override_pricing.storage.override_store import SQLiteOverrideStore

CSV_HEADER = "id,client_id,product_id,category_name,discount_percent,fixed_price,minimum_quantity,valid_from,valid_until,is_active,notes\n"


def write_csv(tmp_path, rows):
    path = tmp_path / "overrides.csv"
    path.write_text(CSV_HEADER + "\n".join(rows) + "\n", encoding="utf-8")
    return path


def test_load_parses_rows_and_reports_bad_lines(tmp_path):
    path = write_csv(tmp_path, [
        "o-1,C1,P1,,10,,5,2025-01-01,,true,spring",
        "o-2,C1,,Helmets,,49.90,,2025-01-01,2025-06-01,false,",
        "o-3,,P1,,10,,,,,,missing client",
        "o-4,C1,P2,,abc,,,,,,bad percent",
        "o-5,C1,P3,,10,,2.5,,,,bad quantity",
    ])

    records, errors = load_overrides_csv(path)

    assert [r.id for r in records] == ["o-1", "o-2"]
    assert records[0].minimum_quantity == 5
    assert records[0].notes == "spring"
    assert records[1].fixed_price == Decimal("49.90")
    assert records[1].valid_until == utc(2025, 6, 1)
    assert records[1].is_active is False
    assert len(errors) == 3
    assert errors[0].startswith("Line 4:")
    assert errors[1].startswith("Line 5:")


def test_load_requires_client_column(tmp_path):
    path = tmp_path / "bad.csv"
    path.write_text("product_id,discount_percent\nP1,10\n", encoding="utf-8")

    records, errors = load_overrides_csv(path)

    assert records == []
    assert "client_id" in errors[0]


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_overrides_csv(tmp_path / "nope.csv")


def test_import_through_registry_reports_conflicts(tmp_path, registry, audit_sink):
    path = write_csv(tmp_path, [
        "o-1,C1,P1,,10,,,2025-01-01,2025-02-01,true,",
        "o-2,C1,P1,,15,,,2025-01-15,2025-03-01,true,",
        "o-3,C1,P1,,10,5,,2025-04-01,,true,",
    ])
    records, _ = load_overrides_csv(path)

    report = import_overrides(records, registry=registry, actor_id="import")

    assert report.imported == ["o-1"]
    assert len(report.errors) == 2
    assert report.errors[0].startswith("o-2:")
    assert "mutually exclusive" in report.errors[1]
    assert len(audit_sink.events("override.created")) == 1


def test_direct_import_leaves_overlaps_to_tie_break(tmp_path, store, registry, audit_sink, error_reporter, clock):
    path = write_csv(tmp_path, [
        "a-first,C1,P1,,10,,,2025-01-01,,true,",
        "b-second,C1,P1,,20,,,2025-01-01,,true,",
    ])
    records, _ = load_overrides_csv(path)

    report = import_overrides(records, store=store)
    result = Resolver(registry, audit_sink, error_reporter=error_reporter, clock=clock).resolve(
        "C1", "P1", None, Decimal("100"), 1, as_of=utc(2025, 3, 1)
    )

    assert report.imported == ["a-first", "b-second"]
    assert len(store.list_all()) == 2
    # Same import timestamp: the greater id wins
    assert result.applied_rule_id == "b-second"
    assert result.final_price == Decimal("80.00")


def test_import_requires_exactly_one_target(registry, store):
    with pytest.raises(ValueError):
        import_overrides([], registry=registry, store=store)
    with pytest.raises(ValueError):
        import_overrides([])


def test_direct_import_reports_duplicate_ids(tmp_path, store, registry):
    registry.create(make_record(id="taken"))
    path = write_csv(tmp_path, [
        "taken,C1,P2,,10,,,2025-01-01,,true,",
        "fresh,C1,P3,,10,,,2025-01-01,,true,",
        "fresh,C1,P4,,15,,,2025-01-01,,true,",
    ])
    records, _ = load_overrides_csv(path)

    report = import_overrides(records, store=store)

    assert report.imported == ["fresh"]
    assert [e.split(":")[0] for e in report.errors] == ["taken", "fresh"]
    assert store.get("fresh").product_id == "P3"


def test_direct_import_into_sqlite_reports_duplicate_ids(tmp_path):
    sqlite_store = SQLiteOverrideStore(tmp_path / "overrides.db")
    path = write_csv(tmp_path, [
        "dup,C1,P1,,10,,,2025-01-01,,true,",
        "dup,C1,P2,,10,,,2025-01-01,,true,",
    ])
    records, _ = load_overrides_csv(path)

    report = import_overrides(records, store=sqlite_store)

    assert report.imported == ["dup"]
    assert len(report.errors) == 1
    assert [r.id for r in sqlite_store.list_all()] == ["dup"]
