"""
Override registry: validation, conflict detection, mutations and audit coupling.
"""
from decimal import Decimal

import pytest

from conftest import make_record, utc
from override_pricing.cancellation import CancellationToken
from override_pricing.errors import (
    AuditWriteError,
    ConflictError,
    NotFoundError,
    OperationCancelledError,
    ValidationError,
)
from override_pricing.services.override_registry import OverrideRegistry, ReferenceChecker


def test_create_stamps_bookkeeping(registry, clock, audit_sink):
    record = registry.create(make_record(valid_from=None), actor_id="admin-1")

    assert record.created_at == clock.now
    assert record.updated_at == clock.now
    assert record.valid_from == clock.now
    assert record.created_by == "admin-1"
    assert registry.get(record.id) == record

    entries = audit_sink.events("override.created")
    assert len(entries) == 1
    assert entries[0].actor_id == "admin-1"
    assert entries[0].payload["override"]["id"] == record.id


def test_overlapping_window_is_rejected(registry, store):
    """A: Jan 1 - Feb 1, B: Jan 15 - Mar 1 for the same client and product."""
    a = registry.create(make_record(client_id="C1", product_id="P1",
                                    valid_from=utc(2025, 1, 1), valid_until=utc(2025, 2, 1)))

    with pytest.raises(ConflictError) as exc_info:
        registry.create(make_record(client_id="C1", product_id="P1",
                                    valid_from=utc(2025, 1, 15), valid_until=utc(2025, 3, 1)))

    assert exc_info.value.conflicting_id == a.id
    assert [r.id for r in store.list_all()] == [a.id]


def test_adjacent_windows_do_not_conflict(registry):
    registry.create(make_record(valid_from=utc(2025, 1, 1), valid_until=utc(2025, 2, 1)))
    second = registry.create(make_record(valid_from=utc(2025, 2, 1), valid_until=utc(2025, 3, 1)))

    assert second.valid_from == utc(2025, 2, 1)


def test_open_ended_window_conflicts_with_later_window(registry):
    registry.create(make_record(valid_from=utc(2025, 1, 1), valid_until=None))

    with pytest.raises(ConflictError):
        registry.create(make_record(valid_from=utc(2026, 1, 1), valid_until=utc(2026, 2, 1)))


def test_different_client_or_target_does_not_conflict(registry):
    registry.create(make_record(client_id="C1", product_id="P1"))
    registry.create(make_record(client_id="C2", product_id="P1"))
    registry.create(make_record(client_id="C1", product_id="P2"))
    registry.create(make_record(client_id="C1", product_id=None, category_name="Helmets"))

    assert registry.stats()["total"] == 4


def test_inactive_record_does_not_conflict(registry):
    registry.create(make_record(is_active=False))
    active = registry.create(make_record())

    assert active.is_active is True


@pytest.mark.parametrize("fields,message", [
    ({"discount_percent": "10", "fixed_price": "5"}, "mutually exclusive"),
    ({"discount_percent": None, "fixed_price": None}, "required"),
    ({"discount_percent": "100.5"}, "between 0 and 100"),
    ({"discount_percent": "-1"}, "between 0 and 100"),
    ({"discount_percent": None, "fixed_price": "-0.01"}, "non-negative"),
    ({"product_id": "P1", "category_name": "Helmets"}, "mutually exclusive"),
    ({"product_id": None, "category_name": None}, "product_id or category_name"),
    ({"minimum_quantity": 0}, "positive integer"),
    ({"valid_from": utc(2025, 2, 1), "valid_until": utc(2025, 2, 1)}, "before valid_until"),
    ({"client_id": ""}, "client_id"),
])
def test_invalid_records_are_rejected(registry, store, fields, message):
    client_id = fields.pop("client_id", "C1")
    record = make_record(client_id=client_id, **fields)

    with pytest.raises(ValidationError) as exc_info:
        registry.create(record)

    assert any(message in e for e in exc_info.value.errors)
    assert store.list_all() == []


def test_validate_warns_about_expired_window(registry):
    result = registry.validate(make_record(valid_from=utc(2024, 1, 1), valid_until=utc(2024, 6, 1)))

    assert result.valid is True
    assert any("expired" in w for w in result.warnings)


def test_update_revalidates_and_stamps(registry, clock, audit_sink):
    record = registry.create(make_record(discount_percent="10"))
    clock.advance(hours=1)

    updated = registry.update(record.id, {"discount_percent": "15", "notes": "renegotiated"}, actor_id="admin-2")

    assert updated.discount_percent == Decimal("15")
    assert updated.notes == "renegotiated"
    assert updated.created_at == record.created_at
    assert updated.updated_at == clock.now
    entry = audit_sink.events("override.updated")[0]
    assert entry.payload["changed_fields"] == ["discount_percent", "notes"]
    assert entry.payload["before"]["discount_percent"] == "10"
    assert entry.payload["after"]["discount_percent"] == "15"


def test_update_can_switch_pricing_mode(registry):
    record = registry.create(make_record(discount_percent="10"))

    updated = registry.update(record.id, {"discount_percent": None, "fixed_price": "42.00"})

    assert updated.fixed_price == Decimal("42.00")
    assert updated.discount_percent is None


def test_update_rejects_both_pricing_fields(registry):
    record = registry.create(make_record(discount_percent="10"))

    with pytest.raises(ValidationError):
        registry.update(record.id, {"fixed_price": "42.00"})

    assert registry.get(record.id).fixed_price is None


def test_update_excludes_itself_from_conflicts(registry):
    record = registry.create(make_record(valid_from=utc(2025, 1, 1), valid_until=utc(2025, 2, 1)))

    updated = registry.update(record.id, {"valid_until": utc(2025, 3, 1)})

    assert updated.valid_until == utc(2025, 3, 1)


def test_update_into_overlap_conflicts(registry):
    first = registry.create(make_record(valid_from=utc(2025, 1, 1), valid_until=utc(2025, 2, 1)))
    second = registry.create(make_record(valid_from=utc(2025, 3, 1), valid_until=utc(2025, 4, 1)))

    with pytest.raises(ConflictError) as exc_info:
        registry.update(second.id, {"valid_from": utc(2025, 1, 20)})

    assert exc_info.value.conflicting_id == first.id
    assert registry.get(second.id).valid_from == utc(2025, 3, 1)


def test_reactivation_is_conflict_checked(registry):
    old = registry.create(make_record(valid_until=None))
    registry.deactivate(old.id)
    registry.create(make_record(valid_until=None))

    with pytest.raises(ConflictError):
        registry.update(old.id, {"is_active": True})


def test_update_rejects_unknown_and_immutable_fields(registry):
    record = registry.create(make_record())

    with pytest.raises(ValidationError):
        registry.update(record.id, {"priority": 5})
    with pytest.raises(ValidationError):
        registry.update(record.id, {"created_at": utc(2020, 1, 1)})


def test_unknown_id_raises_not_found(registry):
    with pytest.raises(NotFoundError):
        registry.get("missing")
    with pytest.raises(NotFoundError):
        registry.update("missing", {"notes": "x"})
    with pytest.raises(NotFoundError):
        registry.deactivate("missing")
    with pytest.raises(NotFoundError):
        registry.delete("missing")


def test_duplicate_id_conflicts(registry):
    registry.create(make_record(id="fixed-id"))

    with pytest.raises(ConflictError):
        registry.create(make_record(id="fixed-id", client_id="C9"))


def test_deactivate_keeps_record(registry, audit_sink):
    record = registry.create(make_record())

    disabled = registry.deactivate(record.id, actor_id="admin-1")

    assert disabled.is_active is False
    assert registry.get(record.id).is_active is False
    assert registry.list_candidates_for("C1", "P1", None) == []
    assert len(audit_sink.events("override.deactivated")) == 1

    # Deactivating twice changes nothing
    registry.deactivate(record.id)
    assert len(audit_sink.events("override.deactivated")) == 1


def test_delete_keeps_audit_history(registry, audit_sink):
    record = registry.create(make_record(discount_percent="10"))

    registry.delete(record.id, actor_id="admin-1")

    with pytest.raises(NotFoundError):
        registry.get(record.id)
    snapshot = audit_sink.events("override.deleted")[0].payload["snapshot"]
    assert snapshot["id"] == record.id
    assert snapshot["discount_percent"] == "10"
    assert audit_sink.events("override.created")[0].payload["override"]["id"] == record.id


# Audit failure rolls the mutation back

def test_create_rolls_back_on_audit_failure(registry, store, audit_sink):
    audit_sink.fail_with = "journal offline"

    with pytest.raises(AuditWriteError):
        registry.create(make_record())

    assert store.list_all() == []


def test_update_and_delete_roll_back_on_audit_failure(registry, audit_sink):
    record = registry.create(make_record(discount_percent="10"))
    audit_sink.fail_with = "journal offline"

    with pytest.raises(AuditWriteError):
        registry.update(record.id, {"discount_percent": "30"})
    with pytest.raises(AuditWriteError):
        registry.delete(record.id)
    with pytest.raises(AuditWriteError):
        registry.deactivate(record.id)

    current = registry.get(record.id)
    assert current.discount_percent == Decimal("10")
    assert current.is_active is True


def test_cancelled_create_is_not_written(registry, store, audit_sink):
    token = CancellationToken()
    token.cancel()

    with pytest.raises(OperationCancelledError):
        registry.create(make_record(), cancel=token)

    assert store.list_all() == []
    assert audit_sink.events() == []


# Queries

def test_list_candidates_matches_product_or_category(registry):
    p1 = registry.create(make_record(product_id="P1"))
    cat = registry.create(make_record(product_id=None, category_name="Helmets"))
    registry.create(make_record(product_id="P2"))
    registry.create(make_record(client_id="C2", product_id="P1"))
    expired = registry.create(make_record(product_id="P1", valid_from=utc(2024, 1, 1),
                                          valid_until=utc(2024, 6, 1)))

    ids = {r.id for r in registry.list_candidates_for("C1", "P1", "Helmets")}

    # Window filtering is left to the resolver
    assert ids == {p1.id, cat.id, expired.id}


def test_list_overrides_filters_and_paginates(registry, clock):
    created = []
    for product in ("P1", "P2", "P3"):
        created.append(registry.create(make_record(product_id=product)))
        clock.advance(minutes=1)
    registry.deactivate(created[0].id)

    newest_first = registry.list_overrides()
    active = registry.list_overrides(is_active=True)
    page = registry.list_overrides(limit=1, offset=1)

    assert [r.id for r in newest_first] == [c.id for c in reversed(created)]
    assert {r.id for r in active} == {created[1].id, created[2].id}
    assert [r.id for r in page] == [created[1].id]
    assert registry.list_overrides(product_id="P2")[0].id == created[1].id


def test_expiring_and_stats(registry, clock):
    soon = registry.create(make_record(product_id="P1", valid_until=utc(2025, 1, 14)))
    registry.create(make_record(product_id="P2", valid_until=utc(2025, 3, 1)))
    registry.create(make_record(product_id=None, category_name="Helmets"))

    assert [r.id for r in registry.expiring(within_days=7)] == [soon.id]

    stats = registry.stats(as_of=utc(2025, 2, 1))
    assert stats["total"] == 3
    assert stats["active"] == 3
    assert stats["expired"] == 1
    assert stats["by_scope"] == {"product": 2, "category": 1}
    assert stats["by_client"] == {"C1": 3}


class _Catalog(ReferenceChecker):
    def client_exists(self, client_id):
        return client_id == "C1"

    def product_exists(self, product_id):
        return product_id == "P1"


def test_reference_checker_rejects_unknown_client_and_product(store, audit_sink, clock):
    registry = OverrideRegistry(store, audit_sink, reference_checker=_Catalog(), clock=clock)

    with pytest.raises(NotFoundError):
        registry.create(make_record(client_id="C404"))
    with pytest.raises(NotFoundError):
        registry.create(make_record(product_id="P404"))
    assert registry.create(make_record()).product_id == "P1"


@pytest.mark.parametrize("field", ["is_active", "minimum_quantity", "client_id"])
def test_update_rejects_null_for_required_fields(registry, audit_sink, field):
    record = registry.create(make_record(minimum_quantity=5))

    with pytest.raises(ValidationError) as exc_info:
        registry.update(record.id, {field: None})

    assert field in exc_info.value.errors[0]
    assert registry.get(record.id) == record
    assert audit_sink.events("override.updated") == []


def test_expiring_defaults_to_configured_window(store, audit_sink, clock):
    registry = OverrideRegistry(store, audit_sink, clock=clock, expiry_window_days=30)
    later = registry.create(make_record(valid_until=utc(2025, 1, 30)))

    assert [r.id for r in registry.expiring()] == [later.id]
    assert registry.expiring(within_days=7) == []
