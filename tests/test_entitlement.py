import pytest

from conftest import grant
from db import db_cursor
from services.entitlement import EntitlementGate
from services.errors import AlreadyConsumed, NotFound


def _count(store, email):
    with db_cursor(store.database_url) as cur:
        cur.execute("SELECT COUNT(*) AS n FROM purchases WHERE email = ?", (email,))
        return cur.fetchone()["n"]


def test_no_record_is_not_found(store):
    with pytest.raises(NotFound):
        EntitlementGate(store).check_access("ninguem@example.com")


def test_approved_and_unused_is_granted(store):
    grant(store)
    record = EntitlementGate(store).check_access("  ANA@Example.com ")
    assert record.email == "ana@example.com"
    assert record.customer_name == "Ana Maria"
    assert record.approved is True
    assert record.combo_generated is False


def test_not_approved_is_not_found(store):
    grant(store)
    with db_cursor(store.database_url) as cur:
        cur.execute("UPDATE purchases SET approved = 0 WHERE email = ?", ("ana@example.com",))
    with pytest.raises(NotFound):
        EntitlementGate(store).check_access("ana@example.com")


def test_consumed_is_already_consumed(store):
    grant(store)
    store.set_combo_generated("ana@example.com", True)
    with pytest.raises(AlreadyConsumed):
        EntitlementGate(store).check_access("ana@example.com")


def test_access_status_reasons(store):
    gate = EntitlementGate(store)
    assert gate.access_status("ana@example.com") == (False, "compra_nao_encontrada", None)

    grant(store)
    ok, motivo, record = gate.access_status("ana@example.com")
    assert ok is True and motivo is None and record.order_id == "ORD-1"

    store.set_combo_generated("ana@example.com", True)
    ok, motivo, record = gate.access_status("ana@example.com")
    assert ok is True and motivo == "combo_ja_gerado"
    assert record.combo_generated is True

    # a rota de validação não aplica a geração única
    with pytest.raises(AlreadyConsumed):
        gate.check_access("ana@example.com")


def test_upsert_keeps_one_row_and_refreshes_fields(store):
    grant(store, order_id="ORD-1")
    grant(store, email="Ana@Example.com", order_id="ORD-2", name="Ana M.")
    assert _count(store, "ana@example.com") == 1
    record = store.get("ana@example.com")
    assert record.order_id == "ORD-2"
    assert record.customer_name == "Ana M."


def test_upsert_does_not_reset_consumed_flag(store):
    grant(store)
    store.set_combo_generated("ana@example.com", True)
    grant(store, order_id="ORD-9")
    assert store.get("ana@example.com").combo_generated is True


def test_reserve_is_single_use_until_released(store):
    grant(store)
    assert store.reserve_combo("ana@example.com") is True
    assert store.reserve_combo("ana@example.com") is False
    store.release_combo("ana@example.com")
    assert store.reserve_combo("ana@example.com") is True


def test_reserve_requires_a_purchase(store):
    assert store.reserve_combo("ninguem@example.com") is False


def test_delete_then_grant_starts_fresh(store):
    grant(store)
    store.set_combo_generated("ana@example.com", True)
    assert store.delete("ana@example.com") == 1
    assert store.get("ana@example.com") is None
    grant(store)
    record = store.get("ana@example.com")
    assert record.approved is True and record.combo_generated is False


def test_stamp_sets_generated_at(store):
    grant(store)
    assert store.get("ana@example.com").combo_generated_at is None
    store.stamp_combo_generated("ana@example.com")
    assert store.get("ana@example.com").combo_generated_at is not None
