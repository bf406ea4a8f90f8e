import json

import pytest

from conftest import WEBHOOK_SECRET, grant
from db import db_cursor
from db.models import PurchaseStore
from payments import get_webhook_handler
from payments.kiwify import GRANT, IGNORE, REVOKE, classify_status, parse_event, verify_signature
from services.errors import AuthenticationError, StoreError
from utils.security import hmac_sha256_hex

URL = "/api/kiwify-webhook"


def _payload(status="paid", email="ana@example.com", order_id="ORD-1", **extra):
    body = {
        "order_id": order_id,
        "order_status": status,
        "product_id": "PRD-1",
        "Customer": {
            "full_name": "Ana Maria",
            "first_name": "Ana",
            "email": email,
            "mobile": "+5511999999999",
            "CPF": "12345678900",
            "city": "São Paulo",
            "state": "SP",
        },
    }
    body.update(extra)
    return body


def _post(client, payload, secret=WEBHOOK_SECRET, signature=None, url=URL):
    raw = json.dumps(payload).encode()
    headers = {}
    if signature is not None:
        headers["X-Kiwify-Signature"] = signature
    elif secret:
        headers["X-Kiwify-Signature"] = hmac_sha256_hex(secret, raw)
    return client.post(url, data=raw, headers=headers, content_type="application/json")


def _rows(store):
    with db_cursor(store.database_url) as cur:
        cur.execute("SELECT email, order_id, customer_city, approved, combo_generated FROM purchases")
        return [dict(r) for r in cur.fetchall()]


# ---------------- mapeamento puro ----------------
@pytest.mark.parametrize("status,expected", [
    ("paid", GRANT), ("APPROVED", GRANT), ("compra_aprovada", GRANT),
    ("refunded", REVOKE), ("Cancelled", REVOKE), ("reembolso", REVOKE), ("compra_cancelada", REVOKE),
    ("waiting_payment", IGNORE), ("chargedback", IGNORE), ("", IGNORE), (None, IGNORE),
])
def test_classify_status(status, expected):
    assert classify_status(status) == expected


@pytest.mark.parametrize("payload,expected", [
    ({"customer_email": " Ana@Example.com "}, "ana@example.com"),
    ({"email": "b@example.com", "Customer": {"email": "c@example.com"}}, "b@example.com"),
    ({"Customer": {"email": "c@example.com"}}, "c@example.com"),
    ({"customer": {"email": "d@example.com"}}, "d@example.com"),
    ({"buyer_email": "e@example.com"}, "e@example.com"),
])
def test_parse_event_email_priority(payload, expected):
    assert parse_event(payload).email == expected


def test_parse_event_without_email_is_none():
    assert parse_event({"order_id": "X", "order_status": "paid"}) is None
    assert parse_event({"Customer": "not-a-dict"}) is None


def test_parse_event_copies_denormalized_fields():
    event = parse_event(_payload(Product={"product_id": "P-9", "product_name": "Mapa"},
                                 payment_method="pix",
                                 Subscription={"id": "S1", "status": "active"}))
    assert event.status == "paid"
    assert event.customer_name == "Ana Maria"
    assert event.fields["customer_cpf"] == "12345678900"
    assert event.fields["product_id"] == "P-9"
    assert event.fields["product_name"] == "Mapa"
    assert event.fields["payment_method"] == "pix"
    assert event.fields["subscription_status"] == "active"


def test_verify_signature_skips_without_secret_or_header():
    verify_signature("", b"{}", "qualquer")
    verify_signature("s", b"{}", None)
    with pytest.raises(AuthenticationError):
        verify_signature("s", b"{}", "deadbeef")


def test_unknown_provider_is_rejected(store):
    with pytest.raises(ValueError):
        get_webhook_handler(store, provider="pagseguro")


# ---------------- rota ----------------
def test_paid_event_grants_access(client, store):
    r = _post(client, _payload())
    assert r.status_code == 200
    assert r.json["success"] is True
    assert r.json["email"] == "ana@example.com"
    rows = _rows(store)
    assert len(rows) == 1
    assert rows[0]["approved"] == 1 and rows[0]["combo_generated"] == 0
    assert rows[0]["customer_city"] == "São Paulo"


def test_alias_route(client, store):
    r = _post(client, _payload(), url="/webhooks/kiwify")
    assert r.status_code == 200
    assert store.get("ana@example.com") is not None


def test_bad_signature_is_401_without_mutation(client, store):
    r = _post(client, _payload(), signature="0" * 64)
    assert r.status_code == 401
    assert r.json["error"] == "Assinatura inválida"
    assert _rows(store) == []


def test_signature_is_over_raw_body(client, store):
    raw = b'{"order_status": "paid",   "customer_email": "ana@example.com"}'
    sig = hmac_sha256_hex(WEBHOOK_SECRET, raw)
    r = client.post(URL, data=raw, headers={"X-Kiwify-Signature": sig.upper()},
                    content_type="application/json")
    assert r.status_code == 200
    assert store.get("ana@example.com") is not None


def test_missing_signature_header_is_accepted(client, store):
    r = _post(client, _payload(), secret=None)
    assert r.status_code == 200
    assert store.get("ana@example.com") is not None


def test_no_secret_configured_skips_verification(make_app, store):
    client = make_app({"KIWIFY_WEBHOOK_SECRET": ""}).test_client()
    r = _post(client, _payload(), signature="lixo")
    assert r.status_code == 200


def test_ping_without_email_is_noop(client, store):
    r = _post(client, {"order_status": "paid", "order_id": "TESTE"})
    assert r.status_code == 200
    assert "sem email" in r.json["message"]
    assert _rows(store) == []


def test_duplicate_delivery_keeps_one_row_with_latest_fields(client, store):
    _post(client, _payload(order_id="ORD-1"))
    _post(client, _payload(order_id="ORD-2"))
    rows = _rows(store)
    assert len(rows) == 1
    assert rows[0]["order_id"] == "ORD-2"


def test_refund_then_paid_resets_consumption(client, store):
    _post(client, _payload())
    store.set_combo_generated("ana@example.com", True)
    assert _post(client, _payload(status="refunded")).status_code == 200
    assert store.get("ana@example.com") is None
    _post(client, _payload(status="paid"))
    record = store.get("ana@example.com")
    assert record.approved is True and record.combo_generated is False


def test_refund_of_unknown_email_is_ok(client):
    r = _post(client, _payload(status="compra_cancelada", email="x@example.com"))
    assert r.status_code == 200
    assert r.json["message"] == "Acesso removido com sucesso"


def test_other_status_is_ignored(client, store):
    grant(store)
    r = _post(client, _payload(status="waiting_payment", order_id="ORD-X"))
    assert r.status_code == 200
    assert r.json["status"] == "waiting_payment"
    assert store.get("ana@example.com").order_id == "ORD-1"


class _BrokenStore(PurchaseStore):
    def upsert(self, email, fields):
        raise StoreError("upsert", RuntimeError("conexão recusada"))

    def delete(self, email):
        raise StoreError("delete", RuntimeError("conexão recusada"))


def test_store_failure_on_grant_is_500(make_app, store):
    client = make_app(store_=_BrokenStore(store.database_url)).test_client()
    r = _post(client, _payload())
    assert r.status_code == 500
    assert "error" in r.json


def test_store_failure_on_revoke_is_logged_only(make_app, store):
    client = make_app(store_=_BrokenStore(store.database_url)).test_client()
    r = _post(client, _payload(status="refunded"))
    assert r.status_code == 200
    assert r.json["success"] is True


def test_malformed_body_is_500_without_mutation(client, store):
    raw = b"{not json"
    r = client.post(
        URL,
        data=raw,
        headers={"X-Kiwify-Signature": hmac_sha256_hex(WEBHOOK_SECRET, raw)},
        content_type="application/json",
    )
    assert r.status_code == 500
    assert r.json == {"error": "Erro ao processar webhook Kiwify"}
    assert _rows(store) == []


def test_handler_raises_on_malformed_body(store):
    handler = get_webhook_handler(store, secret="")
    with pytest.raises(ValueError):
        handler.handle(b"{not json", None)


def test_non_string_status_is_ignored(client, store):
    r = _post(client, _payload(status=123))
    assert r.status_code == 200
    assert r.json["status"] == "123"
    assert _rows(store) == []
