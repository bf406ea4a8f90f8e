# payments/kiwify.py
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from db.models import PurchaseStore, normalize_email
from services.errors import AuthenticationError, StoreError
from utils.security import hmac_sha256_hex, safe_compare

log = logging.getLogger(__name__)

GRANT = "grant"
REVOKE = "revoke"
IGNORE = "ignore"

GRANT_STATUSES = ("paid", "approved", "compra_aprovada")
REVOKE_STATUSES = ("refunded", "cancelled", "reembolso", "compra_cancelada")


@dataclass
class PurchaseEvent:
    email: str
    status: str
    order_id: str = ""
    customer_name: str = ""
    fields: Dict[str, str] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)


def verify_signature(secret: str, raw_body: bytes, header_sig: Optional[str]) -> None:
    """
    assinatura = hex(HMAC_SHA256(KIWIFY_WEBHOOK_SECRET, raw_body))
    Sem segredo ou sem header a verificação é pulada (entregas de teste/sandbox).
    """
    if not secret or not header_sig:
        log.warning("[WEBHOOK] Assinatura não verificada (segredo ou header ausente).")
        return
    if not safe_compare(hmac_sha256_hex(secret, raw_body), header_sig):
        log.error("[WEBHOOK] Assinatura inválida do webhook Kiwify.")
        raise AuthenticationError("Assinatura inválida")


def _obj(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    v = payload.get(key)
    return v if isinstance(v, dict) else {}


def _first(*values: Any) -> str:
    for v in values:
        if v:
            return str(v)
    return ""


def classify_status(status: Optional[str]) -> str:
    s = (status or "").strip().lower()
    if s in GRANT_STATUSES:
        return GRANT
    if s in REVOKE_STATUSES:
        return REVOKE
    return IGNORE


def parse_event(payload: Dict[str, Any]) -> Optional[PurchaseEvent]:
    """
    Único ponto que conhece as variantes de payload da Kiwify.
    Retorna None quando não há e-mail (ping de teste).
    """
    customer = _obj(payload, "Customer")
    customer_lc = _obj(payload, "customer")
    product = _obj(payload, "Product")
    subscription = _obj(payload, "Subscription")

    email = normalize_email(_first(
        payload.get("customer_email"),
        payload.get("email"),
        customer.get("email"),
        customer_lc.get("email"),
        payload.get("buyer_email"),
    ))
    if not email:
        return None

    order_id = _first(payload.get("order_id"))
    name = _first(customer.get("full_name"), payload.get("customer_name"), customer_lc.get("name"))
    fields = {
        "order_id": order_id,
        "customer_name": name,
        "customer_first_name": _first(customer.get("first_name")),
        "customer_mobile": _first(customer.get("mobile")),
        "customer_cpf": _first(customer.get("CPF"), customer.get("cpf")),
        "customer_city": _first(customer.get("city")),
        "customer_state": _first(customer.get("state")),
        "product_id": _first(product.get("product_id"), payload.get("product_id")),
        "product_name": _first(product.get("product_name")),
        "payment_method": _first(payload.get("payment_method")),
        "subscription_id": _first(subscription.get("id")),
        "subscription_status": _first(subscription.get("status")),
    }
    return PurchaseEvent(
        email=email,
        status=str(payload.get("order_status") or "").strip().lower(),
        order_id=order_id,
        customer_name=name,
        fields=fields,
        raw=payload,
    )


class KiwifyWebhook:
    """
    Webhook idempotente:
    - Verifica assinatura HMAC do corpo bruto.
    - Compra aprovada: upsert por e-mail (approved=true).
    - Reembolso/cancelamento: apaga a linha; falha só é logada, para a Kiwify não reenviar sem fim.
    - Outros status: 200 sem mutação.
    """

    def __init__(self, store: PurchaseStore, secret: str = ""):
        self.store = store
        self.secret = secret

    def handle(self, raw_body: bytes, signature: Optional[str]) -> Dict[str, Any]:
        verify_signature(self.secret, raw_body, signature)

        # corpo que não é JSON sobe como ValueError (500) e a Kiwify reenvia
        payload = json.loads(raw_body or b"{}")
        if not isinstance(payload, dict):
            payload = {}
        log.debug("[WEBHOOK] Payload recebido: %s", payload)

        event = parse_event(payload)
        if event is None:
            log.info("[WEBHOOK] Sem e-mail no payload; nada para salvar.")
            return {
                "success": True,
                "message": "Webhook recebido (sem email no payload de teste).",
                "status": payload.get("order_status") or "unknown",
            }

        outcome = classify_status(event.status)
        log.info("[WEBHOOK] order_id=%s status=%s email=%s -> %s",
                 event.order_id, event.status, event.email, outcome)

        if outcome == GRANT:
            # falha aqui sobe como StoreError (500) e a Kiwify reenvia
            self.store.upsert(event.email, event.fields)
            log.info("[WEBHOOK] Compra aprovada e acesso liberado: %s", event.email)
            return {
                "success": True,
                "message": "Compra processada e acesso liberado com sucesso",
                "order_id": event.order_id,
                "email": event.email,
            }

        if outcome == REVOKE:
            try:
                self.store.delete(event.email)
            except StoreError:
                log.exception("[WEBHOOK] Erro ao remover compra de %s", event.email)
            log.info("[WEBHOOK] Acesso removido (reembolso/cancelamento): %s", event.email)
            return {
                "success": True,
                "message": "Acesso removido com sucesso",
                "order_id": event.order_id,
            }

        return {
            "success": True,
            "message": "Webhook recebido",
            "status": event.status,
            "email": event.email,
        }
