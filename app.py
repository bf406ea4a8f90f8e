from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from flask import (
    Flask,
    current_app,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)

# ------ DB ------
from db.models import PurchaseStore, normalize_email

# ------ Serviços ------
from payments import get_webhook_handler
from services.combo import MODE_SECTIONS, ComboGenerator
from services.entitlement import EntitlementGate
from services.errors import ComboError, StoreError, ValidationError
from services.openai_client import OpenAIClient

# ==========================================================
# Config
# ==========================================================
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
log = logging.getLogger("atb")

DEFAULTS = {
    "SECRET_KEY": os.environ.get("SECRET_KEY", "dev-secret-atb"),
    "DATABASE_URL": os.environ.get("DATABASE_URL", "sqlite:///atb.db").strip(),
    # Webhook Kiwify: vazio desativa a verificação (sandbox/testes)
    "KIWIFY_WEBHOOK_SECRET": os.environ.get("KIWIFY_WEBHOOK_SECRET", ""),
    "PAYMENT_PROVIDER": os.environ.get("PAYMENT_PROVIDER", "kiwify"),
    # secoes: 3 chamadas em texto + template | html: HTML do modelo direto
    "COMBO_MODE": os.environ.get("COMBO_MODE", MODE_SECTIONS).strip().lower(),
    "SETUP_TOKEN": os.environ.get("SETUP_TOKEN", ""),
}


# ==========================================================
# Factory
# ==========================================================
def create_app(config: Optional[dict] = None, store=None, ai_client=None) -> Flask:
    """
    Monta o app com os serviços explícitos (store + cliente de IA).
    Testes passam config/store/ai_client próprios.
    """
    app = Flask(__name__)
    app.config.update(DEFAULTS)
    if config:
        app.config.update(config)

    store = store or PurchaseStore(app.config["DATABASE_URL"])
    ai_client = ai_client or OpenAIClient()

    try:
        store.ensure_schema()
        log.info("[BOOT] DB inicializado.")
    except StoreError as e:
        log.warning("[BOOT] init_db falhou: %s", e)

    app.extensions["atb"] = {
        "store": store,
        "gate": EntitlementGate(store),
        "webhook": get_webhook_handler(
            store,
            secret=app.config["KIWIFY_WEBHOOK_SECRET"],
            provider=app.config["PAYMENT_PROVIDER"],
        ),
        "combo": ComboGenerator(store, ai_client, mode=app.config["COMBO_MODE"]),
    }

    _register_routes(app)
    return app


def _svc(name: str):
    return current_app.extensions["atb"][name]


def _error(e: ComboError):
    return jsonify({"error": e.message}), e.status_code


# ==========================================================
# Rotas
# ==========================================================
def _register_routes(app: Flask) -> None:

    # --- Web ---
    @app.get("/")
    def home():
        return redirect(url_for("produto"))

    @app.get("/produto")
    def produto():
        return render_template("produto.html")

    @app.get("/entrega")
    def entrega():
        return render_template("entrega.html")

    @app.get("/health")
    def health():
        return jsonify({"status": "ok", "time": datetime.now(timezone.utc).isoformat()})

    # --- Diagnóstico / schema ---
    @app.get("/__admin/ensure_schema")
    def admin_ensure_schema():
        token = request.args.get("token")
        if not app.config["SETUP_TOKEN"] or token != app.config["SETUP_TOKEN"]:
            return jsonify({"ok": False, "error": "Forbidden"}), 403
        try:
            _svc("store").ensure_schema()
            _svc("store").ping()
        except StoreError as e:
            return jsonify({"ok": False, "error": str(e)}), 500
        return jsonify({"ok": True})

    # --- Webhook Kiwify ---
    @app.post("/api/kiwify-webhook")
    @app.post("/webhooks/kiwify", endpoint="webhook_kiwify_alias")
    def webhook_kiwify():
        raw = request.get_data(cache=True, as_text=False)
        signature = request.headers.get("X-Kiwify-Signature")
        try:
            body = _svc("webhook").handle(raw, signature)
        except StoreError as e:
            log.error("[WEBHOOK] Erro ao salvar compra: %s", e)
            return jsonify({"error": "Erro ao processar webhook Kiwify"}), 500
        except ComboError as e:
            return _error(e)
        except Exception:
            log.exception("[WEBHOOK] Erro ao processar webhook Kiwify")
            return jsonify({"error": "Erro ao processar webhook Kiwify"}), 500
        return jsonify(body)

    # --- Validação de acesso ---
    @app.post("/api/validar-acesso")
    def validar_acesso():
        data = request.get_json(silent=True) or {}
        email = normalize_email(data.get("email"))
        if not email:
            return _error(ValidationError("Email é obrigatório"))
        try:
            acesso, motivo, record = _svc("gate").access_status(email)
        except StoreError as e:
            log.error("[ACESSO] Erro ao consultar compras: %s", e)
            return jsonify({"error": "Erro ao validar acesso"}), 500

        log.info("[ACESSO] Validação para %s: acesso=%s motivo=%s", email, acesso, motivo)
        usuario = None
        if record is not None:
            usuario = {"email": record.email, "nome": record.customer_name, "order_id": record.order_id}
        return jsonify({"acesso": acesso, "usuario": usuario, "motivo": motivo})

    # --- Geração do combo ---
    @app.post("/api/gerar-combo")
    def gerar_combo():
        data = request.get_json(silent=True) or {}
        nome = (data.get("nome") or "").strip()
        nascimento = (data.get("data") or "").strip()
        email = normalize_email(data.get("email"))
        if not nome or not nascimento or not email:
            return _error(ValidationError("Nome, data de nascimento e email são obrigatórios."))
        try:
            result = _svc("combo").generate(nome, nascimento, email)
        except StoreError as e:
            log.error("[COMBO] Erro no banco para %s: %s", email, e)
            return jsonify({"error": "Erro interno ao gerar combo"}), 500
        except ComboError as e:
            log.warning("[COMBO] %s para %s: %s", type(e).__name__, email, e.message)
            return _error(e)
        except Exception:
            log.exception("[COMBO] Erro interno ao gerar combo para %s", email)
            return jsonify({"error": "Erro interno ao gerar combo"}), 500
        return jsonify({"success": True, "html": result.html, "analises": result.analyses()})


# ==========================================================
# App padrão (app:app)
# ==========================================================
app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", "5000")), debug=True)
