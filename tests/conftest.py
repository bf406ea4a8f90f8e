import os
import tempfile

# antes de importar o app: banco temporário e IA em modo mock
_TMP = tempfile.mkdtemp(prefix="atb-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_TMP, "boot.db")
os.environ["MOCK_AI"] = "1"
os.environ.pop("KIWIFY_WEBHOOK_SECRET", None)

import pytest

from app import create_app
from db.models import PurchaseStore

WEBHOOK_SECRET = "segredo-teste"


class FakeAIClient:
    def __init__(self, text="Primeiro parágrafo da leitura.\n\nSegundo parágrafo.", error=None, exc=None):
        self.text = text
        self.error = error
        self.exc = exc
        self.calls = []

    def generate_text(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.exc is not None:
            raise self.exc
        if self.error:
            return {"ok": False, "error": self.error}
        return {"ok": True, "text": self.text}


@pytest.fixture
def store(tmp_path):
    s = PurchaseStore("sqlite:///" + str(tmp_path / "atb.db"))
    s.ensure_schema()
    return s


@pytest.fixture
def ai():
    return FakeAIClient()


@pytest.fixture
def make_app(store, ai):
    def _make(config=None, store_=None, ai_=None):
        cfg = {"TESTING": True, "KIWIFY_WEBHOOK_SECRET": WEBHOOK_SECRET}
        cfg.update(config or {})
        return create_app(config=cfg, store=store_ or store, ai_client=ai_ or ai)
    return _make


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def client(app):
    return app.test_client()


def grant(store, email="ana@example.com", name="Ana Maria", order_id="ORD-1"):
    store.upsert(email, {"order_id": order_id, "customer_name": name, "product_id": "PRD-1"})
