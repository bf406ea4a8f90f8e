# payments/__init__.py
import os

_PROVIDER = os.environ.get("PAYMENT_PROVIDER", "kiwify").strip().lower()

def get_webhook_handler(store, secret: str = "", provider: str = ""):
    """
    Retorna o handler de webhook do provedor configurado.
    - kiwify (default): única plataforma de checkout suportada.
    """
    provider = (provider or _PROVIDER).strip().lower()
    if provider != "kiwify":
        raise ValueError(f"PAYMENT_PROVIDER não suportado: {provider}")
    from .kiwify import KiwifyWebhook
    return KiwifyWebhook(store, secret=secret)
