# services/openai_client.py
# ATB - Cliente OpenAI (texto)
# Requisitos: pip install openai
# Variáveis de ambiente:
#   - OPENAI_API_KEY           (obrigatória fora do modo mock)
#   - OPENAI_TEXT_MODEL        (opcional; padrão: gpt-4o-mini)
#   - OPENAI_MAX_TOKENS / OPENAI_TEMPERATURE / OPENAI_TIMEOUT_S / OPENAI_RETRIES

import logging
import os
import re
import time
from typing import Any, Dict, Optional

from openai import OpenAI

log = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?(.*?)\n?```\s*$", re.S)


def strip_code_fence(s: str) -> str:
    """Remove blocos ```html ... ``` que o modelo às vezes devolve."""
    s = (s or "").strip()
    m = _FENCE_RE.match(s)
    return m.group(1).strip() if m else s


class OpenAIClient:
    """
    - Nunca levanta exceção para o chamador: sempre retorna dict {ok: bool, ...}.
    - MOCK_AI=1 gera texto determinístico sem rede (dev/testes).
    - Sem chave em modo real, retorna erro amigável (a geração não acontece).
    """

    def __init__(self):
        self.api_key = os.environ.get("OPENAI_API_KEY", "").strip()
        self.text_model = os.environ.get("OPENAI_TEXT_MODEL", "gpt-4o-mini")
        self.max_tokens = int(os.environ.get("OPENAI_MAX_TOKENS", "1800"))
        self.temperature = float(os.environ.get("OPENAI_TEMPERATURE", "0.8"))
        self.request_timeout_s = float(os.environ.get("OPENAI_TIMEOUT_S", "60"))
        # cada chamada tem custo; por padrão a falha é terminal
        self.retries = int(os.environ.get("OPENAI_RETRIES", "0"))
        self.retry_backoff_s = float(os.environ.get("OPENAI_BACKOFF_S", "1.2"))
        self.mock = os.environ.get("MOCK_AI", "").lower() in ("1", "true", "yes", "on")

        self.client: Optional[OpenAI] = None
        if self.api_key and not self.mock:
            self.client = OpenAI(api_key=self.api_key)

    @staticmethod
    def _ok(payload: Dict[str, Any]) -> Dict[str, Any]:
        payload.setdefault("ok", True)
        return payload

    @staticmethod
    def _err(msg: str) -> Dict[str, Any]:
        return {"ok": False, "error": msg}

    def _mock_text(self, user_prompt: str) -> Dict[str, Any]:
        first = user_prompt.splitlines()[0] if user_prompt else ""
        return self._ok({
            "text": f"Texto simulado (mock). {first}\n\nAs energias indicam um ciclo de renovação.",
            "model": "mock",
        })

    def generate_text(self, system_prompt: str, user_prompt: str) -> Dict[str, Any]:
        if self.mock:
            return self._mock_text(user_prompt)
        if self.client is None:
            return self._err("OPENAI_API_KEY não configurada.")

        last_err: Optional[Exception] = None
        for attempt in range(self.retries + 1):
            try:
                resp = self.client.chat.completions.create(
                    model=self.text_model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                    timeout=self.request_timeout_s,
                )
                text = (resp.choices[0].message.content or "").strip()
                if not text:
                    return self._err("OpenAI retornou conteúdo vazio.")
                return self._ok({"text": text, "model": self.text_model})
            except Exception as e:
                last_err = e
                log.warning("[OPENAI] tentativa %d falhou: %s", attempt + 1, e)
                if attempt < self.retries:
                    time.sleep(self.retry_backoff_s)

        return self._err(f"OpenAI (texto) falhou: {last_err}")
