# services/combo.py
# Orquestra a geração do mapa espiritual:
#   validação -> gate -> numerologia -> reserva -> IA -> HTML -> carimbo
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, select_autoescape

from db.models import PurchaseStore, normalize_email
from services import prompts
from services.entitlement import EntitlementGate
from services.errors import AlreadyConsumed, StoreError, UpstreamError, ValidationError
from services.numerology import derive_profile
from services.openai_client import strip_code_fence

log = logging.getLogger(__name__)

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")
_jinja = Environment(loader=FileSystemLoader(TEMPLATES_DIR), autoescape=select_autoescape(["html"]))

MODE_SECTIONS = "secoes"
MODE_HTML = "html"


@dataclass
class ComboResult:
    html: str
    profile: Dict[str, Any]
    sections: Dict[str, str] = field(default_factory=dict)
    nome: str = ""

    def analyses(self) -> Dict[str, Any]:
        return {
            "nome": self.nome,
            "signoZodiacal": self.profile["sign"],
            "numerologia": self.sections.get("numerologia", ""),
            "mapaAstral": self.sections.get("mapa_astral", ""),
            "limpezaEspiritual": self.sections.get("limpeza_espiritual", ""),
            "numeros": {
                "nome": self.profile["name_number"],
                "data": self.profile["date_number"],
                "destino": self.profile["destiny_number"],
                "expressao": self.profile["expression_number"],
                "alma": self.profile["soul_number"],
            },
        }


def _paragraphs(text: str) -> List[str]:
    return [p.strip() for p in text.split("\n\n") if p.strip()]


def render_document(nome: str, profile: Dict[str, Any], sections: Dict[str, str]) -> str:
    template = _jinja.get_template("combo_document.html")
    blocks = [
        {"title": s["title"], "paragraphs": _paragraphs(sections.get(s["key"], ""))}
        for s in prompts.SECTIONS
    ]
    return template.render(nome=nome, profile=profile, sections=blocks)


class ComboGenerator:
    def __init__(self, store: PurchaseStore, ai_client, mode: str = MODE_SECTIONS):
        if mode not in (MODE_SECTIONS, MODE_HTML):
            raise ValueError(f"COMBO_MODE inválido: {mode}")
        self.store = store
        self.gate = EntitlementGate(store)
        self.ai_client = ai_client
        self.mode = mode

    def _ask(self, user_prompt: str) -> str:
        try:
            result = self.ai_client.generate_text(prompts.SYSTEM_PROMPT, user_prompt)
        except Exception as e:
            raise UpstreamError(f"Falha na geração de texto: {e}") from e
        if not result.get("ok"):
            raise UpstreamError(result.get("error") or "Falha na geração de texto.")
        text = (result.get("text") or "").strip()
        if not text:
            raise UpstreamError("Serviço de geração retornou conteúdo vazio.")
        return text

    def _release(self, email: str) -> None:
        try:
            self.store.release_combo(email)
        except StoreError:
            log.exception("[COMBO] Falha ao liberar reserva de %s; geração ficará bloqueada.", email)

    def generate(self, nome: str, data: str, email: str) -> ComboResult:
        email = normalize_email(email)
        nome = (nome or "").strip()
        data = (data or "").strip()
        if not email or not data:
            raise ValidationError("Nome, data de nascimento e email são obrigatórios.")
        try:
            profile = derive_profile(nome, data)
        except ValueError as e:
            raise ValidationError(f"Data de nascimento inválida: {data}") from e

        # gate antes de qualquer chamada paga
        record = self.gate.check_access(email)
        if not nome:
            nome = (record.customer_name or "").strip()
            if not nome:
                raise ValidationError("Nome, data de nascimento e email são obrigatórios.")
            profile = derive_profile(nome, data)

        if not self.store.reserve_combo(email):
            raise AlreadyConsumed(email)
        log.info("[COMBO] Reserva feita para %s (%s).", email, profile["sign"])

        try:
            if self.mode == MODE_HTML:
                html = strip_code_fence(self._ask(prompts.build_full_html_prompt(profile, nome, data)))
                if not html:
                    raise UpstreamError("Serviço de geração retornou conteúdo vazio.")
                sections: Dict[str, str] = {}
            else:
                sections = {
                    s["key"]: self._ask(prompts.build_section_prompt(s, profile, nome, data))
                    for s in prompts.SECTIONS
                }
                html = render_document(nome, profile, sections)
        except Exception:
            self._release(email)
            raise

        try:
            self.store.stamp_combo_generated(email)
        except StoreError:
            # o cliente recebe o conteúdo pago mesmo assim
            log.exception("[COMBO] HTML gerado, mas falhou o registro de conclusão para %s.", email)

        log.info("[COMBO] Mapa gerado para %s (%d bytes).", email, len(html))
        return ComboResult(html=html, profile=profile, sections=sections, nome=nome)
