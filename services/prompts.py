# services/prompts.py
# Configuração dos prompts do mapa espiritual.
# Diretivas reconhecidas: frase de abertura, regras de tom, seções (em ordem)
# e afirmações proibidas. O texto é conteúdo, não lógica.
from typing import Any, Dict, List

OPENING_PHRASE = "Querida alma, {nome}, as estrelas e os números revelam"

TONE_RULES: List[str] = [
    "Escreva em português do Brasil, sempre na segunda pessoa (você).",
    "Tom acolhedor, místico e encorajador, sem ser dramático.",
    "Parágrafos curtos; nada de listas técnicas ou jargão astrológico sem explicação.",
]

DISALLOWED_CLAIMS: List[str] = [
    "Não prometa cura de doenças nem substitua orientação médica ou psicológica.",
    "Não garanta riqueza, ganhos financeiros ou sucesso profissional.",
    "Não afirme certezas sobre o futuro; fale em tendências e possibilidades.",
]

SYSTEM_PROMPT = (
    "Você é ATB, taróloga e astróloga com mais de dez anos de atendimento. "
    "Produz leituras espirituais personalizadas a partir do signo solar e da numerologia do cliente."
)

# Ordem fixa das seções do documento final
SECTIONS: List[Dict[str, Any]] = [
    {
        "key": "numerologia",
        "title": "Numerologia Pessoal",
        "instructions": [
            "Explique o significado do número do nome ({name_number}) e do número da data ({date_number}).",
            "Relacione o número de destino ({destiny_number}), de expressão ({expression_number}) "
            "e da alma ({soul_number}) com o propósito de vida.",
            "Se algum número for 11 ou 22, trate-o como número mestre.",
        ],
    },
    {
        "key": "mapa_astral",
        "title": "Mapa Astral",
        "instructions": [
            "Descreva a essência do signo de {sign}: elemento, qualidades e desafios.",
            "Fale de amor, trabalho e espiritualidade sob a influência de {sign}.",
        ],
    },
    {
        "key": "limpeza_espiritual",
        "title": "Ritual de Limpeza Espiritual",
        "instructions": [
            "Proponha um ritual simples de limpeza energética em passos numerados, "
            "adequado a {sign} e ao número do nome {name_number}.",
            "Use apenas elementos seguros e acessíveis (água, sal grosso, ervas, velas).",
            "Termine com uma afirmação positiva curta.",
        ],
    },
]


def _header(nome: str, data: str) -> List[str]:
    return [
        f"Cliente: {nome}",
        f"Data de nascimento: {data}",
        f"Comece exatamente com a frase: \"{OPENING_PHRASE.format(nome=nome)}\"",
        "Regras de tom:",
        *[f"- {r}" for r in TONE_RULES],
        "É proibido:",
        *[f"- {r}" for r in DISALLOWED_CLAIMS],
    ]


def build_section_prompt(section: Dict[str, Any], profile: Dict[str, Any], nome: str, data: str) -> str:
    lines = _header(nome, data)
    lines.append(f"Escreva a seção \"{section['title']}\" em texto corrido, sem HTML e sem markdown.")
    lines.extend(f"- {i.format(**profile)}" for i in section["instructions"])
    return "\n".join(lines)


def build_full_html_prompt(profile: Dict[str, Any], nome: str, data: str) -> str:
    lines = _header(nome, data)
    lines.append("Gere um documento HTML completo (<!DOCTYPE html> ... </html>), com CSS embutido, "
                 "fundo escuro e detalhes dourados, contendo as seções abaixo nesta ordem:")
    for n, section in enumerate(SECTIONS, start=1):
        lines.append(f"{n}. {section['title']}")
        lines.extend(f"   - {i.format(**profile)}" for i in section["instructions"])
    lines.append("Responda apenas com o HTML, sem comentários fora do documento.")
    return "\n".join(lines)
