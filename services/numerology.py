# services/numerology.py
# Cálculos determinísticos do mapa: signo solar + numerologia.
# Duas variantes convivem e NÃO são equivalentes:
#   - contagem de letras / soma de dígitos, com números mestres (11, 22)
#   - valores por posição da letra (A=1..Z=26), sem números mestres
import re
import unicodedata
from typing import Any, Dict, Tuple

MASTER_NUMBERS = (11, 22)
VOWELS = set("AEIOU")

# mês -> (último dia do primeiro signo, primeiro signo, segundo signo)
# Ex.: em março, até dia 20 é Peixes; de 21 em diante, Áries.
_ZODIAC_CUTS = {
    1: (19, "Capricórnio", "Aquário"),
    2: (18, "Aquário", "Peixes"),
    3: (20, "Peixes", "Áries"),
    4: (19, "Áries", "Touro"),
    5: (20, "Touro", "Gêmeos"),
    6: (20, "Gêmeos", "Câncer"),
    7: (22, "Câncer", "Leão"),
    8: (22, "Leão", "Virgem"),
    9: (22, "Virgem", "Libra"),
    10: (22, "Libra", "Escorpião"),
    11: (21, "Escorpião", "Sagitário"),
    12: (21, "Sagitário", "Capricórnio"),
}

_DAYS_IN_MONTH = {1: 31, 2: 29, 3: 31, 4: 30, 5: 31, 6: 30, 7: 31, 8: 31, 9: 30, 10: 31, 11: 30, 12: 31}


def zodiac_sign(day: int, month: int) -> str:
    """Signo solar ocidental; limites inclusivos (Áries = 21/03 a 19/04)."""
    if month not in _ZODIAC_CUTS:
        raise ValueError(f"Mês inválido: {month}")
    if not 1 <= day <= _DAYS_IN_MONTH[month]:
        raise ValueError(f"Dia inválido: {day}/{month}")
    last_day, before, after = _ZODIAC_CUTS[month]
    return before if day <= last_day else after


def _digit_sum(n: int) -> int:
    return sum(int(d) for d in str(n))


def reduce_number(n: int) -> int:
    """Soma os dígitos até sobrar um só, preservando 11 e 22."""
    if n < 0:
        raise ValueError("Número negativo")
    while n > 9 and n not in MASTER_NUMBERS:
        n = _digit_sum(n)
    return n


def name_number(name: str) -> int:
    letters = [ch for ch in (name or "") if ch.isalpha()]
    return reduce_number(len(letters))


def date_number(date_str: str) -> int:
    digits = re.sub(r"\D", "", date_str or "")
    return reduce_number(sum(int(d) for d in digits))


_ISO_RE = re.compile(r"^\s*(\d{4})-(\d{1,2})-(\d{1,2})(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?)?\s*$")
_BR_RE = re.compile(r"^\s*(\d{1,2})/(\d{1,2})/(\d{4})\s*$")


def parse_birth_date(date_str: str) -> Tuple[int, int, int]:
    """
    Aceita YYYY-MM-DD (com ou sem sufixo de horário) e DD/MM/YYYY.
    Retorna (dia, mês, ano).
    """
    s = date_str or ""
    m = _ISO_RE.match(s)
    if m:
        year, month, day = (int(g) for g in m.groups())
    else:
        m = _BR_RE.match(s)
        if not m:
            raise ValueError(f"Data inválida: {date_str!r}")
        day, month, year = (int(g) for g in m.groups())
    zodiac_sign(day, month)  # valida dia/mês
    return day, month, year


# ---------------------------------------------------------
# Variante por valor de letra (destino / expressão / alma)
# ---------------------------------------------------------
def reduce_simple(n: int) -> int:
    """Redução a um dígito, sem números mestres."""
    if n < 0:
        raise ValueError("Número negativo")
    while n > 9:
        n = _digit_sum(n)
    return n


def _strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text or "")
    return "".join(ch for ch in decomposed if unicodedata.category(ch) != "Mn")


def letter_value(ch: str) -> int:
    c = _strip_accents(ch).upper()
    if len(c) == 1 and "A" <= c <= "Z":
        return ord(c) - ord("A") + 1
    return 0


def destiny_number(date_str: str) -> int:
    digits = re.sub(r"\D", "", date_str or "")
    return reduce_simple(sum(int(d) for d in digits))


def expression_number(name: str) -> int:
    return reduce_simple(sum(letter_value(ch) for ch in _strip_accents(name)))


def soul_number(name: str) -> int:
    vowels = [ch for ch in _strip_accents(name).upper() if ch in VOWELS]
    return reduce_simple(sum(letter_value(ch) for ch in vowels))


def derive_profile(name: str, date_str: str) -> Dict[str, Any]:
    day, month, year = parse_birth_date(date_str)
    # números da data só com dia/mês/ano; horário não entra na soma
    birth = f"{year:04d}-{month:02d}-{day:02d}"
    return {
        "sign": zodiac_sign(day, month),
        "name_number": name_number(name),
        "date_number": date_number(birth),
        "destiny_number": destiny_number(birth),
        "expression_number": expression_number(name),
        "soul_number": soul_number(name),
    }
