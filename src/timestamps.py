from __future__ import annotations

"""Extração best-effort de timestamps em linhas de log.

Os batches monitorados escrevem logs em formatos variados. Esta função tenta
os formatos conhecidos em ordem de prioridade e, se nada casar, devolve o
horário atual (nunca levanta exceção).

Ordem de tentativas:
    1. Linha iniciando com `[`: conteúdo até o `]` como
       `yyyy-MM-dd HH:mm:ss`, depois `yyyy-MM-dd HH:mm:ss,fff`, depois
       formatos genéricos.
    2. Linha com 23+ caracteres: os 23 primeiros como
       `yyyy-MM-dd HH:mm:ss,fff`, depois os 19 primeiros como
       `yyyy-MM-dd HH:mm:ss`.
    3. Pares de palavras adjacentes (sem colchetes, hífens viram espaço).
    4. Palavras isoladas (sem colchetes e vírgulas).
    5. Horário atual.

Observação:
    O passo 5 faz linhas sem data "caírem" no dia de hoje; isso afeta a
    filtragem por data e é mantido de propósito até decisão de produto.
"""

from datetime import datetime


PLAIN_LAYOUT = "%Y-%m-%d %H:%M:%S"
MILLIS_LAYOUT = "%Y-%m-%d %H:%M:%S,%f"

# Formatos aceitos pelo parse "genérico" (equivalente a um TryParse tolerante).
GENERIC_LAYOUTS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S,%f",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M",
    "%Y %m %d %H:%M:%S",
    "%Y %m %d %H:%M",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y %H:%M:%S",
    "%d.%m.%Y %H:%M:%S",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%d.%m.%Y",
)

# Somente horário: assume a data de hoje.
TIME_ONLY_LAYOUTS = (
    "%H:%M:%S",
    "%H:%M:%S,%f",
    "%H:%M:%S.%f",
    "%H:%M",
)


def _parse_exact(text: str, layout: str) -> datetime | None:
    try:
        return datetime.strptime(text, layout)
    except ValueError:
        return None


def parse_generic(text: str, *, now: datetime | None = None) -> datetime | None:
    """Tenta interpretar `text` com os formatos genéricos conhecidos.

    Args:
        text: Texto candidato (já sem colchetes).
        now: Referência para formatos só de horário (padrão: agora).

    Returns:
        O datetime interpretado ou None.
    """
    candidate = text.strip()
    # Todos os formatos começam com dígito; evita custo de strptime em palavras comuns.
    if not candidate or not candidate[0].isdigit():
        return None

    for layout in GENERIC_LAYOUTS:
        parsed = _parse_exact(candidate, layout)
        if parsed is not None:
            return parsed

    for layout in TIME_ONLY_LAYOUTS:
        parsed = _parse_exact(candidate, layout)
        if parsed is not None:
            today = (now or datetime.now()).date()
            return datetime.combine(today, parsed.time())

    return None


def _from_bracket(line: str, now: datetime | None) -> datetime | None:
    closing = line.find("]")
    if closing <= 0:
        return None

    inner = line[1:closing]
    parsed = _parse_exact(inner, PLAIN_LAYOUT)
    if parsed is not None:
        return parsed

    if len(inner) >= 23:
        parsed = _parse_exact(inner, MILLIS_LAYOUT)
        if parsed is not None:
            return parsed

    return parse_generic(inner, now=now)


def _from_prefix(line: str) -> datetime | None:
    head = line[:23]
    parsed = _parse_exact(head, MILLIS_LAYOUT)
    if parsed is not None:
        return parsed
    return _parse_exact(head[:19], PLAIN_LAYOUT)


def strip_bracket_timestamp(line: str) -> str:
    """Remove o prefixo `[timestamp]` da linha, quando ele for um timestamp válido.

    `"[2025-07-15 02:50:00] ERROR disk full"` -> `"ERROR disk full"`.
    Linhas sem esse prefixo voltam apenas com `strip()`.
    """
    text = line.strip()
    if not text.startswith("["):
        return text
    closing = text.find("]")
    if closing <= 0 or _from_bracket(text, None) is None:
        return text
    rest = text[closing + 1:].strip()
    return rest or text


def extract_timestamp(line: str, *, now: datetime | None = None) -> datetime:
    """Extrai o timestamp de uma linha de log (best-effort).

    Args:
        line: Linha de log (sem quebra de linha).
        now: Horário usado como fallback; padrão `datetime.now()`.

    Returns:
        O timestamp encontrado ou `now` quando nenhum formato casar.
    """
    if line.startswith("["):
        parsed = _from_bracket(line, now)
        if parsed is not None:
            return parsed

    if len(line) >= 23:
        parsed = _from_prefix(line)
        if parsed is not None:
            return parsed

    words = line.split()

    for first, second in zip(words, words[1:]):
        combined = f"{first} {second}".replace("[", "").replace("]", "").replace("-", " ")
        parsed = parse_generic(combined, now=now)
        if parsed is not None:
            return parsed

    for word in words:
        cleaned = word.replace("[", "").replace("]", "").replace(",", "")
        parsed = parse_generic(cleaned, now=now)
        if parsed is not None:
            return parsed

    return now or datetime.now()
