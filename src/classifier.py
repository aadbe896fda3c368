from __future__ import annotations

"""Classificação de linhas de log por palavras-chave.

As regras são avaliadas de cima para baixo e a primeira que casar define o
tipo da linha (Error > Warning > Info). Uma linha com "error" e "completed"
é sempre Error, independentemente da posição das palavras.
"""

from dataclasses import dataclass

from models import IssueKind


@dataclass(frozen=True, slots=True)
class ClassificationRule:
    """Par (palavras-chave, tipo) avaliado contra a linha em minúsculas."""

    kind: IssueKind
    keywords: tuple[str, ...]

    def matches(self, folded_line: str) -> bool:
        return any(keyword in folded_line for keyword in self.keywords)


CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        IssueKind.ERROR,
        ("] error ", "[error]", "error", "failed", "fatal", "critical", "access is denied"),
    ),
    ClassificationRule(
        IssueKind.WARNING,
        ("] warn ", "[warn", "warning", "warn", "caution", "exception", " alert "),
    ),
    ClassificationRule(
        IssueKind.INFO,
        ("] info ", "[info]", "info", "successfully", "completed", "started", "finished"),
    ),
)


def classify_line(
    line: str,
    rules: tuple[ClassificationRule, ...] = CLASSIFICATION_RULES,
) -> IssueKind | None:
    """Classifica uma linha de log.

    Args:
        line: Linha de log (qualquer caixa).
        rules: Regras em ordem de prioridade.

    Returns:
        O `IssueKind` da primeira regra que casar, ou None para linhas em
        branco e linhas sem palavra-chave.
    """
    folded = line.casefold()
    if not folded.strip():
        return None

    for rule in rules:
        if rule.matches(folded):
            return rule.kind
    return None
