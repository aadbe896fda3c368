from __future__ import annotations

"""Modelos de dados do monitor de batches.

Este módulo concentra as estruturas de dados (dataclasses e enums) usadas
pela análise de logs, pelo controle do agendador do Windows, pela camada de
persistência e pelo controller Qt.

Objetivos:
    - Definir contratos simples e estáveis entre camadas.
    - Separar configuração (persistida) de resultado de análise (recalculado
      a cada passagem, nunca persistido).
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class BatchKind(str, Enum):
    """Tipo de batch.

    - `FIXED_TIME`: roda em horário fixo, sobrescreve o log a cada execução.
    - `HOURLY`: roda de hora em hora, acumula no log e é arquivado diariamente.
    """

    FIXED_TIME = "FixedTime"
    HOURLY = "Hourly"


class JobStatus(str, Enum):
    UNKNOWN = "Unknown"
    SUCCESS = "Success"
    WARNING = "Warning"
    ERROR = "Error"
    RUNNING = "Running"


class IssueKind(str, Enum):
    ERROR = "Error"
    WARNING = "Warning"
    INFO = "Info"


@dataclass(frozen=True, slots=True)
class Job:
    """Configuração de um batch monitorado.

    A classe reflete a estrutura persistida na tabela `jobs`.

    Observações:
        - `name` é a chave única e também o nome da tarefa no agendador.
        - Caminhos vazios significam "não configurado".
        - Imutável durante uma passagem de análise.
    """

    id: int | None
    name: str
    log_path: str = ""
    error_log_path: str = ""
    custom_log_path: str = ""
    config_path: str = ""
    executable_path: str = ""
    batch_kind: BatchKind = BatchKind.FIXED_TIME


@dataclass(frozen=True, slots=True)
class LogIssue:
    """Linha classificada de um arquivo de log.

    `line_number` é 1-based dentro da janela final lida (não do arquivo todo).
    """

    kind: IssueKind
    message: str
    line_number: int
    file_name: str
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class FileAnalysis:
    """Resultado da análise de um único arquivo de log."""

    path: str
    status: JobStatus
    message: str
    last_write: datetime | None
    issues: list[LogIssue] = field(default_factory=list)
    read_error: str | None = None

    def issues_of(self, kind: IssueKind) -> list[LogIssue]:
        """Retorna as ocorrências de um tipo, na ordem original."""
        return [issue for issue in self.issues if issue.kind is kind]


@dataclass(frozen=True, slots=True)
class ScheduleInfo:
    """Estado da tarefa no agendador, sempre consultado ao vivo."""

    is_scheduled: bool
    next_run: datetime | None = None
    state: str = ""

    @property
    def is_running(self) -> bool:
        return self.state.lower() == "running"


NOT_SCHEDULED = ScheduleInfo(is_scheduled=False)


@dataclass(frozen=True, slots=True)
class AnalysisResult:
    """Status consolidado de um batch para uma data de filtro.

    Objeto de valor: recalculado a cada passagem e nunca persistido.
    """

    status: JobStatus
    message: str
    last_run: datetime | None = None
    discovered_logs: list[str] = field(default_factory=list)
    issues: list[LogIssue] = field(default_factory=list)
    schedule: ScheduleInfo | None = None


@dataclass(frozen=True, slots=True)
class EventEntry:
    """Evento operacional persistido na tabela `events`.

    Atributos:
        stream: Origem do evento ("log", "scheduler", "analysis").
        job_id: Batch relacionado (quando aplicável).
    """

    id: int | None
    ts_iso: str
    job_id: int | None
    stream: str
    message: str
