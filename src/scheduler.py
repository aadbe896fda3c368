from __future__ import annotations

"""Controle do Agendador de Tarefas do host.

O agendador fica atrás de `SchedulerBackend` (`apply`, `query`, `remove`).
Toda alteração segue o mesmo protocolo, porque o resultado do comando
elevado não é observável de forma síncrona:

    aplicar -> aguardar `verify_delay` -> consultar -> confirmar ou falhar

Regras:
    - Alterações que não se confirmam levantam `ScheduleVerificationError`
      (sem retentativa automática).
    - Consultas nunca levantam: falhas viram "não agendado / sem próxima
      execução".
"""

import logging
import os
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, time as dt_time
from typing import Protocol, Union

import powershell
from models import NOT_SCHEDULED, BatchKind, Job, ScheduleInfo
from util import MonitorSettings, find_batch_executable, parse_hhmm


SCHEDULED_STATES = frozenset({"ready", "running"})


class SchedulerError(RuntimeError):
    """Falha ao executar um comando no agendador."""


class ScheduleVerificationError(SchedulerError):
    """A consulta pós-alteração não confirmou o efeito esperado."""


@dataclass(frozen=True, slots=True)
class TaskDefinition:
    """Registro (ou substituição) completo de uma tarefa."""

    name: str
    executable_path: str
    start_time: dt_time
    batch_kind: BatchKind = BatchKind.FIXED_TIME


@dataclass(frozen=True, slots=True)
class TriggerUpdate:
    """Alteração do horário do gatilho de uma tarefa existente."""

    name: str
    start_time: dt_time


Definition = Union[TaskDefinition, TriggerUpdate]


class SchedulerBackend(Protocol):
    def apply(self, definition: Definition) -> None: ...

    def query(self, name: str) -> ScheduleInfo: ...

    def remove(self, name: str) -> None: ...


def parse_query_output(output: str) -> ScheduleInfo:
    """Interpreta a saída de `powershell.build_query_script`.

    Formato: `Estado|yyyy-MM-ddTHH:mm:ss` (próxima execução opcional) ou
    `NotFound`.
    """
    line = ""
    for candidate in (output or "").splitlines():
        if candidate.strip():
            line = candidate.strip()
    if not line or line == powershell.NOT_FOUND_MARKER or "|" not in line:
        return NOT_SCHEDULED

    state, _, raw_next = line.partition("|")
    state = state.strip()
    next_run = None
    if raw_next.strip():
        try:
            next_run = datetime.fromisoformat(raw_next.strip())
        except ValueError:
            logging.warning("SCHEDULER - Próxima execução ilegível: %r", raw_next)

    return ScheduleInfo(
        is_scheduled=state.lower() in SCHEDULED_STATES,
        next_run=next_run,
        state=state,
    )


class PowerShellBackend:
    """Backend do Windows Task Scheduler via PowerShell."""

    def __init__(
        self,
        *,
        runner: powershell.Runner = subprocess.run,
        principal: str | None = None,
    ) -> None:
        self._runner = runner
        self._principal = principal

    def apply(self, definition: Definition) -> None:
        if isinstance(definition, TaskDefinition):
            script = powershell.build_register_script(
                definition.name,
                definition.executable_path,
                definition.start_time,
                definition.batch_kind,
                self._principal or powershell.current_principal(),
            )
        else:
            script = powershell.build_retime_script(definition.name, definition.start_time)
        powershell.run_elevated(script, runner=self._runner)

    def query(self, name: str) -> ScheduleInfo:
        output = powershell.run_query(powershell.build_query_script(name), runner=self._runner)
        return parse_query_output(output)

    def remove(self, name: str) -> None:
        powershell.run_elevated(powershell.build_unregister_script(name), runner=self._runner)


def _as_time(value: datetime | dt_time | str) -> dt_time:
    if isinstance(value, datetime):
        return value.time().replace(second=0, microsecond=0)
    if isinstance(value, dt_time):
        return value.replace(second=0, microsecond=0)
    return parse_hhmm(value)


class ScheduleController:
    """Cria, altera, remove e consulta tarefas de batches.

    Args:
        backend: Implementação do agendador.
        verify_delay: Segundos de espera antes da consulta de verificação.
        sleep: Função de espera (injetável nos testes).
    """

    def __init__(
        self,
        backend: SchedulerBackend,
        *,
        verify_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.backend = backend
        self.verify_delay = verify_delay
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: MonitorSettings) -> "ScheduleController":
        """Controller padrão (PowerShell) com a espera configurada."""
        return cls(PowerShellBackend(), verify_delay=settings.verify_delay_seconds)

    # -------------------- Alterações --------------------
    def schedule(
        self,
        name: str,
        executable_path: str,
        start_time: datetime | dt_time | str,
        batch_kind: BatchKind = BatchKind.FIXED_TIME,
    ) -> ScheduleInfo:
        """Registra (ou substitui) a tarefa do batch e confirma o registro.

        Raises:
            ValueError: Nome vazio, horário inválido ou executável inexistente.
            SchedulerError: Falha ao executar o comando.
            ScheduleVerificationError: A tarefa não aparece após o registro.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Nome do batch é obrigatório para agendar")
        if not executable_path or not os.path.isfile(executable_path):
            raise ValueError(f"Executable file not found: {executable_path}")

        definition = TaskDefinition(name, executable_path, _as_time(start_time), batch_kind)
        return self._apply_and_verify(
            name,
            lambda: self.backend.apply(definition),
            lambda info: info.is_scheduled,
            "Task was not successfully registered in Windows Task Scheduler. "
            "Please ensure the application is running with administrator privileges.",
            action="schedule",
        )

    def schedule_job(self, job: Job, start_time: datetime | dt_time | str) -> ScheduleInfo:
        """Agenda um `Job`, descobrindo o executável pelo log se necessário."""
        executable = job.executable_path or find_batch_executable(job.log_path)
        if not executable:
            raise ValueError(
                f"Cannot find executable file for batch '{job.name}'. "
                "Please specify the executable path when adding the batch."
            )
        return self.schedule(job.name, executable, start_time, job.batch_kind)

    def update_schedule(self, name: str, new_start_time: datetime | dt_time | str) -> ScheduleInfo:
        """Move o horário do gatilho e confirma que a tarefa continua registrada."""
        update = TriggerUpdate(name, _as_time(new_start_time))
        return self._apply_and_verify(
            name,
            lambda: self.backend.apply(update),
            lambda info: bool(info.state),
            f"Task '{name}' was not found after updating its schedule",
            action="update schedule",
        )

    def delete_schedule(self, name: str) -> None:
        """Remove a tarefa e confirma que ela não existe mais."""
        self._apply_and_verify(
            name,
            lambda: self.backend.remove(name),
            lambda info: not info.state,
            f"Task '{name}' is still registered after deletion",
            action="delete schedule",
        )

    def _apply_and_verify(
        self,
        name: str,
        apply: Callable[[], None],
        confirmed: Callable[[ScheduleInfo], bool],
        failure_message: str,
        *,
        action: str,
    ) -> ScheduleInfo:
        """Protocolo aplicar -> aguardar -> consultar -> confirmar."""
        logging.info("SCHEDULER - %s: %s", action, name)
        try:
            apply()
        except (OSError, subprocess.SubprocessError, RuntimeError) as exc:
            raise SchedulerError(f"Failed to {action} for '{name}': {exc}") from exc

        if self.verify_delay > 0:
            self._sleep(self.verify_delay)

        info = self.get_schedule_info(name)
        if not confirmed(info):
            logging.warning("SCHEDULER - Verificação falhou (%s): %s", action, name)
            raise ScheduleVerificationError(f"Failed to {action} for '{name}': {failure_message}")

        logging.info("SCHEDULER - %s confirmado: %s (estado=%s)", action, name, info.state or "-")
        return info

    # -------------------- Consultas --------------------
    def get_schedule_info(self, name: str) -> ScheduleInfo:
        """Consulta ao vivo; falhas viram `NOT_SCHEDULED`."""
        try:
            return self.backend.query(name)
        except Exception as exc:
            logging.warning("SCHEDULER - Consulta falhou para %s: %s", name, exc)
            return NOT_SCHEDULED

    def is_scheduled(self, name: str) -> bool:
        return self.get_schedule_info(name).is_scheduled

    def task_exists(self, name: str) -> bool:
        """A tarefa está registrada, em qualquer estado (inclusive Disabled)."""
        return bool(self.get_schedule_info(name).state)

    def get_next_run_time(self, name: str) -> datetime | None:
        return self.get_schedule_info(name).next_run
