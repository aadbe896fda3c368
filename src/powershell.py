from __future__ import annotations

"""Montagem e execução de comandos PowerShell para o Agendador de Tarefas.

Este módulo centraliza os scripts enviados ao Windows Task Scheduler e a
forma de executá-los.

Regras atuais:
    - Alterações (registrar/alterar/remover tarefa) rodam elevadas via
      `Start-Process -Verb RunAs -Wait`, a partir de um .ps1 temporário. A
      saída da execução elevada não pode ser capturada; quem chama deve
      verificar o efeito com uma consulta.
    - Consultas rodam sem elevação com `-Command` e têm a saída capturada.
    - Ação da tarefa por extensão:
        - .ps1: `powershell.exe -ExecutionPolicy Bypass -File`
        - .py/.pyw: `python.exe <script>`
        - .bat/.cmd: `cmd.exe /c`
        - demais: o próprio executável.
"""

import contextlib
import getpass
import os
import subprocess
import tempfile
import uuid
from collections.abc import Callable
from datetime import time as dt_time
from typing import Any

from models import BatchKind


POWERSHELL = "powershell"
NOT_FOUND_MARKER = "NotFound"

Runner = Callable[..., subprocess.CompletedProcess]


def ps_quote(value: str) -> str:
    """Aspas simples do PowerShell (aspas internas são duplicadas)."""
    return "'" + value.replace("'", "''") + "'"


def build_task_action(executable_path: str) -> tuple[str, str]:
    """Converte o caminho do batch em (executável, argumentos) da ação agendada.

    Args:
        executable_path: Caminho do .exe/.bat/.cmd/.ps1/.py.

    Returns:
        Tupla `(execute, argument)`; `argument` vazio quando não há.

    Raises:
        ValueError: Se o caminho estiver vazio.
    """
    path = (executable_path or "").strip()
    if not path:
        raise ValueError("Caminho do executável ausente")

    ext = os.path.splitext(path)[1].lower()

    if ext == ".ps1":
        return "powershell.exe", f'-NoProfile -ExecutionPolicy Bypass -File "{path}"'

    if ext in (".py", ".pyw"):
        interpreter = "pythonw.exe" if ext == ".pyw" else "python.exe"
        return interpreter, f'"{path}"'

    if ext in (".bat", ".cmd"):
        return "cmd.exe", f'/c "{path}"'

    return path, ""


def current_principal() -> str:
    """Usuário atual no formato `DOMINIO\\usuario` (ou só o usuário)."""
    user = os.environ.get("USERNAME") or getpass.getuser()
    domain = os.environ.get("USERDOMAIN", "")
    return f"{domain}\\{user}" if domain else user


def build_register_script(
    name: str,
    executable_path: str,
    start_time: dt_time,
    batch_kind: BatchKind,
    principal: str,
) -> str:
    """Script que (re)registra a tarefa com gatilho diário ou horário.

    - FixedTime: gatilho diário no horário.
    - Hourly: gatilho único no horário, repetindo a cada hora por um dia.
    """
    execute, argument = build_task_action(executable_path)
    at = start_time.strftime("%H:%M")

    if argument:
        action = f"New-ScheduledTaskAction -Execute {ps_quote(execute)} -Argument {ps_quote(argument)}"
    else:
        action = f"New-ScheduledTaskAction -Execute {ps_quote(execute)}"

    if batch_kind is BatchKind.HOURLY:
        trigger = (
            f"New-ScheduledTaskTrigger -Once -At {ps_quote(at)} "
            "-RepetitionInterval (New-TimeSpan -Hours 1) "
            "-RepetitionDuration (New-TimeSpan -Days 1)"
        )
    else:
        trigger = f"New-ScheduledTaskTrigger -Daily -At {ps_quote(at)}"

    return "\n".join(
        [
            f"$taskName = {ps_quote(name)}",
            f"$action = {action}",
            f"$trigger = {trigger}",
            "$settings = New-ScheduledTaskSettingsSet -WakeToRun -StartWhenAvailable -AllowStartIfOnBatteries",
            f"$principal = New-ScheduledTaskPrincipal -UserId {ps_quote(principal)} -LogonType Interactive",
            "try {",
            "    Unregister-ScheduledTask -TaskName $taskName -Confirm:$false -ErrorAction SilentlyContinue",
            "    Register-ScheduledTask -TaskName $taskName -Action $action -Trigger $trigger "
            "-Settings $settings -Principal $principal -Force | Out-Null",
            "} catch {",
            "    Write-Error $_.Exception.Message",
            "}",
        ]
    )


def build_retime_script(name: str, start_time: dt_time) -> str:
    """Script que move o início do primeiro gatilho para o novo horário (hoje)."""
    return "\n".join(
        [
            f"$taskName = {ps_quote(name)}",
            "try {",
            "    $task = Get-ScheduledTask -TaskName $taskName -ErrorAction Stop",
            f"    $start = (Get-Date).Date.AddHours({start_time.hour}).AddMinutes({start_time.minute})",
            "    $task.Triggers[0].StartBoundary = $start.ToString('yyyy-MM-ddTHH:mm:ss')",
            "    Set-ScheduledTask -InputObject $task | Out-Null",
            "} catch {",
            "    Write-Error $_.Exception.Message",
            "}",
        ]
    )


def build_unregister_script(name: str) -> str:
    return "\n".join(
        [
            "try {",
            f"    Unregister-ScheduledTask -TaskName {ps_quote(name)} -Confirm:$false -ErrorAction Stop",
            "} catch {",
            "    Write-Error $_.Exception.Message",
            "}",
        ]
    )


def build_query_script(name: str) -> str:
    """Script de consulta: imprime `Estado|ProximaExecucao` ou `NotFound`."""
    quoted = ps_quote(name)
    return "\n".join(
        [
            "try {",
            f"    $task = Get-ScheduledTask -TaskName {quoted} -ErrorAction Stop",
            f"    $info = Get-ScheduledTaskInfo -TaskName {quoted} -ErrorAction Stop",
            "    $next = ''",
            "    if ($info.NextRunTime) { $next = $info.NextRunTime.ToString('yyyy-MM-ddTHH:mm:ss') }",
            "    Write-Output ('{0}|{1}' -f $task.State, $next)",
            "} catch {",
            f"    Write-Output '{NOT_FOUND_MARKER}'",
            "}",
        ]
    )


def build_elevated_command(script_path: str) -> list[str]:
    """Comando que executa um .ps1 como administrador e aguarda o término."""
    inner_args = ",".join(
        ps_quote(a) for a in ("-NoProfile", "-ExecutionPolicy", "Bypass", "-File", script_path)
    )
    return [
        POWERSHELL,
        "-NoProfile",
        "-ExecutionPolicy",
        "Bypass",
        "-Command",
        f"Start-Process -FilePath 'powershell.exe' -ArgumentList @({inner_args}) "
        "-Verb RunAs -Wait -WindowStyle Hidden",
    ]


def build_query_command(script: str) -> list[str]:
    return [POWERSHELL, "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", script]


def run_elevated(script: str, *, runner: Runner = subprocess.run) -> None:
    """Executa um script elevado e aguarda.

    Mantém o contrato atual do projeto: a saída do processo elevado não é
    observável, então o sucesso deve ser confirmado por consulta posterior.

    Raises:
        subprocess.CalledProcessError: Se o lançador retornar código != 0
            (ex.: UAC negado).
        OSError: Se o PowerShell não puder ser iniciado.
    """
    script_path = os.path.join(tempfile.gettempdir(), f"BatchMonitor_{uuid.uuid4().hex}.ps1")
    with open(script_path, "w", encoding="utf-8-sig") as fh:
        fh.write(script)
    try:
        runner(build_elevated_command(script_path), check=True, capture_output=True, text=True)
    finally:
        with contextlib.suppress(OSError):
            os.remove(script_path)


def run_query(script: str, *, runner: Runner = subprocess.run) -> str:
    """Executa um script de consulta sem elevação e retorna o stdout.

    Raises:
        RuntimeError: Se o PowerShell escrever em stderr.
        subprocess.CalledProcessError / OSError: Falha ao executar.
    """
    proc: Any = runner(build_query_command(script), check=True, capture_output=True, text=True)
    stderr = (proc.stderr or "").strip()
    if stderr:
        raise RuntimeError(f"PowerShell error: {stderr}")
    return proc.stdout or ""
