"""Testes da montagem e execução de comandos PowerShell.

Valida:
    - Ação da tarefa por extensão do executável
    - Scripts de registro (diário x horário), consulta e remoção
    - Execução elevada via arquivo temporário (sempre removido)
    - Consulta sem elevação e tratamento de stderr
"""

import os
import subprocess
from datetime import time

import pytest

import powershell
from models import BatchKind


@pytest.mark.parametrize(
    "path, expected",
    [
        (r"C:\jobs\run.ps1", ("powershell.exe", r'-NoProfile -ExecutionPolicy Bypass -File "C:\jobs\run.ps1"')),
        (r"C:\jobs\main.py", ("python.exe", r'"C:\jobs\main.py"')),
        (r"C:\jobs\gui.pyw", ("pythonw.exe", r'"C:\jobs\gui.pyw"')),
        (r"C:\jobs\run.BAT", ("cmd.exe", r'/c "C:\jobs\run.BAT"')),
        (r"C:\jobs\run.cmd", ("cmd.exe", r'/c "C:\jobs\run.cmd"')),
        (r"C:\jobs\StartServices.exe", (r"C:\jobs\StartServices.exe", "")),
    ],
)
def test_build_task_action(path, expected):
    assert powershell.build_task_action(path) == expected


def test_build_task_action_requires_path():
    with pytest.raises(ValueError):
        powershell.build_task_action("  ")


def test_ps_quote_doubles_single_quotes():
    assert powershell.ps_quote("O'Brien") == "'O''Brien'"


def test_register_script_fixed_time_uses_daily_trigger():
    script = powershell.build_register_script(
        "Nightly", r"C:\jobs\run.exe", time(2, 30), BatchKind.FIXED_TIME, r"CORP\ops"
    )
    assert "$taskName = 'Nightly'" in script
    assert "New-ScheduledTaskTrigger -Daily -At '02:30'" in script
    assert "RepetitionInterval" not in script
    assert "-UserId 'CORP\\ops' -LogonType Interactive" in script
    assert "Unregister-ScheduledTask" in script
    assert "Register-ScheduledTask -TaskName $taskName" in script


def test_register_script_hourly_repeats_for_one_day():
    script = powershell.build_register_script(
        "Hourly", r"C:\jobs\run.ps1", time(0, 5), BatchKind.HOURLY, "ops"
    )
    assert "New-ScheduledTaskTrigger -Once -At '00:05'" in script
    assert "-RepetitionInterval (New-TimeSpan -Hours 1)" in script
    assert "-RepetitionDuration (New-TimeSpan -Days 1)" in script
    assert "-Execute 'powershell.exe'" in script


def test_retime_script_sets_start_boundary():
    script = powershell.build_retime_script("Nightly", time(6, 45))
    assert "AddHours(6).AddMinutes(45)" in script
    assert "Set-ScheduledTask" in script


def test_query_script_reports_not_found_marker():
    script = powershell.build_query_script("Nightly")
    assert "Get-ScheduledTaskInfo -TaskName 'Nightly'" in script
    assert f"Write-Output '{powershell.NOT_FOUND_MARKER}'" in script


def test_elevated_command_uses_runas():
    cmd = powershell.build_elevated_command(r"C:\Temp\x.ps1")
    assert cmd[0] == "powershell"
    assert "-Verb RunAs -Wait" in cmd[-1]
    assert "'C:\\Temp\\x.ps1'" in cmd[-1]


def test_run_elevated_writes_and_removes_temp_script(monkeypatch):
    calls = []

    def fake_run(cmd, check, capture_output=False, text=False):
        script_path = cmd[-1].split("'-File','")[1].split("'")[0]
        with open(script_path, encoding="utf-8-sig") as fh:
            calls.append((cmd, check, script_path, fh.read()))
        return subprocess.CompletedProcess(cmd, 0)

    powershell.run_elevated("Write-Output 'hi'", runner=fake_run)

    assert len(calls) == 1
    cmd, check, script_path, content = calls[0]
    assert check is True
    assert content == "Write-Output 'hi'"
    assert os.path.basename(script_path).startswith("BatchMonitor_")
    assert not os.path.exists(script_path)


def test_run_elevated_removes_script_on_failure():
    seen = []

    def failing_run(cmd, check, capture_output=False, text=False):
        seen.append(cmd[-1].split("'-File','")[1].split("'")[0])
        raise subprocess.CalledProcessError(1, cmd)

    with pytest.raises(subprocess.CalledProcessError):
        powershell.run_elevated("x", runner=failing_run)

    assert seen and not os.path.exists(seen[0])


def test_run_query_returns_stdout(monkeypatch):
    calls = []

    def fake_run(cmd, check, capture_output=False, text=False):
        calls.append((cmd, capture_output, text))
        return subprocess.CompletedProcess(cmd, 0, stdout="Ready|2025-07-16T02:30:00\n", stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)

    assert powershell.run_query("Get-Something", runner=subprocess.run) == "Ready|2025-07-16T02:30:00\n"
    cmd, capture_output, text = calls[0]
    assert cmd[-2:] == ["-Command", "Get-Something"]
    assert capture_output is True and text is True


def test_run_query_raises_on_stderr():
    def fake_run(cmd, check, capture_output=False, text=False):
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="Access denied")

    with pytest.raises(RuntimeError, match="PowerShell error: Access denied"):
        powershell.run_query("x", runner=fake_run)
