"""Configuração de testes (pytest).

Este arquivo ajusta o `sys.path` para que os módulos em `src/` possam ser
importados nos testes sem instalação do pacote, e define fixtures comuns:
    - `FakeBackend`: agendador em memória (nenhum PowerShell é executado)
    - `qapp`: QCoreApplication para os testes do controller
"""

import sys
from pathlib import Path

import pytest


# Garante que imports (ex.: `resolver`, `util`) apontem para src/
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


from models import NOT_SCHEDULED, ScheduleInfo  # noqa: E402
from scheduler import TaskDefinition, TriggerUpdate  # noqa: E402


class FakeBackend:
    """Agendador em memória com o mesmo contrato do backend PowerShell.

    `apply_effective=False` simula um comando elevado que "roda" mas não
    produz efeito (ex.: UAC negado silenciosamente).
    """

    def __init__(self, *, apply_effective=True, state="Ready"):
        self.tasks = {}
        self.calls = []
        self.apply_effective = apply_effective
        self.state = state
        self.fail_query = False

    def apply(self, definition):
        self.calls.append(("apply", definition))
        if not self.apply_effective:
            return
        if isinstance(definition, TaskDefinition):
            self.tasks[definition.name] = ScheduleInfo(True, None, self.state)
        elif isinstance(definition, TriggerUpdate) and definition.name in self.tasks:
            self.tasks[definition.name] = ScheduleInfo(True, None, self.tasks[definition.name].state)

    def query(self, name):
        self.calls.append(("query", name))
        if self.fail_query:
            raise RuntimeError("PowerShell error: boom")
        return self.tasks.get(name, NOT_SCHEDULED)

    def remove(self, name):
        self.calls.append(("remove", name))
        if self.apply_effective:
            self.tasks.pop(name, None)


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def write_log(tmp_path):
    """Cria um arquivo de log com as linhas informadas."""

    def _write(name, lines, *, encoding="utf-8"):
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding=encoding)
        return str(path)

    return _write


@pytest.fixture(scope="session")
def qapp():
    """QCoreApplication única para a sessão (sem janelas)."""
    from PySide6 import QtCore

    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app
