import pytest

from retroemu.asm.assembler import Assembler
from retroemu.asm.instructions import INSTRUCTION_HANDLERS
from retroemu.config import EmulatorConfig
from retroemu.manager import EmulationManager
from retroemu.pascal.engine import PascalEngine


@pytest.fixture(autouse=True)
def _restore_instruction_handlers():
    saved = dict(INSTRUCTION_HANDLERS)
    yield
    INSTRUCTION_HANDLERS.clear()
    INSTRUCTION_HANDLERS.update(saved)


@pytest.fixture
def assembler():
    return Assembler()


@pytest.fixture
def pascal():
    return PascalEngine()


@pytest.fixture
def manager(tmp_path):
    return EmulationManager(EmulatorConfig(workspace=tmp_path / "workspace"))
