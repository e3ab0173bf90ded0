"""Session-level orchestration of the two simulation engines.

:class:`EmulationManager` owns the workspace directory and the currently
selected engine.  Every public method returns a plain ``dict`` with at least
``success`` and ``message`` keys so that a command layer can print it
without knowing about engine result types.
"""
from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Union

from retroemu.asm.assembler import Assembler
from retroemu.asm.model import AssemblyResult
from retroemu.config import EmulatorConfig
from retroemu.help import help_for
from retroemu.pascal.engine import CompileResult, PascalEngine
from retroemu.samples import SampleError, SampleLibrary


logger = logging.getLogger(__name__)

ENGINE_ALIASES = {
    "asm": "asm",
    "assembler": "asm",
    "x86": "asm",
    "pascal": "pascal",
    "turbopascal": "pascal",
    "tp": "pascal",
}

ENGINE_TITLES = {"asm": "Turbo Assembler 3.0", "pascal": "Turbo Pascal 7.0"}

NOT_INITIALIZED = 'No emulator initialized. Use "run asm" or "run pascal" first.'

Engine = Union[Assembler, PascalEngine]


class WorkspaceError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def resolve_engine_type(name: str) -> Optional[str]:
    return ENGINE_ALIASES.get(name.strip().lower())


class EmulationManager:
    def __init__(self, config: Optional[EmulatorConfig] = None, samples: Optional[SampleLibrary] = None) -> None:
        self.config = config or EmulatorConfig()
        self.workspace = Path(self.config.workspace)
        self.samples = samples or SampleLibrary()
        self.engine_type: Optional[str] = None
        self.engine: Optional[Engine] = None
        self.current_file: Optional[str] = None
        self.compiled: Optional[Union[AssemblyResult, CompileResult]] = None
        self.workspace.mkdir(parents=True, exist_ok=True)

    def _resolve(self, filename: str) -> Path:
        root = self.workspace.resolve()
        path = (root / filename).resolve()
        if path == root or root not in path.parents:
            raise WorkspaceError(f"Path escapes workspace: {filename}")
        return path

    def _new_engine(self, engine_type: str) -> Engine:
        if engine_type == "asm":
            return Assembler(step_limit=self.config.asm_step_limit, memory_dump_size=self.config.memory_dump_size)
        return PascalEngine(step_limit=self.config.pascal_step_limit)

    def initialize_emulator(self, emulator_type: str) -> Dict[str, Any]:
        engine_type = resolve_engine_type(emulator_type)
        if engine_type is None:
            return {
                "success": False,
                "message": f"Unknown emulator type: {emulator_type}. Supported types: asm, pascal",
            }
        self.engine_type = engine_type
        self.engine = self._new_engine(engine_type)
        self.compiled = None
        logger.debug("Selected engine %s", engine_type)
        return {
            "success": True,
            "message": f"{ENGINE_TITLES[engine_type]} initialized",
            "header": self.engine.display_header(),
        }

    def load_file(self, filename: str) -> Dict[str, Any]:
        if self.engine is None:
            return {"success": False, "message": NOT_INITIALIZED}
        try:
            path = self._resolve(filename)
            if not path.is_file():
                return {"success": False, "message": f"File not found: {filename}"}
            source = path.read_text(encoding="utf-8")
        except WorkspaceError as exc:
            return {"success": False, "message": exc.message}
        except (OSError, UnicodeDecodeError) as exc:
            return {"success": False, "message": f"Error loading file: {exc}"}
        self.current_file = filename
        logger.info("Loaded %s (%d bytes)", path, len(source))
        return {
            "success": True,
            "message": f"File loaded: {filename}",
            "source": source,
            "lines": len(source.split("\n")),
        }

    def save_file(self, filename: str, source: str) -> Dict[str, Any]:
        try:
            path = self._resolve(filename)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(source, encoding="utf-8")
        except WorkspaceError as exc:
            return {"success": False, "message": exc.message}
        except OSError as exc:
            return {"success": False, "message": f"Error saving file: {exc}"}
        self.current_file = filename
        logger.info("Saved %s (%d bytes)", path, len(source))
        return {"success": True, "message": f"File saved: {filename}"}

    def compile(self, source: str) -> Dict[str, Any]:
        if self.engine is None:
            return {"success": False, "message": NOT_INITIALIZED}
        if isinstance(self.engine, Assembler):
            result = self.engine.assemble(source)
            message = "Assembly completed successfully" if result.success else "Assembly failed"
        else:
            result = self.engine.compile(source)
            message = "Compilation completed successfully" if result.success else "Compilation failed"
        self.compiled = result
        return {
            "success": result.success,
            "message": message,
            "result": result,
            "display": self.engine.display_results(result),
        }

    def execute(self) -> Dict[str, Any]:
        if self.engine is None:
            return {"success": False, "message": NOT_INITIALIZED}
        if self.compiled is None:
            return {"success": False, "message": "Nothing to execute. Compile a program first."}
        result = self.engine.execute(self.compiled)
        return {
            "success": result.success,
            "message": "Program executed successfully" if result.success else "Program execution failed",
            "result": result,
            "display": self.engine.display_execution_results(result),
        }

    def compile_and_execute(self, source: str) -> Dict[str, Any]:
        compiled = self.compile(source)
        if not compiled["success"]:
            return compiled
        executed = self.execute()
        return {
            "success": executed["success"],
            "message": f"{compiled['message']}. {executed['message']}",
            "compile_result": compiled["result"],
            "execute_result": executed["result"],
            "display": f"{compiled['display']}\n\n{executed['display']}",
        }

    def list_files(self) -> Dict[str, Any]:
        try:
            files = []
            for path in sorted(self.workspace.iterdir()):
                if not path.is_file():
                    continue
                stats = path.stat()
                files.append(
                    {
                        "name": path.name,
                        "size": stats.st_size,
                        "modified": datetime.fromtimestamp(stats.st_mtime),
                        "type": path.suffix.lower(),
                    }
                )
        except OSError as exc:
            return {"success": False, "message": f"Error listing files: {exc}"}
        return {"success": True, "files": files, "message": f"Found {len(files)} files in workspace"}

    def create_sample(self, emulator_type: str, name: str) -> Dict[str, Any]:
        engine_type = resolve_engine_type(emulator_type) or emulator_type
        try:
            sample = self.samples.get(engine_type, name)
            path = self._resolve(sample.filename)
            path.write_text(sample.source, encoding="utf-8")
        except (SampleError, WorkspaceError) as exc:
            return {"success": False, "message": exc.message}
        except OSError as exc:
            return {"success": False, "message": f"Error saving file: {exc}"}
        logger.info("Created sample %s/%s at %s", engine_type, sample.name, path)
        return {
            "success": True,
            "message": f"Sample program created: {sample.filename}",
            "filename": sample.filename,
            "source": sample.source,
        }

    def get_help(self, emulator_type: Optional[str] = None) -> Dict[str, Any]:
        engine_type = resolve_engine_type(emulator_type) if emulator_type else None
        topic = help_for(engine_type)
        return {"success": True, "message": topic["message"], "help": topic["help"]}

    def get_status(self) -> Dict[str, Any]:
        return {
            "current_emulator": ENGINE_TITLES.get(self.engine_type or "", "None"),
            "current_file": self.current_file or "None",
            "workspace": str(self.workspace),
            "compiled": self.compiled is not None,
        }
