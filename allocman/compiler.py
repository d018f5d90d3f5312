"""
Compiler - Turn one allocator text snapshot into a CompiledArtifact.

Compilation has two phases:
1. Toolchain: the snapshot is written to a private build directory as
   <name>.py and an external process (default: ``python -m py_compile``)
   is run against it. A non-zero exit is a failure whose combined
   stdout/stderr is surfaced verbatim.
2. Load: the snapshot is imported as an isolated module and checked against
   the allocator contract (a class named after the allocator, instantiable
   without arguments, with a callable ``schedule``).

Either phase failing yields a CompileOutcome with non-empty diagnostics;
the compiler never raises for bad allocator source.
"""

import importlib.util
import inspect
import itertools
import logging
import subprocess
import sys
import tempfile
import traceback
from datetime import datetime, timezone
from pathlib import Path
from types import ModuleType
from typing import Any, Optional, Sequence

from allocman.artifact import CompiledArtifact
from allocman.schemas import CompileOutcome, text_digest
from allocman.source_store import SOURCE_SUFFIX

logger = logging.getLogger(__name__)

# Loaded allocator modules live under this prefix in sys.modules
ARTIFACT_MODULE_PREFIX = "allocman_artifacts"

_module_counter = itertools.count(1)


def _utcnow() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def default_toolchain() -> list[str]:
    return [sys.executable, "-m", "py_compile", "{source}"]


class Compiler:
    """
    Compiles allocator sources with an external toolchain and loads them.

    The compiler is stateless between calls and safe to use from several
    worker threads at once; the registry is responsible for never compiling
    the same name twice concurrently.
    """

    def __init__(
        self,
        toolchain: Optional[Sequence[str]] = None,
        timeout: float = 60.0,
        build_root: Optional[Path] = None,
    ):
        """
        Initialize the compiler.

        Args:
            toolchain: Command argv; "{source}" is replaced with the path of
                the snapshot. Defaults to ``python -m py_compile {source}``.
            timeout: Seconds before the toolchain process is abandoned
            build_root: Parent directory for build dirs (system temp if None)
        """
        self._toolchain = list(toolchain) if toolchain else default_toolchain()
        self._timeout = timeout
        self._build_root = build_root

    @classmethod
    def from_config(cls, config) -> "Compiler":
        return cls(toolchain=config.toolchain_command(), timeout=config.compile_timeout)

    @property
    def toolchain(self) -> list[str]:
        return list(self._toolchain)

    def compile(self, name: str, text: str) -> CompileOutcome:
        """
        Compile one allocator snapshot.

        Args:
            name: Allocator name (already validated)
            text: The exact source text to compile

        Returns:
            CompileOutcome with an artifact on success, diagnostics on failure
        """
        started_at = _utcnow()
        digest = text_digest(text)
        artifact: Optional[CompiledArtifact] = None

        logger.info(
            f"Compiling {name} ({digest[:12]})",
            extra={"allocator": name, "event": "compile_started", "metadata": {"digest": digest}},
        )

        with tempfile.TemporaryDirectory(prefix=f"allocman-{name}-", dir=self._build_root) as build_dir:
            source_path = Path(build_dir) / f"{name}{SOURCE_SUFFIX}"
            source_path.write_text(text, encoding="utf-8")

            diagnostics = self._run_toolchain(name, source_path, Path(build_dir))
            if diagnostics is None:
                artifact, diagnostics = self._load(name, digest, source_path)

        completed_at = _utcnow()
        outcome = CompileOutcome(
            name=name,
            digest=digest,
            success=artifact is not None,
            artifact=artifact,
            diagnostics=diagnostics if artifact is None else None,
            started_at=started_at,
            completed_at=completed_at,
        )

        if outcome.success:
            logger.info(
                f"Compiled {name} in {outcome.duration_ms}ms",
                extra={"allocator": name, "event": "compile_succeeded", "metadata": {"digest": digest}},
            )
        else:
            logger.warning(
                f"Compilation of {name} failed",
                extra={
                    "allocator": name,
                    "event": "compile_failed",
                    "metadata": {"digest": digest, "diagnostics": diagnostics},
                },
            )
        return outcome

    def _run_toolchain(self, name: str, source_path: Path, build_dir: Path) -> Optional[str]:
        """Run the external toolchain. Returns diagnostics, or None on success."""
        command = [arg.replace("{source}", str(source_path)) for arg in self._toolchain]

        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                cwd=str(build_dir),
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            return f"{name}: toolchain timed out after {self._timeout}s: {' '.join(command)}"
        except OSError as e:
            return f"{name}: cannot run toolchain {command[0]!r}: {e}"

        if result.returncode != 0:
            output = result.stdout or ""
            if output.strip():
                return output
            return f"{name}: toolchain exited with status {result.returncode}"
        return None

    def _load(
        self,
        name: str,
        digest: str,
        source_path: Path,
    ) -> tuple[Optional[CompiledArtifact], Optional[str]]:
        """Import the snapshot as an isolated module and check the contract."""
        module_name = f"{ARTIFACT_MODULE_PREFIX}.{name}_{digest[:12]}_{next(_module_counter)}"
        spec = importlib.util.spec_from_file_location(module_name, source_path)
        module = importlib.util.module_from_spec(spec)

        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
            instance = _instantiate(name, module)
        except KeyboardInterrupt:
            sys.modules.pop(module_name, None)
            raise
        except ContractViolation as e:
            sys.modules.pop(module_name, None)
            return None, str(e)
        except BaseException:
            # allocator code may raise SystemExit or other non-Exception errors
            sys.modules.pop(module_name, None)
            return None, traceback.format_exc().strip()

        artifact = CompiledArtifact(
            name=name,
            digest=digest,
            module=module,
            instance=instance,
            compiled_at=_utcnow(),
        )
        return artifact, None


class ContractViolation(Exception):
    """The module loaded but does not provide a usable allocator class."""
    pass


def _instantiate(name: str, module: ModuleType) -> Any:
    """Return an allocator instance from a loaded module."""
    cls = getattr(module, name, None)
    if cls is None:
        raise ContractViolation(f"{name}: module does not define class {name}")
    if not inspect.isclass(cls):
        raise ContractViolation(f"{name}: {name} must be a class, got {type(cls).__name__}")

    instance = cls()
    if not callable(getattr(instance, "schedule", None)):
        raise ContractViolation(f"{name}: class {name} does not define a callable schedule(jobs, resources)")
    return instance
