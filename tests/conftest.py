import threading
from datetime import datetime, timezone
from types import ModuleType

import pytest

from allocman.artifact import CompiledArtifact
from allocman.registry import AllocatorRegistry
from allocman.schemas import CompileOutcome, text_digest
from allocman.source_store import InMemorySourceStore


def allocator_source(name: str, resource: str = None) -> str:
    """Source of a minimal allocator; pins every job to `resource` if given."""
    if resource is None:
        body = "        return {j.job_id: resources[0].resource_id for j in jobs} if resources else {}"
    else:
        body = f"        return {{j.job_id: {resource!r} for j in jobs}}"
    return (
        f"class {name}:\n"
        f"    def schedule(self, jobs, resources):\n"
        f"{body}\n"
    )


class _FixedAllocator:
    def __init__(self, tag):
        self.tag = tag

    def schedule(self, jobs, resources):
        return {j.job_id: resources[0].resource_id for j in jobs}


class FakeCompiler:
    """
    Compiler stand-in that never spawns a process.

    Text containing "BROKEN" fails with diagnostics. Texts registered with
    block() wait on an event before completing, so tests can control the
    order in which concurrent compiles finish.
    """

    def __init__(self):
        self.calls = []
        self._gates = {}
        self._started = {}
        self._lock = threading.Lock()

    def block(self, text: str) -> threading.Event:
        gate = threading.Event()
        with self._lock:
            self._gates[text] = gate
            self._started[text] = threading.Event()
        return gate

    def wait_started(self, text: str, timeout: float = 5.0) -> bool:
        return self._started[text].wait(timeout)

    def compile(self, name, text):
        with self._lock:
            self.calls.append((name, text))
            gate = self._gates.get(text)
            started = self._started.get(text)
        if started is not None:
            started.set()
        if gate is not None:
            assert gate.wait(5.0), "gate never opened"

        now = datetime.now(timezone.utc)
        digest = text_digest(text)
        if "BROKEN" in text:
            return CompileOutcome(
                name=name, digest=digest, success=False,
                diagnostics=f"{name}.py:1: syntax error",
                started_at=now, completed_at=now,
            )
        artifact = CompiledArtifact(
            name=name,
            digest=digest,
            module=ModuleType(f"fake_{name}_{digest[:8]}"),
            instance=_FixedAllocator(text),
            compiled_at=now,
        )
        return CompileOutcome(
            name=name, digest=digest, success=True, artifact=artifact,
            started_at=now, completed_at=now,
        )


@pytest.fixture
def store():
    return InMemorySourceStore()


@pytest.fixture
def fake_compiler():
    return FakeCompiler()


@pytest.fixture
def registry(store, fake_compiler):
    reg = AllocatorRegistry(store, compiler=fake_compiler, max_workers=4)
    yield reg
    reg.close()
