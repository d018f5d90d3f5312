"""
AllocatorRegistry - Lifecycle manager for named allocators.

The registry provides:
- One SourceRecord per allocator name (created by create/import/install)
- Name validation before any storage write
- Per-name compile state machine: uncompiled -> compiling -> compiled|failed
- At most one live CompiledArtifact per name
- Compiles on a bounded worker pool, serialized per name

Ordering guarantee: every compile takes a ticket carrying a sequence number
and the digest of the text it compiles. An outcome is applied only if the
record it was issued for still exists, the digest still matches the
persisted text, and no later ticket has already been applied. Anything else
is discarded and its artifact released, so a slow compile of superseded
text can never overwrite newer state.

The registry never tracks editor sessions; callers that keep a "currently
open" allocator pass it to delete() and get told whether to close it.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional, Union

from allocman.artifact import CompiledArtifact
from allocman.compiler import Compiler
from allocman.errors import AlreadyExistsError, InvalidNameError, IOFailure, NotFoundError
from allocman.importer import Importer
from allocman.names import validate
from allocman.schemas import CompileOutcome, CompileState, SourceRecord, text_digest
from allocman.source_store import FileSourceStore, SourceStore
from allocman.templates import DEFAULT_POLICY, render_allocator

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    """Registry-private bookkeeping for one record."""
    record: SourceRecord
    next_seq: int = 0
    applied_seq: int = 0
    applied_state: Optional[CompileState] = None
    applied_digest: Optional[str] = None
    in_flight: dict[int, str] = field(default_factory=dict)  # seq -> digest


@dataclass(frozen=True)
class CompileTicket:
    """
    Handle for one issued compile.

    Attributes:
        name: Allocator name
        seq: Sequence number, increasing per record
        digest: SHA256 of the snapshot text
        text: The snapshot text to compile
    """
    name: str
    seq: int
    digest: str
    text: str = field(repr=False)
    _slot: _Slot = field(repr=False, compare=False)


class AllocatorRegistry:
    """
    Registry and lifecycle manager for allocators.

    The only component editors and the simulator talk to. All state
    mutations go through this class; callers get copies of records.

    Example:
        with AllocatorRegistry(FileSourceStore("allocators/")) as registry:
            registry.create("RoundRobin")
            outcome = registry.compile("RoundRobin")
            artifact = registry.get_artifact("RoundRobin")
    """

    def __init__(
        self,
        store: SourceStore,
        compiler: Optional[Compiler] = None,
        max_workers: int = 4,
        validator: Callable[[object], bool] = validate,
    ):
        """
        Initialize the registry.

        Every name already persisted in the store is loaded as uncompiled.

        Args:
            store: Source text storage
            compiler: Compiler to use (default toolchain if None)
            max_workers: Upper bound on concurrent compiles
            validator: Name validator
        """
        self._store = store
        self._compiler = compiler or Compiler()
        self._validator = validator
        self._importer = Importer(store, validator)
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="allocman-compile",
        )

        self._lock = threading.RLock()
        self._slots: dict[str, _Slot] = {}
        self._artifacts: dict[str, CompiledArtifact] = {}
        self._compile_locks: dict[str, threading.Lock] = {}

        self._load_persisted()

    @classmethod
    def from_config(cls, config) -> "AllocatorRegistry":
        """Build a file-backed registry from an AllocmanConfig."""
        return cls(
            FileSourceStore(config.allocators_path),
            compiler=Compiler.from_config(config),
            max_workers=config.max_workers,
        )

    @property
    def store(self) -> SourceStore:
        return self._store

    @property
    def compiler(self) -> Compiler:
        return self._compiler

    def _load_persisted(self) -> None:
        for name in self._store.list():
            if not self._validator(name):
                logger.warning(
                    f"Ignoring stored source with invalid name: {name}",
                    extra={"allocator": name, "event": "invalid_stored_name"},
                )
                continue
            text = self._store.read(name)
            self._slots[name] = _Slot(SourceRecord(name=name, source_text=text))
        logger.debug(f"Loaded {len(self._slots)} allocators from store")

    def _require(self, name: str) -> _Slot:
        slot = self._slots.get(name)
        if slot is None:
            raise NotFoundError(name)
        return slot

    def _compile_lock(self, name: str) -> threading.Lock:
        with self._lock:
            return self._compile_locks.setdefault(name, threading.Lock())

    def _drop_compile_lock_locked(self, name: str) -> None:
        """Forget the per-name compile lock of a deleted allocator unless a compile holds it."""
        lock = self._compile_locks.get(name)
        if lock is not None and not lock.locked():
            del self._compile_locks[name]

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self) -> list[str]:
        """All registered allocator names, sorted."""
        with self._lock:
            return sorted(self._slots)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._slots

    def get(self, name: str) -> SourceRecord:
        """
        Get a copy of the record for an allocator.

        Raises:
            NotFoundError: If name is not registered
        """
        with self._lock:
            return dataclasses.replace(self._require(name).record)

    def records(self) -> list[SourceRecord]:
        """Copies of all records, sorted by name."""
        with self._lock:
            return [dataclasses.replace(self._slots[n].record) for n in sorted(self._slots)]

    def get_artifact(self, name: str) -> Optional[CompiledArtifact]:
        """
        Get the latest successfully compiled artifact for an allocator.

        Returns:
            The artifact, or None if the allocator never compiled
            successfully or is currently failed or compiling

        Raises:
            NotFoundError: If name is not registered
        """
        with self._lock:
            record = self._require(name).record
            if record.state in (CompileState.FAILED, CompileState.COMPILING):
                return None
            return self._artifacts.get(name)

    # ------------------------------------------------------------------
    # Source lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        name: str,
        initial_text: Optional[str] = None,
        policy: str = DEFAULT_POLICY,
    ) -> SourceRecord:
        """
        Create a new allocator.

        Args:
            name: Allocator name
            initial_text: Source text; a template for `policy` if None
            policy: Template policy used when initial_text is None

        Returns:
            Copy of the new record (state uncompiled)

        Raises:
            InvalidNameError: If name is rejected by the validator
            AlreadyExistsError: If name is taken
            IOFailure: If the store write fails
        """
        if not self._validator(name):
            raise InvalidNameError(name)
        text = initial_text if initial_text is not None else render_allocator(name, policy)

        with self._lock:
            if name in self._slots or self._store.exists(name):
                raise AlreadyExistsError(name)
            self._store.write(name, text)
            slot = _Slot(SourceRecord(name=name, source_text=text))
            self._slots[name] = slot
            record = dataclasses.replace(slot.record)

        logger.info(f"Created allocator {name}", extra={"allocator": name, "event": "created"})
        return record

    def open(self, name: str) -> str:
        """
        Return the persisted text of an allocator.

        Raises:
            NotFoundError: If name is not registered
        """
        with self._lock:
            self._require(name)
        return self._store.read(name)

    def edit(self, name: str, new_text: str) -> SourceRecord:
        """
        Replace the in-memory text of an allocator without persisting it.

        Marks the record dirty; a compiled or failed record becomes
        uncompiled. A compile already in flight keeps the record compiling.

        Raises:
            NotFoundError: If name is not registered
        """
        with self._lock:
            slot = self._require(name)
            slot.record.source_text = new_text
            slot.record.dirty = True
            self._settle_locked(slot)
            return dataclasses.replace(slot.record)

    def save(self, name: str) -> SourceRecord:
        """
        Persist the in-memory text of an allocator.

        Clears the dirty flag. If the persisted text changed, the record
        becomes uncompiled and any compile still in flight is stale.

        Raises:
            NotFoundError: If name is not registered
            IOFailure: If the store write fails (record left unchanged)
        """
        with self._lock:
            slot = self._require(name)
            self._save_locked(slot)
            return dataclasses.replace(slot.record)

    def revert(self, name: str) -> SourceRecord:
        """
        Drop unsaved edits, restoring the persisted text.

        Raises:
            NotFoundError: If name is not registered
            IOFailure: If the store read fails (record left unchanged)
        """
        with self._lock:
            slot = self._require(name)
            slot.record.source_text = self._store.read(name)
            slot.record.persisted_digest = text_digest(slot.record.source_text)
            slot.record.dirty = False
            self._settle_locked(slot)
            return dataclasses.replace(slot.record)

    def _save_locked(self, slot: _Slot) -> None:
        record = slot.record
        self._store.write(record.name, record.source_text)

        digest = text_digest(record.source_text)
        changed = digest != record.persisted_digest
        record.persisted_digest = digest
        record.dirty = False
        self._settle_locked(slot)
        logger.debug(
            f"Saved allocator {record.name}",
            extra={"allocator": record.name, "event": "saved", "metadata": {"changed": changed}},
        )

    def _settle_locked(self, slot: _Slot) -> None:
        """
        Derive a record's state from its text and compile bookkeeping.

        compiling: a compile of the persisted text is in flight and could
            still be applied
        uncompiled: unsaved edits, or no applied outcome for the persisted text
        compiled/failed: the applied outcome matches the persisted text
        """
        record = slot.record
        record.modified_since_compile = (
            slot.applied_digest is None
            or text_digest(record.source_text) != slot.applied_digest
        )
        pending = any(
            seq > slot.applied_seq and digest == record.persisted_digest
            for seq, digest in slot.in_flight.items()
        )
        if pending:
            record.state = CompileState.COMPILING
        elif record.dirty or slot.applied_digest != record.persisted_digest:
            record.state = CompileState.UNCOMPILED
        else:
            record.state = slot.applied_state

    def delete(self, name: str, open_name: Optional[str] = None) -> bool:
        """
        Delete an allocator: record, persisted text and artifact.

        Args:
            name: Allocator to delete
            open_name: The allocator the caller currently has open, if any

        Returns:
            True if the caller must close its session (name == open_name)

        Raises:
            NotFoundError: If name is not registered
            IOFailure: If the store delete fails (nothing is removed)
        """
        with self._lock:
            self._require(name)
            self._store.delete(name)
            del self._slots[name]
            self._drop_compile_lock_locked(name)
            artifact = self._artifacts.pop(name, None)

        if artifact is not None:
            artifact.release()
        logger.info(f"Deleted allocator {name}", extra={"allocator": name, "event": "deleted"})
        return open_name is not None and open_name == name

    def import_file(self, external_path: Union[str, Path]) -> SourceRecord:
        """
        Import an external source file as an allocator.

        The name is the file name without its extension. An existing
        allocator with that name is overwritten: its text is replaced,
        unsaved edits are dropped, its artifact is released and its state
        resets to uncompiled.

        Raises:
            AllocatorImportError: If the file cannot be read
            InvalidNameError: If the derived name is not legal
            IOFailure: If the store write fails
        """
        with self._lock:
            name, text = self._importer.import_file(external_path)
            overwritten = name in self._slots
            artifact = self._replace_locked(name, text)
            record = dataclasses.replace(self._slots[name].record)

        if artifact is not None:
            artifact.release()
        if overwritten:
            logger.info(
                f"Import overwrote allocator {name}",
                extra={"allocator": name, "event": "import_overwrite"},
            )
        return record

    def _replace_locked(self, name: str, text: str) -> Optional[CompiledArtifact]:
        """Install a fresh record for name; returns the artifact to release."""
        self._slots[name] = _Slot(SourceRecord(name=name, source_text=text))
        return self._artifacts.pop(name, None)

    def install(self, name: str, text: str, timeout: Optional[float] = None) -> CompileOutcome:
        """
        Store generated source under name (creating or overwriting) and compile it.

        Used by source generators that hand over a finished name and text.

        Raises:
            InvalidNameError: If name is rejected by the validator
            IOFailure: If the store write fails
        """
        if not self._validator(name):
            raise InvalidNameError(name)

        with self._lock:
            self._store.write(name, text)
            artifact = self._replace_locked(name, text)

        if artifact is not None:
            artifact.release()
        logger.info(f"Installed allocator {name}", extra={"allocator": name, "event": "installed"})
        return self.compile(name, timeout=timeout)

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def compile(self, name: str, timeout: Optional[float] = None) -> CompileOutcome:
        """
        Compile an allocator and wait for the outcome.

        Saves first if the record is dirty. The toolchain runs on the
        worker pool; the calling thread only waits. If the wait times out
        the compile keeps running and its outcome still lands.

        Returns:
            The outcome; `applied` is False if it was discarded as stale

        Raises:
            NotFoundError: If name is not registered
            IOFailure: If the implicit save fails
            concurrent.futures.TimeoutError: If timeout elapses first
        """
        return self.submit_compile(name).result(timeout=timeout)

    def submit_compile(self, name: str) -> Future[CompileOutcome]:
        """
        Issue a compile without waiting.

        Cancelling the returned future before it starts abandons the
        compile.

        Raises:
            NotFoundError: If name is not registered
            IOFailure: If the implicit save fails
        """
        ticket = self.begin_compile(name)
        try:
            future = self._executor.submit(self._run_compile, ticket)
        except RuntimeError:
            # pool already shut down
            self._abandon(ticket)
            raise

        def _on_done(f: Future) -> None:
            if f.cancelled():
                self._abandon(ticket)

        future.add_done_callback(_on_done)
        return future

    def begin_compile(self, name: str) -> CompileTicket:
        """
        First phase of a compile: snapshot the text and mark compiling.

        Every ticket must be passed to finish_compile() exactly once.

        Raises:
            NotFoundError: If name is not registered
            IOFailure: If the implicit save fails
        """
        with self._lock:
            slot = self._require(name)
            if slot.record.dirty:
                self._save_locked(slot)

            record = slot.record
            slot.next_seq += 1
            slot.in_flight[slot.next_seq] = record.persisted_digest
            self._settle_locked(slot)
            return CompileTicket(
                name=name,
                seq=slot.next_seq,
                digest=record.persisted_digest,
                text=record.source_text,
                _slot=slot,
            )

    def finish_compile(self, ticket: CompileTicket, outcome: CompileOutcome) -> CompileOutcome:
        """
        Second phase of a compile: apply the outcome or discard it as stale.

        On success the new artifact is published and the previous one
        released. On failure diagnostics are recorded and the previous
        artifact is released too.

        Returns:
            The outcome with `applied` set accordingly
        """
        to_release: list[CompiledArtifact] = []

        with self._lock:
            slot = ticket._slot
            slot.in_flight.pop(ticket.seq, None)
            record = slot.record
            is_current = self._slots.get(ticket.name) is slot
            applied = (
                is_current
                and outcome.digest == record.persisted_digest
                and ticket.seq > slot.applied_seq
            )

            if applied:
                slot.applied_seq = ticket.seq
                slot.applied_digest = outcome.digest
                previous = self._artifacts.pop(ticket.name, None)
                if previous is not None:
                    to_release.append(previous)

                if outcome.success:
                    self._artifacts[ticket.name] = outcome.artifact
                    slot.applied_state = CompileState.COMPILED
                    record.last_diagnostics = None
                else:
                    slot.applied_state = CompileState.FAILED
                    record.last_diagnostics = outcome.diagnostics
            elif outcome.artifact is not None:
                to_release.append(outcome.artifact)

            if is_current:
                self._settle_locked(slot)

        for artifact in to_release:
            artifact.release()

        if not applied:
            logger.info(
                f"Discarded stale compile of {ticket.name} (seq {ticket.seq})",
                extra={"allocator": ticket.name, "event": "compile_discarded", "metadata": {"seq": ticket.seq}},
            )
        return dataclasses.replace(outcome, applied=applied)

    def _abandon(self, ticket: CompileTicket) -> None:
        with self._lock:
            slot = ticket._slot
            slot.in_flight.pop(ticket.seq, None)
            if self._slots.get(ticket.name) is slot:
                self._settle_locked(slot)
        logger.debug(f"Abandoned compile of {ticket.name} (seq {ticket.seq})")

    def _run_compile(self, ticket: CompileTicket) -> CompileOutcome:
        outcome: Optional[CompileOutcome] = None
        try:
            with self._compile_lock(ticket.name):
                try:
                    outcome = self._compiler.compile(ticket.name, ticket.text)
                except OSError as e:
                    raise IOFailure(f"Cannot prepare build of {ticket.name}: {e}", e) from e
        finally:
            if outcome is None:
                self._abandon(ticket)
            with self._lock:
                if ticket.name not in self._slots:
                    self._drop_compile_lock_locked(ticket.name)
        return self.finish_compile(ticket, outcome)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def close(self, wait: bool = True) -> None:
        """Shut down the compile worker pool."""
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def __enter__(self) -> "AllocatorRegistry":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
