"""Tests for allocman.schemas dataclasses."""

from datetime import datetime, timedelta, timezone

import pytest

from allocman.schemas import (
    Assignment,
    CompileOutcome,
    CompileState,
    Job,
    Resource,
    SourceRecord,
    text_digest,
)


class TestSourceRecord:
    """Tests for SourceRecord."""

    def test_defaults(self):
        record = SourceRecord(name="A", source_text="text")
        assert record.state == CompileState.UNCOMPILED
        assert record.dirty is False
        assert record.modified_since_compile is True
        assert record.persisted_digest == text_digest("text")

    def test_to_dict(self):
        record = SourceRecord(name="A", source_text="text", last_diagnostics="boom")
        data = record.to_dict()
        assert data["state"] == "uncompiled"
        assert data["last_diagnostics"] == "boom"
        assert "source_text" not in data

    def test_state_is_str_enum(self):
        assert CompileState("compiled") is CompileState.COMPILED
        assert CompileState.FAILED == "failed"


class TestCompileOutcome:
    """Tests for CompileOutcome invariants."""

    NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_failure_requires_diagnostics(self):
        with pytest.raises(ValueError):
            CompileOutcome(name="A", digest="d", success=False, diagnostics="",
                           started_at=self.NOW, completed_at=self.NOW)

    def test_success_requires_artifact(self):
        with pytest.raises(ValueError):
            CompileOutcome(name="A", digest="d", success=True,
                           started_at=self.NOW, completed_at=self.NOW)

    def test_to_dict(self):
        outcome = CompileOutcome(
            name="A", digest="d", success=False, diagnostics="line 1",
            started_at=self.NOW, completed_at=self.NOW + timedelta(milliseconds=250),
        )
        data = outcome.to_dict()
        assert data["duration_ms"] == 250
        assert data["diagnostics"] == "line 1"
        assert data["applied"] is True

    def test_raise_for_failure_on_success_path(self, fake_compiler):
        outcome = fake_compiler.compile("A", "fine")
        assert outcome.raise_for_failure() is outcome
        outcome.artifact.release()


class TestScheduling:
    """Tests for Job, Resource and Assignment."""

    def test_job_from_dict(self):
        job = Job.from_dict({"job_id": 7, "size": "2.5", "priority": "3"})
        assert job == Job("7", size=2.5, priority=3)
        assert Job.from_dict(job.to_dict()) == job

    def test_job_validation(self):
        with pytest.raises(ValueError):
            Job("")
        with pytest.raises(ValueError):
            Job("j", size=-1)

    def test_resource_validation(self):
        with pytest.raises(ValueError):
            Resource("m", capacity=0)
        assert Resource.from_dict({"resource_id": "m"}).capacity == 1.0

    def test_assignment_queries(self):
        assignment = Assignment({"j2": "m1", "j1": "m1", "j3": "m2"})
        assert assignment.jobs_on("m1") == ["j1", "j2"]
        assert assignment.resource_for("j9") is None
        assert assignment.to_dict() == {"mapping": {"j2": "m1", "j1": "m1", "j3": "m2"}}
