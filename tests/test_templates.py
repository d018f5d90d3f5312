"""Tests for allocator source templates."""

import pytest

from allocman.compiler import Compiler
from allocman.errors import InvalidNameError
from allocman.schemas import Job, Resource
from allocman.templates import POLICIES, render_allocator


class TestRender:
    """Tests for render_allocator()."""

    @pytest.mark.parametrize("policy", POLICIES)
    def test_defines_named_class(self, policy):
        text = render_allocator("MyAlloc", policy)
        assert "class MyAlloc(Allocator):" in text
        assert "def schedule(self, jobs, resources):" in text
        assert text.endswith("\n")

    def test_invalid_name(self):
        with pytest.raises(InvalidNameError):
            render_allocator("not-valid")

    def test_unknown_policy(self):
        with pytest.raises(ValueError, match="Unknown policy"):
            render_allocator("Fine", "random")


class TestRenderedAllocators:
    """Rendered templates compile and behave as documented."""

    @pytest.fixture
    def compile_policy(self, tmp_path):
        artifacts = []

        def _compile(name, policy):
            outcome = Compiler(build_root=tmp_path).compile(name, render_allocator(name, policy))
            assert outcome.success, outcome.diagnostics
            artifacts.append(outcome.artifact)
            return outcome.artifact

        yield _compile
        for artifact in artifacts:
            artifact.release()

    def test_round_robin(self, compile_policy):
        artifact = compile_policy("RR", "round_robin")
        jobs = [Job(f"j{i}") for i in range(5)]
        resources = [Resource("m1"), Resource("m2")]
        assignment = artifact.schedule(jobs, resources)
        assert assignment.jobs_on("m1") == ["j0", "j2", "j4"]
        assert assignment.jobs_on("m2") == ["j1", "j3"]

    def test_no_resources_leaves_jobs_pending(self, compile_policy):
        artifact = compile_policy("RR", "round_robin")
        assert len(artifact.schedule([Job("j1")], [])) == 0

    def test_least_loaded_prefers_fast_resource(self, compile_policy):
        artifact = compile_policy("Greedy", "least_loaded")
        jobs = [Job("big", size=100), Job("small", size=10)]
        resources = [Resource("slow", capacity=1), Resource("fast", capacity=10)]
        assignment = artifact.schedule(jobs, resources)
        # big: 10 on fast vs 100 on slow; small: 10 on slow vs 11 on fast
        assert assignment.resource_for("big") == "fast"
        assert assignment.resource_for("small") == "slow"

    def test_least_loaded_honours_priority(self, compile_policy):
        artifact = compile_policy("Greedy", "least_loaded")
        jobs = [Job("low", size=10, priority=0), Job("high", size=10, priority=5)]
        resources = [Resource("a", capacity=2), Resource("b", capacity=1)]
        assignment = artifact.schedule(jobs, resources)
        assert assignment.resource_for("high") == "a"
