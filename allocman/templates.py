"""
Allocator source templates - Skeletons for new allocators via Jinja2.

A new allocator starts from one of a few built-in policies. The rendered
module defines a class named after the allocator, subclassing
allocman.allocator.Allocator, so it compiles and loads as-is.

Policies:
  round_robin: Cycle through resources in order
  least_loaded: Place each job (highest priority first, then largest) on
                the resource that would finish it earliest
"""

from jinja2 import Environment

from allocman.errors import InvalidNameError
from allocman.names import validate

POLICIES = ("round_robin", "least_loaded")

DEFAULT_POLICY = "round_robin"

ALLOCATOR_TEMPLATE = '''"""{{ name }} - {{ summary }}"""

from allocman.allocator import Allocator


class {{ name }}(Allocator):
    """{{ summary }}"""

    def schedule(self, jobs, resources):
        if not resources:
            return {}
{% if policy == "round_robin" %}
        return {
            job.job_id: resources[i % len(resources)].resource_id
            for i, job in enumerate(jobs)
        }
{% elif policy == "least_loaded" %}
        finish = {r.resource_id: 0.0 for r in resources}
        capacity = {r.resource_id: r.capacity for r in resources}
        assignment = {}
        for job in sorted(jobs, key=lambda j: (-j.priority, -j.size, j.job_id)):
            target = min(
                finish,
                key=lambda rid: (finish[rid] + job.size / capacity[rid], rid),
            )
            finish[target] += job.size / capacity[target]
            assignment[job.job_id] = target
        return assignment
{% endif %}
'''

_SUMMARIES = {
    "round_robin": "assigns jobs to resources in round-robin order.",
    "least_loaded": "assigns each job to the resource that finishes it earliest.",
}

_env = Environment(trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True)


def render_allocator(name: str, policy: str = DEFAULT_POLICY) -> str:
    """
    Render the source of a new allocator.

    Args:
        name: Allocator (and class) name
        policy: One of POLICIES

    Returns:
        Python source text

    Raises:
        InvalidNameError: If name is not a legal allocator name
        ValueError: If policy is unknown
    """
    if not validate(name):
        raise InvalidNameError(name)
    if policy not in POLICIES:
        raise ValueError(f"Unknown policy: {policy}. Available: {', '.join(POLICIES)}")

    template = _env.from_string(ALLOCATOR_TEMPLATE)
    return template.render(name=name, policy=policy, summary=f"{name} {_SUMMARIES[policy]}")
