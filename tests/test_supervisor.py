"""Tests for node retry and timeout supervision."""

import asyncio

import pytest

from workflow_engine.core.exceptions import NodeSkipped
from workflow_engine.core.supervisor import NodeSupervisor, RetryPolicy
from workflow_engine.models.core import NodeDefinition, NodeResultStatus


class FlakyCall:
    """Coroutine factory failing a fixed number of times before succeeding."""

    def __init__(self, failures: int, result="ok"):
        self.failures = failures
        self.result = result
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"failure {self.calls}")
        return self.result


@pytest.fixture
def node():
    return NodeDefinition(id="n1", type="task")


@pytest.fixture
def supervisor():
    return NodeSupervisor(RetryPolicy(max_retries=3, retry_delay=0.0, node_timeout=1.0))


class TestRetryPolicy:

    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_retries == 3
        assert policy.retry_delay == 1.0
        assert policy.node_timeout == 300.0

    def test_linear_backoff(self):
        policy = RetryPolicy(retry_delay=0.5)
        assert [policy.get_delay(attempt) for attempt in (1, 2, 3)] == [0.5, 1.0, 1.5]

    def test_node_overrides(self):
        policy = RetryPolicy()
        node = NodeDefinition(id="n", type="task", config={"node_timeout": 5, "max_retries": 0})

        effective = policy.for_node(node)

        assert effective.node_timeout == 5
        assert effective.max_retries == 0
        assert policy.max_retries == 3

    def test_handler_timeout_key_does_not_change_deadline(self):
        policy = RetryPolicy(node_timeout=60)
        node = NodeDefinition(id="n", type="api", config={"url": "https://example.com", "method": "GET", "timeout": 2})

        assert policy.for_node(node).node_timeout == 60

    def test_invalid_override_is_ignored(self):
        policy = RetryPolicy()
        node = NodeDefinition(id="n", type="task", config={"max_retries": -2})

        assert policy.for_node(node) is policy


class TestNodeSupervisor:

    @pytest.mark.asyncio
    async def test_success_first_try(self, supervisor, node):
        call = FlakyCall(failures=0)
        result = await supervisor.run(node, call)

        assert result.status == NodeResultStatus.SUCCESS
        assert result.output == "ok"
        assert result.retries == 0
        assert result.attempts == 1
        assert call.calls == 1

    @pytest.mark.asyncio
    async def test_success_after_failures_counts_retries(self, supervisor, node):
        call = FlakyCall(failures=2)
        result = await supervisor.run(node, call)

        assert result.status == NodeResultStatus.SUCCESS
        assert result.retries == 2
        assert call.calls == 3

    @pytest.mark.asyncio
    async def test_exhaustion_never_exceeds_budget(self, supervisor, node):
        call = FlakyCall(failures=100)
        result = await supervisor.run(node, call)

        assert result.status == NodeResultStatus.FAILURE
        assert result.retries == 3
        assert call.calls == 4
        assert result.error == "failure 4"
        assert result.error_type == "RuntimeError"

    @pytest.mark.asyncio
    async def test_zero_retries_invokes_once(self, node):
        call = FlakyCall(failures=1)
        supervisor = NodeSupervisor(RetryPolicy(max_retries=0, retry_delay=0.0, node_timeout=1.0))

        result = await supervisor.run(node, call)

        assert result.status == NodeResultStatus.FAILURE
        assert result.retries == 0
        assert call.calls == 1

    @pytest.mark.asyncio
    async def test_timeout_is_tagged(self, node):
        supervisor = NodeSupervisor(RetryPolicy(max_retries=1, retry_delay=0.0, node_timeout=0.05))
        calls = []

        async def never_settles():
            calls.append(1)
            await asyncio.sleep(10)

        result = await supervisor.run(node, never_settles)

        assert result.status == NodeResultStatus.FAILURE
        assert result.error_type == "TimeoutError"
        assert "timeout" in result.error.lower()
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_handler_raised_timeout_is_not_a_deadline(self, node):
        supervisor = NodeSupervisor(RetryPolicy(max_retries=0, retry_delay=0.0, node_timeout=5.0))

        async def upstream_timed_out():
            raise asyncio.TimeoutError("upstream gateway timed out")

        result = await supervisor.run(node, upstream_timed_out)

        assert result.status == NodeResultStatus.FAILURE
        assert result.error == "upstream gateway timed out"
        assert "Execution timeout" not in result.error

    @pytest.mark.asyncio
    async def test_backoff_sleeps_between_attempts(self, node, monkeypatch):
        delays = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay, *args, **kwargs):
            delays.append(delay)
            await real_sleep(0)

        monkeypatch.setattr("workflow_engine.core.supervisor.asyncio.sleep", fake_sleep)
        supervisor = NodeSupervisor(RetryPolicy(max_retries=3, retry_delay=1.0, node_timeout=1.0))

        result = await supervisor.run(node, FlakyCall(failures=100))

        assert result.status == NodeResultStatus.FAILURE
        assert delays == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_skip_is_not_retried(self, supervisor, node):
        calls = []

        async def skip():
            calls.append(1)
            raise NodeSkipped("nothing to do")

        result = await supervisor.run(node, skip)

        assert result.status == NodeResultStatus.SKIPPED
        assert result.error == "nothing to do"
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_per_node_retry_override(self, supervisor):
        node = NodeDefinition(id="n2", type="task", config={"max_retries": 1})
        call = FlakyCall(failures=100)

        result = await supervisor.run(node, call)

        assert result.retries == 1
        assert call.calls == 2
