"""Tests for Executor."""

import pytest

from extension_host.core.errors import ExecutionTimeout
from extension_host.models.environment import ResourceLimits
from extension_host.models.extension import ExtensionInfo, ExtensionNamespace
from extension_host.vm.executor import Executor
from extension_host.vm.sandbox import SandboxError


@pytest.fixture
def extension():
    """An installed local extension."""
    return ExtensionInfo(
        id="tester.map",
        name="map",
        qualified_name="local:map",
        namespace=ExtensionNamespace.LOCAL,
    )


@pytest.mark.asyncio
async def test_activate_inline(inline_executor, extension, sample_extension_code):
    """Test a simple activation in-process."""
    result = await inline_executor.activate(extension, sample_extension_code)

    assert result.success
    assert result.error is None
    assert result.registrations == [("map", {"title": "Map", "mode": "test"})]
    assert result.execution_time_ms >= 0


@pytest.mark.asyncio
async def test_activate_inline_failure(inline_executor, extension, failing_extension_code):
    """Test a throwing extension yields no registrations."""
    result = await inline_executor.activate(extension, failing_extension_code)

    assert not result.success
    assert result.registrations == []
    assert isinstance(result.error, SandboxError)
    assert "boom" in result.error.message
    assert result.error.extension_name == "local:map"


@pytest.mark.asyncio
async def test_activate_inline_accepts_any_registration(inline_executor, extension):
    """Test registrations need not be picklable in-process."""
    code = """
def activate(ctx):
    ctx.register_panel("factory", lambda: "panel")
"""
    result = await inline_executor.activate(extension, code)

    assert result.success
    name, factory = result.registrations[0]
    assert name == "factory"
    assert factory() == "panel"


@pytest.mark.asyncio
async def test_activate_inline_panel_limit(extension):
    """Test the max_panels limit reaches the context."""
    executor = Executor(ResourceLimits(max_panels=1), process_isolation=False)
    code = """
def activate(ctx):
    ctx.register_panel("one")
    ctx.register_panel("two")
"""
    result = await executor.activate(extension, code)

    assert not result.success
    assert "more than 1" in result.error.message


@pytest.mark.asyncio
async def test_activate_in_process(extension, sample_extension_code):
    """Test activation in a child process."""
    executor = Executor(ResourceLimits(cpu_time_seconds=60.0), mode="development")
    result = await executor.activate(extension, sample_extension_code)

    assert result.success, result.error
    assert result.registrations == [("map", {"title": "Map", "mode": "development"})]


@pytest.mark.asyncio
async def test_activate_in_process_failure(extension, failing_extension_code):
    """Test a child process fault comes back as a SandboxError."""
    executor = Executor(ResourceLimits(cpu_time_seconds=60.0))
    result = await executor.activate(extension, failing_extension_code)

    assert not result.success
    assert isinstance(result.error, SandboxError)
    assert "boom" in result.error.message
    assert result.error.traceback


@pytest.mark.asyncio
async def test_activate_in_process_panel_factory(extension):
    """Test functions defined by the extension survive process isolation."""
    executor = Executor(ResourceLimits(cpu_time_seconds=60.0))
    code = """
def init_panel(ctx):
    return "ready"

def activate(ctx):
    ctx.register_panel("map", {"init_panel": init_panel})
"""
    result = await executor.activate(extension, code)

    assert result.success, result.error
    name, registration = result.registrations[0]
    assert name == "map"
    assert callable(registration["init_panel"])
    assert registration["init_panel"](None) == "ready"


@pytest.mark.asyncio
async def test_activate_timeout(extension):
    """Test a runaway extension is stopped."""
    executor = Executor(ResourceLimits(cpu_time_seconds=1.0))
    code = """
def activate(ctx):
    while True:
        pass
"""
    result = await executor.activate(extension, code)

    assert not result.success
    assert isinstance(result.error, ExecutionTimeout)
    assert result.error.timeout_seconds == 1.0
    assert result.registrations == []


def test_validate(inline_executor, sample_extension_code):
    """Test source validation without activation."""
    assert inline_executor.validate(sample_extension_code) == (True, [])

    is_valid, issues = inline_executor.validate("import os\nx = 1\n")
    assert not is_valid
    assert issues
