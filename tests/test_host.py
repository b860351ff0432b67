"""tests for host collaborators, background tasks and error reporting."""

import asyncio
import inspect
import logging

import pytest

from canvas_copilot.core.client import MockClient
from canvas_copilot.core.errors import AssetFetchError, ErrorReporter, SchedulingError, get_reporter
from canvas_copilot.core.host import AIPanel, CanvasSelection, PanelState
from canvas_copilot.core.models import SelectionRegion
from canvas_copilot.core.tasks import BackgroundTasks
from canvas_copilot.logging import get_logger, level_for


class TestCanvasSelection:
    """tests for CanvasSelection."""

    def test_trigger_entry(self):
        selection = CanvasSelection(region=SelectionRegion(0, 0, 1, 1))
        assert selection.trigger_entry() == "selection"
        selection.hide_copilot_panel()
        assert selection.trigger_entry() == "toolbar"
        assert CanvasSelection().trigger_entry() == "toolbar"

    def test_select(self):
        selection = CanvasSelection()
        selection.select(["a", "b"], editing=True)
        assert selection.selected_ids == ["a", "b"]
        assert selection.editing


class TestAIPanel:
    """tests for AIPanel."""

    def test_generate_without_prompt(self):
        panel = AIPanel(client=MockClient())
        assert panel.generate() is None
        assert panel.state == PanelState.IDLE

    @pytest.mark.asyncio
    async def test_request(self):
        tasks = BackgroundTasks(ErrorReporter())
        panel = AIPanel(client=MockClient(responses={"tea": "green"}), tasks=tasks)
        panel.request("tell me about tea")
        assert panel.visible
        await tasks.wait_idle()
        assert panel.answer == "green"
        assert panel.state == PanelState.FINISHED

    @pytest.mark.asyncio
    async def test_client_failure_sets_error_state(self):
        class Broken:
            async def complete(self, prompt):
                raise RuntimeError("down")

        reporter = ErrorReporter()
        tasks = BackgroundTasks(reporter)
        panel = AIPanel(client=Broken(), tasks=tasks)
        panel.request("x")
        await tasks.wait_idle()
        assert panel.state == PanelState.ERROR
        assert reporter.last.context == "generate answer"

    def test_discard_callback(self):
        panel = AIPanel()
        panel.set_answer("x")
        called = []
        panel.discard(lambda: called.append(panel.answer))
        assert called == [None]
        assert panel.state == PanelState.IDLE


class TestBackgroundTasks:
    """tests for BackgroundTasks."""

    @pytest.mark.asyncio
    async def test_wait_idle_includes_spawned_tasks(self):
        tasks = BackgroundTasks(ErrorReporter())
        done = []

        async def inner():
            done.append("inner")

        async def outer():
            await asyncio.sleep(0)
            tasks.spawn(inner(), "inner")
            done.append("outer")

        tasks.spawn(outer(), "outer")
        assert tasks.pending == 1
        await tasks.wait_idle()
        assert done == ["outer", "inner"]
        assert tasks.pending == 0

    @pytest.mark.asyncio
    async def test_failures_reported_not_raised(self):
        reporter = ErrorReporter()
        tasks = BackgroundTasks(reporter)

        async def fail():
            raise AssetFetchError("https://x.test/a.png", "http 500")

        task = tasks.spawn(fail(), "fetch")
        await tasks.wait_idle()
        assert task.result() is None
        assert reporter.last.context == "fetch"

    def test_spawn_without_loop_reports_and_closes(self):
        reporter = ErrorReporter()
        tasks = BackgroundTasks(reporter)
        assert not tasks.can_spawn()

        async def noop():
            pass

        coro = noop()
        assert tasks.spawn(coro, "late work") is None
        assert inspect.getcoroutinestate(coro) == inspect.CORO_CLOSED
        assert isinstance(reporter.last.error, SchedulingError)
        assert reporter.last.context == "late work"
        assert tasks.pending == 0

    @pytest.mark.asyncio
    async def test_can_spawn_inside_loop(self):
        assert BackgroundTasks(ErrorReporter()).can_spawn()


class TestErrorReporter:
    """tests for ErrorReporter."""

    def test_report_logs_and_keeps(self, caplog):
        reporter = ErrorReporter()
        with caplog.at_level(logging.ERROR):
            reporter.report(ValueError("bad"), "stage")
        assert reporter.last.context == "stage"
        assert "stage failed: bad" in caplog.text

    def test_bounded(self):
        reporter = ErrorReporter(max_errors=3)
        for i in range(5):
            reporter.report(ValueError(str(i)))
        assert [str(e.error) for e in reporter.errors] == ["2", "3", "4"]
        reporter.clear()
        assert reporter.last is None

    def test_process_wide_reporter(self):
        assert get_reporter() is get_reporter()

    def test_long_urls_shortened(self):
        error = AssetFetchError("data:image/png;base64," + "A" * 500, "invalid base64 payload")
        assert len(str(error)) < 150
        assert error.url.endswith("A")


def test_get_logger_namespace():
    assert get_logger("api").name == "canvas_copilot.api"
    assert get_logger().name == "canvas_copilot"


def test_verbosity_levels_clamp():
    assert level_for(0) == logging.ERROR
    assert level_for(2) == logging.INFO
    assert level_for(3) == logging.DEBUG
    assert level_for(4) == logging.DEBUG
    assert level_for(-1) == logging.ERROR
