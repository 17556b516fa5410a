"""
Tests for the runtime entry contract and entry module rendering.

Tests cover:
- Entry-point detection from argv and the working directory
- Factory exposed without side effects on import
- Exit codes of the guarded lifecycle
- Rendered entry modules
"""

import io
import sys

import pytest

from conftest import FakeWorker
from core.exceptions import ConfigurationError
from processor.codegen import render_entry_module, write_entry_module
from processor.config import ConnectionConfig
from processor.entry import Entry, create_entry, is_entry_point


@pytest.fixture
def quiet_streams(monkeypatch):
    """Stream guards replace sys.stdout/stderr; keep them test-local."""
    monkeypatch.setattr(sys, "stdout", io.StringIO())
    monkeypatch.setattr(sys, "stderr", io.StringIO())


# =============================================================
# TEST: Entry-point detection
# =============================================================

class TestIsEntryPoint:
    """argv[0] resolved against cwd must be the module file."""

    def test_relative_invocation(self, tmp_path):
        module = tmp_path / "worker_entry.py"
        module.write_text("")
        assert is_entry_point(module, argv=["worker_entry.py"], cwd=tmp_path) is True

    def test_absolute_invocation(self, tmp_path):
        module = tmp_path / "worker_entry.py"
        module.write_text("")
        assert is_entry_point(str(module), argv=[str(module)], cwd="/") is True

    def test_other_script(self, tmp_path):
        module = tmp_path / "worker_entry.py"
        assert is_entry_point(module, argv=["manage.py"], cwd=tmp_path) is False

    @pytest.mark.parametrize("argv", [[], [""]])
    def test_missing_argv(self, tmp_path, argv):
        assert is_entry_point(tmp_path / "worker_entry.py", argv=argv, cwd=tmp_path) is False

    def test_bad_input_means_not_main(self):
        assert is_entry_point(None, argv=["x.py"]) is False


# =============================================================
# TEST: Entry lifecycle
# =============================================================

class TestEntry:
    """Guarded lifecycle runner."""

    def test_not_main_does_nothing(self, monkeypatch):
        calls = []
        monkeypatch.setattr("processor.entry.setup_logging", lambda **kw: calls.append(kw))

        assert Entry([], env={}).main(False) is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_factory_builds_fresh_registries(self, quiet_streams):
        def loader(registry):
            registry.register(FakeWorker("email"))

        entry = Entry([loader], defaults={"host": "localhost"}, env={})

        first = await entry.create_workers_app()
        await first.stop()
        second = await entry.create_workers_app()

        assert first.worker_names == second.worker_names == ("email",)
        assert first.workers[0] is not second.workers[0]
        await second.stop()

    @pytest.mark.asyncio
    async def test_run_with_no_workers_exits_cleanly(self, quiet_streams):
        entry = Entry([], defaults={"host": "localhost"}, env={})
        assert await entry.run() == 0

    @pytest.mark.asyncio
    async def test_run_with_failing_loader_exits_with_failure(self, quiet_streams):
        def broken(registry):
            raise ImportError("no module named myapp.workers")

        entry = Entry([broken], defaults={"host": "localhost"}, env={})
        assert await entry.run() == 1

    def test_main_sets_up_logging_and_runs(self, monkeypatch, quiet_streams):
        calls = []
        monkeypatch.setattr("processor.entry.setup_logging", lambda **kw: calls.append(kw))

        entry = Entry([], env={"LOG_LEVEL": "DEBUG", "LOG_FORMAT": "json"})

        assert entry.main(True) == 0
        assert calls == [{"level": "DEBUG", "log_format": "json"}]

    def test_create_entry_from_module_paths(self, quiet_streams):
        entry = create_entry(["json"], {"host": "localhost"}, env={})
        assert isinstance(entry, Entry)

    def test_app_module_is_inert_when_imported(self, monkeypatch):
        import app

        monkeypatch.delenv("PROCESSOR_WORKER_MODULES", raising=False)
        monkeypatch.setattr(sys, "argv", ["pytest"])

        assert app.main() == 0


# =============================================================
# TEST: Entry module rendering
# =============================================================

class TestRenderEntryModule:
    """Generated entry modules."""

    def test_rendered_module_exposes_factory(self):
        source = render_entry_module(
            ["myapp.workers.email", "myapp.workers.reports"],
            {"port": 6379, "host": "localhost"},
        )
        namespace = {"__name__": "generated_entry", "__file__": "generated_entry.py"}

        exec(compile(source, "generated_entry.py", "exec"), namespace)

        assert namespace["WORKER_MODULES"] == ["myapp.workers.email", "myapp.workers.reports"]
        assert namespace["BUILD_DEFAULTS"] == {"host": "localhost", "port": 6379}
        assert isinstance(namespace["entry"], Entry)
        assert callable(namespace["create_workers_app"])

    def test_main_is_guarded(self):
        source = render_entry_module(["myapp.workers"])
        assert 'if __name__ == "__main__":' in source
        assert "entry.main(is_entry_point(__file__))" in source

    def test_defaults_from_connection_config(self):
        source = render_entry_module(["w"], ConnectionConfig(host="h", lazy_connect=False))
        assert "'lazy_connect': False" in source
        assert "'host': 'h'" in source

    @pytest.mark.parametrize("path", ["", "my-app.workers", "myapp..workers", "1workers"])
    def test_invalid_module_path(self, path):
        with pytest.raises(ConfigurationError):
            render_entry_module([path])

    def test_write_entry_module(self, tmp_path):
        target = tmp_path / "build" / "workers_entry.py"

        path = write_entry_module(target, ["myapp.workers"], {"host": "localhost"})

        assert path == target
        assert path.read_text(encoding="utf-8") == render_entry_module(
            ["myapp.workers"], {"host": "localhost"}
        )
