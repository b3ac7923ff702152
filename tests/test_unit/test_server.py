"""Tests for process wiring and the command line."""

import pytest

from agent_notifier import server
from agent_notifier.models.bindings import HttpBindings
from agent_notifier.server import create_notifier, create_sink, parse_args
from agent_notifier.sinks.desktop import DesktopSink
from agent_notifier.sinks.logging_sink import LogSink


class TestCreateSink:
    def test_log_sink(self, settings):
        assert isinstance(create_sink(settings), LogSink)

    def test_desktop_sink(self, settings):
        sink = create_sink(settings.model_copy(update={"sink": "desktop", "disable_sound": True}))
        assert isinstance(sink, DesktopSink)
        assert sink.play_sound is False
        assert "{request_id}" in sink.respond_hint


class TestCreateNotifier:
    async def test_components_share_registry(self, notifier):
        assert notifier.listener.registry is notifier.registry
        assert notifier.listener.settings_store is notifier.settings_store
        assert notifier.manager.bindings is None

    async def test_override_takes_precedence(self, settings, recording_sink):
        notifier = create_notifier(
            settings, sink=recording_sink, override=HttpBindings("127.0.0.1", 61234)
        )
        assert notifier.settings_store.get_bindings() == HttpBindings("127.0.0.1", 61234)
        assert not notifier.settings_store.storage_path.exists()

    async def test_store_save_rebinds_manager(self, notifier, monkeypatch):
        """Saving bindings asks the manager to rebind first."""
        calls = []

        async def fake_rebind(bindings):
            calls.append(bindings)

        # subscribers were registered at wiring time, so patch the list entry
        monkeypatch.setattr(notifier.settings_store, "_listeners", [fake_rebind])
        await notifier.settings_store.save_bindings({"bindAddress": "127.0.0.1", "port": 61235})
        assert calls == [HttpBindings("127.0.0.1", 61235)]


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.bind_address is None
        assert args.port is None

    def test_flags(self):
        args = parse_args(["--bind-address", "::1", "--port", "7000", "--log-level", "DEBUG"])
        assert args.bind_address == "::1"
        assert args.port == 7000
        assert args.log_level == "DEBUG"

    def test_invalid_port_exits(self, tmp_path, monkeypatch):
        """Out of range --port is rejected before anything starts."""
        monkeypatch.setattr(server.logging, "basicConfig", lambda **kwargs: None)
        with pytest.raises(SystemExit) as exc_info:
            server.main(["--port", "70000", "--settings-file", str(tmp_path / "s.json")])
        assert exc_info.value.code == 2

    def test_port_zero_exits(self, tmp_path, monkeypatch):
        """--port 0 is validated, not replaced by the default port."""
        monkeypatch.setattr(server.logging, "basicConfig", lambda **kwargs: None)
        with pytest.raises(SystemExit) as exc_info:
            server.main(["--port", "0", "--settings-file", str(tmp_path / "s.json")])
        assert exc_info.value.code == 2

    def test_empty_bind_address_exits(self, tmp_path, monkeypatch):
        monkeypatch.setattr(server.logging, "basicConfig", lambda **kwargs: None)
        with pytest.raises(SystemExit) as exc_info:
            server.main(["--bind-address", "", "--settings-file", str(tmp_path / "s.json")])
        assert exc_info.value.code == 2
