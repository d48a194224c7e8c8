"""End-to-end tests: LogStreamClient against a local fake AT WebServer."""

import time

import pytest

from atlog.stream.client import LogStreamClient
from atlog.stream.events import ConnectionState, NotAuthenticatedError
from atlog.utils.config import ViewerConfig
from atlog.utils.event_bus import EventType


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return False


def _config(tmp_config, server, **overrides):
    config = ViewerConfig(config_path=tmp_config)
    config.update({
        "host": "127.0.0.1",
        "websocket_port": server.port,
        "flush_interval_ms": 50,
        "reconnect_delay": 0.2,
    })
    config.update(overrides)
    return config


@pytest.fixture
def make_client():
    clients = []

    def factory(config):
        client = LogStreamClient(config)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        client.shutdown()


def _texts(client):
    return [e.text for e in client.history.snapshot()]


class TestStreaming:
    def test_fetches_history_on_connect(self, at_server, tmp_config, make_client):
        client = make_client(_config(tmp_config, at_server))
        assert client.start()
        assert _wait_until(lambda: _texts(client) == ["boot ok", "modem ready"])
        assert client.state == ConnectionState.AUTHENTICATED
        assert client.authenticated
        assert at_server.commands == ["GET_SYS_LOGS"]

    def test_live_lines_follow_history(self, at_server, tmp_config, make_client):
        client = make_client(_config(tmp_config, at_server))
        client.start()
        assert _wait_until(lambda: len(client.history) == 2)
        at_server.push("+CSQ: 20,99")
        assert _wait_until(lambda: _texts(client)[-1:] == ["+CSQ: 20,99"])

    def test_start_twice(self, at_server, tmp_config, make_client):
        client = make_client(_config(tmp_config, at_server))
        assert client.start()
        assert client.start() is False


class TestAuth:
    def test_correct_key(self, at_server_with_key, tmp_config, make_client):
        client = make_client(_config(tmp_config, at_server_with_key,
                                     websocket_auth_key="s3cret"))
        client.start()
        assert _wait_until(lambda: _texts(client) == ["line1"])
        assert client.state == ConnectionState.AUTHENTICATED

    def test_wrong_key_keeps_retrying(self, at_server_with_key, tmp_config, make_client):
        client = make_client(_config(tmp_config, at_server_with_key,
                                     websocket_auth_key="nope"))
        failures = []
        client.bus.subscribe(EventType.AUTH_FAILED, failures.append)
        client.start()
        assert _wait_until(lambda: len(failures) >= 2)
        assert at_server_with_key.connections >= 2
        assert client.history.snapshot() == []
        assert not client.authenticated


class TestCommands:
    def test_clear_history(self, at_server, tmp_config, make_client):
        client = make_client(_config(tmp_config, at_server))
        client.start()
        assert _wait_until(lambda: len(client.history) == 2)
        client.clear_history()
        assert _texts(client) == []
        assert _wait_until(lambda: "CLEAR_SYS_LOGS" in at_server.commands)
        assert at_server.stored == []

    def test_clear_history_before_start(self, tmp_config):
        client = LogStreamClient(ViewerConfig(config_path=tmp_config))
        with pytest.raises(NotAuthenticatedError):
            client.clear_history()

    def test_clear_history_while_unauthenticated(self, at_server_with_key,
                                                 tmp_config, make_client):
        client = make_client(_config(tmp_config, at_server_with_key,
                                     websocket_auth_key="nope"))
        client.start()
        with pytest.raises(NotAuthenticatedError):
            client.clear_history()
        assert "CLEAR_SYS_LOGS" not in at_server_with_key.commands

    def test_clear_screen_is_local(self, at_server, tmp_config, make_client):
        client = make_client(_config(tmp_config, at_server))
        client.start()
        assert _wait_until(lambda: len(client.history) == 2)
        client.clear_screen()
        assert _texts(client) == []
        assert at_server.stored == ["boot ok", "modem ready"]

    def test_toggle_pause(self, tmp_config):
        client = LogStreamClient(ViewerConfig(config_path=tmp_config))
        assert client.toggle_pause() is True
        assert client.history.paused


class TestShutdown:
    def test_shutdown_stops_everything(self, at_server, tmp_config):
        client = LogStreamClient(_config(tmp_config, at_server))
        client.start()
        assert _wait_until(lambda: client.authenticated)
        client.shutdown()
        assert not client.is_running
        assert client.state == ConnectionState.DISCONNECTED
        connections = at_server.connections
        time.sleep(0.5)
        assert at_server.connections == connections

    def test_shutdown_without_server(self, tmp_config):
        config = ViewerConfig(config_path=tmp_config)
        config.update({"websocket_port": 1, "reconnect_delay": 0.1})
        client = LogStreamClient(config)
        client.start()
        time.sleep(0.3)
        client.shutdown()
        assert not client.is_running

    def test_shutdown_before_start(self, tmp_config):
        LogStreamClient(ViewerConfig(config_path=tmp_config)).shutdown()

    def test_stats_shape(self, at_server, tmp_config, make_client):
        client = make_client(_config(tmp_config, at_server))
        client.start()
        assert _wait_until(lambda: client.authenticated)
        stats = client.stats
        assert stats["state"] == "authenticated"
        assert stats["commands"]["GET_SYS_LOGS"] == 1
