"""Tests for wiring the bridge together and for the shutdown sequence."""

import logging
from unittest.mock import Mock

import pytest
from twisted.internet import error
from twisted.internet.testing import StringTransport
from twisted.python.failure import Failure

from spawnbot import bot as bot_module
from spawnbot import irc
from spawnbot.adapters import Protocol
from spawnbot.config import ConfigError

from .conftest import BRIDGE_CHANNEL, DISCORD_CHANNEL_ID, FakeLink, FakeMessage


@pytest.fixture
def spawnbot(config, shutdown, fake_reactor):
    bot = bot_module.SpawnBot(config, shutdown=shutdown, reactor_=fake_reactor)
    yield bot
    if not bot.loop.is_closed():
        bot.loop.close()


@pytest.fixture
def irc_bot(spawnbot):
    """Signs the bridge's IRC leg on over a StringTransport and joins the bridge channel."""
    ircbot = spawnbot.irc_factory.buildProtocol(None)
    ircbot.heartbeatInterval = None
    ircbot.makeConnection(StringTransport())
    ircbot.dataReceived(b":irc.example.org 001 SpawnBot :Welcome\r\n")
    ircbot.dataReceived(b":SpawnBot!~spawnbot@bot.example JOIN #test\r\n")
    ircbot.transport.clear()
    return ircbot


def sent_lines(ircbot):
    return ircbot.transport.value().decode("utf-8").splitlines()


class TestWiring:
    def test_builtin_commands_are_registered(self, spawnbot):
        assert [command.name for command in spawnbot.registry] == ["die", "help", "ping"]

    def test_irc_message_reaches_discord(self, spawnbot, irc_bot):
        discord_link = FakeLink(Protocol.DISCORD)
        spawnbot.relay.attach(discord_link=discord_link)

        irc_bot.dataReceived(b":bob!~bob@bob.example PRIVMSG #test :hello everyone\r\n")

        assert discord_link.sent == [(DISCORD_CHANNEL_ID, "[IRC] bob: hello everyone")]

    def test_discord_message_reaches_irc(self, spawnbot, irc_bot):
        spawnbot.relay.discord_message_received(
            FakeMessage("hi", sender="carol", source=DISCORD_CHANNEL_ID, protocol=Protocol.DISCORD))

        assert sent_lines(irc_bot) == [f"PRIVMSG {BRIDGE_CHANNEL} :[DISCORD] carol: hi"]

    def test_ping_from_irc_answers_in_channel(self, spawnbot, irc_bot):
        discord_link = FakeLink(Protocol.DISCORD)
        spawnbot.relay.attach(discord_link=discord_link)

        irc_bot.dataReceived(b":alice!a@alice.example PRIVMSG #test :!ping\r\n")

        assert sent_lines(irc_bot) == ["PRIVMSG #test :pong!"]
        assert discord_link.sent == []

    def test_die_from_irc_stops_reconnecting(self, spawnbot, irc_bot, shutdown, fake_reactor):
        spawnbot._twisted_thread = Mock()

        irc_bot.dataReceived(b":alice!a@alice.example PRIVMSG #test :!die\r\n")

        assert shutdown.is_set()
        assert shutdown.exit_code == 0

        connector = Mock()
        spawnbot.irc_factory.clientConnectionLost(connector, Failure(error.ConnectionLost()))
        fake_reactor.advance(irc.ERROR_RETRY_DELAY)
        connector.connect.assert_not_called()
        assert spawnbot.irc_factory.state == irc.ConnectionState.SHUTTING_DOWN

    def test_die_from_discord_fires_shutdown(self, spawnbot, shutdown):
        message = FakeMessage("!die", sender="carol", source=DISCORD_CHANNEL_ID, protocol=Protocol.DISCORD)

        spawnbot.relay.discord_message_received(message)

        assert shutdown.is_set()
        assert "carol" in shutdown.reason

    def test_discord_ending_on_its_own_is_fatal(self, spawnbot, shutdown):
        spawnbot.discordbot = Mock(open_error=None)

        spawnbot._run_discord()

        assert shutdown.is_set()
        assert shutdown.exit_code == bot_module.EXIT_FAILURE

    def test_discord_crashing_is_fatal(self, spawnbot, shutdown):
        spawnbot.discordbot = Mock(open_error=None)
        spawnbot.discordbot.run_in_thread.side_effect = RuntimeError("event loop died")

        with pytest.raises(RuntimeError):
            spawnbot._run_discord()

        assert shutdown.is_set()
        assert shutdown.exit_code == bot_module.EXIT_FAILURE

    def test_discord_open_failure_does_not_fire_shutdown(self, spawnbot, shutdown):
        spawnbot.discordbot = Mock(open_error=RuntimeError("bad token"))

        spawnbot._run_discord()

        assert not shutdown.is_set()


class TestStart:
    def test_gateway_failure_exits_without_touching_irc(self, spawnbot, fake_reactor):
        discordbot = Mock()
        discordbot.open_error = RuntimeError("bad token")
        spawnbot.discordbot = discordbot
        fake_reactor.connectTCP = Mock()

        assert spawnbot.start() == bot_module.EXIT_FAILURE

        discordbot.run_in_thread.assert_called_once_with("token")
        fake_reactor.connectTCP.assert_not_called()


class TestStop:
    def test_shutdown_sequence(self, spawnbot, shutdown, irc_bot, fake_reactor, monkeypatch):
        order = []
        spawnbot._twisted_thread = Mock()
        spawnbot._twisted_thread.join.side_effect = lambda: order.append("join twisted")
        spawnbot._discord_thread = Mock()
        spawnbot._discord_thread.join.side_effect = lambda: order.append("join discord")
        spawnbot.irc_connector = Mock()
        monkeypatch.setattr(spawnbot.discordbot, "stop", lambda: order.append("close discord"))
        irc_bot.transport.loseConnection = lambda: order.append("drop irc")

        def blocking_call(reactor_, func, *args):
            order.append(func.__name__)
            return func(*args)

        monkeypatch.setattr(irc, "blockingCallFromThread", blocking_call)
        shutdown.fire("test")
        spawnbot.stop()

        assert order == ["stop_trying", "close discord", "quit", "drop irc", "join twisted", "join discord"]
        assert "QUIT :Shutting down..." in sent_lines(irc_bot)
        spawnbot.irc_connector.disconnect.assert_called_once_with()
        assert fake_reactor.stopped
        assert spawnbot.loop.is_closed()

    def test_discord_close_error_is_logged(self, spawnbot, shutdown, caplog, monkeypatch):
        spawnbot._discord_thread = Mock()
        monkeypatch.setattr(spawnbot.discordbot, "stop", Mock(side_effect=TimeoutError()))
        shutdown.fire("test")

        with caplog.at_level(logging.ERROR):
            spawnbot.stop()

        assert "Error closing connection" in caplog.text
        spawnbot._discord_thread.join.assert_called_once_with()


class TestMain:
    def test_config_error_exits_non_zero(self, monkeypatch):
        def broken_config():
            raise ConfigError("SPAWNBOT_IRC_SERVER is not set")

        monkeypatch.setattr(bot_module.configuration, "load_config", broken_config)

        with pytest.raises(SystemExit) as exit_info:
            bot_module.main()

        assert exit_info.value.code == bot_module.EXIT_FAILURE

    def test_runs_bot_and_exits_with_its_code(self, monkeypatch, config):
        monkeypatch.setattr(bot_module.configuration, "load_config", lambda: config)
        instance = Mock()
        instance.start.return_value = 0
        monkeypatch.setattr(bot_module, "SpawnBot", Mock(return_value=instance))

        with pytest.raises(SystemExit) as exit_info:
            bot_module.main()

        assert exit_info.value.code == 0
        bot_module.SpawnBot.assert_called_once_with(config)
