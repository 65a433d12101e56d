"""Shared fixtures: a config, a fake reactor and fake network pieces."""

import pytest
from twisted.internet.task import Clock
from twisted.internet.testing import StringTransport

from spawnbot import adapters, irc
from spawnbot.config import BridgeConfig
from spawnbot.shutdown import ShutdownSignal

BRIDGE_CHANNEL = "#test"
DISCORD_CHANNEL_ID = 123456789012345678


class FakeReactor(Clock):
    """A Clock that also runs callFromThread calls right away."""

    stopped = False

    def callFromThread(self, func, *args, **kwargs):
        func(*args, **kwargs)

    def stop(self):
        self.stopped = True


class FakeMessage(adapters.IMessage):
    """An IMessage that records replies instead of sending them."""

    def __init__(self, text, sender="alice", source=BRIDGE_CHANNEL, protocol=adapters.Protocol.IRC,
                 host="alice.example", own=False):
        self._text = text
        self._sender = sender
        self._source = source
        self._protocol = protocol
        self._host = host
        self._own = own
        self.replies = []

    def reply(self, message_text):
        self.replies.append(message_text)

    @property
    def protocol(self):
        return self._protocol

    @property
    def source(self):
        return self._source

    @property
    def simple_sender(self):
        return self._sender

    @property
    def host(self):
        return self._host

    @property
    def is_own(self):
        return self._own

    @property
    def message(self):
        return self._text


class FakeLink(adapters.IChatLink):
    """An IChatLink that records what would have been sent."""

    def __init__(self, protocol, fail=False):
        self._protocol = protocol
        self.fail = fail
        self.sent = []
        self.disconnected = []

    @property
    def protocol(self):
        return self._protocol

    def send_message(self, target, message_text):
        if self.fail:
            raise adapters.SendError("remote said no")
        self.sent.append((target, message_text))

    def disconnect(self, reason):
        self.disconnected.append(reason)


@pytest.fixture
def config():
    return BridgeConfig(
        irc_server="irc.example.org",
        irc_port=6667,
        irc_nick="SpawnBot",
        irc_user="spawnbot",
        irc_name="SpawnBot IRC Bridge",
        qnet_auth_pass="hunter2",
        discord_token="token",
        discord_channel_id=DISCORD_CHANNEL_ID,
        irc_channel=BRIDGE_CHANNEL,
        irc_quit_message="Shutting down...",
        command_prefix="!",
        log_level="INFO",
    )


@pytest.fixture
def fake_reactor():
    return FakeReactor()


@pytest.fixture
def shutdown():
    return ShutdownSignal()


@pytest.fixture
def irc_link():
    return FakeLink(adapters.Protocol.IRC)


@pytest.fixture
def discord_link():
    return FakeLink(adapters.Protocol.DISCORD)


@pytest.fixture
def received():
    """Collects whatever the IRC bot hands to its on_message callback."""
    return []


@pytest.fixture
def factory(config, shutdown, fake_reactor, received):
    bot_info = irc.IRCBotInfo(nickname=config.irc_nick, ident=config.irc_user, realname=config.irc_name)
    return irc.IRCBotFactory(bot_info, config.irc_channel, config.qnet_auth_pass, config.irc_server,
                             received.append, shutdown, reactor_=fake_reactor)


@pytest.fixture
def connected_bot(factory):
    """An IRCBot on a StringTransport that has already signed on and joined the bridge channel."""
    bot = factory.buildProtocol(None)
    #no PING heartbeat, it would be scheduled on the global reactor
    bot.heartbeatInterval = None
    transport = StringTransport()
    bot.makeConnection(transport)
    bot.dataReceived(b":irc.example.org 001 SpawnBot :Welcome to the network\r\n")
    bot.dataReceived(b":SpawnBot!~spawnbot@bot.example JOIN #test\r\n")
    transport.clear()
    return bot
