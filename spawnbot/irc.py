""" Main IRC bot module. """

import logging
from collections import namedtuple
from enum import Enum

from twisted.internet import defer, error, protocol, reactor
from twisted.internet.threads import blockingCallFromThread
from twisted.words.protocols import irc

from . import adapters

#a namedtuple used to pass around common info about bots
IRCBotInfo = namedtuple('IRCBotInfo', ['nickname', 'ident', 'realname'])

#QuakeNet's Q service, which handles account authentication
QNET_SERVICE = 'Q@CServe.quakenet.org'
#how long to give Q to log us in before joining, so the join happens with the hidden host already set
AUTH_SETTLE_DELAY = 1.0
#seconds to wait before reconnecting after a connection error
ERROR_RETRY_DELAY = 30.0
#seconds to wait before reconnecting after the server closed the connection cleanly
CLEAN_RETRY_DELAY = 5.0
#seconds to wait for the server to close the connection after QUIT
QUIT_TIMEOUT = 5.0


class ConnectionState(Enum):
    """ Where the IRC leg of the bridge is at. SHUTTING_DOWN is terminal. """
    DISCONNECTED = 1
    CONNECTING = 2
    CONNECTED = 3
    SHUTTING_DOWN = 4


#Disable pylint warning for unimplemented methods because Twisted has decided to keep some funny
#forever unimplemented placeholder methods.
#pylint: disable=W0223
class IRCBot(irc.IRCClient):
    """ IRC bot class. These are produced at IRC bot factories. Do not attempt to craft by hand. """

    def __init__(self, bot_info, channel, auth_password, network_name, on_message, clock):
        self.nickname = bot_info.nickname
        self.username = bot_info.ident
        self.realname = bot_info.realname
        self.channel = channel
        self.network_name = network_name
        self._auth_password = auth_password
        self._on_message = on_message
        self._clock = clock
        self._join_call = None
        #True while we are in the bridge channel; relayed messages are only sent then
        self.in_channel = False

    def connectionMade(self):
        logging.info("[IRC] Connection made to %s.", self.network_name)
        super().connectionMade()

    def connectionLost(self, reason):
        self.in_channel = False
        if self._join_call is not None and self._join_call.active():
            self._join_call.cancel()
        self._join_call = None
        super().connectionLost(reason)

    def signedOn(self):
        logging.info("[IRC] Signed on to %s as %s.", self.network_name, self.nickname)
        self.factory.connection_established(self)
        logging.info("[IRC] Authenticating with QuakeNet as %s.", self.factory.bot_info.nickname)
        self.msg(QNET_SERVICE, f"AUTH {self.factory.bot_info.nickname} {self._auth_password}")
        self.mode(self.nickname, True, 'x')
        self._join_call = self._clock.callLater(AUTH_SETTLE_DELAY, self._join_bridge_channel)

    def _join_bridge_channel(self):
        self._join_call = None
        self.join(self.channel)

    def joined(self, channel):
        logging.info("[IRC] Joined %s on %s.", channel, self.network_name)
        if channel == self.channel:
            self.in_channel = True

    def left(self, channel):
        if channel == self.channel:
            self.in_channel = False

    def kickedFrom(self, channel, kicker, message):
        logging.warning("[IRC] Kicked from %s by %s (%s), rejoining.", channel, kicker, message)
        if channel == self.channel:
            self.in_channel = False
            self.join(self.channel)

    def privmsg(self, user, channel, message):
        #handled right here on the reactor thread, so messages from IRC are processed in order
        self._on_message(IRCMessage(self, user, channel, message))


class IRCBotFactory(protocol.ClientFactory):
    """
    The factory class for IRC bots. It also supervises the connection: when it fails or drops, the factory waits
    and connects again, until the shutdown signal fires or stop_trying() is called.
    """

    def __init__(self, bot_info: IRCBotInfo, channel, auth_password, network_name, on_message, shutdown,
                 reactor_=None):
        """ Creates a new factory for the given network. on_message is called with every IRCMessage. """
        self.bot_info = bot_info
        self.channel = channel
        self.network_name = network_name
        self.state = ConnectionState.DISCONNECTED
        self._auth_password = auth_password
        self._on_message = on_message
        self._shutdown = shutdown
        self._reactor = reactor_ if reactor_ is not None else reactor
        self._bot = None
        self._continue_trying = True
        self._retry_call = None
        self._quit_deferred = None

    def buildProtocol(self, addr):
        self._bot = IRCBot(self.bot_info, self.channel, self._auth_password, self.network_name,
                           self._on_message, self._reactor)
        self._bot.factory = self
        return self._bot

    @property
    def bot(self):
        """ Returns the IRCBot of the current connection, or None when there isn't one. """
        return self._bot

    def startedConnecting(self, connector):
        logging.info("[IRC] Connecting to %s...", self.network_name)
        self.state = ConnectionState.CONNECTING

    def connection_established(self, bot):
        """ Called by the bot once it has signed on. """
        self.state = ConnectionState.CONNECTED

    def call_from_thread(self, func, *args):
        """ Runs func(*args) on the reactor thread. Safe to call from any thread. """
        self._reactor.callFromThread(func, *args)

    def call_blocking(self, func, *args):
        """ Runs func(*args) on the reactor thread and waits for its result (or for the Deferred it returns).
        Never call this from the reactor thread itself. """
        return blockingCallFromThread(self._reactor, func, *args)

    def clientConnectionFailed(self, connector, reason):
        logging.error("[IRC] Connection to %s failed. Reason: %s", self.network_name, reason.getErrorMessage())
        self._bot = None
        self._retry(connector, ERROR_RETRY_DELAY)

    def clientConnectionLost(self, connector, reason):
        self._bot = None
        if self._quit_deferred is not None:
            quit_deferred, self._quit_deferred = self._quit_deferred, None
            if not quit_deferred.called:
                quit_deferred.callback(None)
        if reason.check(error.ConnectionDone):
            logging.info("[IRC] Disconnected from %s.", self.network_name)
            self._retry(connector, CLEAN_RETRY_DELAY)
        else:
            logging.error("[IRC] Connection to %s lost. Reason: %s", self.network_name, reason.getErrorMessage())
            self._retry(connector, ERROR_RETRY_DELAY)

    def _retry(self, connector, delay):
        if not self._continue_trying or self._shutdown.is_set():
            logging.info("[IRC] Shutting down, not reconnecting to %s.", self.network_name)
            self.state = ConnectionState.SHUTTING_DOWN
            return
        self.state = ConnectionState.DISCONNECTED
        logging.info("[IRC] Reconnecting to %s in %d seconds...", self.network_name, delay)
        self._retry_call = self._reactor.callLater(delay, self._reconnect, connector)

    def _reconnect(self, connector):
        self._retry_call = None
        if not self._continue_trying or self._shutdown.is_set():
            self.state = ConnectionState.SHUTTING_DOWN
            return
        connector.connect()

    def stop_trying(self):
        """ Stops reconnecting. The current connection, if any, is left alone. """
        self._continue_trying = False
        if self._retry_call is not None and self._retry_call.active():
            self._retry_call.cancel()
        self._retry_call = None
        if self.state != ConnectionState.CONNECTED:
            self.state = ConnectionState.SHUTTING_DOWN

    def quit(self, message, timeout=QUIT_TIMEOUT):
        """
        Stops reconnecting, sends QUIT and closes the connection. Returns a Deferred that fires once the
        connection is gone, or after timeout seconds, whichever comes first.
        """
        self.stop_trying()
        bot = self._bot
        if bot is None or bot.transport is None:
            self.state = ConnectionState.SHUTTING_DOWN
            return defer.succeed(None)
        self._quit_deferred = quit_deferred = defer.Deferred()
        quit_deferred.addTimeout(timeout, self._reactor, onTimeoutCancel=self._quit_timed_out)
        bot.quit(message)
        bot.transport.loseConnection()
        return quit_deferred

    def _quit_timed_out(self, result, timeout):
        logging.warning("[IRC] %s did not close the connection within %d seconds of QUIT.", self.network_name, timeout)
        self._quit_deferred = None
        self.state = ConnectionState.SHUTTING_DOWN


class IRCLink(adapters.IChatLink):
    """ Lets the other threads send things to IRC through whatever connection the factory has right now. """

    def __init__(self, factory):
        self._factory = factory

    @property
    def protocol(self):
        return adapters.Protocol.IRC

    def send_message(self, target, message_text):
        bot = self._factory.bot
        if bot is None or self._factory.state != ConnectionState.CONNECTED:
            raise adapters.SendError(f"Not connected to {self._factory.network_name}.")
        if target == bot.channel and not bot.in_channel:
            raise adapters.SendError(f"Not in {target} on {self._factory.network_name} yet.")
        self._factory.call_from_thread(bot.msg, target, message_text)

    def disconnect(self, reason):
        """ Sends QUIT with reason and waits until the server has closed the connection or the quit timed out. """
        self._factory.call_blocking(self._factory.quit, reason)


class IRCMessage(adapters.IMessage):
    """ Pass me along to event handlers as the message. """

    def __init__(self, bot, sender, channel, message_text):
        self._bot = bot
        #sender seems to be nick!user@host
        self._sender_nick, _, self._sender_host = sender.partition('!')
        self._sender_host = self._sender_host.partition('@')[2]
        self._channel = channel
        self._message_text = message_text

    def reply(self, message_text):
        #if this is a private message
        if self._channel == self._bot.nickname:
            self._bot.factory.call_from_thread(self._bot.msg, self._sender_nick, message_text)
        #otherwise send in the channel
        else:
            self._bot.factory.call_from_thread(self._bot.msg, self._channel, message_text)

    @property
    def protocol(self):
        return self.Protocol.IRC

    @property
    def source(self):
        return self._channel

    @property
    def simple_sender(self):
        return self._sender_nick

    @property
    def host(self):
        return self._sender_host

    @property
    def is_own(self):
        return self._sender_nick == self._bot.factory.bot_info.nickname

    @property
    def message(self):
        return self._message_text
