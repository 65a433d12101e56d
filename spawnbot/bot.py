""" The main module of the bot. """

from threading import Thread
import logging
import asyncio
import sys
import signal

from twisted.internet import reactor

from . import config as configuration
from . import disc, irc
from .commands import CommandDispatcher, CommandRegistry, register_builtin_commands
from .relay import RelayCoordinator
from .shutdown import ShutdownSignal

#exit code when something fatal happened
EXIT_FAILURE = 1


class SpawnBot():
    """
    The main bot class. Owns both network clients and the threads they run on, and takes everything down cleanly
    once the shutdown signal fires.
    """

    def __init__(self, config, shutdown=None, reactor_=None):
        """ Creates a new bot from the given BridgeConfig. """
        self.config = config
        self.shutdown = shutdown if shutdown is not None else ShutdownSignal()
        self._reactor = reactor_ if reactor_ is not None else reactor

        #set up our event loop
        self.loop = asyncio.new_event_loop()

        #commands
        self.registry = CommandRegistry()
        register_builtin_commands(self.registry, self.shutdown, prefix=config.command_prefix)
        self.dispatcher = CommandDispatcher(config.command_prefix, self.registry)
        self.relay = RelayCoordinator(config, self.dispatcher)

        #Handle IRC part of config
        self._twisted_thread = None  #this will contain a handle to the reactor.run() thread later
        bot_info = irc.IRCBotInfo(nickname=config.irc_nick, ident=config.irc_user, realname=config.irc_name)
        self.irc_factory = irc.IRCBotFactory(bot_info, config.irc_channel, config.qnet_auth_pass,
                                             config.irc_server, self.relay.irc_message_received, self.shutdown,
                                             reactor_=self._reactor)
        self.irc_connector = None

        #Handle Discord part of config
        self._discord_thread = None
        self.discordbot = disc.DiscordBot(on_message_received=self.relay.discord_message_received)

        self.irc_link = irc.IRCLink(self.irc_factory)
        self.discord_link = disc.DiscordLink(self.discordbot)
        self.relay.attach(irc_link=self.irc_link, discord_link=self.discord_link)
        self.shutdown.add_callback(self._on_shutdown)

    def start(self):
        """ Starts the bot, connecting to Discord and IRC. Blocking.
        Returns the exit code once the bot has stopped. """
        logging.info('Starting bot.')

        #discord.py runs its own event loop in a thread of its own
        logging.info('[DISCORD] Opening gateway connection...')
        self._discord_thread = Thread(target=self._run_discord, name="discordthread")
        self._discord_thread.start()
        self.discordbot.opened.wait()
        if self.discordbot.open_error is not None or self.discordbot.stopped.is_set():
            logging.error('[DISCORD] Could not open the gateway connection, giving up.')
            self._discord_thread.join()
            self.loop.close()
            return EXIT_FAILURE

        #the bot won't *actually* connect until reactor.run()
        self.irc_connector = self._reactor.connectTCP(self.config.irc_server, self.config.irc_port,
                                                      self.irc_factory)
        #reactor.run() is blocking so we run it in a separate thread
        #if we want the reactor to do something we must use thread-safe methods
        #such as reactor.callFromThread()
        self._twisted_thread = Thread(target=lambda: self._reactor.run(installSignalHandlers=False),
                                      name="twistedthread")
        self._twisted_thread.start()

        #run our event loop until something asks us to stop
        windows = sys.platform == 'win32'
        if not windows:
            self.loop.add_signal_handler(signal.SIGINT, self._signal_received, signal.SIGINT)
            self.loop.add_signal_handler(signal.SIGTERM, self._signal_received, signal.SIGTERM)
        try:
            self.loop.run_until_complete(self.wait_for_shutdown())
        except KeyboardInterrupt:
            self.shutdown.fire('KeyboardInterrupt')
        self.stop()
        return self.shutdown.exit_code

    async def wait_for_shutdown(self):
        """ Resolves once the shutdown signal has fired. """
        await self.loop.run_in_executor(None, self.shutdown.wait)

    def _signal_received(self, signum):
        self.shutdown.fire(f'received signal {signal.Signals(signum).name}')

    def _run_discord(self):
        try:
            self.discordbot.run_in_thread(self.config.discord_token)
        finally:
            #the client reconnects by itself, so if it ever returns something is badly wrong
            if self.discordbot.open_error is None:
                self.shutdown.fire('Discord connection ended', exit_code=EXIT_FAILURE)

    def _on_shutdown(self, shutdown):
        #runs on whichever thread fired the signal; keeps the IRC leg from reconnecting right away
        if self._twisted_thread is not None:
            self.irc_factory.call_from_thread(self.irc_factory.stop_trying)

    def stop(self):
        """ Cleanly stops both bots. Called once the shutdown signal has fired. """
        logging.info('Shutting down gracefully: %s', self.shutdown.reason)
        if self._twisted_thread is not None:
            logging.debug('[IRC] Stopping reconnection attempts.')
            self.irc_factory.call_blocking(self.irc_factory.stop_trying)

        try:
            self.discord_link.disconnect(self.shutdown.reason)
        except Exception:  #pylint:disable=broad-except
            logging.exception('[DISCORD] Error closing connection.')
        else:
            logging.info('[DISCORD] Connection closed.')

        if self._twisted_thread is not None:
            logging.info('[IRC] Quitting connection...')
            self.irc_link.disconnect(self.config.irc_quit_message)
            if self.irc_connector is not None:
                self._reactor.callFromThread(self.irc_connector.disconnect)
            logging.debug('Stopping reactor.')
            self._reactor.callFromThread(self._reactor.stop)
            logging.info('Waiting for Twisted thread to terminate.')
            self._twisted_thread.join()

        logging.info('Waiting for Discord thread to terminate.')
        self._discord_thread.join()
        self.loop.close()
        logging.info('Shutdown complete.')


def main():
    """ Loads the configuration, runs the bridge and exits with its exit code. """
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(threadName)s: %(message)s')
    try:
        config = configuration.load_config()
    except configuration.ConfigError as ex:
        logging.error('Failed to load configuration: %s', ex)
        sys.exit(EXIT_FAILURE)
    logging.getLogger().setLevel(config.log_level)
    logging.info('Configuration loaded: %s', config.redacted())

    bot = SpawnBot(config)
    sys.exit(bot.start())
