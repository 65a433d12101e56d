"""
  Main Discord bot module. It's called disc.py so as to not conflict with discord.py the library.
"""

import asyncio
import functools
import logging
import threading

import aiohttp
import discord

from . import adapters

#how many times a failed send is retried before the message is dropped
SEND_RETRIES = 1
#seconds to wait for the client to close when shutting down
CLOSE_TIMEOUT = 10.0


def default_intents():
    """ Returns the gateway intents the bridge needs: guild messages, with their content. """
    intents = discord.Intents.default()
    intents.message_content = True
    return intents


class DiscordBot(discord.Client):
    """ The main Discord bot class. """

    def __init__(self, *args, **kwargs):
        self._message_handler = kwargs.pop('on_message_received')
        kwargs.setdefault('intents', default_intents())
        #relayed text goes out as is, but it must never ping anyone
        kwargs.setdefault('allowed_mentions', discord.AllowedMentions.none())
        super().__init__(*args, **kwargs)
        #set once the gateway is up, or once it has failed to come up
        self.opened = threading.Event()
        #set once the client has stopped for good
        self.stopped = threading.Event()
        self.open_error = None

    def run_in_thread(self, token):
        """ Runs the bot on an event loop of its own. Blocks until the bot stops, so run this in a separate thread.
        You'll need to handle clean shutdown yourself (by calling stop()). """
        try:
            asyncio.run(self._runner(token))
        finally:
            self.opened.set()
            self.stopped.set()

    async def _runner(self, token):
        async with self:
            try:
                await self.start(token)
            except (discord.DiscordException, aiohttp.ClientError, OSError) as ex:
                if not self.opened.is_set():
                    self.open_error = ex
                    logging.error('[DISCORD] Error while connecting to the gateway: %s', ex)
                else:
                    logging.error('[DISCORD] Client stopped with an error: %s', ex)

    def stop(self, timeout=CLOSE_TIMEOUT):
        """ Closes the gateway connection from another thread and waits (up to timeout seconds) for it to finish. """
        if self.stopped.is_set() or self.is_closed():
            return
        future = asyncio.run_coroutine_threadsafe(self.close(), self.loop)
        future.result(timeout)

    def send_soon(self, channel, message_text):
        """ Schedules message_text to be sent to channel. Safe to call from any thread.
        Failures are logged, not raised. """
        future = asyncio.run_coroutine_threadsafe(self._send(channel, message_text), self.loop)
        future.add_done_callback(functools.partial(self._log_send_failure, channel))
        return future

    @staticmethod
    def _log_send_failure(channel, future):
        #_send logs HTTP errors itself, anything that got out of it ends up here
        if future.cancelled():
            logging.error('[DISCORD] Sending message to %s was cancelled.', channel.id)
            return
        ex = future.exception()
        if ex is not None:
            logging.error('[DISCORD] Failed to send message to %s. Reason: %s (%s)',
                          channel.id, ex.__class__.__name__, ex)

    async def _send(self, channel, message_text, retry=SEND_RETRIES):
        try:
            await channel.send(content=message_text)
        except discord.HTTPException as ex:
            #if sending fails we'll try again until we're out of retries
            if retry > 0:
                logging.warning('[DISCORD] Failed to send message to %s, retrying...', channel.id)
                await self._send(channel, message_text, retry=retry - 1)
            else:
                #if it fails again we'll just drop the issue
                logging.error('[DISCORD] Failed to send message to %s. Reason: %s (%s)',
                              channel.id, ex.__class__.__name__, ex.text)

    ########
    #Events#
    ########

    async def on_ready(self):
        """ Executed when the gateway connection is up (again). """
        logging.info('[DISCORD] Gateway connection established as %s.', self.user)
        self.opened.set()

    async def on_message(self, message):
        """ Executed when a message is received. """
        #handled right here on the event loop, so messages from Discord are processed in order
        self._message_handler(DiscordMessage(self, message))


class DiscordLink(adapters.IChatLink):
    """ Lets the other threads send things to Discord. """

    def __init__(self, bot):
        self._bot = bot

    @property
    def protocol(self):
        return adapters.Protocol.DISCORD

    def send_message(self, target, message_text):
        if self._bot.is_closed() or not self._bot.is_ready():
            raise adapters.SendError('Not connected to Discord.')
        channel = self._bot.get_channel(target)
        if channel is None:
            raise adapters.SendError(f'Channel {target} not found.')
        self._bot.send_soon(channel, message_text)

    def disconnect(self, reason):
        """ Closes the gateway connection and waits for it to go down. Discord has no quit message, so reason
        only goes to the log. """
        logging.info('[DISCORD] Closing connection: %s', reason)
        self._bot.stop()


class DiscordMessage(adapters.IMessage):
    """ Pass me along to event handlers as the message. """

    def __init__(self, bot, source_message):
        self._bot = bot
        self._source_message = source_message

    def reply(self, message_text):
        self._bot.send_soon(self._source_message.channel, message_text)

    @property
    def protocol(self):
        return self.Protocol.DISCORD

    @property
    def source(self):
        return self._source_message.channel.id

    @property
    def simple_sender(self):
        return self._source_message.author.name

    @property
    def host(self):
        return str(self._source_message.author.id)

    @property
    def is_own(self):
        author = self._source_message.author
        return author.bot or author == self._bot.user

    @property
    def message(self):
        #attachments and mentions are left as they are; the relay only ever forwards the text
        return self._source_message.content
