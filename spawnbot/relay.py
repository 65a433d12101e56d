""" Relays messages between the bridged IRC channel and the bridged Discord channel. """

import logging


def format_envelope(origin, author, content):
    """ Returns the line that gets sent to the other network, eg. "[IRC] bob: hello". """
    return f'[{origin.name}] {author}: {content}'


class RelayCoordinator():
    """
    Gets every message the two networks deliver, hands commands to the dispatcher and forwards everything else
    in the bridged channels to the other side.
    Both *_message_received methods are called on their network's own thread and do their work synchronously.
    """

    def __init__(self, config, dispatcher, irc_link=None, discord_link=None):
        self.config = config
        self.dispatcher = dispatcher
        self.irc_link = irc_link
        self.discord_link = discord_link

    def attach(self, irc_link=None, discord_link=None):
        """ Sets the links to the networks. They're usually built after the coordinator. """
        if irc_link is not None:
            self.irc_link = irc_link
        if discord_link is not None:
            self.discord_link = discord_link

    def irc_message_received(self, message):
        """ Called with an IRCMessage for every PRIVMSG the IRC bot sees. """
        if message.is_own:
            return
        self.dispatcher.execute(self.irc_link, message)

        if message.source != self.config.irc_channel:
            return
        if self.dispatcher.is_command(message.message):
            return
        envelope = format_envelope(message.protocol, message.simple_sender, message.message)
        if self._send(self.discord_link, self.config.discord_channel_id, envelope):
            logging.info('Relaying message from IRC %s to Discord: %s', self.config.irc_channel, envelope)

    def discord_message_received(self, message):
        """ Called with a DiscordMessage for every message the Discord bot sees. """
        if message.is_own:
            return
        if message.source != self.config.discord_channel_id:
            return
        if self.dispatcher.is_command(message.message):
            self.dispatcher.execute(self.discord_link, message)
            return
        envelope = format_envelope(message.protocol, message.simple_sender, message.message)
        if self._send(self.irc_link, self.config.irc_channel, envelope):
            logging.info('Relaying message from Discord to IRC %s: %s', self.config.irc_channel, envelope)

    @staticmethod
    def _send(link, target, envelope):
        """ Sends the envelope, logging and dropping it if that fails. Returns True if the link took it. """
        if link is None:
            logging.error('No link to relay "%s" to %s through, dropping it.', envelope, target)
            return False
        try:
            link.send_message(target, envelope)
        except Exception as ex:  #pylint:disable=broad-except
            logging.error('[%s] Error sending relayed message to %s: %s', link.protocol.name, target, ex)
            return False
        return True
