""" Provides adapters for the underlying libraries. """

from enum import Enum


class Protocol(Enum):
    """ This is used to identify the network a message is from. """
    IRC = 1
    DISCORD = 2


class SendError(Exception):
    """ Raised by IChatLink.send_message() when a message can't be handed to the network. """


class IMessage():
    """
    A helper object to pass to event listeners to make their life easier.
    Facilitates checking where the message is from, easily replying to it, etc.
    """
    Protocol = Protocol

    def reply(self, message_text):
        """ Sends the given message as a reply to wherever this message came from (the channel, or the sender
        if it was a private message). """
        raise NotImplementedError

    @property
    def protocol(self):
        """ Returns the protocol this message is from. """
        raise NotImplementedError

    @property
    def source(self):
        """ Returns the source (eg. channel) of this message in a format appropriate for the protocol. """
        raise NotImplementedError

    @property
    def simple_sender(self):
        """ Returns the sender in a simple no-frills form (eg. just their nickname and nothing else.) """
        raise NotImplementedError

    @property
    def host(self):
        """ Returns where the sender is from: their hostname on IRC, their user ID on Discord. """
        raise NotImplementedError

    @property
    def is_own(self):
        """ True if the bridge itself (or another bot, on Discord) sent this message. """
        raise NotImplementedError

    @property
    def message(self):
        """ The text of the message, exactly as it was sent. """
        raise NotImplementedError

    def __str__(self):
        return self.message


class IChatLink():
    """
    The bits of a network client that the relay needs: something to send messages through and something to
    tell to go away. Implementations must be safe to call from any thread.
    """

    @property
    def protocol(self):
        """ Returns the protocol this link talks. """
        raise NotImplementedError

    def send_message(self, target, message_text):
        """ Sends message_text to target (an IRC channel name or a Discord channel ID).
        Raises SendError if the message can't be sent. """
        raise NotImplementedError

    def disconnect(self, reason):
        """ Leaves the network, saying reason on the way out if the network supports that. Blocks until the
        connection is down, so never call it from that network's own thread. """
        raise NotImplementedError
