"""
Bot commands: the registry that holds them, the dispatcher that runs them and the commands the bot ships with.

A command is invoked by a chat line that starts with the prefix, eg. "!ping". Lines that don't start with the
prefix, or name a command nobody registered, are ignored without a peep so that people can use the prefix in
ordinary conversation.
"""

import logging
import threading
from collections import namedtuple


class DuplicateCommand(ValueError):
    """ Raised when registering a command under a name that is already taken. """


#handler is called as handler(client, input) where client is the IChatLink of the network the command came from
Command = namedtuple('Command', ['name', 'help', 'help_args', 'min_args', 'handler'],
                     defaults=('', '', 0, None))

#who sent the command
Source = namedtuple('Source', ['name', 'host'])


class Input():
    """ Everything a command handler gets to know about its invocation. Lives for one dispatch. """

    __slots__ = ('event', 'source', 'args')

    def __init__(self, event, source, args):
        self.event = event
        self.source = source
        self.args = args

    @property
    def origin(self):
        """ The message the command arrived in. Reply through this. """
        return self.event

    def __repr__(self):
        return f'Input(source={self.source!r}, args={self.args!r})'


class CommandRegistry():
    """
    Maps command names to commands. Names are case sensitive.
    Registering a name twice raises DuplicateCommand rather than replacing the earlier command.
    """

    def __init__(self):
        self._commands = {}
        self._lock = threading.Lock()

    def add(self, command):
        """ Registers the given command. """
        if not command.name or any(c.isspace() for c in command.name):
            raise ValueError(f'Invalid command name {command.name!r}.')
        if command.min_args < 0:
            raise ValueError('min_args must not be negative.')
        if not callable(command.handler):
            raise ValueError(f'Command {command.name} has no handler.')
        with self._lock:
            if command.name in self._commands:
                raise DuplicateCommand(f'Command {command.name} is already registered.')
            #copy-on-write so lookups from the network threads never see a dict mid-update
            commands = dict(self._commands)
            commands[command.name] = command
            self._commands = commands
        logging.debug('Registered command %s.', command.name)

    def get(self, name):
        """ Returns the command registered under name, or None. """
        return self._commands.get(name)

    def __contains__(self, name):
        return name in self._commands

    def __len__(self):
        return len(self._commands)

    def __iter__(self):
        commands = self._commands
        return iter([commands[name] for name in sorted(commands)])


class CommandDispatcher():
    """ Works out whether a chat line is a command and runs it if it is. """

    def __init__(self, prefix, registry):
        if not prefix:
            raise ValueError('The command prefix must not be empty.')
        self.prefix = prefix
        self.registry = registry

    def is_command(self, message_text):
        """ True if the line starts with the command prefix, whether or not it names a real command. """
        return message_text.strip().startswith(self.prefix)

    def parse(self, message_text):
        """ Splits a line into (name, args). Returns None if the line isn't prefixed or has no command name. """
        line = message_text.strip()
        if not line.startswith(self.prefix):
            return None
        tokens = line[len(self.prefix):].split()
        if not tokens:
            return None
        return tokens[0], tokens[1:]

    def execute(self, client, message):
        """
        Runs the command in message, if there is one. message is an IMessage, client is the IChatLink of the
        network it came from. Returns True if a command handler ran.
        The handler runs to completion before this returns.
        """
        parsed = self.parse(message.message)
        if parsed is None:
            return False
        name, args = parsed
        command = self.registry.get(name)
        if command is None:
            return False

        if len(args) < command.min_args:
            logging.info('Not enough arguments for %s from %s (got %d, need %d).',
                         name, message.simple_sender, len(args), command.min_args)
            message.reply(self.usage(command))
            return False

        cmd_input = Input(message, Source(message.simple_sender, message.host), args)
        logging.debug('Running command %s for %s.', name, message.simple_sender)
        try:
            command.handler(client, cmd_input)
        except Exception:  #pylint:disable=broad-except
            #a broken command must not take the network's receive loop down with it
            logging.exception('Command %s failed.', name)
        return True

    def usage(self, command):
        """ Returns the usage line of the given command. """
        return f'Usage: {self.prefix}{command.name} {command.help_args}'


def register_builtin_commands(registry, shutdown, prefix='!'):
    """ Registers the commands the bot always has. shutdown is the ShutdownSignal that die fires. """

    def ping(client, cmd_input):
        logging.info('Received ping command from %s.', cmd_input.source.name)
        cmd_input.origin.reply('pong!')

    def die(client, cmd_input):
        logging.info('Received die command from %s on %s, initiating shutdown.',
                     cmd_input.source.name, cmd_input.origin.protocol.name)
        shutdown.fire(f'die command from {cmd_input.source.name}')

    def show_help(client, cmd_input):
        if cmd_input.args:
            command = registry.get(cmd_input.args[0])
            if command is None:
                cmd_input.origin.reply(f'No such command: {cmd_input.args[0]}')
                return
            usage = f'{prefix}{command.name} {command.help_args}'.rstrip()
            cmd_input.origin.reply(f'{usage} - {command.help}')
        else:
            names = ', '.join(prefix + command.name for command in registry)
            cmd_input.origin.reply(f'Commands: {names}')

    registry.add(Command('ping', 'Sends a pong reply back to the source.', '', 0, ping))
    registry.add(Command('die', 'Forces the bot to quit.', '', 0, die))
    registry.add(Command('help', 'Lists commands, or describes one.', '[command]', 0, show_help))
