""" here be configs """

import logging
import os
from collections import namedtuple

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError


class ConfigError(Exception):
    """ Raised when the configuration is missing something or has something malformed in it. """


#things that must never end up in the log
_SECRETS = ('qnet_auth_pass', 'discord_token')


class BridgeConfig(namedtuple('BridgeConfig', [
    'irc_server', 'irc_port', 'irc_nick', 'irc_user', 'irc_name', 'qnet_auth_pass',
    'discord_token', 'discord_channel_id', 'irc_channel',
    'irc_quit_message', 'command_prefix', 'log_level',
])):
    """ The whole configuration of the bridge. Loaded once at startup and never changed afterwards. """
    __slots__ = ()

    def redacted(self):
        """ Returns the config as a dict that's safe to log. """
        values = self._asdict()
        for key in _SECRETS:
            if values[key]:
                values[key] = '********'
        return values


#each option: (environment variable names in order of preference, path in the YAML file, default)
#a default of None means the option is required
_OPTIONS = {
    'irc_server': (('SPAWNBOT_IRC_SERVER',), ('irc', 'server'), None),
    'irc_port': (('SPAWNBOT_IRC_PORT',), ('irc', 'port'), 6667),
    'irc_nick': (('SPAWNBOT_IRC_NICK',), ('irc', 'nick'), 'SpawnBot'),
    'irc_user': (('SPAWNBOT_IRC_USER',), ('irc', 'ident'), 'spawnbot'),
    'irc_name': (('SPAWNBOT_IRC_NAME',), ('irc', 'realname'), 'SpawnBot IRC Bridge'),
    #QNET_AUTH and SPAWNBOT_TOKEN are older names that are still accepted
    'qnet_auth_pass': (('SPAWNBOT_QNET_AUTH', 'QNET_AUTH'), ('irc', 'qnet_auth'), None),
    'discord_token': (('SPAWNBOT_DISCORD_TOKEN', 'SPAWNBOT_TOKEN'), ('discord', 'token'), None),
    'discord_channel_id': (('SPAWNBOT_DISCORD_CHANNEL_ID',), ('discord', 'channel_id'), None),
    'irc_channel': (('SPAWNBOT_IRC_CHANNEL',), ('irc', 'channel'), None),
    'irc_quit_message': (('SPAWNBOT_IRC_QUIT_MESSAGE',), ('irc', 'quitmessage'), 'Shutting down...'),
    'command_prefix': (('SPAWNBOT_COMMAND_PREFIX',), ('bot', 'prefix'), '!'),
    'log_level': (('SPAWNBOT_LOG_LEVEL',), ('bot', 'log_level'), 'INFO'),
}


def load_config(environ=None, filename=None):
    """
    Builds a BridgeConfig out of the environment and, optionally, a YAML file.
    Environment variables win over the file, the file wins over the defaults.
    The file is taken from filename or SPAWNBOT_CONFIG; without either only the environment is used.
    Raises ConfigError if something required is missing or malformed.
    """
    if environ is None:
        environ = os.environ
    if filename is None:
        filename = environ.get('SPAWNBOT_CONFIG') or None
    file_config = load_yaml_file(filename) if filename else {}

    values = {}
    for field, (env_names, path, default) in _OPTIONS.items():
        value = _from_environ(environ, env_names)
        if value is None:
            value = _from_file(file_config, path)
        if value is None:
            if default is None:
                raise ConfigError(f"{' or '.join(env_names)} is not set")
            value = default
        values[field] = value

    values['irc_port'] = _parse_int(values['irc_port'], 'SPAWNBOT_IRC_PORT')
    if not 0 < values['irc_port'] < 65536:
        raise ConfigError(f"invalid SPAWNBOT_IRC_PORT: {values['irc_port']} is out of range")
    values['discord_channel_id'] = _parse_int(values['discord_channel_id'], 'SPAWNBOT_DISCORD_CHANNEL_ID')
    if values['discord_channel_id'] <= 0:
        raise ConfigError('invalid SPAWNBOT_DISCORD_CHANNEL_ID: must be a positive snowflake')
    for field in ('irc_server', 'irc_nick', 'irc_channel', 'command_prefix'):
        values[field] = str(values[field]).strip()
        if not values[field]:
            raise ConfigError(f'{_OPTIONS[field][0][0]} must not be empty')
    values['log_level'] = str(values['log_level']).upper()
    if not isinstance(logging.getLevelName(values['log_level']), int):
        raise ConfigError(f"invalid SPAWNBOT_LOG_LEVEL: {values['log_level']}")
    return BridgeConfig(**values)


def load_yaml_file(filename):
    """ Reads the YAML configuration file and returns its contents as a dict. """
    if not os.path.exists(filename):
        raise ConfigError(f'configuration file {filename} does not exist')
    try:
        with open(filename, 'r') as cfgfile:
            yaml = YAML(typ='safe')
            contents = yaml.load(cfgfile)
    except (OSError, YAMLError) as error:
        raise ConfigError(f'could not read configuration file {filename}: {error}') from error
    if contents is None:
        return {}
    if not isinstance(contents, dict):
        raise ConfigError(f'configuration file {filename} must contain a mapping')
    return contents


def _from_environ(environ, names):
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


def _from_file(file_config, path):
    section, key = path
    section_values = file_config.get(section)
    if not isinstance(section_values, dict):
        return None
    value = section_values.get(key)
    if value is None or value == '':
        return None
    return value


def _parse_int(value, name):
    try:
        return int(value)
    except (TypeError, ValueError) as error:
        raise ConfigError(f'invalid {name}: {value!r} is not an integer') from error
