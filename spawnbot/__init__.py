""" spawnbot: relays one IRC channel to one Discord channel and back. """

__version__ = '1.0.0'
