""" The process-wide shutdown token. """

import logging
import threading


class ShutdownSignal():
    """
    A cancellation token that goes from live to cancelled exactly once.
    Every long-running loop and callback that needs to know about shutdown gets a reference to one of these.
    The first caller of fire() decides the reason and the exit code; later calls are ignored.
    """

    def __init__(self):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks = []
        self._reason = None
        self._exit_code = 0

    def fire(self, reason, exit_code=0):
        """ Cancels the token. Returns True if this call did it, False if it was already cancelled. """
        with self._lock:
            if self._event.is_set():
                logging.debug('Shutdown already requested, ignoring "%s".', reason)
                return False
            self._reason = reason
            self._exit_code = exit_code
            self._event.set()
            callbacks = list(self._callbacks)
        logging.info('Shutdown requested: %s', reason)
        for callback in callbacks:
            try:
                callback(self)
            except Exception:  #pylint:disable=broad-except
                logging.exception('Shutdown callback %r failed.', callback)
        return True

    def add_callback(self, callback):
        """ Registers callback(signal) to run once when the token is cancelled.
        If it's already cancelled the callback runs immediately. """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback(self)

    def is_set(self):
        """ True once the token has been cancelled. """
        return self._event.is_set()

    def wait(self, timeout=None):
        """ Blocks until the token is cancelled or the timeout runs out. Returns is_set(). """
        return self._event.wait(timeout)

    @property
    def reason(self):
        return self._reason

    @property
    def exit_code(self):
        return self._exit_code
