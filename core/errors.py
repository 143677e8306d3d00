"""
Error taxonomy for the router core.

  ConfigurationError     – settings missing or unusable; fatal, never retried
  RouterConnectionError  – socket, timeout, login or connection loss; drives reconnect
  CommandError           – one command failed on a healthy session (!trap, timeout)
  ParseError             – malformed terminal command, rejected before queuing
"""


class RouterError(Exception):
    """Base class for everything raised by the router core."""


class ConfigurationError(RouterError):
    pass


class RouterConnectionError(RouterError, ConnectionError):
    pass


class CommandError(RouterError):
    """Raised when RouterOS answers a command with !trap."""

    def __init__(self, message: str, category: str = "", command: str = ""):
        super().__init__(message)
        self.category = category
        self.command = command


class ParseError(RouterError, ValueError):
    pass
