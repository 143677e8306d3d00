"""
Terminal commands – the slash/space syntax typed into a RouterOS console.

  "/ip address print where disabled=no"
      path      = "/ip/address/print"
      arguments = " where disabled=no"     (kept verbatim)

The argument text is then split into API words:
  key=value            -> =key=value
  where key=value      -> ?key=value
  where key!=value     -> ?key=value ?#!
  where key            -> ?key
  from X / to X        -> =from=X / =to=X
"""

import re
import shlex
from dataclasses import dataclass

from .errors import ParseError

PARAM_KEYWORDS = ("where", "from", "to")

# Joining words between query terms; the API ANDs consecutive ?terms already.
_QUERY_FILLER = {"and"}


@dataclass(frozen=True)
class TerminalCommand:
    raw: str
    path: str
    arguments: str = ""

    @property
    def api_command(self) -> str:
        return f"{self.path}{self.arguments}"


def parse_terminal_command(command: str) -> TerminalCommand:
    command = (command or "").strip()
    if not command:
        raise ParseError("Empty command")
    if not command.startswith("/"):
        raise ParseError(f"Commands must start with /: {command!r}")

    start = -1
    for keyword in PARAM_KEYWORDS:
        index = command.find(f" {keyword} ")
        if index != -1 and (start == -1 or index < start):
            start = index

    equals = command.find("=")
    if equals != -1:
        space = command.rfind(" ", 0, equals)
        if space != -1 and (start == -1 or space < start):
            start = space

    if start != -1:
        path_text, arguments = command[:start], command[start:]
    else:
        path_text, arguments = command, ""

    path = re.sub(r"\s+", "/", path_text.strip())
    path = re.sub(r"/{2,}", "/", path)
    if path != "/" and path.endswith("/"):
        path = path[:-1]

    return TerminalCommand(raw=command, path=path, arguments=arguments)


def split_arguments(arguments: str) -> tuple[dict[str, str], list[str]]:
    """Turn terminal argument text into (attribute params, query words)."""
    try:
        tokens = shlex.split(arguments)
    except ValueError as e:
        raise ParseError(f"Cannot parse arguments {arguments!r}: {e}") from e

    params: dict[str, str] = {}
    queries: list[str] = []
    in_where = False
    i = 0
    while i < len(tokens):
        token = tokens[i]
        i += 1

        if token == "where":
            in_where = True
            continue
        if token in ("from", "to"):
            if i >= len(tokens):
                raise ParseError(f"'{token}' needs a value")
            params[token] = tokens[i]
            i += 1
            continue

        if in_where:
            if token in _QUERY_FILLER:
                continue
            key, sep, value = token.partition("=")
            if not sep:
                queries.append(f"?{key}")
            elif key.endswith("!"):
                queries.extend([f"?{key[:-1]}={value}", "?#!"])
            else:
                queries.append(f"?{key}={value}")
        else:
            key, sep, value = token.partition("=")
            if not key:
                raise ParseError(f"Missing parameter name in {token!r}")
            params[key] = value if sep else ""

    return params, queries
