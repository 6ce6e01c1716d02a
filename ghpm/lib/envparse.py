"""
project.env parser.

KEY=value lines only; nothing is evaluated by a shell, and values that
look like shell syntax are refused outright.
"""

import re

KEY_PATTERN = re.compile(r'^[A-Z][A-Z0-9_]*$')

# Command substitution, variable expansion, chaining and pipes
SHELL_SYNTAX = re.compile(r'`|\$\(|\$\{|;|&&|\|')


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
        return value[1:-1]
    return value


def parse_env(text: str) -> dict[str, str]:
    """Parse project.env content into a dict.

    Raises:
        ValueError: with the offending line number
    """
    env: dict[str, str] = {}

    for lineno, line in enumerate(text.splitlines(), 1):
        line = line.strip()
        if not line or line.startswith('#'):
            continue
        if line.startswith('export '):
            line = line[len('export '):].lstrip()

        key, sep, value = line.partition('=')
        key = key.strip()
        if not sep:
            raise ValueError(f"line {lineno}: expected KEY=value, got '{key}'")
        if not KEY_PATTERN.match(key):
            raise ValueError(f"line {lineno}: '{key}' is not an upper-case setting name")
        if key in env:
            raise ValueError(f"line {lineno}: {key} is set more than once")

        value = _unquote(value.strip())
        if SHELL_SYNTAX.search(value):
            raise ValueError(f"line {lineno}: {key} contains shell syntax, which project.env does not allow")
        env[key] = value

    return env
