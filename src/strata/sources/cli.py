from __future__ import annotations

import logging
import sys
from typing import Dict, List, Mapping, Optional, Sequence

from ..core.source import BasePropertySource

logger = logging.getLogger(__name__)


def parse_args(args: Sequence[str]) -> Dict[str, str]:
    """Parse command line arguments into key/value pairs.

    Supported forms are ``--name=value``, ``--name value``, ``-n value`` and
    a bare ``--flag``, which maps to ``"true"``. Positional arguments are
    ignored; a later occurrence of a key replaces an earlier one.

    Args:
        args: Arguments without the program name.

    Returns:
        Dictionary of key to value.
    """
    result: Dict[str, str] = {}
    pending: Optional[str] = None
    for arg in args:
        if arg.startswith("-") and len(arg.lstrip("-")) > 0 and not _is_number(arg):
            if pending is not None:
                result[pending] = "true"
            name = arg[2:] if arg.startswith("--") else arg[1:]
            if "=" in name:
                key, value = name.split("=", 1)
                result[key] = value
                pending = None
            else:
                pending = name
        elif pending is not None:
            result[pending] = arg
            pending = None
        else:
            logger.debug("Ignoring positional argument %r", arg)
    if pending is not None:
        result[pending] = "true"
    return result


def _is_number(arg: str) -> bool:
    try:
        float(arg)
    except ValueError:
        return False
    return True


class CLIPropertySource(BasePropertySource):
    """Key/value pairs given on the command line.

    Args:
        args: Arguments to parse, ``sys.argv[1:]`` by default.
        ordinal: Default priority.
        name: Source name, ``cli`` by default.
    """

    def __init__(
        self,
        args: Optional[Sequence[str]] = None,
        ordinal: int = 400,
        name: str = "cli",
        **kwargs,
    ):
        super().__init__(name, ordinal, **kwargs)
        self.args: List[str] = list(sys.argv[1:] if args is None else args)
        self._properties = parse_args(self.args)

    def properties(self) -> Mapping[str, str]:
        return dict(self._properties)
