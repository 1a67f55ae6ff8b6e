"""Property source implementations.

This package contains the process environment and command line sources,
the writable properties file source and the writable redis source.
"""

from .cli import CLIPropertySource
from .environment import EnvironmentPropertySource
from .properties_file import PropertiesFilePropertySource
from .redis_kv import RedisPropertySource

__all__ = [
    "CLIPropertySource",
    "EnvironmentPropertySource",
    "PropertiesFilePropertySource",
    "RedisPropertySource",
]
