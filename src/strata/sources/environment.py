from __future__ import annotations

import os
from typing import Mapping, Optional

from ..core.source import BasePropertySource


class EnvironmentPropertySource(BasePropertySource):
    """Process environment variables, read afresh on every lookup.

    Args:
        env_prefix: Only variables starting with this prefix are visible,
            with the prefix removed from their keys.
        ordinal: Default priority.
        name: Source name, ``environment`` by default.
    """

    def __init__(
        self,
        env_prefix: Optional[str] = None,
        ordinal: int = 300,
        name: str = "environment",
        **kwargs,
    ):
        super().__init__(name, ordinal, **kwargs)
        self.env_prefix = env_prefix

    def properties(self) -> Mapping[str, str]:
        environ = dict(os.environ)
        if not self.env_prefix:
            return environ
        cut = len(self.env_prefix)
        return {k[cut:]: v for k, v in environ.items() if k.startswith(self.env_prefix) and len(k) > cut}
