from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from .builder import ContextBuilder
from .combination import AdaptiveCombinationPolicy, CollectingPolicy, CombinationPolicy, OverridingPolicy
from .config_loader import ConfigLoader
from .context import ResolutionContext
from .exceptions import ConfigurationError
from .filters import PropertyFilter
from .mutable import ChangePropagationPolicy, MutableConfiguration
from .source import MapPropertySource, PropertySource

logger = logging.getLogger(__name__)


class Environment:
    """Named set of property sources, filters and a combination policy.

    Sources come from the ``environments.<name>`` section of strata.yaml and
    from the ``sources`` argument.
    """

    def __init__(
        self,
        name: str,
        config_path: Optional[Union[str, Path]] = None,
        sources: Optional[Sequence[Union[PropertySource, str, Path]]] = None,
    ):
        """Initialize an Environment.

        Args:
            name: Name of the environment (e.g., "production", "development").
            config_path: Optional path to strata.yaml file. If not provided,
                searches for strata.yaml in current and parent directories.
            sources: Optional sources to register in addition to those of
                strata.yaml: source instances, properties file paths or
                redis URIs.

        Raises:
            ConfigurationError: If strata.yaml is invalid.
        """
        self.name = name
        self._sources: List[PropertySource] = []
        self._filters: List[PropertyFilter] = []
        self._policy_name = "override"
        self._config_loader = ConfigLoader(config_path)

        self._load_from_config_file()

        for item in sources or ():
            if isinstance(item, (str, Path)):
                self.register_source(item)
            else:
                self.add_source(item)

    def _load_from_config_file(self) -> None:
        """Load sources, filters and policy from strata.yaml if available."""
        self._policy_name = self._config_loader.get_combination_policy(self.name)
        self._filters.extend(self._config_loader.get_filters(self.name))
        for source_config in self._config_loader.get_sources(self.name):
            parsed = self._config_loader.parse_source(source_config)
            self.add_source(self._create_source(parsed))

    def register_source(
        self,
        path_or_uri: Union[str, Path],
        *,
        ordinal: Optional[int] = None,
        name: Optional[str] = None,
        writable: Optional[bool] = None,
    ) -> PropertySource:
        """Register a properties file or a redis URI.

        Args:
            path_or_uri: Path to a properties file or ``redis://`` URI.
            ordinal: Default priority of the source.
            name: Optional name for the source.
            writable: Whether the source accepts changes. Defaults to True.

        Returns:
            The registered source.
        """
        s = str(path_or_uri)
        spec: Dict[str, Any]
        if s.startswith(("redis://", "rediss://", "unix://")):
            spec = {"type": "redis", "uri": s}
        else:
            spec = {"type": "properties", "path": Path(s)}
        for option, value in (("ordinal", ordinal), ("name", name), ("writable", writable)):
            if value is not None:
                spec[option] = value
        source = self._create_source(spec)
        self.add_source(source)
        return source

    def _create_source(self, spec: Dict[str, Any]) -> PropertySource:
        """Create a property source from a parsed source specification.

        ``prefix`` is the variable prefix of an ``env`` source, the key
        namespace of a ``redis`` source and the key prefix of other sources.
        """
        kind = spec["type"]
        options: Dict[str, Any] = {}
        for option in ("ordinal", "name", "scannable"):
            if option in spec:
                options[option] = spec[option]
        if kind == "env":
            from ..sources.environment import EnvironmentPropertySource

            return EnvironmentPropertySource(env_prefix=spec.get("prefix"), **options)
        if kind == "cli":
            from ..sources.cli import CLIPropertySource

            return CLIPropertySource(spec.get("args"), **options)
        if kind == "map":
            options.setdefault("name", f"map:{self.name}")
            return MapPropertySource(
                data=spec.get("data"), prefix=spec.get("prefix"), **options
            )
        writable = spec.get("writable", True)
        if kind == "properties":
            from ..sources.properties_file import PropertiesFilePropertySource

            return PropertiesFilePropertySource(
                spec["path"], prefix=spec.get("prefix"), writable=writable, removable=writable, **options
            )
        if kind == "redis":
            from ..sources.redis_kv import RedisPropertySource

            return RedisPropertySource(
                spec["uri"], key_prefix=spec.get("prefix", ""), writable=writable, removable=writable, **options
            )
        raise ConfigurationError(f"Unsupported source type: {kind}")

    def add_source(self, source: PropertySource) -> None:
        """Add a ready-made source instance."""
        if any(s.name == source.name for s in self._sources):
            logger.warning("Property source %s already registered in %s, ignored", source.name, self.name)
            return
        self._sources.append(source)

    def add_filter(self, flt: PropertyFilter) -> None:
        self._filters.append(flt)

    @property
    def sources(self) -> List[PropertySource]:
        return list(self._sources)

    @property
    def combination_policy(self) -> CombinationPolicy:
        if self._policy_name == "collect":
            return CollectingPolicy()
        if self._policy_name == "adaptive":
            return AdaptiveCombinationPolicy()
        return OverridingPolicy()

    def builder(self) -> ContextBuilder:
        """A builder staged with this environment's parts and the default converters."""
        return (
            ContextBuilder()
            .add_default_property_converters()
            .add_property_sources(*self._sources)
            .add_property_filters(*self._filters)
            .set_combination_policy(self.combination_policy)
        )

    def context(self) -> ResolutionContext:
        """Build a resolution context over all registered sources."""
        return self.builder().build()

    def mutable(
        self,
        policy: Optional[ChangePropagationPolicy] = None,
        auto_commit: bool = False,
    ) -> MutableConfiguration:
        return MutableConfiguration(self.context(), policy=policy, auto_commit=auto_commit)

    @property
    def config_file_path(self) -> Optional[Path]:
        """Get the path to the loaded strata.yaml file, if any.

        Returns:
            Path to strata.yaml file, or None if not found/loaded.
        """
        return self._config_loader.config_path
