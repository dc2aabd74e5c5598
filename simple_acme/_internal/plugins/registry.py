"""Registration table of the built-in plugins and their lookup."""
from collections.abc import Mapping
import logging
from typing import Dict
from typing import Iterator
from typing import Optional
from typing import Type

from simple_acme import configuration
from simple_acme import errors
from simple_acme import interfaces
from simple_acme._internal.plugins import azure_webapp
from simple_acme._internal.plugins import dns_azure
from simple_acme._internal.plugins import dns_manual
from simple_acme._internal.plugins import ftp
from simple_acme._internal.plugins import manual

logger = logging.getLogger(__name__)

DEFAULT_INSTALLER = "Manual"
"""Plugin whose installer serves plugins that only validate."""


class PluginEntry:
    """Capabilities registered under one plugin name.

    :ivar str name: registry name, as stored in `.Target.plugin_name`
    :ivar validator_cls: validation capability, if any
    :ivar installer_cls: installation capability, if any

    """

    # this object is mutable, don't allow it to be hashed!
    __hash__ = None  # type: ignore

    def __init__(self, name: str,
                 validator_cls: Optional[Type[interfaces.ValidationPlugin]] = None,
                 installer_cls: Optional[Type[interfaces.InstallationPlugin]] = None) -> None:
        self.name = name
        self.validator_cls = validator_cls
        self.installer_cls = installer_cls

    @property
    def description(self) -> str:
        """Description of the plugin."""
        cls = self.validator_cls or self.installer_cls
        return cls.description if cls is not None else ""

    def init_validator(self, config: configuration.NamespaceConfig
                       ) -> interfaces.ValidationPlugin:
        """Instantiate and prepare the validation capability.

        :raises .errors.ConfigurationError: if the plugin cannot validate
            or misses parameters

        """
        if self.validator_cls is None:
            raise errors.ConfigurationError(
                "The {0} plugin cannot validate identifiers.".format(self.name))
        validator = self.validator_cls(config, self.name)
        validator.prepare()
        return validator

    def init_installer(self, config: configuration.NamespaceConfig
                       ) -> interfaces.InstallationPlugin:
        """Instantiate and prepare the installation capability."""
        installer_cls = self.installer_cls or PLUGINS[DEFAULT_INSTALLER].installer_cls
        assert installer_cls is not None
        installer = installer_cls(config, self.name)
        installer.prepare()
        return installer

    def __repr__(self) -> str:
        return "PluginEntry#{0}".format(self.name)

    def __str__(self) -> str:
        lines = [
            "* {0}".format(self.name),
            "Description: {0}".format(self.description),
            "Validation: {0}".format(
                self.validator_cls.challenge_type if self.validator_cls else "-"),
            "Installation: {0}".format(
                "yes" if self.installer_cls else "via " + DEFAULT_INSTALLER),
        ]
        return "\n".join(lines)


class PluginsRegistry(Mapping):
    """Plugins registry, keyed by plugin name."""

    def __init__(self, plugins: Mapping) -> None:
        # plugins are sorted so the same order is used between runs.
        self._plugins: Dict[str, PluginEntry] = dict(sorted(plugins.items()))

    def __getitem__(self, name: str) -> PluginEntry:
        return self._plugins[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._plugins)

    def __len__(self) -> int:
        return len(self._plugins)

    def find(self, name: Optional[str]) -> PluginEntry:
        """Resolve a plugin name, which must match exactly.

        :raises .errors.ConfigurationError: for unknown names

        """
        try:
            return self._plugins[name]  # type: ignore[index]
        except KeyError:
            raise errors.ConfigurationError(
                "Unknown plugin {0!r}, available plugins: {1}".format(
                    name, ", ".join(self._plugins)))

    def __repr__(self) -> str:
        return "{0}({1})".format(
            self.__class__.__name__, ','.join(
                repr(p_ep) for p_ep in self._plugins.values()))

    def __str__(self) -> str:
        if not self._plugins:
            return "No plugins"
        return "\n\n".join(str(p_ep) for p_ep in self._plugins.values())


PLUGINS = PluginsRegistry({
    "Manual": PluginEntry("Manual", manual.Authenticator, manual.Installer),
    "FTP": PluginEntry("FTP", ftp.Authenticator, ftp.Installer),
    "DnsManual": PluginEntry("DnsManual", dns_manual.Authenticator),
    "Azure": PluginEntry("Azure", dns_azure.Authenticator),
    "AzureWebApp": PluginEntry("AzureWebApp", azure_webapp.Authenticator,
                               azure_webapp.Installer),
})
"""Every plugin shipped with simple-acme."""


def lookup(name: Optional[str]) -> PluginEntry:
    """Resolve name in the built-in registry.

    :raises .errors.ConfigurationError: for unknown names

    """
    return PLUGINS.find(name)
