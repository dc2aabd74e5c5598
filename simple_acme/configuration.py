"""simple-acme user-supplied configuration."""
import copy
import os
from typing import Any
from typing import List
from typing import Optional
from urllib import parse

from simple_acme import errors
from simple_acme import util
from simple_acme._internal import constants


class NamespaceConfig:
    """Configuration wrapper around :class:`argparse.Namespace`.

    One instance is built per invocation and handed explicitly to the
    orchestrator, the acquisition pipeline and the plugins. Attributes
    not defined here are delegated to the underlying namespace.

    The following paths are dynamically resolved from `config_dir` and
    the authority URI (see :py:mod:`simple_acme._internal.constants`):

      - `config_path`
      - `signer_dir`
      - `renewal_file`
      - `cert_path` (unless set with ``--certificatepath``)

    :ivar namespace: Namespace typically produced by
        :meth:`argparse.ArgumentParser.parse_args`.
    :type namespace: :class:`argparse.Namespace`

    """

    def __init__(self, namespace: Any) -> None:
        object.__setattr__(self, 'namespace', namespace)

        self.namespace.config_dir = os.path.abspath(os.path.expanduser(
            self.namespace.config_dir))
        self.namespace.logs_dir = os.path.abspath(os.path.expanduser(
            self.namespace.logs_dir))

        check_config_sanity(self)

    # Delegate any attribute not explicitly defined to the underlying namespace object.

    def __getattr__(self, name: str) -> Any:
        return getattr(self.namespace, name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self.namespace, name, value)

    def set_by_user(self, name: str) -> bool:
        """Does option name differ from its command line default?"""
        return getattr(self.namespace, name) != constants.CLI_DEFAULTS.get(name)

    @property
    def server(self) -> str:
        """Authority directory URI, the staging URI in test mode."""
        if self.namespace.test:
            return constants.STAGING_URI
        return self.namespace.server

    @property
    def config_path(self) -> str:
        """Per-authority state directory."""
        return os.path.join(self.namespace.config_dir, util.clean_file_name(self.server))

    @property
    def signer_dir(self) -> str:  # pylint: disable=missing-function-docstring
        return os.path.join(self.config_path, constants.SIGNER_DIR)

    @property
    def renewal_file(self) -> str:  # pylint: disable=missing-function-docstring
        return os.path.join(self.config_path, constants.RENEWAL_FILE)

    @property
    def cert_path(self) -> str:
        """Directory receiving the per-identifier artifacts."""
        if self.namespace.certificate_path:
            return os.path.abspath(os.path.expanduser(self.namespace.certificate_path))
        return os.path.join(self.config_path, constants.CERTIFICATES_DIR)

    @property
    def manual_hosts(self) -> List[str]:
        return self.namespace.manual_hosts or []

    @property
    def central_ssl_store(self) -> Optional[str]:
        return self.namespace.central_ssl_store or None

    @property
    def central_ssl(self) -> bool:
        """Are certificates published to a centralized store directory?"""
        return self.central_ssl_store is not None

    # Magic methods

    def __deepcopy__(self, _memo: Any) -> 'NamespaceConfig':
        new_ns = copy.deepcopy(self.namespace)
        return type(self)(new_ns)


def check_config_sanity(config: NamespaceConfig) -> None:
    """Validate command line options and display error message if
    requirements are not met.

    :param config: configuration to check
    :type config: :class:`NamespaceConfig`

    :raises .errors.ConfigurationError: on the first invalid value

    """
    scheme = parse.urlparse(config.server).scheme
    if scheme not in ("http", "https"):
        raise errors.ConfigurationError(
            "Authority URI {0} must be an http or https URL".format(config.server))

    if config.namespace.poll_interval <= 0:
        raise errors.ConfigurationError("--poll-interval must be positive")
    if config.namespace.max_poll_attempts < 1:
        raise errors.ConfigurationError("--max-poll-attempts must be at least 1")
    if config.namespace.dns_propagation_seconds < 0:
        raise errors.ConfigurationError("--dns-propagation-seconds must not be negative")

    password = config.namespace.pfx_password or ""
    if not password.isprintable():
        raise errors.ConfigurationError("--pfx-password must only contain printable characters")

    if config.namespace.key_type not in ("rsa", "ecdsa"):
        raise errors.ConfigurationError(
            "Unsupported key type {0}".format(config.namespace.key_type))

    for host in config.manual_hosts:
        for name in host.split(","):
            if name.strip():
                util.enforce_domain_sanity(name)
