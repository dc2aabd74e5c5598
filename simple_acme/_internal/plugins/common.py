"""Plugin common functions."""
import abc
import logging
import os
from typing import Any
from typing import List
from typing import Optional
from typing import Sequence

from simple_acme import achallenges
from simple_acme import errors
from simple_acme import interfaces
from simple_acme import util
from simple_acme._internal import cert_store
from simple_acme._internal import installation
from simple_acme._internal import pipeline
from simple_acme.target import Target

logger = logging.getLogger(__name__)

WEB_CONFIG_NAME = "web.config"

WEB_CONFIG = """\
<?xml version="1.0" encoding="UTF-8"?>
<configuration>
  <system.webServer>
    <staticContent>
      <clear />
      <mimeMap fileExtension="." mimeType="text/json" />
    </staticContent>
    <handlers>
      <clear />
      <add name="StaticFile" path="*" verb="*" modules="StaticFileModule,DefaultDocumentModule" resourceType="Either" requireAccess="Read" />
    </handlers>
  </system.webServer>
</configuration>
"""
"""IIS configuration serving the extensionless proof files."""


def base_domain_name_guesses(domain: str) -> List[str]:
    """Return a list of progressively less-specific domain names.

    One of these will probably be the domain name known to the DNS provider.

    :Example:

    >>> base_domain_name_guesses('foo.bar.baz.example.com')
    ['foo.bar.baz.example.com', 'bar.baz.example.com', 'baz.example.com', 'example.com', 'com']

    :param str domain: The domain for which to return guesses.
    :returns: The a list of less specific domain names.
    :rtype: list
    """

    fragments = domain.split('.')
    return ['.'.join(fragments[i:]) for i in range(0, len(fragments))]


def auth_hint(name: str, failures: Sequence[achallenges.AuthorizationResult]) -> str:
    """Human-readable string to help the user troubleshoot failed validations.

    :param str name: registry name of the plugin
    :param list failures: failed authorization results

    :rtype: str

    """
    hints = []
    for result in failures:
        proof = result.state.proof if result.state is not None else None
        if proof is None:
            continue
        if proof.challenge_type == achallenges.HTTP01:
            hints.append("Ensure http://{0}/{1} is reachable from the internet and "
                         "serves the proof content.".format(proof.identifier, proof.location))
        else:
            hints.append("Ensure the TXT record {0} holds the proof content and is "
                         "visible to the public DNS.".format(proof.location))
    if not hints:
        hints.append("Ensure the {0} plugin is configured correctly.".format(name))
    return ("The Certificate Authority couldn't verify the challenges published by the "
            "{0} plugin. {1}".format(name, " ".join(hints)))


class Installer(interfaces.InstallationPlugin):
    """Installs certificates by running the configured post-install script.

    ``--scriptparameters`` is a `str.format` template. In store mode
    the fields are host, bundle password, bundle path, store name,
    friendly name and thumbprint. In centralized mode they are host,
    bundle password and centralized store path.

    """

    description = "Run a script once the certificate is stored"

    def install(self, target: Target, bundle_path: str,
                store: Optional[interfaces.CertificateStore],
                certificate: Optional[interfaces.StoredCertificate]) -> None:
        self._run_script(
            target.host,
            self.config.pfx_password or "",
            bundle_path,
            store.name if store is not None else "",
            certificate.friendly_name if certificate is not None else "",
            certificate.thumbprint if certificate is not None else "",
        )

    def install_central(self, target: Target) -> None:
        self._run_script(target.host, self.config.pfx_password or "",
                         self.config.central_ssl_store)

    def uninstall(self, target: Target) -> None:
        if self.config.central_ssl:
            for host in target.get_hosts():
                path = installation.central_bundle_path(self.config.central_ssl_store, host)
                logger.info("Removing %s", path)
                try:
                    util.safely_remove(path)
                except OSError as error:
                    raise errors.PluginError(
                        "Unable to remove {0}: {1}".format(path, error))
            return

        with cert_store.open_store(self.config) as store:
            for certificate in store.find_by_friendly_name(pipeline.friendly_name(target)):
                store.remove(certificate)

    def renew(self, target: Target) -> None:
        logger.info("Renewed certificate of %s is installed", target.host)

    def on_authorization_failed(self, target: Target,
                                failures: Sequence[achallenges.AuthorizationResult] = ()
                                ) -> None:
        logger.warning(auth_hint(target.plugin_name, failures))

    def _run_script(self, *fields: Any) -> None:
        script = self.config.script
        if script and self.config.script_parameters:
            try:
                parameters = self.config.script_parameters.format(*fields)
            except (IndexError, KeyError, ValueError) as error:
                raise errors.PluginError(
                    "Invalid script parameters {0!r}: {1}".format(
                        self.config.script_parameters, error))
            logger.info("Running %s with %s", script, parameters)
            args = util.split_command_line(script, parameters)
        elif script:
            logger.info("Running %s", script)
            args = [script]
        else:
            logger.warning("Unable to configure server software.")
            return

        try:
            out, err = util.run_script(args)
        except errors.SubprocessError as error:
            raise errors.PluginError(str(error))
        if out:
            logger.info("Output from %s:\n%s", os.path.basename(script), out)
        if err:
            logger.warning("Error output from %s:\n%s", os.path.basename(script), err)


class DNSAuthenticator(interfaces.ValidationPlugin, metaclass=abc.ABCMeta):
    """Base class for DNS Authenticators"""

    challenge_type = achallenges.DNS01

    def propagation_delay(self) -> float:
        return self.config.dns_propagation_seconds

    def publish_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        self._perform(proof.identifier, proof.location, proof.content)

    def retract_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        self._cleanup(proof.identifier, proof.location, proof.content)

    @abc.abstractmethod
    def _perform(self, domain: str, validation_name: str,
                 validation: str) -> None:  # pragma: no cover
        """
        Performs a dns-01 challenge by creating a DNS TXT record.

        :param str domain: The domain being validated.
        :param str validation_name: The validation record domain name.
        :param str validation: The validation record content.
        :raises errors.PluginError: If the challenge cannot be performed
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def _cleanup(self, domain: str, validation_name: str,
                 validation: str) -> None:  # pragma: no cover
        """
        Deletes the DNS TXT record which would have been created by `_perform`.

        Fails gracefully if no such record exists.

        :param str domain: The domain being validated.
        :param str validation_name: The validation record domain name.
        :param str validation: The validation record content.
        """
        raise NotImplementedError()
