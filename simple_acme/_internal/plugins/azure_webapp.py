"""Azure Web App plugin: http-01 proofs over the FTP publishing profile,
certificates uploaded to the app and bound to its host names."""
import copy
import logging
from typing import Any
from typing import NamedTuple
from typing import Optional
from xml.etree import ElementTree

from simple_acme import achallenges
from simple_acme import configuration
from simple_acme import errors
from simple_acme import interfaces
from simple_acme import util
from simple_acme._internal import installation
from simple_acme._internal.plugins import common
from simple_acme._internal.plugins import ftp
from simple_acme.target import Target

logger = logging.getLogger(__name__)

_REQUIRED = (
    ("azure_webapp_name", "--azure-webapp-name"),
    ("azure_subscription_id", "--azure-subscription-id"),
    ("azure_resource_group", "--azure-resource-group"),
    ("azure_tenant_id", "--azure-tenant-id"),
    ("azure_client_id", "--azure-client-id"),
    ("azure_client_secret", "--azure-client-secret"),
)

SNI_ENABLED = "SniEnabled"
SSL_DISABLED = "Disabled"


class PublishingProfile(NamedTuple):
    """FTP endpoint and deployment credentials of a web app."""
    url: str
    user: str
    password: str


def parse_publishing_profile(xml: bytes) -> PublishingProfile:
    """Extract the FTP profile from a ``.PublishSettings`` document.

    :raises .errors.PluginError: if the document has no FTP profile

    """
    try:
        root = ElementTree.fromstring(xml)
    except ElementTree.ParseError as error:
        raise errors.PluginError("Invalid publishing profile: {0}".format(error))
    for profile in root.iter("publishProfile"):
        if profile.get("publishMethod") == "FTP":
            return PublishingProfile(url=profile.get("publishUrl", ""),
                                     user=profile.get("userName", ""),
                                     password=profile.get("userPWD", ""))
    raise errors.PluginError("The publishing profile has no FTP endpoint.")


def certificate_name(target: Target) -> str:
    """Name of the certificate resource uploaded for target."""
    return "simple-acme-" + util.clean_file_name(target.host)


class WebAppClient:
    """Web app operations through ``WebSiteManagementClient``.

    Needs the ``azure`` extra (azure-identity and azure-mgmt-web).

    """

    def __init__(self, config: configuration.NamespaceConfig) -> None:
        self.config = config
        self._client: Optional[Any] = None

    def check(self) -> None:
        """Verify settings and packages.

        :raises .errors.ConfigurationError: if anything is missing

        """
        missing = [flag for name, flag in _REQUIRED if not getattr(self.config, name)]
        if missing:
            raise errors.ConfigurationError(
                "The AzureWebApp plugin needs {0}.".format(", ".join(missing)))
        try:
            import azure.identity  # noqa: F401 pylint: disable=unused-import,import-outside-toplevel
            import azure.mgmt.web  # noqa: F401 pylint: disable=unused-import,import-outside-toplevel
        except ImportError:
            raise errors.ConfigurationError(
                "The AzureWebApp plugin needs the azure-identity and azure-mgmt-web "
                "packages, install simple-acme[azure].")

    def _get_azure_client(self) -> Any:
        """
        Gets azure web site management client

        :return: Azure web site management client
        :rtype: azure.mgmt.web.WebSiteManagementClient
        """
        if self._client is None:
            # pylint: disable=import-outside-toplevel
            from azure.identity import ClientSecretCredential
            from azure.mgmt.web import WebSiteManagementClient

            credential = ClientSecretCredential(
                tenant_id=self.config.azure_tenant_id,
                client_id=self.config.azure_client_id,
                client_secret=self.config.azure_client_secret)
            self._client = WebSiteManagementClient(credential, self.config.azure_subscription_id)
        return self._client

    def publishing_profile(self) -> PublishingProfile:
        """FTP publishing profile of the web app."""
        from azure.core.exceptions import HttpResponseError  # pylint: disable=import-outside-toplevel
        from azure.mgmt.web.models import CsmPublishingProfileOptions  # pylint: disable=import-outside-toplevel

        try:
            chunks = self._get_azure_client().web_apps.list_publishing_profile_xml_with_secrets(
                self.config.azure_resource_group, self.config.azure_webapp_name,
                CsmPublishingProfileOptions(format="Ftp"))
            xml = b"".join(chunks)
        except HttpResponseError as err:
            raise errors.PluginError(
                "Failed to get the publishing profile of web app {0}, error: {1}".format(
                    self.config.azure_webapp_name, err))
        logger.debug("Fetched the publishing profile of %s", self.config.azure_webapp_name)
        return parse_publishing_profile(xml)

    def upload_certificate(self, name: str, pfx_path: str) -> str:
        """Upload a PKCS#12 bundle next to the web app.

        :returns: thumbprint reported for the uploaded certificate
        :raises .errors.PluginError: if the bundle could not be read or uploaded

        """
        from azure.core.exceptions import HttpResponseError  # pylint: disable=import-outside-toplevel
        from azure.mgmt.web.models import Certificate  # pylint: disable=import-outside-toplevel

        try:
            with open(pfx_path, "rb") as pfx_file:
                pfx_blob = pfx_file.read()
        except OSError as error:
            raise errors.PluginError("Unable to read {0}: {1}".format(pfx_path, error))

        client = self._get_azure_client()
        resource_group = self.config.azure_resource_group
        try:
            site = client.web_apps.get(resource_group, self.config.azure_webapp_name)
            result = client.certificates.create_or_update(
                resource_group, name,
                Certificate(location=site.location, server_farm_id=site.server_farm_id,
                            pfx_blob=pfx_blob, password=self.config.pfx_password or ""))
        except HttpResponseError as err:
            raise errors.PluginError(
                "Certificate installation failed for web app {0}, error: {1}".format(
                    self.config.azure_webapp_name, err))
        logger.info("Uploaded certificate %s with thumbprint %s", name, result.thumbprint)
        return result.thumbprint

    def bind(self, host: str, thumbprint: Optional[str],
             ssl_state: str = SNI_ENABLED) -> None:
        """Set the SSL binding of a host name of the web app."""
        from azure.core.exceptions import HttpResponseError  # pylint: disable=import-outside-toplevel
        from azure.mgmt.web.models import HostNameBinding  # pylint: disable=import-outside-toplevel

        try:
            self._get_azure_client().web_apps.create_or_update_host_name_binding(
                self.config.azure_resource_group, self.config.azure_webapp_name, host,
                HostNameBinding(ssl_state=ssl_state, thumbprint=thumbprint))
        except HttpResponseError as err:
            raise errors.PluginError(
                "SSL binding of {0} failed, error: {1}".format(host, err))
        logger.info("Set SSL binding of %s to %s", host, ssl_state)

    def delete_certificate(self, name: str) -> None:
        """Delete an uploaded certificate, ignoring missing ones."""
        from azure.core.exceptions import HttpResponseError  # pylint: disable=import-outside-toplevel

        try:
            self._get_azure_client().certificates.delete(
                self.config.azure_resource_group, name)
        except HttpResponseError as err:
            if err.status_code != 404:
                raise errors.PluginError(
                    "Failed to delete certificate {0}, error: {1}".format(name, err))
        logger.info("Deleted certificate %s", name)


class Authenticator(interfaces.ValidationPlugin):
    """Azure Web App Authenticator.

    Uploads the proof with the FTP deployment credentials of the web
    app, the same way the FTP plugin does.

    """

    description = "Upload files to an Azure Web App through its publishing profile"
    challenge_type = achallenges.HTTP01

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.webapp = WebAppClient(self.config)
        self._ftp: Optional[ftp.Authenticator] = None

    def prepare(self) -> None:
        self.webapp.check()

    def _ftp_authenticator(self) -> ftp.Authenticator:
        if self._ftp is None:
            profile = self.webapp.publishing_profile()
            ftp_config = copy.deepcopy(self.config)
            ftp_config.ftp_server = profile.url
            ftp_config.ftp_user = profile.user
            ftp_config.ftp_password = profile.password
            self._ftp = ftp.Authenticator(ftp_config, self.name)
        return self._ftp

    def publish_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        self._ftp_authenticator().publish_proof(target, proof)

    def retract_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        self._ftp_authenticator().retract_proof(target, proof)


class Installer(common.Installer):
    """Azure Web App Installer.

    Uploads the bundle as a certificate resource and binds it with SNI
    to every host of the target, then runs ``--script`` when one is
    configured.

    """

    description = "Bind the certificate to the host names of an Azure Web App"

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.webapp = WebAppClient(self.config)

    def prepare(self) -> None:
        self.webapp.check()

    def _upload_and_bind(self, target: Target, pfx_path: str) -> None:
        thumbprint = self.webapp.upload_certificate(certificate_name(target), pfx_path)
        for host in target.get_hosts():
            self.webapp.bind(host, thumbprint)

    def install(self, target: Target, bundle_path: str,
                store: Optional[interfaces.CertificateStore],
                certificate: Optional[interfaces.StoredCertificate]) -> None:
        self._upload_and_bind(target, bundle_path)
        if self.config.script:
            super().install(target, bundle_path, store, certificate)

    def install_central(self, target: Target) -> None:
        self._upload_and_bind(target, installation.central_bundle_path(
            self.config.central_ssl_store, target.host))
        if self.config.script:
            super().install_central(target)

    def uninstall(self, target: Target) -> None:
        for host in target.get_hosts():
            self.webapp.bind(host, None, ssl_state=SSL_DISABLED)
        self.webapp.delete_certificate(certificate_name(target))
        super().uninstall(target)
