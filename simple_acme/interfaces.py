"""simple-acme client interfaces.

Plugins implement the capabilities they support: `ValidationPlugin`
proves control of identifiers, `InstallationPlugin` puts issued
certificates to use. A plugin class may implement both.

"""
from abc import ABCMeta
from abc import abstractmethod
from typing import Any
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Sequence
from typing import TYPE_CHECKING

from simple_acme import configuration

if TYPE_CHECKING:
    from acme import messages
    from simple_acme.achallenges import AuthorizationResult
    from simple_acme.achallenges import AuthorizationState
    from simple_acme.achallenges import ChallengeProof
    from simple_acme.target import Target


class CertificateResponse(NamedTuple):
    """Answer of the authority to a signing request.

    :ivar int status_code: HTTP status of the final order response
    :ivar bytes certificate: PEM encoded leaf certificate, if issued
    :ivar str chain_link: URL to resolve the issuer certificate from
    :ivar error: problem document returned by the authority, if any

    """
    status_code: int
    certificate: Optional[bytes]
    chain_link: Optional[str]
    error: Optional['messages.Error'] = None

    @property
    def accepted(self) -> bool:  # pylint: disable=missing-function-docstring
        return self.error is None and self.certificate is not None and self.status_code < 400


class StoredCertificate(NamedTuple):
    """Handle to a certificate held by a `CertificateStore`."""
    store_name: str
    thumbprint: str
    friendly_name: str
    path: str


class AuthorityClient(metaclass=ABCMeta):
    """Certificate authority operations used by the orchestrator."""

    @abstractmethod
    def authorize(self, identifier: str, challenge_type: str) -> 'AuthorizationState':
        """Begin authorization of identifier.

        :param str identifier: domain name to authorize
        :param str challenge_type: challenge type the validation plugin handles

        :returns: pending (or already valid) state with the chosen challenge
        :rtype: `.AuthorizationState`

        :raises .errors.AuthorizationError: if the authority offers no
            challenge of the requested type

        """

    @abstractmethod
    def submit_challenge_answer(self, state: 'AuthorizationState') -> None:
        """Tell the authority the proof for state is published."""

    @abstractmethod
    def refresh_authorization(self, state: 'AuthorizationState') -> 'AuthorizationState':
        """Fetch the current status of state from the authority."""

    @abstractmethod
    def request_certificate(self, csr_pem: bytes) -> CertificateResponse:
        """Submit a signing request for already authorized identifiers."""

    @abstractmethod
    def download_issuer_certificate(self, chain_link: str) -> bytes:
        """Download the PEM encoded issuer chain found at chain_link."""


class Plugin(metaclass=ABCMeta):
    """simple-acme plugin.

    Plugins are instantiated by the registry with the configuration of
    the current invocation. They must not keep state between calls
    beyond what the configuration provides.

    """

    description: str = NotImplemented
    """Short plugin description"""

    def __init__(self, config: configuration.NamespaceConfig, name: str) -> None:
        """Create a new `Plugin`.

        :param configuration.NamespaceConfig config: Configuration.
        :param str name: Registry name of the plugin.

        """
        self.config = config
        self.name = name

    def prepare(self) -> None:
        """Check the plugin has everything it needs.

        Called once before any network activity.

        :raises .errors.ConfigurationError: when required parameters are missing

        """

    def more_info(self) -> str:
        """Human-readable string to help the user."""
        return self.description


class ValidationPlugin(Plugin):
    """Publishes challenge proofs on a surface the authority can check."""

    challenge_type: str = NotImplemented
    """Challenge type handled, ``http-01`` or ``dns-01``"""

    @abstractmethod
    def publish_proof(self, target: 'Target', proof: 'ChallengeProof') -> None:
        """Make proof visible to the authority.

        Must not return before the proof is in place.

        :raises .errors.PluginError: if the proof could not be published

        """

    @abstractmethod
    def retract_proof(self, target: 'Target', proof: 'ChallengeProof') -> None:
        """Remove a proof published by `publish_proof`.

        :raises .errors.PluginError: if the proof could not be removed

        """

    def propagation_delay(self) -> float:
        """Seconds to wait between publishing and submitting."""
        return 0


class InstallationPlugin(Plugin):
    """Puts an issued certificate to use on a target."""

    @abstractmethod
    def install(self, target: 'Target', bundle_path: str,
                store: Optional['CertificateStore'],
                certificate: Optional[StoredCertificate]) -> None:
        """Install the bundle for target, bound to a stored certificate.

        :param .Target target: underlying (never merged) target
        :param str bundle_path: path of the PKCS#12 bundle
        :param store: opened certificate store holding `certificate`
        :param certificate: handle of the certificate added to `store`

        :raises .errors.PluginError: if installation failed

        """

    @abstractmethod
    def install_central(self, target: 'Target') -> None:
        """Install for target once the bundle was copied to the central store."""

    @abstractmethod
    def uninstall(self, target: 'Target') -> None:
        """Remove what `install` set up for target."""

    @abstractmethod
    def renew(self, target: 'Target') -> None:
        """Refresh the installation of target after a renewal."""

    def on_authorization_failed(self, target: 'Target',
                                failures: Sequence['AuthorizationResult'] = ()) -> None:
        """Diagnostic hook called when an identifier of target failed validation."""


class CertificateStore(metaclass=ABCMeta):
    """Named store of installed certificates."""

    name: Optional[str] = None
    """Name of the store actually opened"""

    @abstractmethod
    def open(self, name: str) -> None:
        """Open the store called name.

        :raises .errors.StoreError: if the store cannot be opened

        """

    @abstractmethod
    def add(self, bundle_path: str, password: str, friendly_name: str) -> StoredCertificate:
        """Import a PKCS#12 bundle.

        :raises .errors.StoreError: if the certificate cannot be written

        """

    @abstractmethod
    def remove(self, certificate: StoredCertificate) -> None:
        """Delete certificate from the store."""

    @abstractmethod
    def find_by_friendly_name(self, friendly_name: str) -> List[StoredCertificate]:
        """Certificates stored under friendly_name."""

    @abstractmethod
    def close(self) -> None:
        """Release the store."""

    def __enter__(self) -> 'CertificateStore':
        return self

    def __exit__(self, *unused_exc: Any) -> None:
        self.close()


class Scheduler(metaclass=ABCMeta):
    """Operating system facility running the renewal check periodically."""

    @abstractmethod
    def register(self, config: configuration.NamespaceConfig) -> None:
        """Make sure ``simple-acme renew`` runs on a recurring schedule.

        :raises .errors.Error: if the task could not be registered

        """
