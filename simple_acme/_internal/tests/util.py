"""Test utilities."""
import argparse
import datetime
import logging
import multiprocessing
from multiprocessing import synchronize
import os
import shutil
import sys
import tempfile
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from typing import Sequence
import unittest

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import rsa
import josepy as jose

from acme import messages
from simple_acme import achallenges
from simple_acme import configuration
from simple_acme import interfaces
from simple_acme._internal import constants
from simple_acme._internal import lock
from simple_acme.target import Target

# Key vectors, generated once per test session
RSA_KEY = rsa.generate_private_key(public_exponent=65537, key_size=2048)
RSA_KEY_PEM = RSA_KEY.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption())
JWK = jose.JWKRSA(key=jose.ComparableRSAKey(RSA_KEY))

EC_KEY = ec.generate_private_key(ec.SECP256R1())
EC_KEY_PEM = EC_KEY.private_bytes(
    encoding=serialization.Encoding.PEM,
    format=serialization.PrivateFormat.PKCS8,
    encryption_algorithm=serialization.NoEncryption())


def make_cert(common_name: str, names: Sequence[str] = (),
              key: Any = EC_KEY, issuer_key: Any = None, issuer_name: Optional[str] = None,
              lifetime_days: int = 90) -> bytes:
    """Return the PEM of a certificate for common_name, self-signed by default."""
    now = datetime.datetime.now(datetime.timezone.utc)
    subject = x509.Name([x509.NameAttribute(x509.NameOID.COMMON_NAME, common_name)])
    issuer = x509.Name([x509.NameAttribute(
        x509.NameOID.COMMON_NAME, issuer_name or common_name)])
    builder = x509.CertificateBuilder(
        issuer_name=issuer,
        subject_name=subject,
        public_key=key.public_key(),
        serial_number=x509.random_serial_number(),
        not_valid_before=now - datetime.timedelta(days=1),
        not_valid_after=now + datetime.timedelta(days=lifetime_days),
    )
    if names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in names]),
            critical=False)
    return builder.sign(private_key=issuer_key or key, algorithm=hashes.SHA256()).public_bytes(
        serialization.Encoding.PEM)


ISSUER_PEM = make_cert("Fake Issuer", key=RSA_KEY)
CERT_PEM = make_cert("example.com", ["example.com", "www.example.com"],
                     issuer_key=RSA_KEY, issuer_name="Fake Issuer")
OTHER_CERT_PEM = make_cert("example.com", ["example.com"],
                           issuer_key=RSA_KEY, issuer_name="Fake Issuer")


def make_namespace(tempdir: str, **kwargs: Any) -> argparse.Namespace:
    """Namespace holding every CLI default, rooted in tempdir."""
    values: Dict[str, Any] = dict(constants.CLI_DEFAULTS)
    values.update(
        verb="run",
        config_dir=os.path.join(tempdir, "config"),
        logs_dir=os.path.join(tempdir, "logs"),
        cron_dir=os.path.join(tempdir, "cron.d"),
        server="https://acme.example.com/directory",
        poll_interval=0.01,
        max_poll_attempts=3,
        dns_propagation_seconds=0,
    )
    values.update(kwargs)
    return argparse.Namespace(**values)


def make_config(tempdir: str, **kwargs: Any) -> configuration.NamespaceConfig:
    """NamespaceConfig holding every CLI default, rooted in tempdir."""
    return configuration.NamespaceConfig(make_namespace(tempdir, **kwargs))


def make_proof(identifier: str = "example.com", token: str = "abc123",
               challenge_type: str = achallenges.HTTP01) -> achallenges.ChallengeProof:
    """Proof as the authority adapter would compute it."""
    if challenge_type == achallenges.HTTP01:
        location = ".well-known/acme-challenge/" + token
    else:
        base = identifier[2:] if identifier.startswith("*.") else identifier
        location = "_acme-challenge." + base
    return achallenges.ChallengeProof(
        identifier=identifier, challenge_type=challenge_type, token=token,
        location=location, content=token + ".thumbprint")


def make_state(identifier: str = "example.com", status: str = achallenges.STATUS_PENDING,
               challenge_type: str = achallenges.HTTP01,
               error: Optional[messages.Error] = None) -> achallenges.AuthorizationState:
    """Authorization state without authority resources."""
    return achallenges.AuthorizationState(
        identifier=identifier, status=status, challb=None, authzr=None,
        proof=make_proof(identifier, challenge_type=challenge_type), error=error)


class FakeAuthority(interfaces.AuthorityClient):
    """Authority answering from scripted status sequences.

    `statuses` maps identifiers to the statuses returned by successive
    calls, the first one by `authorize`. The last status repeats.

    """
    def __init__(self, statuses: Optional[Dict[str, List[str]]] = None,
                 default: Sequence[str] = (achallenges.STATUS_PENDING, achallenges.STATUS_VALID),
                 certificate: bytes = CERT_PEM, chain: bytes = ISSUER_PEM,
                 response: Optional[interfaces.CertificateResponse] = None) -> None:
        self.statuses = statuses or {}
        self.default = list(default)
        self.certificate = certificate
        self.chain = chain
        self.response = response
        self.calls: List[Any] = []
        self.csrs: List[bytes] = []
        self._seen: Dict[str, int] = {}

    def _next(self, identifier: str) -> str:
        sequence = self.statuses.get(identifier, self.default)
        index = self._seen.get(identifier, 0)
        self._seen[identifier] = index + 1
        return sequence[min(index, len(sequence) - 1)]

    def authorize(self, identifier: str, challenge_type: str) -> achallenges.AuthorizationState:
        self.calls.append(("authorize", identifier))
        return make_state(identifier, self._next(identifier), challenge_type)

    def submit_challenge_answer(self, state: achallenges.AuthorizationState) -> None:
        self.calls.append(("submit", state.identifier))

    def refresh_authorization(self, state: achallenges.AuthorizationState
                              ) -> achallenges.AuthorizationState:
        self.calls.append(("refresh", state.identifier))
        status = self._next(state.identifier)
        error = None
        if status == achallenges.STATUS_INVALID:
            error = messages.Error.with_code("unauthorized", detail="Invalid response")
        return state.update(status=status, error=error)

    def request_certificate(self, csr_pem: bytes) -> interfaces.CertificateResponse:
        self.calls.append(("request_certificate",))
        self.csrs.append(csr_pem)
        if self.response is not None:
            return self.response
        return interfaces.CertificateResponse(
            status_code=200, certificate=self.certificate,
            chain_link="https://acme.example.com/chain")

    def download_issuer_certificate(self, chain_link: str) -> bytes:
        self.calls.append(("download_issuer_certificate", chain_link))
        return self.chain


class FakeValidator(interfaces.ValidationPlugin):
    """Validation plugin recording what it publishes and retracts."""

    description = "Fake validator"
    challenge_type = achallenges.HTTP01

    def __init__(self, config: Any = None, name: str = "Fake") -> None:
        super().__init__(config, name)
        self.published: List[achallenges.ChallengeProof] = []
        self.retracted: List[achallenges.ChallengeProof] = []

    def publish_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        self.published.append(proof)

    def retract_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        self.retracted.append(proof)


class FakeInstaller(interfaces.InstallationPlugin):
    """Installation plugin recording its calls."""

    description = "Fake installer"

    def __init__(self, config: Any = None, name: str = "Fake") -> None:
        super().__init__(config, name)
        self.calls: List[Any] = []

    def install(self, target: Target, bundle_path: str,
                store: Optional[interfaces.CertificateStore],
                certificate: Optional[interfaces.StoredCertificate]) -> None:
        self.calls.append(("install", target.host, bundle_path, certificate))

    def install_central(self, target: Target) -> None:
        self.calls.append(("install_central", target.host))

    def uninstall(self, target: Target) -> None:
        self.calls.append(("uninstall", target.host))

    def renew(self, target: Target) -> None:
        self.calls.append(("renew", target.host))

    def on_authorization_failed(self, target: Target,
                                failures: Sequence[achallenges.AuthorizationResult] = ()
                                ) -> None:
        self.calls.append(("on_authorization_failed", target.host, list(failures)))


class TempDirTestCase(unittest.TestCase):
    """Base test class which sets up and tears down a temporary directory"""

    def setUp(self) -> None:
        """Execute before test"""
        self.tempdir = tempfile.mkdtemp()

    def tearDown(self) -> None:
        """Execute after test"""
        # Remove logging handlers that have been closed so they won't be
        # accidentally used in future tests.
        logging.getLogger().handlers = []
        shutil.rmtree(self.tempdir)


class ConfigTestCase(TempDirTestCase):
    """Test class which sets up a NamespaceConfig object."""

    def setUp(self) -> None:
        super().setUp()
        self.config = make_config(self.tempdir)


def _handle_lock(event_in: synchronize.Event, event_out: synchronize.Event, path: str) -> None:
    """
    Acquire a file lock on given path, then wait to release it. This worker is coordinated
    using events to signal when the lock should be acquired and released.
    :param multiprocessing.Event event_in: event object to signal when to release the lock
    :param multiprocessing.Event event_out: event object to signal when the lock is acquired
    :param path: the path to lock
    """
    my_lock = lock.LockFile(path)
    try:
        event_out.set()
        assert event_in.wait(timeout=20), 'Timeout while waiting to release the lock.'
    finally:
        my_lock.release()


def lock_and_call(callback: Callable[[], Any], path_to_lock: str) -> None:
    """
    Grab a lock on path_to_lock from a foreign process then execute the callback.
    :param callable callback: object to call after acquiring the lock
    :param str path_to_lock: path to the lock file
    """
    emit_event = multiprocessing.Event()
    receive_event = multiprocessing.Event()
    process = multiprocessing.Process(target=_handle_lock,
                                      args=(emit_event, receive_event, path_to_lock))
    process.start()

    # Wait confirmation that lock is acquired
    assert receive_event.wait(timeout=10), 'Timeout while waiting to acquire the lock.'
    try:
        # Execute the callback
        callback()
    finally:
        # Trigger unlock from foreign process
        emit_event.set()

    # Wait for process termination
    process.join(timeout=10)
    assert process.exitcode == 0


def skip_on_windows(reason: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorator to skip permanently a test on Windows. A reason is required."""
    def wrapper(function: Callable[..., Any]) -> Callable[..., Any]:
        """Wrapped version"""
        return unittest.skipIf(sys.platform == 'win32', reason)(function)
    return wrapper
