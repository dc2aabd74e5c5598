"""Directory backed certificate stores."""
import logging
import os
import shutil
from typing import List
from typing import Optional

from simple_acme import configuration
from simple_acme import crypto_util
from simple_acme import errors
from simple_acme import interfaces
from simple_acme import util

logger = logging.getLogger(__name__)

STORES_DIR = "stores"
"""Directory (relative to ``config_dir``) holding one directory per store."""


class FileCertificateStore(interfaces.CertificateStore):
    """Certificate store kept as ``<base_dir>/<name>/<thumbprint>.pfx``.

    Bundles are copied in as they are, their password is only needed to
    read the thumbprint and friendly name, which are indexed in memory
    when the store is opened.

    :ivar str base_dir: directory holding the stores
    :ivar str password: password of the stored bundles

    """
    def __init__(self, base_dir: str, password: str = "") -> None:
        self.base_dir = base_dir
        self.password = password
        self.name: Optional[str] = None
        self._certificates: List[interfaces.StoredCertificate] = []

    @property
    def path(self) -> str:
        """Directory of the opened store."""
        if self.name is None:
            raise errors.StoreError("The certificate store is not open")
        return os.path.join(self.base_dir, self.name)

    def open(self, name: str) -> None:
        if not name or util.clean_file_name(name) != name:
            raise errors.StoreError("Invalid certificate store name {0!r}".format(name))
        path = os.path.join(self.base_dir, name)
        try:
            util.make_or_verify_dir(path, 0o700)
            files = sorted(os.listdir(path))
        except (OSError, errors.Error) as error:
            raise errors.StoreError(
                "Unable to open certificate store {0}: {1}".format(name, error))

        self.name = name
        self._certificates = []
        for file_name in files:
            if not file_name.endswith(".pfx"):
                continue
            try:
                self._certificates.append(self._index(os.path.join(path, file_name)))
            except (OSError, errors.Error) as error:
                logger.warning("Ignoring unreadable bundle %s in store %s: %s",
                               file_name, name, error)
        logger.debug("Opened certificate store %s with %d certificates",
                     name, len(self._certificates))

    def _index(self, bundle_path: str) -> interfaces.StoredCertificate:
        with open(bundle_path, "rb") as bundle_file:
            cert_pem, friendly_name = crypto_util.load_pkcs12(bundle_file.read(), self.password)
        return interfaces.StoredCertificate(
            store_name=self.name or "", thumbprint=crypto_util.thumbprint(cert_pem),
            friendly_name=friendly_name or "", path=bundle_path)

    def add(self, bundle_path: str, password: str, friendly_name: str
            ) -> interfaces.StoredCertificate:
        try:
            with open(bundle_path, "rb") as bundle_file:
                cert_pem, _ = crypto_util.load_pkcs12(bundle_file.read(), password)
        except (OSError, errors.Error) as error:
            raise errors.StoreError(
                "Unable to read certificate bundle {0}: {1}".format(bundle_path, error))

        thumbprint = crypto_util.thumbprint(cert_pem)
        destination = os.path.join(self.path, thumbprint + ".pfx")
        try:
            shutil.copyfile(bundle_path, destination)
            os.chmod(destination, 0o600)
        except OSError as error:
            raise errors.StoreError(
                "Unable to add {0} to certificate store {1}: {2}".format(
                    thumbprint, self.name, error))

        certificate = interfaces.StoredCertificate(
            store_name=self.name or "", thumbprint=thumbprint,
            friendly_name=friendly_name, path=destination)
        self._certificates = [cert for cert in self._certificates
                              if cert.thumbprint != thumbprint]
        self._certificates.append(certificate)
        logger.info("Added certificate %s (%s) to store %s", thumbprint, friendly_name, self.name)
        return certificate

    def remove(self, certificate: interfaces.StoredCertificate) -> None:
        try:
            util.safely_remove(certificate.path)
        except OSError as error:
            raise errors.StoreError(
                "Unable to remove {0} from certificate store {1}: {2}".format(
                    certificate.thumbprint, self.name, error))
        self._certificates = [cert for cert in self._certificates
                              if cert.thumbprint != certificate.thumbprint]
        logger.info("Removed certificate %s from store %s", certificate.thumbprint, self.name)

    def find_by_friendly_name(self, friendly_name: str) -> List[interfaces.StoredCertificate]:
        return [cert for cert in self._certificates if cert.friendly_name == friendly_name]

    def close(self) -> None:
        self.name = None
        self._certificates = []


def open_store(config: configuration.NamespaceConfig) -> FileCertificateStore:
    """Open the configured certificate store.

    Falls back once to ``fallback_certificate_store`` when the
    configured store cannot be opened.

    :raises .errors.StoreError: if neither store can be opened

    """
    store = FileCertificateStore(os.path.join(config.config_dir, STORES_DIR),
                                 password=config.pfx_password or "")
    try:
        store.open(config.certificate_store)
    except errors.StoreError as error:
        fallback = config.fallback_certificate_store
        if not fallback or fallback == config.certificate_store:
            raise
        logger.warning("%s Using certificate store %s instead.", error, fallback)
        store.open(fallback)
    return store
