"""Certificate acquisition pipeline.

Turns an authorized target into a PKCS#12 bundle: key and CSR
generation, signing request, issuer chain resolution and bundle
assembly. Every intermediate artifact is kept under
`NamespaceConfig.cert_path`, named after the primary host.

"""
import logging
import os
from typing import NamedTuple

import josepy as jose

from simple_acme import configuration
from simple_acme import crypto_util
from simple_acme import errors
from simple_acme import interfaces
from simple_acme import util
from simple_acme.target import Target

logger = logging.getLogger(__name__)


class ArtifactPaths(NamedTuple):
    """Deterministic artifact file names of one primary host."""
    key: str
    gen_key: str
    csr: str
    gen_csr: str
    crt_der: str
    crt_pem: str
    chain_pem: str
    pfx: str

    @classmethod
    def for_host(cls, cert_path: str, host: str) -> 'ArtifactPaths':
        """Paths of the artifacts of host, under cert_path."""
        base = os.path.join(cert_path, util.clean_file_name(host))
        return cls(
            key=base + "-key.pem",
            gen_key=base + "-gen-key.json",
            csr=base + "-csr.pem",
            gen_csr=base + "-gen-csr.pem",
            crt_der=base + "-crt.der",
            crt_pem=base + "-crt.pem",
            chain_pem=base + "-chain.pem",
            pfx=base + "-all.pfx",
        )


class CertificateArtifact(NamedTuple):
    """Everything produced by one acquisition.

    Never modified after creation, a renewal produces a new artifact
    over the same paths.

    """
    paths: ArtifactPaths
    key_pem: bytes
    csr_pem: bytes
    cert_pem: bytes
    chain_pem: bytes

    @property
    def bundle_path(self) -> str:  # pylint: disable=missing-function-docstring
        return self.paths.pfx

    @property
    def thumbprint(self) -> str:  # pylint: disable=missing-function-docstring
        return crypto_util.thumbprint(self.cert_pem)


def friendly_name(target: Target) -> str:
    """Name under which the certificate of target is stored."""
    return target.host


def obtain_artifact(target: Target, authority: interfaces.AuthorityClient,
                    config: configuration.NamespaceConfig) -> CertificateArtifact:
    """Acquire a certificate for the resolved hosts of an authorized target.

    :param .Target target: target whose identifiers are all valid
    :param authority: certificate authority client
    :param config: configuration, for key parameters and `cert_path`

    :returns: the new artifact set
    :rtype: CertificateArtifact

    :raises .errors.AcquisitionError: if the authority refuses the
        request or the issuer chain cannot be resolved

    """
    hosts = target.get_hosts()
    primary = hosts[0]
    util.make_or_verify_dir(config.cert_path, 0o700, config.strict_permissions)
    paths = ArtifactPaths.for_host(config.cert_path, primary)

    key_pem = crypto_util.make_key(bits=config.rsa_key_size, key_type=config.key_type,
                                   elliptic_curve=config.elliptic_curve)
    util.atomic_write(paths.key, key_pem, chmod=0o600)
    util.atomic_write(paths.gen_key, jose.JWK.load(key_pem).json_dumps(), chmod=0o600)
    logger.debug("Generated %s key for %s in %s", config.key_type, primary, paths.key)

    csr_pem = crypto_util.make_csr(key_pem, primary, hosts)
    util.atomic_write(paths.gen_csr, csr_pem)
    util.atomic_write(paths.csr, csr_pem)
    logger.debug("Generated CSR for %s in %s", ", ".join(hosts), paths.csr)

    logger.info("Requesting certificate for %s", ", ".join(hosts))
    response = authority.request_certificate(csr_pem)
    if not response.accepted or response.certificate is None:
        raise errors.AcquisitionError(
            "Certificate request for {0} was refused".format(primary),
            status_code=response.status_code, problem=response.error)
    if not response.chain_link:
        raise errors.AcquisitionError(
            "The authority did not link the issuer certificate of {0}".format(primary),
            status_code=response.status_code)
    cert_pem = response.certificate
    chain_pem = authority.download_issuer_certificate(response.chain_link)

    util.atomic_write(paths.crt_der, crypto_util.pem_to_der(cert_pem))
    util.atomic_write(paths.crt_pem, cert_pem)
    util.atomic_write(paths.chain_pem, chain_pem)

    bundle = crypto_util.make_pkcs12(key_pem, cert_pem, chain_pem,
                                     password=config.pfx_password or "",
                                     friendly_name=friendly_name(target))
    util.atomic_write(paths.pfx, bundle, chmod=0o600)
    logger.info("Saved certificate bundle for %s to %s", primary, paths.pfx)

    return CertificateArtifact(paths=paths, key_pem=key_pem, csr_pem=csr_pem,
                               cert_pem=cert_pem, chain_pem=chain_pem)


def acquire(target: Target, authority: interfaces.AuthorityClient,
            config: configuration.NamespaceConfig) -> str:
    """Acquire a certificate for target and return the bundle path.

    See `obtain_artifact`.

    """
    return obtain_artifact(target, authority, config).bundle_path
