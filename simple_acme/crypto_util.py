"""simple-acme client crypto utility functions."""
import logging
import re
import typing
from typing import List
from typing import Optional
from typing import Sequence
from typing import Tuple
from typing import Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.hazmat.primitives.serialization import NoEncryption
from cryptography.hazmat.primitives.serialization import PrivateFormat
from cryptography.hazmat.primitives.serialization import pkcs12

from simple_acme import errors

logger = logging.getLogger(__name__)

# Finds one CERTIFICATE stricttextualmsg according to rfc7468#section-3.
# Does not validate the base64text - use x509.load_pem_x509_certificate.
CERT_PEM_REGEX = re.compile(
    b"""-----BEGIN CERTIFICATE-----\r?
.+?\r?
-----END CERTIFICATE-----\r?
""",
    re.DOTALL # DOTALL (/s) because the base64text may include newlines
)

PrivateKey = Union[rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey]


def make_key(bits: int = 2048, key_type: str = "rsa",
             elliptic_curve: Optional[str] = None) -> bytes:
    """Generate PEM encoded RSA|EC key.

    :param int bits: Number of bits if key_type=rsa. At least 2048 for RSA.
    :param str key_type: The type of key to generate, but be rsa or ecdsa
    :param str elliptic_curve: The elliptic curve to use.

    :returns: new RSA or ECDSA key in PEM form with specified number of bits
              or of type ec_curve when key_type ecdsa is used.
    :rtype: bytes

    """
    key: PrivateKey
    if key_type == 'rsa':
        if bits < 2048:
            raise errors.Error("Unsupported RSA key length: {}".format(bits))

        key = rsa.generate_private_key(public_exponent=65537, key_size=bits)
    elif key_type == 'ecdsa':
        if not elliptic_curve:
            raise errors.Error("When key_type == ecdsa, elliptic_curve must be set.")
        name = elliptic_curve.upper()
        if name not in ('SECP256R1', 'SECP384R1', 'SECP521R1'):
            raise errors.Error("Unsupported elliptic curve: {}".format(elliptic_curve))
        try:
            key = ec.generate_private_key(curve=getattr(ec, name)())
        except UnsupportedAlgorithm as e:
            raise errors.Error(str(e)) from e
    else:
        raise errors.Error("Invalid key_type specified: {}.  Use [rsa|ecdsa]".format(key_type))
    return key.private_bytes(
        encoding=Encoding.PEM,
        format=PrivateFormat.PKCS8,
        encryption_algorithm=NoEncryption()
    )


def load_private_key(key_pem: bytes) -> PrivateKey:
    """Load a PEM encoded RSA or EC private key."""
    key = serialization.load_pem_private_key(key_pem, password=None)
    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey)):
        raise errors.Error("Unsupported private key type {0}".format(type(key).__name__))
    return key


def make_csr(private_key_pem: bytes, common_name: str, names: Sequence[str]) -> bytes:
    """Generate a CSR for common_name and names.

    The subject holds `common_name` only, the subjectAltName extension
    lists every entry of `names`. `common_name` is added to the
    extension if missing.

    :param bytes private_key_pem: Private key, in PEM PKCS#8 format.
    :param str common_name: subject common name
    :param list names: DNS names for the subjectAltName extension

    :returns: PEM encoded CSR
    :rtype: bytes

    """
    private_key = load_private_key(private_key_pem)
    sans = list(names)
    if common_name not in sans:
        sans.insert(0, common_name)
    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(x509.NameOID.COMMON_NAME, common_name)]))
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in sans]),
            critical=False,
        )
    )
    csr = builder.sign(private_key, hashes.SHA256())
    return csr.public_bytes(Encoding.PEM)


def get_names_from_subject_and_extensions(
    subject: x509.Name, exts: x509.Extensions
) -> Tuple[Optional[str], List[str]]:
    """Get the first Common Name and the DNS subjectAltNames.

    :returns: common name (or None) and the list of DNS names
    :rtype: tuple

    """
    # We know these are always `str` because `bytes` is only possible for
    # other OIDs.
    cns = [
        typing.cast(str, c.value)
        for c in subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)
    ]
    try:
        san_ext = exts.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        dns_names = []
    else:
        dns_names = san_ext.value.get_values_for_type(x509.DNSName)
    return (cns[0] if cns else None), dns_names


def get_names_from_csr(csr_pem: bytes) -> Tuple[Optional[str], List[str]]:
    """Common name and DNS subjectAltNames of a PEM encoded CSR."""
    csr = x509.load_pem_x509_csr(csr_pem)
    return get_names_from_subject_and_extensions(csr.subject, csr.extensions)



def split_certificates(pem_data: bytes) -> List[bytes]:
    """Split concatenated PEM certificates, normalizing each one.

    :raises errors.Error: if pem_data holds no certificate

    """
    certs = CERT_PEM_REGEX.findall(pem_data)
    if not certs:
        raise errors.Error("No PEM certificate found")
    return [x509.load_pem_x509_certificate(cert).public_bytes(Encoding.PEM)
            for cert in certs]


def cert_and_chain_from_fullchain(fullchain_pem: bytes) -> Tuple[bytes, bytes]:
    """Split fullchain_pem into cert_pem and chain_pem

    :param bytes fullchain_pem: concatenated cert + chain

    :returns: tuple of cert_pem and chain_pem
    :rtype: tuple

    :raises errors.Error: If there are less than 2 certificates in the chain.

    """
    certs = CERT_PEM_REGEX.findall(fullchain_pem)
    if len(certs) < 2:
        raise errors.Error("failed to parse fullchain into cert and chain: " +
                           "less than 2 certificates in chain")
    normalized = split_certificates(fullchain_pem)
    return normalized[0], b"".join(normalized[1:])


def pem_to_der(cert_pem: bytes) -> bytes:
    """DER encoding of a PEM encoded certificate."""
    return x509.load_pem_x509_certificate(cert_pem).public_bytes(Encoding.DER)


def thumbprint(cert_pem: bytes) -> str:
    """SHA-1 fingerprint of the certificate, as uppercase hex."""
    cert = x509.load_pem_x509_certificate(cert_pem)
    return cert.fingerprint(hashes.SHA1()).hex().upper()



def make_pkcs12(key_pem: bytes, cert_pem: bytes, chain_pem: bytes,
                password: str = "", friendly_name: Optional[str] = None) -> bytes:
    """Bundle key, certificate and chain into a PKCS#12 archive.

    With a password the archive uses the legacy SHA1/3DES algorithms
    most servers can import, otherwise it is left unencrypted.

    :param bytes key_pem: private key
    :param bytes cert_pem: leaf certificate
    :param bytes chain_pem: concatenated issuer certificates, may be empty
    :param str password: archive password
    :param str friendly_name: name shown by certificate stores

    :rtype: bytes

    """
    key = load_private_key(key_pem)
    cert = x509.load_pem_x509_certificate(cert_pem)
    chain = [x509.load_pem_x509_certificate(pem)
             for pem in CERT_PEM_REGEX.findall(chain_pem)]
    encryption: serialization.KeySerializationEncryption
    if password:
        encryption = (
            PrivateFormat.PKCS12.encryption_builder().
            kdf_rounds(2000).
            key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC).
            hmac_hash(hashes.SHA1()).build(password.encode())
        )
    else:
        encryption = NoEncryption()
    name = friendly_name.encode() if friendly_name else None
    return pkcs12.serialize_key_and_certificates(name, key, cert, chain, encryption)


def load_pkcs12(data: bytes, password: str = "") -> Tuple[bytes, Optional[str]]:
    """Leaf certificate (PEM) and friendly name of a PKCS#12 archive.

    :raises errors.Error: if the archive cannot be decrypted or holds no certificate

    """
    try:
        bundle = pkcs12.load_pkcs12(data, password.encode() if password else None)
    except ValueError as error:
        raise errors.Error("Unable to read PKCS#12 bundle: {0}".format(error))
    if bundle.cert is None:
        raise errors.Error("PKCS#12 bundle holds no certificate")
    name = bundle.cert.friendly_name
    return (bundle.cert.certificate.public_bytes(Encoding.PEM),
            name.decode() if name is not None else None)
