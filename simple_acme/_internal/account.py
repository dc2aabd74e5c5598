"""Signer and registration persistence, one account per authority."""
import hashlib
import logging
import os

from cryptography.hazmat.primitives import serialization
import josepy as jose

from acme import messages
from simple_acme import configuration
from simple_acme import errors
from simple_acme import util

logger = logging.getLogger(__name__)


class Account:
    """ACME protocol registration.

    :ivar .RegistrationResource regr: Registration Resource
    :ivar .JWK key: Authorized Account Key
    :ivar str id: Identifier derived from the public key

    """

    def __init__(self, regr: messages.RegistrationResource, key: jose.JWK) -> None:
        self.key = key
        self.regr = regr
        public_bytes = self.key.key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo)
        self.id = hashlib.sha256(public_bytes).hexdigest()[:32]

    def __repr__(self) -> str:
        return "<{0}({1}, {2})>".format(self.__class__.__name__, self.regr.uri, self.id)

    def __eq__(self, other: object) -> bool:
        return (isinstance(other, self.__class__) and
                self.key == other.key and self.regr == other.regr)


class AccountFileStorage:
    """Signer storage under `NamespaceConfig.signer_dir`.

    The authority base URI is part of `signer_dir`, so switching between
    production and staging never mixes accounts.

    :ivar simple_acme.configuration.NamespaceConfig config: Client configuration

    """
    def __init__(self, config: configuration.NamespaceConfig) -> None:
        self.config = config

    @property
    def _key_path(self) -> str:
        return os.path.join(self.config.signer_dir, "private_key.json")

    @property
    def _regr_path(self) -> str:
        return os.path.join(self.config.signer_dir, "regr.json")

    def exists(self) -> bool:
        """Is a complete account stored for the configured authority?"""
        return os.path.isfile(self._key_path) and os.path.isfile(self._regr_path)

    def load(self) -> Account:
        """Load the account of the configured authority.

        :raises .errors.AccountNotFound: if no account was saved
        :raises .errors.AccountStorageError: if the files are unreadable

        """
        if not self.exists():
            raise errors.AccountNotFound(
                "No account stored in {0}".format(self.config.signer_dir))
        try:
            with open(self._regr_path) as regr_file:
                regr = messages.RegistrationResource.json_loads(regr_file.read())
            with open(self._key_path) as key_file:
                key = jose.JWK.json_loads(key_file.read())
        except (OSError, jose.DeserializationError) as error:
            raise errors.AccountStorageError(error)
        return Account(regr, key)

    def save(self, account: Account) -> None:
        """Persist a newly registered account.

        The key file is created with mode 0400. Any earlier account of
        the same authority is replaced.

        """
        try:
            util.make_or_verify_dir(self.config.signer_dir, 0o700,
                                    self.config.strict_permissions)
            util.safely_remove(self._key_path)
            with util.safe_open(self._key_path, "w", chmod=0o400) as key_file:
                key_file.write(account.key.json_dumps())
            self._write_regr(account)
        except OSError as error:
            raise errors.AccountStorageError(error)
        logger.debug("Saved account %s in %s", account.id, self.config.signer_dir)

    def _write_regr(self, account: Account) -> None:
        regr = messages.RegistrationResource(body={}, uri=account.regr.uri)
        util.atomic_write(self._regr_path, regr.json_dumps(), chmod=0o644)
