"""simple-acme client API."""
import logging
from typing import Callable
from typing import List
from typing import Optional
from typing import Tuple

from cryptography.hazmat.primitives.asymmetric import rsa
import josepy as jose

from acme import client as acme_client
from acme import messages
from simple_acme import achallenges
from simple_acme import configuration
from simple_acme import errors
from simple_acme import interfaces
from simple_acme import util
from simple_acme._internal import account
from simple_acme._internal import auth_handler
from simple_acme._internal import authority
from simple_acme._internal import installation
from simple_acme._internal import pipeline
from simple_acme._internal import renewal
from simple_acme._internal.plugins import registry
from simple_acme.display import util as display_util
from simple_acme.target import Target

logger = logging.getLogger(__name__)


def register(config: configuration.NamespaceConfig,
             account_storage: account.AccountFileStorage,
             tos_cb: Optional[Callable[[str], None]] = None
             ) -> Tuple[account.Account, acme_client.ClientV2]:
    """Register new account with the authority.

    This function takes care of generating fresh private key,
    registering the account, optionally accepting the Terms of Service
    and finally saving the account.

    :param .AccountFileStorage account_storage: where the newly
        registered account is saved. Save happens only after the ToS
        acceptance step.

    :param tos_cb: called with the Terms of Service URL when the
        authority publishes one, must raise if the terms are not
        accepted. Defaults to automatic acceptance.

    :raises simple_acme.errors.Error: In case of any client problems, in
        particular registration failure, or unaccepted Terms of Service.
    :raises acme.errors.Error: In case of any protocol problems.

    :returns: Newly registered and saved account, as well as protocol
        API handle.
    :rtype: `tuple` of `.Account` and `acme.client.ClientV2`

    """
    if account_storage.exists():
        logger.info("There is already an account for %s, replacing it", config.server)

    if config.email == "":
        config.email = None
    if config.email is not None and not util.safe_email(config.email):
        raise errors.ConfigurationError(
            "{0} is not a valid email address, fix --email.".format(config.email))

    # Each new registration shall use a fresh new key
    rsa_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    key = jose.JWKRSA(key=jose.ComparableRSAKey(rsa_key))
    acme = authority.acme_from_config_key(config, key)
    regr = perform_registration(acme, config, tos_cb)

    acc = account.Account(regr, key)
    account_storage.save(acc)
    logger.info("Registered account %s with %s", acc.id, config.server)
    return acc, acme


def perform_registration(acme: acme_client.ClientV2, config: configuration.NamespaceConfig,
                         tos_cb: Optional[Callable[[str], None]]) -> messages.RegistrationResource:
    """
    Actually register new account, trying repeatedly if there are email
    problems

    :param acme.client.ClientV2 acme: ACME client object.
    :param simple_acme.configuration.NamespaceConfig config: Client configuration.
    :param Callable tos_cb: a callback to handle Term of Service agreement.

    :returns: Registration Resource.
    :rtype: `acme.messages.RegistrationResource`
    """
    tos = acme.directory.meta.terms_of_service
    if tos_cb and tos:
        tos_cb(tos)

    try:
        return acme.new_account(messages.NewRegistration.from_data(
            email=config.email, terms_of_service_agreed=True))
    except messages.Error as e:
        if e.code in ("invalidEmail", "invalidContact"):
            if config.noninteractive_mode:
                msg = ("The authority believes {0} is an invalid email address. "
                       "Please ensure it is a valid email and attempt "
                       "registration again.".format(config.email))
                raise errors.Error(msg)
            code, email = display_util.input_text(
                "The authority rejected {0}, enter another email address".format(config.email),
                cli_flag="--email")
            if code != display_util.OK:
                raise errors.Error("Registration cannot proceed without a valid email.")
            config.email = email or None
            return perform_registration(acme, config, tos_cb)
        raise


def load_or_register(config: configuration.NamespaceConfig,
                     tos_cb: Optional[Callable[[str], None]] = None
                     ) -> Tuple[account.Account, acme_client.ClientV2]:
    """Account of the configured authority, registered on first use."""
    account_storage = account.AccountFileStorage(config)
    try:
        acc = account_storage.load()
    except errors.AccountNotFound:
        logger.info("No account found for %s, registering a new one", config.server)
        return register(config, account_storage, tos_cb)
    logger.debug("Using account %s", acc.id)
    return acc, authority.acme_from_config_key(config, acc.key, acc.regr)


class Client:
    """simple-acme client.

    Drives a target through authorization, acquisition and
    installation, and keeps the renewal schedule up to date.

    :ivar .NamespaceConfig config: configuration of the invocation
    :ivar .AuthorityClient authority: certificate authority client
    :ivar .CancellationToken cancellation: aborts the authorization waits

    """

    def __init__(self, config: configuration.NamespaceConfig,
                 authority_client: interfaces.AuthorityClient,
                 cancellation: Optional[util.CancellationToken] = None) -> None:
        self.config = config
        self.authority = authority_client
        self.cancellation = cancellation or util.CancellationToken()

    def _plugins(self, target: Target) -> Tuple[interfaces.ValidationPlugin,
                                                interfaces.InstallationPlugin]:
        entry = registry.lookup(target.plugin_name)
        return entry.init_validator(self.config), entry.init_installer(self.config)

    def authorize(self, target: Target, validator: interfaces.ValidationPlugin,
                  installer: interfaces.InstallationPlugin
                  ) -> List[achallenges.AuthorizationResult]:
        """Authorize every identifier of target.

        :raises .errors.AuthorizationTimeout: if the authority did not decide in time
        :raises .errors.AuthorizationError: if an identifier is not valid

        """
        handler = auth_handler.AuthHandler(
            self.authority, validator, self.config,
            diagnostic_hook=installer.on_authorization_failed,
            cancellation=self.cancellation)
        results = handler.handle_authorizations(target)
        failed = [result for result in results if not result.succeeded]
        if failed:
            msg = "Authorization failed for {0}: {1}".format(
                target.host, auth_handler.describe_failures(failed))
            if any(result.outcome == achallenges.TIMED_OUT for result in failed):
                raise errors.AuthorizationTimeout(msg)
            raise errors.AuthorizationError(msg)
        return results

    def obtain_and_install(self, target: Target, renewal_mode: bool = False) -> str:
        """Authorize, acquire and install a certificate for target.

        Plugins and host set are checked before the authority is
        contacted.

        :param .Target target: target to process
        :param bool renewal_mode: call the `renew` hook of the installer

        :returns: path of the PKCS#12 bundle
        :rtype: str

        """
        target.get_hosts()
        validator, installer = self._plugins(target)

        self.authorize(target, validator, installer)
        bundle_path = pipeline.acquire(target, self.authority, self.config)
        display_util.notify("Certificate for {0} saved at {1}".format(target.host, bundle_path))

        installation.dispatch(self.config, installer, target, bundle_path,
                              renewal=renewal_mode)
        return bundle_path

    def renew(self, target: Target,
              lineage_config: Optional[configuration.NamespaceConfig] = None) -> None:
        """Renew the certificate of a scheduled target.

        :param lineage_config: configuration restored from the schedule
            entry, the configuration of this client by default

        """
        renewer = self
        if lineage_config is not None:
            renewer = Client(lineage_config, self.authority, self.cancellation)
        renewer.obtain_and_install(target, renewal_mode=True)

    def schedule(self, target: Target) -> renewal.ScheduledRenewal:
        """Schedule the next renewal of target."""
        return renewal.schedule(self.config, target)


def cancel(config: configuration.NamespaceConfig, host: str) -> Target:
    """Stop renewing host and uninstall its certificate.

    :returns: the target that was scheduled
    :raises .errors.Error: if nothing is scheduled for host

    """
    store = renewal.RenewalStore(config.renewal_file).load()
    entry = store.get(host)
    if entry is None:
        raise errors.Error("No renewal is scheduled for {0}".format(host))
    lineage_config = renewal.restore_config(config, entry.params or {})
    installer = registry.lookup(entry.target.plugin_name).init_installer(lineage_config)
    installer.uninstall(entry.target)
    store.remove(host)
    logger.info("Cancelled the renewal of %s", host)
    return entry.target
