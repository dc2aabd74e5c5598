"""simple-acme main entry point."""
from contextlib import contextmanager
import logging
import os
import signal
import sys
from typing import Any
from typing import Callable
from typing import Dict
from typing import Generator
from typing import IO
from typing import List
from typing import Optional
from typing import Union

import simple_acme
from simple_acme import configuration
from simple_acme import errors
from simple_acme import target as target_mod
from simple_acme import util
from simple_acme._internal import authority
from simple_acme._internal import cli
from simple_acme._internal import client
from simple_acme._internal import log
from simple_acme._internal import renewal
from simple_acme._internal import scheduler
from simple_acme._internal.display import obj as display_obj
from simple_acme._internal.plugins import registry
from simple_acme.display import util as display_util
from simple_acme.target import Target

CONFIG_DIRS_MODE = 0o700

USER_CANCELLED = ("User chose to cancel the operation and may "
                  "reinvoke the client.")

logger = logging.getLogger(__name__)


def _tos_cb(config: configuration.NamespaceConfig) -> Callable[[str], None]:
    def _accept(terms_of_service: str) -> None:
        if config.accept_tos:
            return
        msg = ("Please read the Terms of Service at {0}. You must agree in "
               "order to register with the ACME server. Do you agree?".format(
                   terms_of_service))
        if not display_util.yesno(msg, "Agree", "Cancel", cli_flag="--accepttos"):
            raise errors.Error(
                "Registration cannot proceed without accepting "
                "Terms of Service.")
    return _accept


@contextmanager
def _cancel_on_interrupt(token: util.CancellationToken) -> Generator[None, None, None]:
    """Turn SIGINT into a cancellation request while the body runs.

    Pending authorization waits return early and their proofs are
    retracted before `.errors.Cancelled` propagates.

    """
    def _handler(unused_signum: int, unused_frame: Any) -> None:
        logger.warning("Cancellation requested, cleaning up...")
        token.cancel()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _make_client(config: configuration.NamespaceConfig,
                 cancellation: Optional[util.CancellationToken] = None) -> client.Client:
    acc, acme = client.load_or_register(config, _tos_cb(config))
    return client.Client(config, authority.AcmeAuthority(acme, acc.key), cancellation)


def _ask_for_hosts() -> List[str]:
    code, hosts = display_util.input_text(
        "Enter the host names of the certificate, comma separated, the "
        "first one becomes the primary host", cli_flag="--manualhost")
    if code != display_util.OK or not hosts.strip():
        raise errors.Error(USER_CANCELLED)
    return [hosts]


def _ask_for_webroot(config: configuration.NamespaceConfig) -> Optional[str]:
    if config.webroot or config.plugin != registry.DEFAULT_INSTALLER:
        return config.webroot
    code, webroot = display_util.input_text(
        "Enter the web root of the site (blank to skip)", cli_flag="--webroot")
    if code != display_util.OK:
        raise errors.Error(USER_CANCELLED)
    return webroot.strip() or None


def targets_from_config(config: configuration.NamespaceConfig) -> List[Target]:
    """Build the targets requested by ``--manualhost``.

    In interactive mode, missing host names and web root are asked for.
    With ``--san`` every requested target is merged into one request.

    :raises .errors.ConfigurationError: if no host is given in
        non-interactive mode, or the plugin is unknown

    """
    entry = registry.lookup(config.plugin)
    host_lists = config.manual_hosts
    webroot = config.webroot
    if not host_lists:
        if config.noninteractive_mode:
            raise errors.ConfigurationError(
                "No host names were provided, use --manualhost.")
        host_lists = _ask_for_hosts()
        webroot = _ask_for_webroot(config)

    targets = [target_mod.from_manual_hosts(
        hosts, webroot=webroot, plugin_name=entry.name,
        excluded_bindings=config.excluded_bindings, site_id=config.site_id)
        for hosts in host_lists]
    if config.san and len(targets) > 1:
        return [target_mod.merge_targets(targets)]
    return targets


def _schedule_renewal(config: configuration.NamespaceConfig, le_client: client.Client,
                      target: Target) -> None:
    if config.no_renewal:
        logger.info("Not scheduling a renewal of %s", target.host)
        return
    if not config.noninteractive_mode and not display_util.yesno(
            "Do you want to renew the certificate of {0} automatically?".format(target.host),
            default=True, cli_flag="--no-renewal"):
        return
    entry = le_client.schedule(target)
    display_util.notify("Renewal of {0} scheduled after {1}".format(
        target.host, entry.due.strftime("%Y-%m-%d")))

    if config.no_scheduler:
        return
    try:
        scheduler.CronScheduler().register(config)
    except errors.Error as error:
        logger.warning("%s Renewals will only run when simple-acme renew is "
                       "invoked.", error)


def run(config: configuration.NamespaceConfig) -> Optional[str]:
    """Obtain a certificate for each requested target and install it.

    :param config: Configuration object
    :type config: configuration.NamespaceConfig

    A target whose authorization fails is skipped, the others are
    still processed.

    :returns: `None` or a string naming the targets that failed
    :rtype: None or str

    """
    targets = targets_from_config(config)
    # Catch missing plugin parameters before the account is touched
    for target in targets:
        entry = registry.lookup(target.plugin_name)
        entry.init_validator(config)
        entry.init_installer(config)

    token = util.CancellationToken()
    le_client = _make_client(config, token)
    failed: List[str] = []
    with _cancel_on_interrupt(token):
        for target in targets:
            display_util.notify("Requesting a certificate for {0}".format(target))
            try:
                le_client.obtain_and_install(target)
            except errors.AuthorizationError as error:
                # the installer already reported the likely causes
                logger.error("%s", error)
                failed.append(target.host)
                continue
            _schedule_renewal(config, le_client, target)
    if failed:
        return "Authorization failed for {0}.".format(", ".join(failed))
    return None


def renew(config: configuration.NamespaceConfig) -> Optional[str]:
    """Renew every scheduled certificate that is due.

    :param config: Configuration object
    :type config: configuration.NamespaceConfig

    :returns: `None`
    :rtype: None

    """
    token = util.CancellationToken()
    le_client = _make_client(config, token)
    with _cancel_on_interrupt(token):
        renewal.handle_renewal_request(config, le_client.renew)
    return None


def list_renewals(config: configuration.NamespaceConfig) -> Optional[str]:
    """Display the renewal schedule.

    :param config: Configuration object
    :type config: configuration.NamespaceConfig

    :returns: `None`
    :rtype: None

    """
    store = renewal.RenewalStore(config.renewal_file).load()
    if not len(store):
        display_util.notify("No renewals are scheduled.")
    else:
        display_util.notify("Scheduled renewals:")
        for entry in sorted(store, key=lambda scheduled: scheduled.due):
            display_util.notify("  " + str(entry))
    for failure in store.parse_failures:
        display_util.notify("Invalid renewal entry: {0}".format(failure))
    return None


def register(config: configuration.NamespaceConfig) -> Optional[str]:
    """Create an account with the authority, or show the existing one.

    :param config: Configuration object
    :type config: configuration.NamespaceConfig

    :returns: `None`
    :rtype: None

    """
    acc, _ = client.load_or_register(config, _tos_cb(config))
    display_util.notify("Account {0} is registered with {1}".format(acc.id, config.server))
    return None


def cancel(config: configuration.NamespaceConfig) -> Optional[str]:
    """Stop renewing the ``--manualhost`` hosts and remove their certificates.

    :param config: Configuration object
    :type config: configuration.NamespaceConfig

    :returns: `None` or a string indicating an error
    :rtype: None or str

    """
    if not config.manual_hosts:
        return "Use --manualhost to name the renewal to cancel."
    for hosts in config.manual_hosts:
        host = hosts.split(",")[0].strip()
        target = client.cancel(config, host)
        display_util.notify("Cancelled the renewal of {0}".format(target))
    return None


VERBS: Dict[str, Callable[[configuration.NamespaceConfig], Optional[str]]] = {
    "run": run,
    "renew": renew,
    "list": list_renewals,
    "register": register,
    "cancel": cancel,
}


@contextmanager
def make_displayer(config: configuration.NamespaceConfig
                   ) -> Generator[display_obj.FileDisplay, None, None]:
    """Creates a display object appropriate to the flags in the supplied config.

    :param config: Configuration object

    :returns: Display object

    """
    devnull: Optional[IO] = None
    if config.quiet:
        config.noninteractive_mode = True
        devnull = open(os.devnull, "w")  # pylint: disable=consider-using-with
        displayer = display_obj.FileDisplay(devnull, noninteractive=True)
    else:
        displayer = display_obj.FileDisplay(sys.stdout, config.noninteractive_mode)

    try:
        yield displayer
    finally:
        if devnull:
            devnull.close()


def main(cli_args: Optional[List[str]] = None) -> Optional[Union[str, int]]:
    """Run simple-acme.

    :param cli_args: command line to simple-acme, defaults to ``sys.argv[1:]``
    :type cli_args: `list` of `str`

    :returns: value for `sys.exit` about the exit status of simple-acme
    :rtype: `str` or `int` or `None`

    """
    if not cli_args:
        cli_args = sys.argv[1:]

    log.pre_arg_parse_setup()

    logger.debug("simple-acme version: %s", simple_acme.__version__)
    # do not log `config`, as it may contain passwords
    logger.debug("Arguments: %r", cli_args)
    logger.debug("Available plugins: %r", registry.PLUGINS)

    # note: arg parser internally handles --help (and exits afterwards)
    args = cli.prepare_and_parse_args(cli_args)
    config = configuration.NamespaceConfig(args)

    log.post_arg_parse_setup(config)
    util.set_up_core_dir(config.config_dir, CONFIG_DIRS_MODE, config.strict_permissions)

    with make_displayer(config) as displayer:
        display_obj.set_display(displayer)

        return VERBS[config.verb](config)
