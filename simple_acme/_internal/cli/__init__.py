"""simple-acme command line argument & config processing."""
import argparse
import logging
from typing import List

import configargparse

import simple_acme
from simple_acme._internal import constants
from simple_acme._internal.cli.cli_utils import _ManualHostAction
from simple_acme._internal.cli.cli_utils import CustomHelpFormatter
from simple_acme._internal.cli.cli_utils import flag_default
from simple_acme._internal.cli.cli_utils import nonnegative_int
from simple_acme._internal.cli.cli_utils import positive_int
from simple_acme._internal.plugins import registry

logger = logging.getLogger(__name__)

VERBS = ("run", "renew", "list", "register", "cancel")
"""Process modes, the first one is the default."""

SHORT_USAGE = """
  simple-acme [SUBCOMMAND] [options] [--manualhost HOSTS]

Obtain, install and renew certificates from an ACME authority:

  run          Obtain and install a certificate (default)
  renew        Renew every certificate whose renewal is due
  list         Show the scheduled renewals
  register     Create an account with the authority
  cancel       Stop renewing --manualhost and remove its certificate
"""


def _paths_parser(parser: configargparse.ArgParser) -> None:
    group = parser.add_argument_group("paths")
    group.add_argument(
        "--config-dir", default=flag_default("config_dir"),
        help="Configuration directory, holding accounts, artifacts and the "
             "renewal schedule.")
    group.add_argument(
        "--logs-dir", default=flag_default("logs_dir"), help="Logs directory.")
    group.add_argument(
        "--certificatepath", dest="certificate_path",
        default=flag_default("certificate_path"),
        help="Directory receiving keys, requests and certificates "
             "(default: <config-dir>/<authority>/certificates)")
    group.add_argument(
        "--cron-dir", default=flag_default("cron_dir"),
        help="Directory the renewal task is registered in.")


def _authority_parser(parser: configargparse.ArgParser) -> None:
    group = parser.add_argument_group("authority")
    group.add_argument(
        "--server", default=flag_default("server"),
        help="ACME directory URL of the certificate authority.")
    group.add_argument(
        "--test", action="store_true", default=flag_default("test"),
        help="Use the staging authority ({0}).".format(constants.STAGING_URI))
    group.add_argument(
        "-m", "--email", default=flag_default("email"),
        help="Email address used for registration and recovery contact.")
    group.add_argument(
        "--accepttos", dest="accept_tos", action="store_true",
        default=flag_default("accept_tos"),
        help="Agree to the terms of service of the authority.")
    group.add_argument(
        "--no-verify-ssl", action="store_true", default=flag_default("no_verify_ssl"),
        help="Disable verification of the authority's certificate.")
    group.add_argument(
        "--user-agent", default=flag_default("user_agent"),
        help="Set a custom user agent string for the client.")
    group.add_argument(
        "--poll-interval", type=positive_int, default=flag_default("poll_interval"),
        help="Seconds between two authorization status checks.")
    group.add_argument(
        "--max-poll-attempts", type=positive_int, default=flag_default("max_poll_attempts"),
        help="Status checks before an authorization is considered timed out.")


def _target_parser(parser: configargparse.ArgParser) -> None:
    group = parser.add_argument_group("target")
    group.add_argument(
        "--plugin", default=flag_default("plugin"),
        help="Plugin validating and installing the target: {0}.".format(
            ", ".join(registry.PLUGINS)))
    group.add_argument(
        "--manualhost", dest="manual_hosts", action=_ManualHostAction,
        default=flag_default("manual_hosts"), metavar="HOSTS",
        help="Comma separated host names, the first one is the primary host. "
             "Can be repeated, each occurrence is a separate target.")
    group.add_argument(
        "--webroot", default=flag_default("webroot"),
        help="Web root of the target, or an ftp(s):// URL for the FTP plugin.")
    group.add_argument(
        "--excludebindings", dest="excluded_bindings",
        default=flag_default("excluded_bindings"),
        help="Comma separated host names to leave out of the certificate.")
    group.add_argument(
        "--siteid", dest="site_id", default=flag_default("site_id"),
        help="Identifier of the site on the server, passed to the installer.")
    group.add_argument(
        "--san", action="store_true", default=flag_default("san"),
        help="Merge every --manualhost target into one certificate.")


def _key_parser(parser: configargparse.ArgParser) -> None:
    group = parser.add_argument_group("security")
    group.add_argument(
        "--key-type", choices=["rsa", "ecdsa"], default=flag_default("key_type"),
        help="Type of the generated private key.")
    group.add_argument(
        "--rsa-key-size", type=int, default=flag_default("rsa_key_size"),
        help="Size of the RSA key.")
    group.add_argument(
        "--elliptic-curve", choices=["secp256r1", "secp384r1", "secp521r1"],
        default=flag_default("elliptic_curve"),
        help="Curve of the ECDSA key.")
    group.add_argument(
        "--pfx-password", default=flag_default("pfx_password"),
        help="Password of the PKCS#12 bundles, empty for no encryption.")


def _install_parser(parser: configargparse.ArgParser) -> None:
    group = parser.add_argument_group("installation")
    group.add_argument(
        "--script", default=flag_default("script"),
        help="Script to run once the certificate is stored.")
    group.add_argument(
        "--scriptparameters", dest="script_parameters",
        default=flag_default("script_parameters"),
        help="Arguments of --script, {0} host, {1} bundle password, {2} bundle "
             "path, {3} store name, {4} friendly name, {5} thumbprint. With "
             "--centralsslstore, {2} is the centralized store path.")
    group.add_argument(
        "--keepexisting", dest="keep_existing", action="store_true",
        default=flag_default("keep_existing"),
        help="Keep previous certificates of the same host in the store.")
    group.add_argument(
        "--centralsslstore", dest="central_ssl_store",
        default=flag_default("central_ssl_store"),
        help="Copy certificates to this directory instead of the certificate store.")
    group.add_argument(
        "--certificatestore", dest="certificate_store",
        default=flag_default("certificate_store"),
        help="Name of the certificate store, falls back to {0}.".format(
            flag_default("fallback_certificate_store")))


def _renew_parser(parser: configargparse.ArgParser) -> None:
    group = parser.add_argument_group("renew")
    group.add_argument(
        "--renewal-interval", default=flag_default("renewal_interval"),
        help="Time until the next renewal, e.g. '60 days' or '2 weeks'. A bare "
             "number means days.")
    group.add_argument(
        "--force-renewal", action="store_true", default=flag_default("force_renewal"),
        help="Renew every scheduled certificate, due or not.")
    group.add_argument(
        "--no-renewal", action="store_true", default=flag_default("no_renewal"),
        help="Do not schedule a renewal after run.")
    group.add_argument(
        "--no-scheduler", action="store_true", default=flag_default("no_scheduler"),
        help="Do not register the recurring renewal task.")


def _validation_parser(parser: configargparse.ArgParser) -> None:
    group = parser.add_argument_group("validation")
    group.add_argument(
        "--dns-propagation-seconds", type=nonnegative_int,
        default=flag_default("dns_propagation_seconds"),
        help="Seconds to wait for DNS changes to propagate.")
    group.add_argument(
        "--ftp-server", default=flag_default("ftp_server"),
        help="ftp:// or ftps:// URL of the remote web root.")
    group.add_argument("--ftp-user", default=flag_default("ftp_user"), help="FTP user name.")
    group.add_argument(
        "--ftp-password", default=flag_default("ftp_password"), help="FTP password.")
    group.add_argument(
        "--ftp-cleanup-folders", action="store_true",
        default=flag_default("ftp_cleanup_folders"),
        help="Remove the .well-known folders once the proof is deleted.")
    for name, helpstr in (("subscription-id", "Azure subscription"),
                          ("resource-group", "Resource group of the DNS zones or the web app"),
                          ("tenant-id", "Azure AD tenant of the service principal"),
                          ("client-id", "Application id of the service principal"),
                          ("client-secret", "Secret of the service principal")):
        group.add_argument(
            "--azure-" + name, default=flag_default("azure_" + name.replace("-", "_")),
            help=helpstr + ".")
    group.add_argument(
        "--azure-webapp-name", default=flag_default("azure_webapp_name"),
        help="Name of the web app served by the AzureWebApp plugin.")


def prepare_and_parse_args(args: List[str]) -> argparse.Namespace:
    """Returns parsed command line arguments.

    Options may also come from the config files, ``-c FILE`` or the
    default ``cli.ini``.

    :param list args: command line arguments with the program name removed

    :returns: parsed command line arguments
    :rtype: argparse.Namespace

    """
    parser = configargparse.ArgParser(
        prog="simple-acme",
        usage=SHORT_USAGE,
        formatter_class=CustomHelpFormatter,
        args_for_setting_config_path=["-c", "--config"],
        default_config_files=flag_default("config_files"),
        config_arg_help_message="path to config file (default: {0})".format(
            " and ".join(flag_default("config_files"))))

    parser.add_argument(
        "verb", nargs="?", choices=VERBS, default=VERBS[0],
        help="Process mode.")
    parser.add_argument(
        "-v", "--verbose", dest="verbose_count", action="count",
        default=flag_default("verbose_count"), help="This flag can be used "
        "multiple times to incrementally increase the verbosity of output, "
        "e.g. -vvv.")
    # This is for developers to set the level in the cli.ini, and overrides
    # the --verbose flag
    parser.add_argument(
        "--verbose-level", dest="verbose_level",
        default=flag_default("verbose_level"), help=argparse.SUPPRESS)
    parser.add_argument(
        "-q", "--quiet", dest="quiet", action="store_true",
        default=flag_default("quiet"),
        help="Silence all output except errors. Useful for automation via cron."
             " Implies --non-interactive.")
    parser.add_argument(
        "-n", "--non-interactive", "--noninteractive",
        dest="noninteractive_mode", action="store_true",
        default=flag_default("noninteractive_mode"),
        help="Run without ever asking for user input. This may require "
             "additional command line flags; the client will try to explain "
             "which ones are required if it finds one missing")
    parser.add_argument(
        "--debug", action="store_true", default=flag_default("debug"),
        help="Show tracebacks in case of errors.")
    parser.add_argument(
        "--max-log-backups", type=nonnegative_int,
        default=flag_default("max_log_backups"),
        help="Specifies the maximum number of backup logs that should "
             "be kept by the client's built in log rotation. Setting this "
             "flag to 0 disables log rotation entirely, causing the client to "
             "always append to the same log file.")
    parser.add_argument(
        "--strict-permissions", action="store_true",
        default=flag_default("strict_permissions"),
        help="Require that all configuration files are owned by the current "
             "user; only needed if your config is somewhere unsafe like /tmp/")
    parser.add_argument(
        "--version", action="version",
        version="%(prog)s {0}".format(simple_acme.__version__),
        help="show program's version number and exit")

    _authority_parser(parser)
    _target_parser(parser)
    _key_parser(parser)
    _install_parser(parser)
    _renew_parser(parser)
    _validation_parser(parser)
    _paths_parser(parser)

    parsed = parser.parse_args(args)
    # Constants not exposed on the command line
    parsed.fallback_certificate_store = flag_default("fallback_certificate_store")
    if parsed.quiet:
        parsed.noninteractive_mode = True
    return parsed
