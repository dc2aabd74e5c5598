"""simple-acme constants."""
import logging
import os
from typing import Any
from typing import Dict

PRODUCTION_URI = "https://acme-v02.api.letsencrypt.org/directory"
"""Default authority directory URI."""

STAGING_URI = "https://acme-staging-v02.api.letsencrypt.org/directory"
"""Authority directory URI used in test mode."""

DEFAULT_CONFIG_DIR = os.path.join(
    os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config")), "simple-acme")

CLI_DEFAULTS: Dict[str, Any] = dict(  # noqa
    config_files=[
        os.path.join(DEFAULT_CONFIG_DIR, "cli.ini"),
    ],

    # Main parser
    verbose_count=0,
    verbose_level=None,
    quiet=False,
    debug=False,
    max_log_backups=1000,
    noninteractive_mode=False,
    strict_permissions=False,

    # Authority
    server=PRODUCTION_URI,
    test=False,
    email=None,
    accept_tos=False,
    no_verify_ssl=False,
    user_agent=None,

    # Target selection
    plugin="Manual",
    manual_hosts=[],
    webroot=None,
    excluded_bindings=None,
    san=False,
    site_id=None,

    # Key material
    key_type="rsa",
    rsa_key_size=2048,
    elliptic_curve="secp256r1",
    pfx_password="",

    # Installation
    script=None,
    script_parameters=None,
    certificate_path=None,
    keep_existing=False,
    central_ssl_store=None,
    certificate_store="WebHosting",
    fallback_certificate_store="My",

    # Renewal
    renewal_interval="60 days",
    force_renewal=False,
    no_renewal=False,
    cron_dir="/etc/cron.d",
    no_scheduler=False,

    # Challenge polling
    poll_interval=2,
    max_poll_attempts=30,
    dns_propagation_seconds=30,

    # FTP
    ftp_server=None,
    ftp_user=None,
    ftp_password=None,
    ftp_cleanup_folders=False,

    # Azure DNS and Azure Web App
    azure_subscription_id=None,
    azure_resource_group=None,
    azure_tenant_id=None,
    azure_client_id=None,
    azure_client_secret=None,

    # Azure Web App
    azure_webapp_name=None,

    config_dir=DEFAULT_CONFIG_DIR,
    logs_dir=os.path.join(DEFAULT_CONFIG_DIR, "logs"),
)

QUIET_LOGGING_LEVEL = logging.ERROR
"""Logging level to use in quiet mode."""

DEFAULT_LOGGING_LEVEL = logging.WARNING
"""Default logging level to use when not in quiet mode."""

MAX_SAN_NAMES = 100
"""Maximum number of identifiers the authority accepts in one certificate."""

SIGNER_DIR = "signer"
"""Directory (relative to `NamespaceConfig.config_path`) holding the account."""

CERTIFICATES_DIR = "certificates"
"""Default artifact directory relative to `NamespaceConfig.config_path`."""

RENEWAL_FILE = "renewals.conf"
"""Renewal schedule file name, relative to `NamespaceConfig.config_path`."""

CRON_FILE = "simple-acme-renew"
"""Name of the file registered with the task scheduler."""

CHALLENGE_PATH = ".well-known/acme-challenge"
"""Web root relative directory of http-01 proofs."""

DNS_CHALLENGE_PREFIX = "_acme-challenge"
"""Label prepended to identifiers for dns-01 proofs."""

DNS_TTL = 3600
"""TTL used for dns-01 TXT records created through provider APIs."""

USER_AGENT = "simple-acme/{0}"
