"""Hand issued certificates over to installation plugins."""
import logging
import os
import shutil

from simple_acme import configuration
from simple_acme import errors
from simple_acme import interfaces
from simple_acme import util
from simple_acme._internal import cert_store
from simple_acme._internal import pipeline
from simple_acme.target import Target
from simple_acme.target import underlying_targets

logger = logging.getLogger(__name__)


def central_bundle_path(central_store: str, host: str) -> str:
    """Path of the bundle of host in the centralized store."""
    return os.path.join(central_store, host.replace("*", "_") + ".pfx")


def install_with_store(config: configuration.NamespaceConfig,
                       installer: interfaces.InstallationPlugin,
                       target: Target, bundle_path: str) -> interfaces.StoredCertificate:
    """Add the bundle to the certificate store and bind it.

    The plugin is called once per underlying target with the opened
    store. Unless ``keep_existing`` is set, certificates previously
    stored under the same friendly name are removed afterwards.

    :returns: handle of the added certificate
    :raises .errors.StoreError: if the store cannot be opened or written
    :raises .errors.PluginError: if the plugin failed to install

    """
    with cert_store.open_store(config) as store:
        certificate = store.add(bundle_path, config.pfx_password or "",
                                pipeline.friendly_name(target))
        for underlying in underlying_targets(target):
            logger.info("Installing certificate for %s", underlying)
            installer.install(underlying, bundle_path, store, certificate)

        if config.keep_existing:
            logger.debug("Keeping previous certificates of %s", certificate.friendly_name)
        else:
            for previous in store.find_by_friendly_name(certificate.friendly_name):
                if previous.thumbprint != certificate.thumbprint:
                    logger.info("Removing previous certificate %s", previous.thumbprint)
                    store.remove(previous)
    return certificate


def install_central(config: configuration.NamespaceConfig,
                    installer: interfaces.InstallationPlugin,
                    target: Target, bundle_path: str) -> None:
    """Copy the bundle into the centralized store, once per host.

    :raises .errors.PluginError: if a copy failed or the plugin failed

    """
    central_store = config.central_ssl_store
    try:
        util.make_or_verify_dir(central_store, 0o755)
        for host in target.get_hosts():
            destination = central_bundle_path(central_store, host)
            logger.info("Copying certificate to the centralized store %s", destination)
            shutil.copyfile(bundle_path, destination)
    except OSError as error:
        raise errors.PluginError(
            "Unable to copy the certificate to {0}: {1}".format(central_store, error))

    for underlying in underlying_targets(target):
        logger.info("Installing certificate for %s", underlying)
        installer.install_central(underlying)


def dispatch(config: configuration.NamespaceConfig,
             installer: interfaces.InstallationPlugin,
             target: Target, bundle_path: str, renewal: bool = False) -> None:
    """Install the bundle of target through installer.

    Uses the centralized store when ``central_ssl_store`` is set, the
    certificate store otherwise. After a renewal, the plugin `renew`
    hook runs for every underlying target.

    """
    if config.central_ssl:
        install_central(config, installer, target, bundle_path)
    else:
        install_with_store(config, installer, target, bundle_path)

    if renewal:
        for underlying in underlying_targets(target):
            installer.renew(underlying)
