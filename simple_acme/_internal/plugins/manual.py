"""Manual plugin: http-01 proofs in a local web root, script installation."""
import errno
import logging
import os

from simple_acme import achallenges
from simple_acme import errors
from simple_acme import interfaces
from simple_acme._internal.plugins import common
from simple_acme.target import Target

logger = logging.getLogger(__name__)


class Authenticator(interfaces.ValidationPlugin):
    """Manual Authenticator.

    Saves the proof under ``<webroot>/.well-known/acme-challenge/`` and
    a ``web.config`` next to it, expecting some HTTP server to serve
    the web root of the target.
    Both are removed afterwards, together with the folders once they
    are empty.

    """

    description = "Place files in the web root of the target"
    challenge_type = achallenges.HTTP01

    MORE_INFO = """\
Authenticator plugin that performs http-01 challenge by saving
necessary validation resources to appropriate paths on the file
system. It expects that there is some other HTTP server configured
to serve all files under the web root of each target."""

    def more_info(self) -> str:  # pylint: disable=missing-function-docstring
        return self.MORE_INFO

    def validation_path(self, target: Target, proof: achallenges.ChallengeProof) -> str:
        """Local path of the proof file.

        :raises .errors.PluginError: if no web root serves the identifier

        """
        webroot = target.webroot_for(proof.identifier)
        if not webroot:
            raise errors.PluginError(
                "No web root is configured for {0}, use --webroot.".format(proof.identifier))
        return os.path.join(os.path.expanduser(webroot), *proof.location.split("/"))

    def publish_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        path = self.validation_path(target, proof)
        directory = os.path.dirname(path)

        # World-readable, owner-writable, whatever the umask of the caller
        old_umask = os.umask(0o022)
        try:
            os.makedirs(directory, 0o755, exist_ok=True)
            logger.info("Writing challenge answer to %s", path)
            with open(path, "w") as validation_file:
                validation_file.write(proof.content)
            web_config = os.path.join(directory, common.WEB_CONFIG_NAME)
            logger.info("Writing web.config to add extensionless mime type to %s", web_config)
            with open(web_config, "w") as config_file:
                config_file.write(common.WEB_CONFIG)
        except OSError as error:
            raise errors.PluginError(
                "Couldn't save the http-01 proof for {0} in {1}: {2}".format(
                    proof.identifier, directory, error))
        finally:
            os.umask(old_umask)

    def retract_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        path = self.validation_path(target, proof)
        logger.debug("Removing %s", path)
        try:
            os.remove(path)
        except OSError as error:
            if error.errno != errno.ENOENT:
                raise errors.PluginError("Unable to remove {0}: {1}".format(path, error))
        self._cleanup_folders(os.path.dirname(path))

    def _cleanup_folders(self, directory: str) -> None:
        try:
            files = os.listdir(directory)
        except OSError:
            return
        if files != [common.WEB_CONFIG_NAME]:
            logger.debug("Other files exist in %s, not deleting it", directory)
            return
        for path in (os.path.join(directory, common.WEB_CONFIG_NAME), directory,
                     os.path.dirname(directory)):
            try:
                if os.path.isdir(path):
                    os.rmdir(path)
                else:
                    os.remove(path)
                logger.debug("Removed %s", path)
            except OSError as exc:
                logger.info("Unable to clean up %s", path)
                logger.debug("Error was: %s", exc)
                return


class Installer(common.Installer):
    """Manual Installer, runs the post-install script."""
