"""FTP plugin: http-01 proofs uploaded to a remote web root."""
import ftplib
import io
import logging
import posixpath
from typing import NamedTuple
from typing import Optional
from urllib.parse import urlparse

from simple_acme import achallenges
from simple_acme import errors
from simple_acme import interfaces
from simple_acme._internal.plugins import common
from simple_acme.target import Target

logger = logging.getLogger(__name__)

FTP_SCHEMES = ("ftp", "ftps")


class FtpLocation(NamedTuple):
    """Remote web root parsed from an ``ftp://`` or ``ftps://`` URL."""
    secure: bool
    host: str
    port: int
    path: str

    def __str__(self) -> str:
        return "{0}://{1}:{2}{3}".format(
            "ftps" if self.secure else "ftp", self.host, self.port, self.path)


def is_ftp_url(value: Optional[str]) -> bool:
    """Does value look like an FTP web root?"""
    return bool(value) and urlparse(value or "").scheme in FTP_SCHEMES


def parse_ftp_url(url: str) -> FtpLocation:
    """Parse an FTP web root URL.

    :raises .errors.ConfigurationError: if url is not an ftp(s) URL with a host

    """
    parsed = urlparse(url)
    if parsed.scheme not in FTP_SCHEMES or not parsed.hostname:
        raise errors.ConfigurationError(
            "{0} is not a valid FTP location, e.g. ftp://domain.com:21/site/wwwroot/".format(url))
    try:
        port = parsed.port or 21
    except ValueError:
        raise errors.ConfigurationError("Invalid port in FTP location {0}".format(url))
    return FtpLocation(secure=parsed.scheme == "ftps", host=parsed.hostname,
                       port=port, path=parsed.path or "/")


class Authenticator(interfaces.ValidationPlugin):
    """FTP Authenticator.

    The web root of the target (or ``--ftp-server``) names the remote
    directory, ``ftps`` selects explicit TLS. The ``.well-known``
    folders are created on demand and, with ``--ftp-cleanup-folders``,
    removed again once empty.

    """

    description = "Upload files to a web root over FTP or FTPS"
    challenge_type = achallenges.HTTP01

    def prepare(self) -> None:
        if not self.config.ftp_user or not self.config.ftp_password:
            raise errors.ConfigurationError(
                "The FTP credentials are not set. Please specify --ftp-user "
                "and --ftp-password and try again.")
        if self.config.ftp_server:
            parse_ftp_url(self.config.ftp_server)

    def location(self, target: Target, identifier: str) -> FtpLocation:
        """Remote web root serving identifier."""
        webroot = target.webroot_for(identifier)
        if is_ftp_url(webroot):
            return parse_ftp_url(webroot or "")
        if self.config.ftp_server:
            return parse_ftp_url(self.config.ftp_server)
        raise errors.PluginError(
            "No FTP location is configured for {0}, use --ftp-server.".format(identifier))

    def _connect(self, location: FtpLocation) -> ftplib.FTP:
        ftp: ftplib.FTP
        if location.secure:
            logger.debug("Using SSL")
            ftp = ftplib.FTP_TLS()
        else:
            ftp = ftplib.FTP()
        logger.debug("Connecting to %s as %s", location, self.config.ftp_user)
        ftp.connect(location.host, location.port)
        try:
            ftp.login(self.config.ftp_user, self.config.ftp_password)
            if location.secure:
                ftp.prot_p()  # type: ignore[attr-defined]
            ftp.set_pasv(True)
        except ftplib.all_errors:
            ftp.close()
            raise
        return ftp

    def publish_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        location = self.location(target, proof.identifier)
        path = posixpath.join(location.path, proof.location)
        directory = posixpath.dirname(path)
        web_config = posixpath.join(directory, common.WEB_CONFIG_NAME)
        try:
            with self._connect(location) as ftp:
                _ensure_directories(ftp, directory)
                logger.info("Writing challenge answer to %s", path)
                _upload(ftp, path, proof.content)
                logger.info("Writing web.config to add extensionless mime type to %s",
                            web_config)
                _upload(ftp, web_config, common.WEB_CONFIG)
        except ftplib.all_errors as error:
            raise errors.PluginError(
                "Unable to upload the proof for {0} to {1}: {2}".format(
                    proof.identifier, location, error))

    def retract_proof(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        location = self.location(target, proof.identifier)
        path = posixpath.join(location.path, proof.location)
        directory = posixpath.dirname(path)
        try:
            with self._connect(location) as ftp:
                logger.info("Deleting answer")
                ftp.delete(path)
                if self.config.ftp_cleanup_folders:
                    self._cleanup_folders(ftp, directory)
                else:
                    logger.warning("Leaving %s in place, use --ftp-cleanup-folders "
                                   "to remove it.", directory)
        except ftplib.all_errors as error:
            raise errors.PluginError(
                "Unable to delete the proof for {0} from {1}: {2}".format(
                    proof.identifier, location, error))

    def _cleanup_folders(self, ftp: ftplib.FTP, directory: str) -> None:
        try:
            files = [posixpath.basename(name) for name in ftp.nlst(directory)]
        except ftplib.error_perm:
            files = []
        if files != [common.WEB_CONFIG_NAME]:
            logger.warning("Additional files exist in %s not deleting.", directory)
            return
        logger.info("Deleting web.config")
        ftp.delete(posixpath.join(directory, common.WEB_CONFIG_NAME))
        logger.info("Deleting %s", directory)
        ftp.rmd(directory)
        parent = posixpath.dirname(directory)
        try:
            ftp.rmd(parent)
            logger.info("Deleting %s", parent)
        except ftplib.error_perm as error:
            logger.warning("Additional files exist in %s not deleting: %s", parent, error)


def _ensure_directories(ftp: ftplib.FTP, directory: str) -> None:
    current = ""
    for segment in directory.split("/"):
        if not segment:
            continue
        current += "/" + segment
        try:
            ftp.mkd(current)
        except ftplib.error_perm:
            # Usually means the directory exists
            logger.debug("Not creating FTP directory %s", current)


def _upload(ftp: ftplib.FTP, path: str, content: str) -> None:
    response = ftp.storbinary("STOR " + path, io.BytesIO(content.encode("utf-8")))
    logger.info("Upload Status %s", response)


class Installer(common.Installer):
    """FTP Installer, runs the post-install script."""

    def renew(self, target: Target) -> None:
        logger.warning("Renewal is not supported for the FTP plugin. Upload the "
                       "renewed certificate of %s manually.", target.host)
