"""Tests for simple_acme._internal.plugins.ftp."""
import ftplib
import unittest
from unittest import mock

import pytest

from simple_acme import errors
from simple_acme._internal.plugins import ftp
from simple_acme._internal.tests import util as test_util
from simple_acme.target import Target


class ParseFtpUrlTest(unittest.TestCase):
    """Tests for simple_acme._internal.plugins.ftp.parse_ftp_url."""

    def test_defaults(self):
        assert ftp.parse_ftp_url("ftp://example.com") == \
            ftp.FtpLocation(secure=False, host="example.com", port=21, path="/")

    def test_ftps(self):
        location = ftp.parse_ftp_url("ftps://example.com:990/site/wwwroot")
        assert location == ftp.FtpLocation(True, "example.com", 990, "/site/wwwroot")
        assert str(location) == "ftps://example.com:990/site/wwwroot"

    def test_invalid(self):
        for url in ("/var/www", "http://example.com/", "ftp://", "ftp://example.com:port/"):
            with pytest.raises(errors.ConfigurationError):
                ftp.parse_ftp_url(url)

    def test_is_ftp_url(self):
        assert ftp.is_ftp_url("ftp://example.com/")
        assert not ftp.is_ftp_url("/var/www")
        assert not ftp.is_ftp_url(None)


class AuthenticatorTest(test_util.ConfigTestCase):
    """Tests for simple_acme._internal.plugins.ftp.Authenticator."""

    def setUp(self):
        super().setUp()
        self.config.ftp_user = "user"
        self.config.ftp_password = "secret"
        self.auth = ftp.Authenticator(self.config, "FTP")
        self.target = Target(host="example.com", webroot="ftp://ftp.example.com/site/wwwroot")
        self.proof = test_util.make_proof()

        patcher = mock.patch("simple_acme._internal.plugins.ftp.ftplib.FTP")
        self.mock_ftp_cls = patcher.start()
        self.addCleanup(patcher.stop)
        self.ftp = self.mock_ftp_cls.return_value
        self.ftp.__enter__.return_value = self.ftp
        self.ftp.storbinary.return_value = "226 Transfer complete"

    def test_prepare(self):
        self.auth.prepare()

    def test_prepare_missing_credentials(self):
        self.config.ftp_password = None
        with pytest.raises(errors.ConfigurationError, match="--ftp-password"):
            self.auth.prepare()

    def test_prepare_bad_server(self):
        self.config.ftp_server = "example.com"
        with pytest.raises(errors.ConfigurationError):
            self.auth.prepare()

    def test_location(self):
        assert self.auth.location(self.target, "example.com").path == "/site/wwwroot"

        self.config.ftp_server = "ftp://fallback.example.com/www"
        assert self.auth.location(Target(host="example.com"), "example.com").host == \
            "fallback.example.com"

    def test_location_missing(self):
        with pytest.raises(errors.PluginError, match="--ftp-server"):
            self.auth.location(Target(host="example.com"), "example.com")

    def test_publish(self):
        self.auth.publish_proof(self.target, self.proof)

        self.ftp.connect.assert_called_once_with("ftp.example.com", 21)
        self.ftp.login.assert_called_once_with("user", "secret")
        self.ftp.set_pasv.assert_called_once_with(True)
        assert [c[0][0] for c in self.ftp.mkd.call_args_list] == [
            "/site", "/site/wwwroot", "/site/wwwroot/.well-known",
            "/site/wwwroot/.well-known/acme-challenge"]
        stored = [c[0][0] for c in self.ftp.storbinary.call_args_list]
        assert stored == ["STOR /site/wwwroot/.well-known/acme-challenge/abc123",
                          "STOR /site/wwwroot/.well-known/acme-challenge/web.config"]
        assert self.ftp.storbinary.call_args_list[0][0][1].getvalue() == b"abc123.thumbprint"

    def test_publish_existing_directories(self):
        self.ftp.mkd.side_effect = ftplib.error_perm("550 exists")
        self.auth.publish_proof(self.target, self.proof)
        assert self.ftp.storbinary.call_count == 2

    @mock.patch("simple_acme._internal.plugins.ftp.ftplib.FTP_TLS")
    def test_publish_ftps(self, mock_ftps_cls):
        ftps = mock_ftps_cls.return_value
        ftps.__enter__.return_value = ftps
        target = Target(host="example.com", webroot="ftps://ftp.example.com/")
        self.auth.publish_proof(target, self.proof)
        ftps.prot_p.assert_called_once_with()
        self.mock_ftp_cls.assert_not_called()

    def test_login_failure(self):
        self.ftp.login.side_effect = ftplib.error_perm("530 Login incorrect")
        with pytest.raises(errors.PluginError, match="530"):
            self.auth.publish_proof(self.target, self.proof)
        self.ftp.close.assert_called_once_with()

    def test_retract_keeps_folders(self):
        self.auth.retract_proof(self.target, self.proof)
        self.ftp.delete.assert_called_once_with(
            "/site/wwwroot/.well-known/acme-challenge/abc123")
        self.ftp.rmd.assert_not_called()

    def test_retract_cleanup_folders(self):
        self.config.ftp_cleanup_folders = True
        self.ftp.nlst.return_value = ["/site/wwwroot/.well-known/acme-challenge/web.config"]
        self.auth.retract_proof(self.target, self.proof)
        assert [c[0][0] for c in self.ftp.rmd.call_args_list] == [
            "/site/wwwroot/.well-known/acme-challenge", "/site/wwwroot/.well-known"]

    def test_retract_cleanup_other_files(self):
        self.config.ftp_cleanup_folders = True
        self.ftp.nlst.return_value = ["web.config", "other"]
        self.auth.retract_proof(self.target, self.proof)
        self.ftp.rmd.assert_not_called()

    def test_retract_failure(self):
        self.ftp.delete.side_effect = ftplib.error_perm("550 No such file")
        with pytest.raises(errors.PluginError, match="Unable to delete"):
            self.auth.retract_proof(self.target, self.proof)


class InstallerTest(test_util.ConfigTestCase):
    """Tests for simple_acme._internal.plugins.ftp.Installer."""

    @mock.patch("simple_acme._internal.plugins.ftp.logger")
    def test_renew_warns(self, mock_logger):
        ftp.Installer(self.config, "FTP").renew(Target(host="example.com"))
        assert mock_logger.warning.called
