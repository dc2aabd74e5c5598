"""Tests for simple_acme._internal.plugins.common."""
import os
import unittest
from unittest import mock

import pytest

from simple_acme import achallenges
from simple_acme import errors
from simple_acme import interfaces
from simple_acme._internal.plugins import common
from simple_acme._internal.tests import util as test_util
from simple_acme.target import Target


class BaseDomainNameGuessesTest(unittest.TestCase):
    """Tests for simple_acme._internal.plugins.common.base_domain_name_guesses."""

    def test_simple_case(self):
        assert 'example.com' in common.base_domain_name_guesses("example.com")

    def test_sub_domain(self):
        assert 'example.com' in common.base_domain_name_guesses("foo.bar.baz.example.com")

    def test_second_level_domain(self):
        assert 'example.co.uk' in common.base_domain_name_guesses("foo.bar.baz.example.co.uk")


class AuthHintTest(unittest.TestCase):
    """Tests for simple_acme._internal.plugins.common.auth_hint."""

    def test_http01(self):
        failure = achallenges.AuthorizationResult(
            "example.com", achallenges.INVALID, test_util.make_state())
        hint = common.auth_hint("Manual", [failure])
        assert "http://example.com/.well-known/acme-challenge/abc123" in hint

    def test_dns01(self):
        failure = achallenges.AuthorizationResult(
            "*.example.com", achallenges.INVALID,
            test_util.make_state("*.example.com", challenge_type=achallenges.DNS01))
        assert "_acme-challenge.example.com" in common.auth_hint("Azure", [failure])

    def test_without_state(self):
        failure = achallenges.AuthorizationResult("example.com", achallenges.TIMED_OUT)
        assert "the FTP plugin is configured" in common.auth_hint("FTP", [failure])


class InstallerTest(test_util.ConfigTestCase):
    """Tests for simple_acme._internal.plugins.common.Installer."""

    def setUp(self):
        super().setUp()
        self.installer = common.Installer(self.config, "Manual")
        self.target = Target(host="example.com")
        self.store = mock.MagicMock(name="store")
        self.store.name = "WebHosting"
        self.certificate = interfaces.StoredCertificate(
            store_name="WebHosting", thumbprint="ABCDEF", friendly_name="example.com",
            path="/stores/WebHosting/ABCDEF.pfx")

    @mock.patch("simple_acme._internal.plugins.common.util.run_script")
    def test_store_parameters(self, mock_run):
        mock_run.return_value = ("done", "")
        self.config.script = "/opt/install.sh"
        self.config.script_parameters = "{0} {2} '{3}' {5}"
        self.installer.install(self.target, "/tmp/example.pfx", self.store, self.certificate)
        mock_run.assert_called_once_with(
            ["/opt/install.sh", "example.com", "/tmp/example.pfx", "WebHosting", "ABCDEF"])

    @mock.patch("simple_acme._internal.plugins.common.util.run_script")
    def test_central_parameters(self, mock_run):
        mock_run.return_value = ("", "")
        self.config.script = "/opt/install.sh"
        self.config.script_parameters = "{0} {2}"
        self.config.central_ssl_store = "/srv/central"
        self.installer.install_central(self.target)
        mock_run.assert_called_once_with(["/opt/install.sh", "example.com", "/srv/central"])

    @mock.patch("simple_acme._internal.plugins.common.util.run_script")
    def test_script_without_parameters(self, mock_run):
        mock_run.return_value = ("", "warning")
        self.config.script = "/opt/install.sh"
        self.installer.install_central(self.target)
        mock_run.assert_called_once_with(["/opt/install.sh"])

    @mock.patch("simple_acme._internal.plugins.common.logger")
    @mock.patch("simple_acme._internal.plugins.common.util.run_script")
    def test_no_script(self, mock_run, mock_logger):
        self.installer.install(self.target, "/tmp/example.pfx", self.store, self.certificate)
        mock_run.assert_not_called()
        mock_logger.warning.assert_called_once_with("Unable to configure server software.")

    def test_bad_template(self):
        self.config.script = "/opt/install.sh"
        self.config.script_parameters = "{9}"
        with pytest.raises(errors.PluginError, match="Invalid script parameters"):
            self.installer.install_central(self.target)

    @mock.patch("simple_acme._internal.plugins.common.util.run_script")
    def test_script_failure(self, mock_run):
        mock_run.side_effect = errors.SubprocessError("exit status 1")
        self.config.script = "/opt/install.sh"
        with pytest.raises(errors.PluginError, match="exit status 1"):
            self.installer.install_central(self.target)

    def test_uninstall_central(self):
        self.config.central_ssl_store = self.tempdir
        for name in ("example.com.pfx", "other.example.com.pfx"):
            with open(os.path.join(self.tempdir, name), "w") as f:
                f.write("bundle")
        self.installer.uninstall(self.target)
        assert os.listdir(self.tempdir) == ["other.example.com.pfx"]

    @mock.patch("simple_acme._internal.plugins.common.cert_store.open_store")
    def test_uninstall_store(self, mock_open_store):
        store = mock_open_store.return_value.__enter__.return_value
        store.find_by_friendly_name.return_value = [self.certificate]
        self.installer.uninstall(self.target)
        store.find_by_friendly_name.assert_called_once_with("example.com")
        store.remove.assert_called_once_with(self.certificate)

    @mock.patch("simple_acme._internal.plugins.common.logger")
    def test_on_authorization_failed(self, mock_logger):
        self.installer.on_authorization_failed(self.target, [
            achallenges.AuthorizationResult("example.com", achallenges.INVALID,
                                            test_util.make_state())])
        assert "couldn't verify" in mock_logger.warning.call_args[0][0]
