"""Tests for simple_acme._internal.installation."""
import os
from unittest import mock

import pytest

from simple_acme import crypto_util
from simple_acme import errors
from simple_acme._internal import cert_store
from simple_acme._internal import installation
from simple_acme._internal.tests import util as test_util
from simple_acme._internal.tests.cert_store_test import write_bundle
from simple_acme.target import merge_targets
from simple_acme.target import Target


class CentralBundlePathTest(test_util.TempDirTestCase):
    """Tests for simple_acme._internal.installation.central_bundle_path."""

    def test_wildcard(self):
        assert installation.central_bundle_path(self.tempdir, "*.example.com") == \
            os.path.join(self.tempdir, "_.example.com.pfx")


class InstallWithStoreTest(test_util.ConfigTestCase):
    """Tests for simple_acme._internal.installation.install_with_store."""

    def setUp(self):
        super().setUp()
        self.installer = test_util.FakeInstaller()
        self.target = Target(host="example.com")
        self.old_bundle = write_bundle(self.tempdir, test_util.OTHER_CERT_PEM, name="old.pfx")
        self.new_bundle = write_bundle(self.tempdir, name="new.pfx")

    def _stored(self):
        with cert_store.open_store(self.config) as store:
            return {cert.thumbprint for cert in store.find_by_friendly_name("example.com")}

    def test_install(self):
        certificate = installation.install_with_store(
            self.config, self.installer, self.target, self.new_bundle)
        assert self.installer.calls == [("install", "example.com", self.new_bundle, certificate)]
        assert certificate.friendly_name == "example.com"

    def test_replaces_previous(self):
        installation.install_with_store(self.config, self.installer, self.target, self.old_bundle)
        installation.install_with_store(self.config, self.installer, self.target, self.new_bundle)
        assert self._stored() == {crypto_util.thumbprint(test_util.CERT_PEM)}

    def test_keep_existing(self):
        self.config.keep_existing = True
        installation.install_with_store(self.config, self.installer, self.target, self.old_bundle)
        installation.install_with_store(self.config, self.installer, self.target, self.new_bundle)
        assert self._stored() == {crypto_util.thumbprint(test_util.CERT_PEM),
                                  crypto_util.thumbprint(test_util.OTHER_CERT_PEM)}

    def test_merged_target(self):
        merged = merge_targets([Target(host="example.com", site_id="1"),
                                Target(host="www.example.com", site_id="2")])
        installation.install_with_store(self.config, self.installer, merged, self.new_bundle)
        assert [call[1] for call in self.installer.calls] == ["example.com", "www.example.com"]


class InstallCentralTest(test_util.ConfigTestCase):
    """Tests for simple_acme._internal.installation.install_central."""

    def setUp(self):
        super().setUp()
        self.central = os.path.join(self.tempdir, "central")
        self.config.central_ssl_store = self.central
        self.installer = test_util.FakeInstaller()
        self.bundle = write_bundle(self.tempdir)

    def test_one_copy_per_host(self):
        target = Target(host="example.com",
                        alternative_names=("example.com", "*.example.com"))
        installation.install_central(self.config, self.installer, target, self.bundle)
        assert sorted(os.listdir(self.central)) == ["_.example.com.pfx", "example.com.pfx"]
        assert self.installer.calls == [("install_central", "example.com")]

    def test_copy_failure(self):
        with mock.patch("simple_acme._internal.installation.shutil.copyfile") as mock_copy:
            mock_copy.side_effect = OSError("disk full")
            with pytest.raises(errors.PluginError, match="disk full"):
                installation.install_central(self.config, self.installer,
                                             Target(host="example.com"), self.bundle)
        assert not self.installer.calls


class DispatchTest(test_util.ConfigTestCase):
    """Tests for simple_acme._internal.installation.dispatch."""

    def setUp(self):
        super().setUp()
        self.installer = test_util.FakeInstaller()
        self.target = Target(host="example.com")

    @mock.patch("simple_acme._internal.installation.install_with_store")
    def test_store_mode(self, mock_install):
        installation.dispatch(self.config, self.installer, self.target, "bundle.pfx")
        mock_install.assert_called_once_with(self.config, self.installer,
                                             self.target, "bundle.pfx")
        assert not self.installer.calls

    @mock.patch("simple_acme._internal.installation.install_central")
    def test_central_mode_renewal(self, mock_install):
        self.config.central_ssl_store = self.tempdir
        installation.dispatch(self.config, self.installer, self.target, "bundle.pfx",
                              renewal=True)
        mock_install.assert_called_once_with(self.config, self.installer,
                                             self.target, "bundle.pfx")
        assert self.installer.calls == [("renew", "example.com")]
