"""Tests for simple_acme.util."""
import os
import stat
import threading
import unittest
from unittest import mock

import pytest

from simple_acme import errors
from simple_acme._internal.tests import util as test_util


class RunScriptTest(unittest.TestCase):
    """Tests for simple_acme.util.run_script."""
    @classmethod
    def _call(cls, params):
        from simple_acme.util import run_script
        return run_script(params)

    @mock.patch("simple_acme.util.subprocess.run")
    def test_default(self, mock_run):
        mock_run().returncode = 0
        mock_run().stdout = "stdout"
        mock_run().stderr = "stderr"

        out, err = self._call(["test"])
        assert out == "stdout"
        assert err == "stderr"

    @mock.patch("simple_acme.util.subprocess.run")
    def test_bad_process(self, mock_run):
        mock_run.side_effect = OSError

        with pytest.raises(errors.SubprocessError):
            self._call(["test"])

    @mock.patch("simple_acme.util.subprocess.run")
    def test_failure(self, mock_run):
        mock_run().returncode = 1

        with pytest.raises(errors.SubprocessError):
            self._call(["test"])


class SplitCommandLineTest(unittest.TestCase):
    """Tests for simple_acme.util.split_command_line."""

    def test_quoted(self):
        from simple_acme.util import split_command_line
        assert split_command_line("/opt/install.sh", "{0} 'C:\\my store'") == \
            ["/opt/install.sh", "{0}", "C:\\my store"]

    def test_empty(self):
        from simple_acme.util import split_command_line
        assert split_command_line("/opt/install.sh", "") == ["/opt/install.sh"]


class CancellationTokenTest(unittest.TestCase):
    """Tests for simple_acme.util.CancellationToken."""

    def setUp(self):
        from simple_acme.util import CancellationToken
        self.token = CancellationToken()

    def test_sleep_without_cancellation(self):
        self.token.sleep(0)
        assert not self.token.cancelled

    def test_cancelled_before(self):
        self.token.cancel()
        with pytest.raises(errors.Cancelled):
            self.token.sleep(10)

    def test_cancelled_from_another_thread(self):
        timer = threading.Timer(0.05, self.token.cancel)
        timer.start()
        try:
            with pytest.raises(errors.Cancelled):
                self.token.sleep(30)
        finally:
            timer.cancel()


class MakeOrVerifyDirTest(test_util.TempDirTestCase):
    """Tests for simple_acme.util.make_or_verify_dir."""

    def setUp(self):
        super().setUp()
        self.path = os.path.join(self.tempdir, "foo")
        os.mkdir(self.path, 0o600)

    def _call(self, directory, mode, strict=False):
        from simple_acme.util import make_or_verify_dir
        return make_or_verify_dir(directory, mode, strict)

    def test_creates_dir_when_missing(self):
        path = os.path.join(self.tempdir, "bar")
        self._call(path, 0o650)
        assert os.path.isdir(path)

    def test_existing_correct_mode_does_not_fail(self):
        self._call(self.path, 0o600, strict=True)

    def test_existing_wrong_mode_fails(self):
        if os.name == "nt":
            pytest.skip("permissions are not enforced on Windows")
        with pytest.raises(errors.Error):
            self._call(self.path, 0o400, strict=True)

    def test_reraises_os_error(self):
        with mock.patch("simple_acme.util.os.makedirs") as makedirs:
            makedirs.side_effect = OSError()
            with pytest.raises(OSError):
                self._call("bar", 12312312)


class SetUpCoreDirTest(test_util.TempDirTestCase):
    """Tests for simple_acme.util.set_up_core_dir."""

    def test_success(self):
        from simple_acme.util import set_up_core_dir
        path = os.path.join(self.tempdir, "core")
        set_up_core_dir(path, 0o700, False)
        assert os.path.isdir(path)

    @mock.patch("simple_acme.util.make_or_verify_dir")
    def test_failure(self, mock_make_or_verify_dir):
        from simple_acme.util import set_up_core_dir
        mock_make_or_verify_dir.side_effect = PermissionError
        with pytest.raises(errors.Error, match="Either run as root"):
            set_up_core_dir(self.tempdir, 0o700, False)


class AtomicWriteTest(test_util.TempDirTestCase):
    """Tests for simple_acme.util.atomic_write."""

    def test_replaces_content(self):
        from simple_acme.util import atomic_write
        path = os.path.join(self.tempdir, "file")
        atomic_write(path, "first")
        atomic_write(path, b"second", chmod=0o600)
        with open(path, "rb") as f:
            assert f.read() == b"second"
        assert not os.path.exists(path + ".new")
        if os.name != "nt":
            assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_stale_temporary_file(self):
        from simple_acme.util import atomic_write
        path = os.path.join(self.tempdir, "file")
        with open(path + ".new", "w") as f:
            f.write("partial")
        atomic_write(path, "complete")
        with open(path) as f:
            assert f.read() == "complete"


class SafelyRemoveTest(test_util.TempDirTestCase):
    """Tests for simple_acme.util.safely_remove."""

    def test_missing_file(self):
        from simple_acme.util import safely_remove
        safely_remove(os.path.join(self.tempdir, "missing"))

    def test_other_error(self):
        from simple_acme.util import safely_remove
        with mock.patch("simple_acme.util.os.remove") as mock_remove:
            mock_remove.side_effect = PermissionError(13, "denied")
            with pytest.raises(OSError):
                safely_remove("file")


class CleanFileNameTest(unittest.TestCase):
    """Tests for simple_acme.util.clean_file_name."""

    def test_directory_uri(self):
        from simple_acme.util import clean_file_name
        assert clean_file_name("https://acme-v02.api.letsencrypt.org/directory") == \
            "https_acme-v02.api.letsencrypt.org_directory"

    def test_wildcard(self):
        from simple_acme.util import clean_file_name
        assert clean_file_name("*.example.com") == "_.example.com"

    def test_invalid_characters(self):
        from simple_acme.util import clean_file_name
        assert clean_file_name('a<b>c:"d|e?') == "abcde"


class SafeEmailTest(unittest.TestCase):
    """Test safe_email."""
    @classmethod
    def _call(cls, addr):
        from simple_acme.util import safe_email
        return safe_email(addr)

    def test_valid_emails(self):
        addrs = [
            "admin@example.com",
            "abc+def@example.com",
        ]
        for addr in addrs:
            assert self._call(addr) is True, "%s failed." % addr

    def test_invalid_emails(self):
        addrs = [
            "abc@example.com@",
            "..abc@example.com",
            "abc@..com",
        ]
        for addr in addrs:
            assert self._call(addr) is False, "%s failed." % addr


class EnforceDomainSanityTest(unittest.TestCase):
    """Test enforce_domain_sanity."""

    def _call(self, domain):
        from simple_acme.util import enforce_domain_sanity
        return enforce_domain_sanity(domain)

    def test_nonascii_str(self):
        with pytest.raises(errors.ConfigurationError):
            self._call("eichh\u00f6rnchen.example.com")

    def test_nonascii_unicode(self):
        with pytest.raises(errors.ConfigurationError):
            self._call("eichh\u00f6rnchen.example.com".encode("utf-8"))

    def test_trailing_dot_and_case(self):
        assert self._call("Example.COM.") == "example.com"

    def test_url(self):
        with pytest.raises(errors.ConfigurationError, match="appears to be a URL"):
            self._call("https://example.com")

    def test_ip_address(self):
        with pytest.raises(errors.ConfigurationError, match="IP address"):
            self._call("192.168.0.1")

    def test_empty_label(self):
        with pytest.raises(errors.ConfigurationError, match="empty label"):
            self._call("example..com")

    def test_label_too_long(self):
        with pytest.raises(errors.ConfigurationError, match="too long"):
            self._call("a" * 64 + ".com")

    def test_wildcard(self):
        assert self._call("*.example.com") == "*.example.com"


class IsIpaddressTest(unittest.TestCase):
    """Test is_ipaddress."""

    def test_ipaddress(self):
        from simple_acme.util import is_ipaddress
        assert is_ipaddress("192.168.0.1")
        assert is_ipaddress("2001:db8::1")
        assert not is_ipaddress("example.com")
