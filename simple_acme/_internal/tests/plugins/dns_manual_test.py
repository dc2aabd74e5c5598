"""Tests for simple_acme._internal.plugins.dns_manual."""
from unittest import mock

import pytest

from simple_acme import achallenges
from simple_acme import errors
from simple_acme._internal.plugins import dns_manual
from simple_acme._internal.tests import util as test_util
from simple_acme.target import Target


class AuthenticatorTest(test_util.ConfigTestCase):
    """Tests for simple_acme._internal.plugins.dns_manual.Authenticator."""

    def setUp(self):
        super().setUp()
        self.config.dns_propagation_seconds = 15
        self.auth = dns_manual.Authenticator(self.config, "DnsManual")
        self.target = Target(host="*.example.com")
        self.proof = test_util.make_proof("*.example.com", challenge_type=achallenges.DNS01)

    def test_prepare_noninteractive(self):
        self.config.noninteractive_mode = True
        with pytest.raises(errors.ConfigurationError, match="non-interactively"):
            self.auth.prepare()

    def test_propagation_delay(self):
        assert self.auth.propagation_delay() == 15

    @mock.patch("simple_acme._internal.plugins.dns_manual.display_util.notification")
    def test_publish(self, mock_notification):
        self.auth.publish_proof(self.target, self.proof)
        message = mock_notification.call_args[0][0]
        assert "Record: _acme-challenge.example.com" in message
        assert 'Content: "abc123.thumbprint"' in message
        assert "created and verified" in message

    @mock.patch("simple_acme._internal.plugins.dns_manual.display_util.notification")
    def test_retract(self, mock_notification):
        self.auth.retract_proof(self.target, self.proof)
        assert "deleted the record" in mock_notification.call_args[0][0]
