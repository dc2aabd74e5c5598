"""Tests for simple_acme._internal.authority."""
import unittest
from unittest import mock

import josepy as jose
import pytest

from acme import challenges
from acme import errors as acme_errors
from acme import messages
from simple_acme import achallenges
from simple_acme import errors
from simple_acme._internal import authority
from simple_acme._internal.tests import util as test_util

TOKEN = jose.encode_b64jose(b"x" * 16)
AUTHZ_URL = "https://acme.example.com/authz/1"
CHALL_URL = "https://acme.example.com/chall/1"


def authz_json(status="pending", challenge_types=("http-01", "dns-01"), identifier="example.com"):
    """Authorization document as sent by the authority."""
    return {
        "identifier": {"type": "dns", "value": identifier},
        "status": status,
        "challenges": [{"type": typ, "url": CHALL_URL + "/" + typ, "status": status,
                        "token": TOKEN} for typ in challenge_types],
    }


def response(jobj=None, text=None, headers=None):
    """Fake requests.Response."""
    resp = mock.MagicMock()
    resp.json.return_value = jobj
    resp.text = text
    resp.headers = headers or {}
    return resp


class DetermineUserAgentTest(test_util.ConfigTestCase):
    """Tests for simple_acme._internal.authority.determine_user_agent."""

    def test_default(self):
        import simple_acme
        assert authority.determine_user_agent(self.config) == \
            "simple-acme/" + simple_acme.__version__

    def test_custom(self):
        self.config.user_agent = "agent/1.0"
        assert authority.determine_user_agent(self.config) == "agent/1.0"


class ProblemStatusTest(unittest.TestCase):
    """Tests for simple_acme._internal.authority.problem_status."""

    def test_known(self):
        assert authority.problem_status(messages.Error.with_code("rateLimited")) == 429
        assert authority.problem_status(messages.Error.with_code("unauthorized")) == 403

    def test_unknown(self):
        assert authority.problem_status(messages.Error(detail="boom")) == 400


class AcmeFromConfigKeyTest(test_util.ConfigTestCase):
    """Tests for simple_acme._internal.authority.acme_from_config_key."""

    @mock.patch("simple_acme._internal.authority.acme_client")
    def test_rsa(self, mock_acme_client):
        authority.acme_from_config_key(self.config, test_util.JWK)
        _, kwargs = mock_acme_client.ClientNetwork.call_args
        assert kwargs["alg"] == jose.RS256
        assert kwargs["verify_ssl"] is True
        mock_acme_client.ClientV2.get_directory.assert_called_once_with(
            "https://acme.example.com/directory", mock_acme_client.ClientNetwork())

    @mock.patch("simple_acme._internal.authority.acme_client")
    def test_ec(self, mock_acme_client):
        key = jose.JWKEC(key=test_util.EC_KEY)
        authority.acme_from_config_key(self.config, key)
        _, kwargs = mock_acme_client.ClientNetwork.call_args
        assert kwargs["alg"] == jose.ES256


class AcmeAuthorityTest(unittest.TestCase):
    """Tests for simple_acme._internal.authority.AcmeAuthority."""

    def setUp(self):
        self.acme = mock.MagicMock()
        self.acme.directory = {"newOrder": "https://acme.example.com/new-order",
                               "newNonce": "https://acme.example.com/new-nonce"}
        self.authority = authority.AcmeAuthority(self.acme, test_util.JWK)

    def _authorize(self, authz=None, challenge_type=achallenges.HTTP01):
        order = {"status": "pending", "authorizations": [AUTHZ_URL],
                 "identifiers": [{"type": "dns", "value": "example.com"}]}
        self.acme.net.post.side_effect = [response(order), response(authz or authz_json())]
        return self.authority.authorize("example.com", challenge_type)

    def test_authorize_http01(self):
        state = self._authorize()

        assert state.pending
        assert state.identifier == "example.com"
        assert state.authzr.uri == AUTHZ_URL
        assert state.challb.uri == CHALL_URL + "/http-01"
        assert state.proof.location == ".well-known/acme-challenge/" + TOKEN
        assert state.proof.content == challenges.HTTP01(
            token=b"x" * 16).validation(test_util.JWK)
        new_order = self.acme.net.post.call_args_list[0]
        assert new_order[0][0] == "https://acme.example.com/new-order"

    def test_authorize_dns01(self):
        state = self._authorize(authz_json(identifier="example.com"), achallenges.DNS01)
        assert state.challenge_type == achallenges.DNS01
        assert state.proof.location == "_acme-challenge.example.com"

    def test_already_valid(self):
        state = self._authorize(authz_json(status="valid"))
        assert not state.pending

    def test_no_matching_challenge(self):
        with pytest.raises(errors.AuthorizationError, match="offered: dns-01"):
            self._authorize(authz_json(challenge_types=("dns-01",)))

    def test_order_refused(self):
        self.acme.net.post.side_effect = messages.Error.with_code("rejectedIdentifier")
        with pytest.raises(errors.AuthorizationError, match="Unable to begin"):
            self.authority.authorize("example.com", achallenges.HTTP01)

    def test_submit(self):
        state = self._authorize()
        self.authority.submit_challenge_answer(state)
        self.acme.answer_challenge.assert_called_once_with(
            state.challb, state.challb.chall.response(test_util.JWK))

    def test_submit_error(self):
        state = self._authorize()
        self.acme.answer_challenge.side_effect = messages.Error.with_code("malformed")
        with pytest.raises(errors.AuthorizationError, match="Unable to submit"):
            self.authority.submit_challenge_answer(state)

    def test_refresh(self):
        state = self._authorize()
        body = messages.Authorization.from_json(authz_json(status="valid"))
        self.acme.poll.return_value = (
            messages.AuthorizationResource(body=body, uri=AUTHZ_URL), mock.MagicMock())

        refreshed = self.authority.refresh_authorization(state)
        assert refreshed.status == achallenges.STATUS_VALID
        assert refreshed.proof == state.proof
        self.acme.poll.assert_called_once_with(state.authzr)

    def test_request_certificate(self):
        orderr = self.acme.finalize_order.return_value
        orderr.fullchain_pem = (test_util.CERT_PEM + test_util.ISSUER_PEM).decode()
        orderr.body.certificate = "https://acme.example.com/cert/1"

        result = self.authority.request_certificate(b"csr")
        assert result.accepted
        assert result.certificate == test_util.CERT_PEM
        assert result.chain_link == "https://acme.example.com/cert/1"
        self.acme.new_order.assert_called_once_with(b"csr")

    def test_request_refused(self):
        problem = messages.Error.with_code("badCSR")
        self.acme.new_order.side_effect = problem
        result = self.authority.request_certificate(b"csr")
        assert not result.accepted
        assert result.status_code == 400
        assert result.error is problem

    def test_request_issuance_error(self):
        problem = messages.Error.with_code("unauthorized")
        self.acme.finalize_order.side_effect = acme_errors.IssuanceError(problem)
        result = self.authority.request_certificate(b"csr")
        assert result.status_code == 403
        assert result.error is problem

    def test_request_timeout(self):
        self.acme.finalize_order.side_effect = acme_errors.TimeoutError()
        result = self.authority.request_certificate(b"csr")
        assert result.status_code == 504
        assert not result.accepted

    def test_download_issuer(self):
        self.acme.net.post.return_value = response(
            text=(test_util.CERT_PEM + test_util.ISSUER_PEM).decode())
        assert self.authority.download_issuer_certificate(
            "https://acme.example.com/cert/1") == test_util.ISSUER_PEM

    def test_download_issuer_failure(self):
        self.acme.net.post.return_value = response(text=test_util.CERT_PEM.decode())
        with pytest.raises(errors.AcquisitionError, match="issuer"):
            self.authority.download_issuer_certificate("https://acme.example.com/cert/1")
