"""Certificate authority client built on the acme library."""
import datetime
import logging
from typing import Any
from typing import Optional

import josepy as jose
from josepy import ES256
from josepy import ES384
from josepy import ES512
from josepy import RS256
import requests

from acme import client as acme_client
from acme import errors as acme_errors
from acme import messages
import simple_acme
from simple_acme import achallenges
from simple_acme import configuration
from simple_acme import crypto_util
from simple_acme import errors
from simple_acme import interfaces
from simple_acme._internal import constants
from simple_acme._internal.display import util as display_util

logger = logging.getLogger(__name__)

# HTTP status the authority sends along with a given problem type
_PROBLEM_STATUS = {
    "badCSR": 400,
    "malformed": 400,
    "orderNotReady": 403,
    "rejectedIdentifier": 400,
    "unauthorized": 403,
    "caa": 403,
    "rateLimited": 429,
    "serverInternal": 500,
}


def determine_user_agent(config: configuration.NamespaceConfig) -> str:
    """Set a user_agent string in the config based on the version."""
    if getattr(config, "user_agent", None):
        return config.user_agent
    return constants.USER_AGENT.format(simple_acme.__version__)


def acme_from_config_key(config: configuration.NamespaceConfig, key: jose.JWK,
                         regr: Optional[messages.RegistrationResource] = None
                         ) -> acme_client.ClientV2:
    """Wrangle ACME client construction"""
    if key.typ == 'EC':
        public_key = key.key
        if public_key.key_size == 256:
            alg = ES256
        elif public_key.key_size == 384:
            alg = ES384
        elif public_key.key_size == 521:
            alg = ES512
        else:
            raise errors.NotSupportedError(
                "No matching signing algorithm can be found for the key"
            )
    else:
        alg = RS256
    net = acme_client.ClientNetwork(key, alg=alg, account=regr,
                                    verify_ssl=(not config.no_verify_ssl),
                                    user_agent=determine_user_agent(config))

    directory = acme_client.ClientV2.get_directory(config.server, net)
    return acme_client.ClientV2(directory, net)


def _describe(error: Exception) -> str:
    if isinstance(error, messages.Error):
        return display_util.describe_acme_error(error)
    return str(error)


def problem_status(problem: messages.Error) -> int:
    """HTTP status matching an authority problem document."""
    return _PROBLEM_STATUS.get(problem.code or "", 400)


class AcmeAuthority(interfaces.AuthorityClient):
    """`interfaces.AuthorityClient` over an `acme.client.ClientV2`.

    Identifiers are authorized one by one through single identifier
    orders. The authority keeps valid authorizations around, so the
    order placed by `request_certificate` finds them already valid.

    :ivar acme.client.ClientV2 acme: protocol client, bound to the account
    :ivar josepy.JWK account_key: key answering the challenges
    :ivar int finalize_timeout: seconds to wait for the order to be signed

    """

    def __init__(self, acme: acme_client.ClientV2, account_key: jose.JWK,
                 finalize_timeout: int = 90) -> None:
        self.acme = acme
        self.account_key = account_key
        self.finalize_timeout = finalize_timeout

    def _post(self, url: str, obj: Any) -> requests.Response:
        return self.acme.net.post(url, obj, new_nonce_url=self.acme.directory['newNonce'])

    def authorize(self, identifier: str, challenge_type: str) -> achallenges.AuthorizationState:
        ident = messages.Identifier(typ=messages.IDENTIFIER_FQDN, value=identifier)
        try:
            response = self._post(self.acme.directory['newOrder'],
                                  messages.NewOrder(identifiers=[ident]))
            order = messages.Order.from_json(response.json())
            if not order.authorizations:
                raise errors.AuthorizationError(
                    "The authority returned no authorization for {0}".format(identifier))
            url = order.authorizations[0]
            authz_response = self._post(url, None)
        except (messages.Error, acme_errors.ClientError) as error:
            raise errors.AuthorizationError(
                "Unable to begin authorization of {0}: {1}".format(
                    identifier, _describe(error)))
        authzr = messages.AuthorizationResource(
            body=messages.Authorization.from_json(authz_response.json()),
            uri=authz_response.headers.get('Location', url))
        logger.debug("Authorization of %s is %s", identifier, authzr.body.status.name)

        for challb in authzr.body.challenges:
            if challb.chall.typ == challenge_type:
                break
        else:
            offered = ", ".join(challb.chall.typ for challb in authzr.body.challenges)
            raise errors.AuthorizationError(
                "The authority offers no {0} challenge for {1} (offered: {2})".format(
                    challenge_type, identifier, offered or "none"))

        try:
            proof = achallenges.ChallengeProof.from_challenge(
                identifier, challb, self.account_key)
        except ValueError as error:
            raise errors.AuthorizationError(str(error))
        return achallenges.AuthorizationState(
            identifier=identifier, status=authzr.body.status.name, challb=challb,
            authzr=authzr, proof=proof, error=challb.error)

    def submit_challenge_answer(self, state: achallenges.AuthorizationState) -> None:
        response = state.challb.chall.response(self.account_key)
        try:
            self.acme.answer_challenge(state.challb, response)
        except (messages.Error, acme_errors.ClientError) as error:
            raise errors.AuthorizationError(
                "Unable to submit the {0} challenge of {1}: {2}".format(
                    state.challenge_type, state.identifier, error))

    def refresh_authorization(self, state: achallenges.AuthorizationState
                              ) -> achallenges.AuthorizationState:
        authzr, _ = self.acme.poll(state.authzr)
        challb = next((candidate for candidate in authzr.body.challenges
                       if candidate.uri == state.challb.uri), state.challb)
        return state.update(status=authzr.body.status.name, authzr=authzr,
                            challb=challb, error=challb.error)

    def request_certificate(self, csr_pem: bytes) -> interfaces.CertificateResponse:
        deadline = datetime.datetime.now() + datetime.timedelta(seconds=self.finalize_timeout)
        try:
            orderr = self.acme.new_order(csr_pem)
            orderr = self.acme.finalize_order(orderr, deadline)
        except messages.Error as error:
            return interfaces.CertificateResponse(
                status_code=problem_status(error), certificate=None,
                chain_link=None, error=error)
        except acme_errors.IssuanceError as error:
            return interfaces.CertificateResponse(
                status_code=problem_status(error.error), certificate=None,
                chain_link=None, error=error.error)
        except acme_errors.TimeoutError:
            return interfaces.CertificateResponse(
                status_code=504, certificate=None, chain_link=None,
                error=messages.Error(detail="Timed out waiting for the order to be signed"))
        except acme_errors.Error as error:
            return interfaces.CertificateResponse(
                status_code=500, certificate=None, chain_link=None,
                error=messages.Error(detail=str(error) or type(error).__name__))

        cert_pem, _ = crypto_util.cert_and_chain_from_fullchain(
            orderr.fullchain_pem.encode())
        return interfaces.CertificateResponse(
            status_code=200, certificate=cert_pem, chain_link=orderr.body.certificate)

    def download_issuer_certificate(self, chain_link: str) -> bytes:
        try:
            response = self._post(chain_link, None)
            _, chain_pem = crypto_util.cert_and_chain_from_fullchain(
                response.text.encode())
        except (messages.Error, acme_errors.ClientError, errors.Error) as error:
            raise errors.AcquisitionError(
                "Unable to resolve the issuer certificate from {0}: {1}".format(
                    chain_link, error))
        return chain_pem
