"""Identifier authorization state machine."""
import logging
from typing import Callable
from typing import List
from typing import Optional
from typing import Sequence

from simple_acme import achallenges
from simple_acme import configuration
from simple_acme import errors
from simple_acme import interfaces
from simple_acme import util
from simple_acme._internal import error_handler
from simple_acme.target import Target

logger = logging.getLogger(__name__)

DiagnosticHook = Callable[[Target, Sequence[achallenges.AuthorizationResult]], None]


class AuthHandler:
    """Authorize the identifiers of a target, one at a time.

    Each identifier goes through request, publish, submit, poll and
    retract. The proof is published by the validation plugin and is
    retracted exactly once, whatever the outcome, including when
    submission or polling raise, the cancellation token is set, or a
    termination signal arrives.

    :ivar authority: certificate authority client
    :type authority: simple_acme.interfaces.AuthorityClient

    :ivar validator: plugin publishing the proofs
    :type validator: simple_acme.interfaces.ValidationPlugin

    :ivar diagnostic_hook: called with the target and the failed results
        when an identifier ends up invalid or timed out

    :ivar cancellation: token aborting the waits
    :type cancellation: simple_acme.util.CancellationToken

    """
    def __init__(self, authority: interfaces.AuthorityClient,
                 validator: interfaces.ValidationPlugin,
                 config: configuration.NamespaceConfig,
                 diagnostic_hook: Optional[DiagnosticHook] = None,
                 cancellation: Optional[util.CancellationToken] = None) -> None:
        self.authority = authority
        self.validator = validator
        self.config = config
        self.diagnostic_hook = diagnostic_hook
        self.cancellation = cancellation or util.CancellationToken()

    def handle_authorizations(self, target: Target) -> List[achallenges.AuthorizationResult]:
        """Authorize every resolved host of target.

        Stops at the first identifier that does not end up valid.

        :param .Target target: target to authorize

        :returns: one result per identifier processed, in host order
        :rtype: `list` of `.AuthorizationResult`

        :raises .errors.ConfigurationError: if the host set of target is invalid
        :raises .errors.PluginError: if a proof could not be published
        :raises .errors.Cancelled: if the cancellation token was set

        """
        results = []
        for identifier in target.get_hosts():
            result = self.authorize(target, identifier)
            results.append(result)
            if not result.succeeded:
                break
        return results

    def authorize(self, target: Target, identifier: str) -> achallenges.AuthorizationResult:
        """Run the authorization state machine for identifier.

        :returns: the terminal outcome, `achallenges.TIMED_OUT` when the
            authority did not decide within ``max_poll_attempts`` polls
        :rtype: `.AuthorizationResult`

        """
        self.cancellation.raise_if_cancelled()
        state = self.authority.authorize(identifier, self.validator.challenge_type)
        if not state.pending:
            logger.info("Authorization of %s is already %s", identifier, state.status)
            return self._report(target, _result(state))

        result: Optional[achallenges.AuthorizationResult] = None
        # Starting now, the proof is retracted at the end no matter what.
        with error_handler.ExitHandler(self._retract, target, state.proof,
                                       cancellation=self.cancellation):
            logger.info("Publishing %s proof for %s", state.challenge_type, identifier)
            self.validator.publish_proof(target, state.proof)

            delay = self.validator.propagation_delay()
            if delay > 0:
                logger.info("Waiting %d seconds for the proof to propagate", delay)
                self.cancellation.sleep(delay)

            self.authority.submit_challenge_answer(state)
            logger.info("Waiting for verification of %s...", identifier)
            result = self._poll(state)

        if result is None:
            raise errors.Error(
                "An unexpected error occurred while authorizing {0}.".format(identifier))
        return self._report(target, result)

    def _poll(self, state: achallenges.AuthorizationState) -> achallenges.AuthorizationResult:
        for attempt in range(1, self.config.max_poll_attempts + 1):
            self.cancellation.sleep(self.config.poll_interval)
            state = self.authority.refresh_authorization(state)
            logger.debug("Poll %d for %s: %s", attempt, state.identifier, state.status)
            if not state.pending:
                return _result(state)

        logger.warning("The authority did not validate %s after %d attempts",
                       state.identifier, self.config.max_poll_attempts)
        return achallenges.AuthorizationResult(
            identifier=state.identifier, outcome=achallenges.TIMED_OUT, state=state)

    def _retract(self, target: Target, proof: achallenges.ChallengeProof) -> None:
        logger.info("Cleaning up %s proof for %s", proof.challenge_type, proof.identifier)
        try:
            self.validator.retract_proof(target, proof)
        except errors.PluginError as error:
            logger.warning("Unable to clean up the proof for %s: %s", proof.identifier, error)

    def _report(self, target: Target,
                result: achallenges.AuthorizationResult) -> achallenges.AuthorizationResult:
        if result.succeeded:
            logger.info("Authorization of %s is valid", result.identifier)
            return result

        problem = result.state.error if result.state is not None else None
        if result.outcome == achallenges.TIMED_OUT:
            logger.error("Authorization of %s timed out", result.identifier)
        elif problem is not None:
            logger.error("Authorization of %s failed: %s", result.identifier, problem)
        else:
            logger.error("Authorization of %s failed", result.identifier)

        if self.diagnostic_hook is not None:
            try:
                self.diagnostic_hook(target, [result])
            except Exception as error:  # pylint: disable=broad-except
                logger.warning("Unable to run diagnostics for %s: %s", target.host, error)
        return result


def _result(state: achallenges.AuthorizationState) -> achallenges.AuthorizationResult:
    outcome = achallenges.VALID if state.status == achallenges.STATUS_VALID else achallenges.INVALID
    return achallenges.AuthorizationResult(
        identifier=state.identifier, outcome=outcome, state=state)


def describe_failures(results: Sequence[achallenges.AuthorizationResult]) -> str:
    """One line summary of the failed results."""
    parts = []
    for result in results:
        if result.succeeded:
            continue
        detail = result.outcome
        if result.state is not None and result.state.error is not None:
            detail += ": {0}".format(result.state.error.detail or result.state.error.typ)
        parts.append("{0} ({1})".format(result.identifier, detail))
    return ", ".join(parts)
