"""Authorization and challenge state exchanged with plugins.

Please use names such as ``authz`` for `AuthorizationState` instances and
``proof`` for `ChallengeProof` instances, to keep them apart from the
:class:`acme.messages.ChallengeBody` (``challb``) they wrap::

  proof = ChallengeProof(identifier='example.com', challenge_type='http-01',
                         token='abc123',
                         location='.well-known/acme-challenge/abc123',
                         content='abc123.thumbprint')

"""
import logging
from typing import Any
from typing import NamedTuple
from typing import Optional

import josepy as jose

from acme import challenges
from acme import messages

logger = logging.getLogger(__name__)

HTTP01 = challenges.HTTP01.typ
DNS01 = challenges.DNS01.typ

STATUS_PENDING = messages.STATUS_PENDING.name
STATUS_VALID = messages.STATUS_VALID.name
STATUS_INVALID = messages.STATUS_INVALID.name

# Outcomes reported by the challenge orchestrator
VALID = STATUS_VALID
INVALID = STATUS_INVALID
TIMED_OUT = "timed-out"


class ChallengeProof(jose.ImmutableMap):
    """Data a validation plugin publishes and later retracts.

    :ivar str identifier: domain being proven
    :ivar str challenge_type: ``http-01`` or ``dns-01``
    :ivar str token: challenge token issued by the authority
    :ivar str location: for ``http-01`` the path relative to the web
        root, for ``dns-01`` the fully qualified TXT record name
    :ivar str content: file content or TXT record value

    """
    __slots__ = ('identifier', 'challenge_type', 'token', 'location', 'content')

    @classmethod
    def from_challenge(cls, identifier: str, challb: messages.ChallengeBody,
                       account_key: jose.JWK) -> 'ChallengeProof':
        """Compute the proof answering challb with account_key.

        :raises ValueError: for challenge types without proof support

        """
        chall = challb.chall
        if isinstance(chall, challenges.HTTP01):
            return cls(identifier=identifier, challenge_type=HTTP01,
                       token=chall.encode("token"),
                       location=chall.path.lstrip("/"),
                       content=chall.validation(account_key))
        if isinstance(chall, challenges.DNS01):
            # Wildcards are proven on their base domain
            base = identifier[2:] if identifier.startswith("*.") else identifier
            return cls(identifier=identifier, challenge_type=DNS01,
                       token=chall.encode("token"),
                       location=chall.validation_domain_name(base),
                       content=chall.validation(account_key))
        raise ValueError("Unsupported challenge type {0}".format(chall.typ))


class AuthorizationState(jose.ImmutableMap):
    """Authority side state of one identifier authorization.

    Instances are immutable, the orchestrator replaces its copy with
    the value returned by each refresh.

    :ivar str identifier: domain being authorized
    :ivar str status: ``pending``, ``valid`` or ``invalid``
    :ivar ~.ChallengeBody challb: challenge chosen for this identifier
    :ivar ~.AuthorizationResource authzr: authority resource, used to refresh
    :ivar ChallengeProof proof: proof answering `challb`
    :ivar ~.Error error: problem reported by the authority, if any

    """
    __slots__ = ('identifier', 'status', 'challb', 'authzr', 'proof', 'error')

    def __init__(self, **kwargs: Any) -> None:
        kwargs.setdefault('error', None)
        super().__init__(**kwargs)

    @property
    def challenge_type(self) -> str:  # pylint: disable=missing-function-docstring
        return self.proof.challenge_type

    @property
    def token(self) -> str:  # pylint: disable=missing-function-docstring
        return self.proof.token

    @property
    def pending(self) -> bool:
        """Has the authority not decided yet?"""
        return self.status == STATUS_PENDING


class AuthorizationResult(NamedTuple):
    """Final outcome of authorizing one identifier.

    `outcome` is one of `VALID`, `INVALID` or `TIMED_OUT`.

    """
    identifier: str
    outcome: str
    state: Optional[AuthorizationState] = None

    @property
    def succeeded(self) -> bool:  # pylint: disable=missing-function-docstring
        return self.outcome == VALID
