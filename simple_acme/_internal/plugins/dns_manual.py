"""DnsManual plugin: the operator creates the TXT records."""
import logging

from simple_acme import errors
from simple_acme._internal.plugins import common
from simple_acme.display import util as display_util

logger = logging.getLogger(__name__)


class Authenticator(common.DNSAuthenticator):
    """Shows the dns-01 records to create and waits for the operator."""

    description = "Create the DNS TXT records by hand"

    def prepare(self) -> None:
        if self.config.noninteractive_mode:
            raise errors.ConfigurationError(
                "The DnsManual plugin waits for the records to be created and "
                "cannot run non-interactively.")

    def _perform(self, domain: str, validation_name: str, validation: str) -> None:
        display_util.notification(
            _record(domain, validation_name, validation) +
            "Note 1: Some DNS control panels add quotes automatically. Only one set "
            "is required.\n"
            "Note 2: Make sure your name servers are synchronised, this may take "
            "several minutes!\n\n"
            "Please press enter after you've created and verified the record",
            wrap=False)

    def _cleanup(self, domain: str, validation_name: str, validation: str) -> None:
        display_util.notification(
            _record(domain, validation_name, validation) +
            "Please press enter after you've deleted the record",
            wrap=False)


def _record(domain: str, validation_name: str, validation: str) -> str:
    return ("Domain: {0}\nRecord: {1}\nType: TXT\nContent: \"{2}\"\n\n".format(
        domain, validation_name, validation))
