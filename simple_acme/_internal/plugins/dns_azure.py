"""DNS Authenticator for Azure DNS."""
import logging
from typing import Any
from typing import Dict
from typing import Iterable
from typing import Optional
from typing import Set
from typing import Tuple

from simple_acme import errors
from simple_acme._internal import constants
from simple_acme._internal.plugins import common

logger = logging.getLogger(__name__)

_REQUIRED = (
    ("azure_subscription_id", "--azure-subscription-id"),
    ("azure_resource_group", "--azure-resource-group"),
    ("azure_tenant_id", "--azure-tenant-id"),
    ("azure_client_id", "--azure-client-id"),
    ("azure_client_secret", "--azure-client-secret"),
)


class Authenticator(common.DNSAuthenticator):
    """DNS Authenticator for Azure DNS

    This Authenticator uses the Azure DNS API to fulfill a dns-01
    challenge. It authenticates with a service principal and needs the
    ``azure`` extra (azure-identity and azure-mgmt-dns).

    """

    description = ('Obtain certificates using a DNS TXT record (if you are using '
                   'Azure for DNS).')
    ttl = constants.DNS_TTL

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._client: Optional[Any] = None
        self._zones: Dict[str, str] = {}

    def more_info(self) -> str:  # pylint: disable=missing-function-docstring
        return ('This plugin configures a DNS TXT record to respond to a dns-01 challenge '
                'using the Azure DNS API.')

    def prepare(self) -> None:
        missing = [flag for name, flag in _REQUIRED if not getattr(self.config, name)]
        if missing:
            raise errors.ConfigurationError(
                "The Azure plugin needs {0}.".format(", ".join(missing)))
        try:
            import azure.identity  # noqa: F401 pylint: disable=unused-import,import-outside-toplevel
            import azure.mgmt.dns  # noqa: F401 pylint: disable=unused-import,import-outside-toplevel
        except ImportError:
            raise errors.ConfigurationError(
                "The Azure plugin needs the azure-identity and azure-mgmt-dns packages, "
                "install simple-acme[azure].")

    def _get_azure_client(self) -> Any:
        """
        Gets azure DNS client

        :return: Azure DNS client
        :rtype: azure.mgmt.dns.DnsManagementClient
        """
        if self._client is None:
            # pylint: disable=import-outside-toplevel
            from azure.identity import ClientSecretCredential
            from azure.mgmt.dns import DnsManagementClient

            credential = ClientSecretCredential(
                tenant_id=self.config.azure_tenant_id,
                client_id=self.config.azure_client_id,
                client_secret=self.config.azure_client_secret)
            self._client = DnsManagementClient(credential, self.config.azure_subscription_id)
        return self._client

    def _record_set(self, values: Iterable[str]) -> Any:
        from azure.mgmt.dns.models import RecordSet  # pylint: disable=import-outside-toplevel
        from azure.mgmt.dns.models import TxtRecord  # pylint: disable=import-outside-toplevel
        return RecordSet(ttl=self.ttl, txt_records=[TxtRecord(value=sorted(values))])

    def _find_zone(self, domain: str) -> str:
        if domain in self._zones:
            return self._zones[domain]
        from azure.core.exceptions import HttpResponseError  # pylint: disable=import-outside-toplevel

        client = self._get_azure_client()
        for guess in common.base_domain_name_guesses(_base(domain)):
            try:
                client.zones.get(self.config.azure_resource_group, guess)
            except HttpResponseError as err:
                if err.status_code != 404:
                    raise errors.PluginError(
                        'Failed to look up DNS zone {0}, error: {1}'.format(guess, err))
                logger.debug("%s is not an Azure DNS zone", guess)
                continue
            logger.debug("Found Azure DNS zone %s for %s", guess, domain)
            self._zones[domain] = guess
            return guess
        raise errors.PluginError(
            'Unable to find an Azure DNS zone for {0} in resource group {1}'.format(
                domain, self.config.azure_resource_group))

    def _relative_name(self, domain: str, validation_name: str) -> Tuple[str, str]:
        zone = self._find_zone(domain)
        return zone, validation_name[:-(len(zone) + 1)]

    def _existing_values(self, zone: str, relative_name: str, domain: str) -> Set[str]:
        from azure.core.exceptions import HttpResponseError  # pylint: disable=import-outside-toplevel

        values: Set[str] = set()
        try:
            existing_rr = self._get_azure_client().record_sets.get(
                resource_group_name=self.config.azure_resource_group,
                zone_name=zone,
                relative_record_set_name=relative_name,
                record_type='TXT')
            for record in existing_rr.txt_records or ():
                values.update(record.value)
        except HttpResponseError as err:
            if err.status_code != 404:  # Ignore RR not found
                raise errors.PluginError('Failed to check TXT record for domain '
                                         '{0}, error: {1}'.format(domain, err))
        return values

    def _perform(self, domain: str, validation_name: str, validation: str) -> None:
        from azure.core.exceptions import HttpResponseError  # pylint: disable=import-outside-toplevel

        zone, relative_name = self._relative_name(domain, validation_name)
        txt_value = self._existing_values(zone, relative_name, domain) | {validation}
        try:
            self._get_azure_client().record_sets.create_or_update(
                resource_group_name=self.config.azure_resource_group,
                zone_name=zone,
                relative_record_set_name=relative_name,
                record_type='TXT',
                parameters=self._record_set(txt_value))
        except HttpResponseError as err:
            raise errors.PluginError('Failed to add TXT record to domain '
                                     '{0}, error: {1}'.format(domain, err))
        logger.info("Created TXT record %s in Azure DNS zone %s", validation_name, zone)

    def _cleanup(self, domain: str, validation_name: str, validation: str) -> None:
        from azure.core.exceptions import HttpResponseError  # pylint: disable=import-outside-toplevel

        zone, relative_name = self._relative_name(domain, validation_name)
        txt_value = self._existing_values(zone, relative_name, domain) - {validation}
        client = self._get_azure_client()
        try:
            if txt_value:
                client.record_sets.create_or_update(
                    resource_group_name=self.config.azure_resource_group,
                    zone_name=zone,
                    relative_record_set_name=relative_name,
                    record_type='TXT',
                    parameters=self._record_set(txt_value))
            else:
                client.record_sets.delete(
                    resource_group_name=self.config.azure_resource_group,
                    zone_name=zone,
                    relative_record_set_name=relative_name,
                    record_type='TXT')
        except HttpResponseError as err:
            if err.status_code != 404:  # Ignore RR not found
                raise errors.PluginError('Failed to remove TXT record for domain '
                                         '{0}, error: {1}'.format(domain, err))


def _base(domain: str) -> str:
    return domain[2:] if domain.startswith("*.") else domain
