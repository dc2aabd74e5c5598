"""Certificate request targets."""
import logging
from typing import Any
from typing import Dict
from typing import Iterable
from typing import List
from typing import Mapping
from typing import NamedTuple
from typing import Optional
from typing import Sequence
from typing import Tuple

from simple_acme import errors
from simple_acme import util
from simple_acme._internal import constants

logger = logging.getLogger(__name__)


class Target(NamedTuple):
    """Immutable description of one certificate request.

    :ivar str host: primary host, becomes the certificate common name
    :ivar tuple alternative_names: additional names, in request order
    :ivar str plugin_name: registry name of the install strategy
    :ivar str site_id: optional identifier of the site on the server
    :ivar str excluded_bindings: comma separated names to leave out
    :ivar str webroot: web root used by http-01 validation
    :ivar tuple children: underlying targets of a merged SAN request

    """
    host: str
    alternative_names: Tuple[str, ...] = ()
    plugin_name: str = "Manual"
    site_id: Optional[str] = None
    excluded_bindings: Optional[str] = None
    webroot: Optional[str] = None
    children: Tuple['Target', ...] = ()

    def __str__(self) -> str:
        out = "[{0}] {1}".format(self.plugin_name, self.host)
        if self.site_id is not None:
            out += " (SiteId {0})".format(self.site_id)
        if self.alternative_names:
            names = list(self.alternative_names)
            out += " [{0} bindings - {1}]".format(len(names), ", ".join(names[:3]))
            if len(names) > 3:
                out += ", ..."
        if self.webroot:
            out += " @ {0}".format(self.webroot)
        return out

    @property
    def is_merged(self) -> bool:
        """Was this target built by `merge_targets`?"""
        return bool(self.children)

    def webroot_for(self, host: str) -> Optional[str]:
        """Web root serving host, looking into merged children first."""
        for child in self.children:
            if child.webroot and host in child.get_hosts():
                return child.webroot
        return self.webroot

    def exclusions(self) -> List[str]:
        """Names removed from the resolved host set, normalized."""
        if not self.excluded_bindings:
            return []
        return [_normalize(name) for name in self.excluded_bindings.split(",")
                if name.strip()]

    def get_hosts(self, max_names: int = constants.MAX_SAN_NAMES) -> List[str]:
        """Resolve the list of identifiers this target covers.

        The primary host comes first, followed by the alternative names.
        Names are lowercased, stripped of a trailing dot and deduplicated
        in first seen order. Blank names and excluded names are dropped.

        :param int max_names: maximum size of the resolved set

        :returns: resolved identifiers
        :rtype: `list` of `str`

        :raises .errors.ConfigurationError: if no identifier remains or
            more than `max_names` do

        """
        excluded = set(self.exclusions())
        hosts: List[str] = []
        for name in (self.host,) + tuple(self.alternative_names):
            if not name or not name.strip():
                continue
            normalized = _normalize(name)
            if normalized in excluded or normalized in hosts:
                continue
            hosts.append(normalized)

        if not hosts:
            raise errors.ConfigurationError("No DNS identifiers found.")
        if len(hosts) > max_names:
            raise errors.ConfigurationError(
                "Too many hosts for a single certificate. The authority has a "
                "limit of {0} names per certificate, {1} requested for {2}.".format(
                    max_names, len(hosts), self.host))
        return hosts

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of this target as plain values."""
        return {
            "host": self.host,
            "alternative_names": list(self.alternative_names),
            "plugin_name": self.plugin_name,
            "site_id": self.site_id,
            "excluded_bindings": self.excluded_bindings,
            "webroot": self.webroot,
            "children": [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Target':
        """Rebuild a target from `to_dict` output."""
        return cls(
            host=data["host"],
            alternative_names=tuple(_as_list(data.get("alternative_names"))),
            plugin_name=data.get("plugin_name") or "Manual",
            site_id=data.get("site_id") or None,
            excluded_bindings=data.get("excluded_bindings") or None,
            webroot=data.get("webroot") or None,
            children=tuple(cls.from_dict(child)
                           for child in data.get("children") or ()),
        )


def _normalize(name: str) -> str:
    name = name.strip().lower()
    return name[:-1] if name.endswith(".") else name


def _as_list(value: Any) -> List[str]:
    # configobj returns single element lists as plain strings
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


def from_manual_hosts(hosts: str, webroot: Optional[str] = None,
                      plugin_name: str = "Manual",
                      excluded_bindings: Optional[str] = None,
                      site_id: Optional[str] = None) -> Target:
    """Build a target from a comma separated host list.

    The first entry is the primary host, all entries (the primary
    included) become alternative names.

    :param str hosts: comma separated names, e.g. ``example.com,www.example.com``

    :raises .errors.ConfigurationError: if hosts holds no name

    """
    names = [util.enforce_domain_sanity(name) for name in hosts.split(",") if name.strip()]
    if not names:
        raise errors.ConfigurationError("No DNS identifiers found.")
    return Target(host=names[0], alternative_names=tuple(names),
                  plugin_name=plugin_name, webroot=webroot,
                  excluded_bindings=excluded_bindings, site_id=site_id)


def merge_targets(targets: Sequence[Target],
                  max_names: int = constants.MAX_SAN_NAMES) -> Target:
    """Combine several targets into one SAN request.

    The merged target takes the first resolved host as primary, all
    resolved hosts of the children as alternative names and their site
    ids joined by commas as its own site id. The children are kept so
    installation can run once per site.

    :param list targets: targets to merge, sharing one plugin

    :returns: new merged target, the inputs are left untouched
    :rtype: Target

    :raises .errors.ConfigurationError: if targets is empty, mixes
        plugins, or the combined host count exceeds `max_names`

    """
    if not targets:
        raise errors.ConfigurationError("No targets to merge.")
    plugin_names = {target.plugin_name for target in targets}
    if len(plugin_names) > 1:
        raise errors.ConfigurationError(
            "Cannot merge targets using different plugins: {0}".format(
                ", ".join(sorted(plugin_names))))

    names: List[str] = []
    for target in targets:
        for host in target.get_hosts(max_names):
            if host not in names:
                names.append(host)
    if len(names) > max_names:
        raise errors.ConfigurationError(
            "Too many hosts for a single certificate. The authority has a "
            "limit of {0} names per certificate, the merged sites have {1}.".format(
                max_names, len(names)))

    labels = [target.site_id or target.host for target in targets]
    logger.debug("Merged %d targets into one request for %d names",
                 len(targets), len(names))
    return Target(
        host=names[0],
        alternative_names=tuple(names),
        plugin_name=targets[0].plugin_name,
        site_id=",".join(labels),
        webroot=targets[0].webroot,
        children=tuple(targets),
    )


def underlying_targets(target: Target) -> Iterable[Target]:
    """Targets installation runs for: the children if merged, else target."""
    return target.children if target.children else (target,)
