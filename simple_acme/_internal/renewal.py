"""Renewal schedule and the pass renewing due certificates."""
import copy
import datetime
import itertools
import logging
import os
import traceback
from typing import Any
from typing import Callable
from typing import Dict
from typing import Iterator
from typing import List
from typing import Mapping
from typing import NamedTuple
from typing import Optional

import configobj
import parsedatetime
import pyrfc3339
import pytz

from simple_acme import configuration
from simple_acme import errors
from simple_acme import util
from simple_acme._internal import lock
from simple_acme._internal.display import obj as display_obj
from simple_acme.display import util as display_util
from simple_acme.target import Target

logger = logging.getLogger(__name__)

# Seconds to wait for a concurrent invocation saving the schedule
LOCK_TIMEOUT = 10.0

_CHILDREN = "children"
_DUE = "due"
_PARAMS = "renewalparams"

# Options of the issuing invocation that are replayed when the entry is
# renewed, so that a renewal installs the certificate the same way.
STR_CONFIG_ITEMS = ["key_type", "elliptic_curve", "pfx_password", "script",
                    "script_parameters", "certificate_path", "central_ssl_store",
                    "certificate_store", "renewal_interval",
                    "ftp_server", "ftp_user", "ftp_password",
                    "azure_subscription_id", "azure_resource_group", "azure_tenant_id",
                    "azure_client_id", "azure_client_secret", "azure_webapp_name"]
INT_CONFIG_ITEMS = ["rsa_key_size", "dns_propagation_seconds"]
BOOL_CONFIG_ITEMS = ["keep_existing", "ftp_cleanup_folders"]

CONFIG_ITEMS = set(itertools.chain(STR_CONFIG_ITEMS, INT_CONFIG_ITEMS, BOOL_CONFIG_ITEMS))


def add_time_interval(base_time: datetime.datetime, interval: str,
                      textparser: parsedatetime.Calendar = parsedatetime.Calendar()
                      ) -> datetime.datetime:
    """Parse the time specified time interval, and add it to the base_time

    The interval can be in the English-language format understood by
    parsedatetime, e.g., '10 days', '3 weeks', '6 months', '9 hours', or
    a sequence of such intervals like '6 months 1 week' or '3 days 12
    hours'. If an integer is found with no associated unit, it is
    interpreted by default as a number of days.

    :param datetime.datetime base_time: The time to be added with the interval.
    :param str interval: The time interval to parse.

    :returns: The base_time plus the interpretation of the time interval.
    :rtype: :class:`datetime.datetime`"""

    if interval.strip().isdigit():
        interval += " days"

    # try to use the same timezone, but fallback to UTC
    tzinfo = base_time.tzinfo or pytz.UTC

    return textparser.parseDT(interval, base_time, tzinfo=tzinfo)[0]


def utcnow() -> datetime.datetime:
    """Current time, timezone aware, in UTC."""
    return datetime.datetime.now(pytz.UTC)


class ScheduledRenewal(NamedTuple):
    """One entry of the renewal schedule.

    :ivar str host: key of the entry, the primary host of the target
    :ivar .Target target: snapshot of the target to renew
    :ivar datetime.datetime due: when to renew, in UTC
    :ivar dict params: options of the issuing invocation, as strings

    """
    host: str
    target: Target
    due: datetime.datetime
    params: Optional[Dict[str, str]] = None

    def is_due(self, now: datetime.datetime) -> bool:
        """Is the entry due at now?"""
        return self.due <= now

    def __str__(self) -> str:
        return "{0} - renew after {1}".format(self.target, self.due.strftime("%Y-%m-%d %H:%M UTC"))


class RenewalStore:
    """Schedule of future renewals, at most one entry per host.

    Every change reloads the file and rewrites it while holding an
    advisory lock, so concurrent invocations see each other's entries.
    The new content goes through ``<file>.new`` renamed over the
    schedule, a crash never leaves a truncated file behind. Sections
    that cannot be parsed are written back unchanged.

    :ivar str path: schedule file
    :ivar list parse_failures: sections of the file that could not be read

    """
    def __init__(self, path: str, lock_timeout: float = LOCK_TIMEOUT) -> None:
        self.path = path
        self.lock_timeout = lock_timeout
        self.parse_failures: List[str] = []
        self._entries: Dict[str, ScheduledRenewal] = {}
        self._unparsed: Dict[str, Dict[str, Any]] = {}

    def __iter__(self) -> Iterator[ScheduledRenewal]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, host: str) -> Optional[ScheduledRenewal]:
        """Entry scheduled for host, if any."""
        return self._entries.get(_key(host))

    def load(self) -> 'RenewalStore':
        """Replace the in-memory collection with the file contents.

        Sections that cannot be parsed are logged, recorded in
        `parse_failures` and skipped.

        :returns: self
        :raises .errors.Error: if the file is not a valid schedule

        """
        self._entries = {}
        self._unparsed = {}
        self.parse_failures = []
        if not os.path.exists(self.path):
            logger.debug("No renewal schedule at %s", self.path)
            return self

        try:
            config = configobj.ConfigObj(self.path, encoding="utf-8",
                                         default_encoding="utf-8", file_error=True)
        except (configobj.ConfigObjError, IOError) as error:
            raise errors.Error(
                "Unable to read the renewal schedule {0}: {1}".format(self.path, error))

        for host in config.sections:
            section = config[host]
            try:
                entry = ScheduledRenewal(
                    host=_key(host),
                    target=_target_from_section(section),
                    due=pyrfc3339.parse(section[_DUE]),
                    params=dict(section.get(_PARAMS) or {}))
            except (KeyError, ValueError, TypeError, errors.Error) as error:
                logger.error("Renewal entry %s in %s is invalid: %s. Skipping.",
                             host, self.path, error)
                logger.debug("Traceback was:\n%s", traceback.format_exc())
                self.parse_failures.append(host)
                self._unparsed[host] = section.dict()
                continue
            self._entries[entry.host] = entry
        logger.debug("Loaded %d renewal entries from %s", len(self._entries), self.path)
        return self

    def _write(self) -> None:
        config = configobj.ConfigObj(encoding="utf-8", default_encoding="utf-8")
        config.initial_comment = ["# renewal schedule, managed by simple-acme"]
        for host, raw in self._unparsed.items():
            if _key(host) not in self._entries:
                config[host] = raw
        for entry in self._entries.values():
            section = _section_for(entry.target)
            section[_DUE] = pyrfc3339.generate(entry.due, accept_naive=True)
            if entry.params:
                section[_PARAMS] = dict(entry.params)
            config[entry.host] = section

        temp_path = self.path + ".new"
        util.safely_remove(temp_path)
        with util.safe_open(temp_path, "wb", chmod=0o600) as temp_file:
            config.write(outfile=temp_file)
        os.replace(temp_path, self.path)
        logger.debug("Saved %d renewal entries to %s", len(self._entries), self.path)

    def persist(self) -> None:
        """Write the whole in-memory collection over the file.

        Unlike `upsert` and `remove`, this does not reload first, entries
        written by other invocations since `load` are dropped.

        """
        util.make_or_verify_dir(os.path.dirname(self.path), 0o700)
        with lock.lock_for(self.path, timeout=self.lock_timeout):
            self._write()

    def _update(self, change: Callable[[], ScheduledRenewal]) -> ScheduledRenewal:
        """Apply change to the current file contents and save them.

        :raises .errors.LockError: if another invocation keeps the lock
            longer than the lock timeout

        """
        util.make_or_verify_dir(os.path.dirname(self.path), 0o700)
        with lock.lock_for(self.path, timeout=self.lock_timeout):
            self.load()
            entry = change()
            self._write()
        return entry

    def upsert(self, host: str, target: Target, due: datetime.datetime,
               params: Optional[Mapping[str, Any]] = None) -> ScheduledRenewal:
        """Schedule target, replacing any entry of host, and persist.

        :param dict params: options to replay when renewing, see
            `relevant_values`

        :returns: the new entry
        :rtype: ScheduledRenewal

        """
        key = _key(host)

        def _replace() -> ScheduledRenewal:
            if key in self._entries:
                logger.debug("Replacing renewal entry of %s", key)
            entry = ScheduledRenewal(
                host=key, target=target, due=due.astimezone(pytz.UTC),
                params={name: str(value) for name, value in (params or {}).items()})
            self._entries[key] = entry
            return entry

        return self._update(_replace)

    def remove(self, host: str) -> ScheduledRenewal:
        """Remove the entry of host and persist.

        :raises .errors.Error: if host has no entry

        """
        def _pop() -> ScheduledRenewal:
            try:
                return self._entries.pop(_key(host))
            except KeyError:
                raise errors.Error("No renewal is scheduled for {0}".format(host))

        return self._update(_pop)

    def due(self, now: datetime.datetime) -> List[ScheduledRenewal]:
        """Entries due at or before now."""
        return [entry for entry in self._entries.values() if entry.is_due(now)]


def _key(host: str) -> str:
    return host.strip().lower()


def _section_for(target: Target) -> Dict[str, Any]:
    # configobj has no null value, unset fields are left out
    section = {key: value for key, value in target.to_dict().items()
               if key != _CHILDREN and value is not None}
    if target.children:
        section[_CHILDREN] = {str(index): _section_for(child)
                              for index, child in enumerate(target.children)}
    return section


def _target_from_section(section: Mapping[str, Any]) -> Target:
    data = {key: value for key, value in section.items()
            if key not in (_CHILDREN, _DUE, _PARAMS)}
    children = section.get(_CHILDREN) or {}
    data[_CHILDREN] = [_plain(children[index])
                       for index in sorted(children, key=int)]
    return Target.from_dict(data)


def _plain(section: Mapping[str, Any]) -> Dict[str, Any]:
    data = {key: value for key, value in section.items() if key != _CHILDREN}
    children = section.get(_CHILDREN) or {}
    data[_CHILDREN] = [_plain(children[index]) for index in sorted(children, key=int)]
    return data


def relevant_values(config: configuration.NamespaceConfig) -> Dict[str, Any]:
    """Options set by the user that renewals of the same target reuse.

    :param .NamespaceConfig config: configuration of the issuance

    :rtype: dict

    """
    values = {}
    for name in sorted(CONFIG_ITEMS):
        value = getattr(config.namespace, name)
        if value not in (None, "") and config.set_by_user(name):
            values[name] = value
    return values


def _restore_bool(name: str, value: str) -> bool:
    lowercase_value = value.lower()
    if lowercase_value not in ("true", "false"):
        raise errors.Error(
            "Expected True or False for {0} but found {1}".format(name, value))
    return lowercase_value == "true"


def _restore_int(name: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise errors.Error("Expected a numeric value for {0}".format(name))


def _restore_str(unused_name: str, value: str) -> Optional[str]:
    return None if value == "None" else value


def restore_config(config: configuration.NamespaceConfig,
                   params: Mapping[str, str]) -> configuration.NamespaceConfig:
    """Configuration renewing an entry scheduled with params.

    Options given to the current invocation win over the stored ones.

    :param .NamespaceConfig config: configuration of the current invocation
    :param dict params: options stored with the schedule entry

    :returns: a copy of config
    :raises .errors.Error: if a stored value cannot be converted

    """
    lineage_config = copy.deepcopy(config)
    restorers = itertools.chain(
        zip(BOOL_CONFIG_ITEMS, itertools.repeat(_restore_bool)),
        zip(INT_CONFIG_ITEMS, itertools.repeat(_restore_int)),
        zip(STR_CONFIG_ITEMS, itertools.repeat(_restore_str)))
    for name, restore in restorers:
        if name in params and not config.set_by_user(name):
            setattr(lineage_config, name, restore(name, params[name]))
    return lineage_config


def schedule(config: configuration.NamespaceConfig, target: Target,
             now: Optional[datetime.datetime] = None) -> ScheduledRenewal:
    """Record the next renewal of target, `renewal_interval` from now."""
    now = now or utcnow()
    store = RenewalStore(config.renewal_file)
    entry = store.upsert(target.host, target, add_time_interval(now, config.renewal_interval),
                         relevant_values(config))
    logger.info("Renewal of %s scheduled after %s", target.host, entry.due.isoformat())
    return entry


def report(msgs: List[str], category: str) -> str:
    """Format a results report for a category of renewal outcomes"""
    lines = ("%s (%s)" % (m, category) for m in msgs)
    return "  " + "\n  ".join(lines)


def _renew_describe_results(renew_successes: List[str], renew_failures: List[str],
                            renew_skipped: List[str], parse_failures: List[str]) -> None:
    notify = display_util.notify
    notify_error = logger.error

    notify("\n{0}".format(display_obj.SIDE_FRAME))

    if renew_skipped:
        notify("The following certificates are not due for renewal yet:")
        notify(report(renew_skipped, "skipped"))
    if not renew_successes and not renew_failures:
        notify("No renewals were attempted.")
    elif renew_successes and not renew_failures:
        notify("Congratulations, all renewals succeeded: ")
        notify(report(renew_successes, "success"))
    elif renew_failures and not renew_successes:
        notify_error("All renewals failed. The following certificates could "
                     "not be renewed:")
        notify_error(report(renew_failures, "failure"))
    elif renew_failures and renew_successes:
        notify("The following renewals succeeded:")
        notify(report(renew_successes, "success") + "\n")
        notify_error("The following renewals failed:")
        notify_error(report(renew_failures, "failure"))

    if parse_failures:
        notify("\nAdditionally, the following renewal entries were invalid: ")
        notify(report(parse_failures, "parsefail"))

    notify(display_obj.SIDE_FRAME)


def handle_renewal_request(
        config: configuration.NamespaceConfig,
        renew_target: Callable[[Target, configuration.NamespaceConfig], None],
        now: Optional[datetime.datetime] = None) -> None:
    """Renew every due entry of the schedule and report results.

    Each entry is renewed with the options it was scheduled with, see
    `restore_config`. A failing entry is logged and does not stop later
    ones. Each successful renewal moves its entry `renewal_interval`
    past now and is persisted right away.

    :param config: configuration, ``force_renewal`` treats every entry as due
    :param callable renew_target: authorizes, acquires and installs a
        target with the given configuration
    :param datetime.datetime now: reference time, the current time by default

    :raises .errors.Error: naming the failed hosts, once every entry was processed

    """
    now = now or utcnow()
    store = RenewalStore(config.renewal_file).load()
    parse_failures = list(store.parse_failures)
    if config.force_renewal:
        candidates = list(store)
    else:
        candidates = store.due(now)
    renew_skipped = [str(entry) for entry in store if entry not in candidates]

    renew_successes: List[str] = []
    renew_failures: List[str] = []

    for entry in candidates:
        display_util.notify("Renewing " + str(entry.target))
        try:
            lineage_config = restore_config(config, entry.params or {})
            renew_target(entry.target, lineage_config)
        except Exception as e:  # pylint: disable=broad-except
            logger.error("Failed to renew certificate %s with error: %s", entry.host, e)
            logger.debug("Traceback was:\n%s", traceback.format_exc())
            renew_failures.append(entry.host)
            continue
        try:
            store.upsert(entry.host, entry.target,
                         add_time_interval(now, lineage_config.renewal_interval),
                         relevant_values(lineage_config))
        except errors.Error as e:
            logger.error("Renewed %s but could not update its schedule: %s", entry.host, e)
            renew_failures.append(entry.host)
            continue
        renew_successes.append(entry.host)

    _renew_describe_results(renew_successes, renew_failures, renew_skipped,
                            parse_failures)

    if renew_failures or parse_failures:
        raise errors.Error(
            "{0} renew failure(s), {1} parse failure(s): {2}".format(
                len(renew_failures), len(parse_failures),
                ", ".join(renew_failures + parse_failures)))

    logger.debug("no renewal failures")
