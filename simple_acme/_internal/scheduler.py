"""Recurring renewal checks through cron."""
import logging
import os
import random
import shlex
import sys
from typing import List

from simple_acme import configuration
from simple_acme import errors
from simple_acme import interfaces
from simple_acme import util
from simple_acme._internal import constants

logger = logging.getLogger(__name__)


class CronScheduler(interfaces.Scheduler):
    """Writes a cron.d file running ``simple-acme renew`` twice a day.

    The minute is picked at random when the file is first written and
    kept on later registrations, so that installations do not all hit
    the authority at the same time.

    """
    def __init__(self, user: str = "root") -> None:
        self.user = user

    def cron_file(self, config: configuration.NamespaceConfig) -> str:
        """Path of the file registered in ``cron_dir``."""
        return os.path.join(config.cron_dir, constants.CRON_FILE)

    def command(self, config: configuration.NamespaceConfig) -> List[str]:
        """Arguments of the recurring invocation."""
        args = [sys.executable, "-m", "simple_acme", "renew", "-q",
                "--config-dir", config.config_dir, "--logs-dir", config.logs_dir]
        if config.test:
            args.append("--test")
        else:
            args.extend(["--server", config.server])
        return args

    def _minute(self, path: str) -> int:
        """Minute of an earlier registration, or a random one."""
        try:
            with open(path) as f:
                for line in f:
                    fields = line.split()
                    if len(fields) > 1 and fields[1] == "*/12" and fields[0].isdigit():
                        return int(fields[0])
        except OSError:
            pass
        return random.randint(0, 59)

    def register(self, config: configuration.NamespaceConfig) -> None:
        path = self.cron_file(config)
        entry = "{minute} */12 * * * {user} {command}\n".format(
            minute=self._minute(path), user=self.user,
            command=" ".join(shlex.quote(arg) for arg in self.command(config)))
        content = ("# Certificate renewal checks registered by simple-acme\n"
                   "SHELL=/bin/sh\n"
                   "PATH=/usr/local/sbin:/usr/local/bin:/sbin:/bin:/usr/sbin:/usr/bin\n\n"
                   + entry)
        try:
            util.make_or_verify_dir(config.cron_dir, 0o755)
            util.atomic_write(path, content, chmod=0o644)
        except (OSError, errors.Error) as error:
            raise errors.Error(
                "Unable to register the renewal task in {0}: {1}".format(path, error))
        logger.info("Registered the renewal task in %s", path)
