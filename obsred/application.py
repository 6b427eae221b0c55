import asyncio
import logging
import logging.handlers
import platform
import signal
import warnings
from io import StringIO
from typing import Optional, Any, Dict, List

import yaml

from obsred.object import get_object
from obsred.modules import Module
from obsred.utils.config import pre_process_yaml

log = logging.getLogger(__name__)


"""Format of all log lines."""
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(filename)s:%(lineno)d %(message)s"


class Application:
    """Class for initializing and shutting down an obsred process."""

    def __init__(self, config: str, log_file: Optional[str] = None, log_level: str = "info", **kwargs: Any):
        """Initializes an obsred application.

        Args:
            config: Name of config file.
            log_file: Name of log file, if any.
            log_level: Logging level.
        """
        self._config = config
        _init_logging(log_file, log_level)

        # module from config
        log.info("Loading configuration from %s...", self._config)
        with StringIO(pre_process_yaml(self._config)) as f:
            cfg: Dict[str, Any] = yaml.safe_load(f)
        if not isinstance(cfg, dict) or "class" not in cfg:
            raise ValueError("Configuration %s does not define a module class." % self._config)
        self._module: Module = get_object(cfg, Module)
        log.info("Created module %s.", self._module.name)

    def run(self) -> None:
        """Runs the module in a new event loop until it quits or SIGINT/SIGTERM is received."""
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        # signals
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._signal_handler, sig)

        try:
            loop.run_until_complete(self._main())
        finally:
            tasks = asyncio.all_tasks(loop=loop)
            for t in tasks:
                t.cancel()
            loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))
            loop.close()

    def _signal_handler(self, sig: signal.Signals) -> None:
        log.info("Got signal: %s, shutting down.", sig)
        self._module.quit()

    async def _main(self) -> None:
        """Opens the module, runs it until it quits and always closes it."""
        try:
            log.info("Opening module %s...", self._module.name)
            await self._module.open()
            log.info("Module running.")
            await self._module.main()
        except Exception:
            log.exception("Module %s failed.", self._module.name)
        finally:
            log.info("Closing module %s...", self._module.name)
            await self._module.close()
            log.info("Finished shutting down.")


def _init_logging(log_file: Optional[str], log_level: str) -> None:
    """Log to stdout and, if given, to a file that may be rotated externally."""
    formatter = logging.Formatter(LOG_FORMAT)
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        # WatchedFileHandler reopens the file after logrotate, but is not available on Windows
        if platform.system() == "Windows":
            handlers.append(logging.FileHandler(log_file))
        else:
            handlers.append(logging.handlers.WatchedFileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(handlers=handlers, level=logging.getLevelName(log_level.upper()))
    logging.captureWarnings(True)
    warnings.simplefilter("always", DeprecationWarning)


__all__ = ["Application", "LOG_FORMAT"]
