"""CLI entry point."""

import asyncio
import os
import sys

from common.constants import DEFAULT_CONFIG_DIR
from common.logging_config import setup_logging
from cli.config import Config
from cli.repl import repl_loop


def main() -> None:
    """
    Entry point for the reelup console script.

    Pass --debug for DEBUG logs; otherwise LOG_LEVEL applies and defaults to
    WARNING. Logs go to the configured log_file when one is set.
    """
    debug = '--debug' in sys.argv
    if debug:
        sys.argv.remove('--debug')
    log_level = 'DEBUG' if debug else os.getenv('LOG_LEVEL', 'WARNING')

    config = Config(DEFAULT_CONFIG_DIR / 'config.json')
    log_file = config.get_log_file()
    logger = setup_logging('cli', log_level=log_level, log_file=log_file)
    setup_logging('uploader', log_level=log_level, log_file=log_file)

    logger.info(f"CLI starting [signer={config.get_base_url()}]")
    try:
        asyncio.run(repl_loop(config))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logger.error(f"CLI error: {e}", exc_info=True)
        raise
    finally:
        logger.info("CLI exiting")


if __name__ == "__main__":
    main()
