
import logging
import sys

import ensemble.config
import ensemble.controller


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def main () -> None:

	"""
	Main entry point: ``python -m ensemble [config.yaml]``.
	"""

	logger.info("String ensemble controller starting...")

	config_path = sys.argv[1] if len(sys.argv) > 1 else "config.yaml"
	config = ensemble.config.load_config(config_path)

	ensemble.controller.Controller(config).run()


if __name__ == "__main__":
	main()
