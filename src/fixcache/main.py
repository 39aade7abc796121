from __future__ import annotations

import logging
import sys

import uvicorn

from .errors import ConfigurationError
from .config import load_config
from .server import create_app


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    try:
        config = load_config()
    except ConfigurationError as exc:
        sys.stderr.write(f"fixcache: {exc}\n")
        return 2

    uvicorn.run(create_app(config), host=config.host, port=config.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
