import logging
import sys

import uvicorn

from diff_feed.config import settings

logger = logging.getLogger("diff_feed")


def main() -> None:
    if settings.PORT is None:
        logging.basicConfig(level=logging.ERROR, format="%(levelname)s %(name)s: %(message)s")
        logger.error("$PORT must be set")
        sys.exit(1)
    uvicorn.run("diff_feed.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
