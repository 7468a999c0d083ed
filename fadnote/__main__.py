"""Run the note service: ``python -m fadnote``."""
import logging

from aiohttp import web

from .conf import NoteConfig
from .handlers import create_app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = NoteConfig.from_env()
    web.run_app(create_app(config), host=config.host, port=config.port)


if __name__ == "__main__":
    main()
