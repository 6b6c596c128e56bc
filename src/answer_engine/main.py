"""Entrypoint: run the Grounded Answer Engine server."""

import uvicorn

from answer_engine.api.app import create_app
from answer_engine.config.settings import Settings


def main() -> None:
    settings = Settings()
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
