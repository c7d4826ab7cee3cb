"""Entry point serving the API with uvicorn."""
import uvicorn

from .app import create_app
from .config import settings
from ..log import log

app = create_app()


def run() -> None:
    log.setup_server_logging()
    # log_config=None keeps uvicorn on the root logger configured above
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_config=None)


if __name__ == '__main__':
    run()
