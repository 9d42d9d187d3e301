import uvicorn

from workforce.settings import get_settings


def run() -> None:
    """Serve the API with uvicorn on the configured host and port."""
    settings = get_settings()
    # One worker process: the anomaly dispatcher is an in-process thread pool.
    uvicorn.run("workforce.main:app", host=settings.api_host, port=settings.api_port, workers=1)


if __name__ == "__main__":
    run()
