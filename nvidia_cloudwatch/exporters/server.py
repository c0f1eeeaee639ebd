"""Pull endpoint - serves the gauge registry in Prometheus text format."""

import uvicorn
from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

METRICS_PATH = "/metrics"
DEFAULT_PORT = 2112


def create_app(registry: CollectorRegistry) -> FastAPI:
    app = FastAPI(title="nvidia-cloudwatch", docs_url=None, redoc_url=None)

    @app.get(METRICS_PATH)
    def metrics() -> Response:
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


def create_server(app: FastAPI, host: str = "0.0.0.0", port: int = DEFAULT_PORT,
                  log_level: str = "info") -> uvicorn.Server:
    """Build a uvicorn server to run inside the exporter's event loop"""
    config = uvicorn.Config(app, host=host, port=port, log_level=log_level.lower(),
                            access_log=False)
    return uvicorn.Server(config)
