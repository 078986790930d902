"""AWS Lambda entry point — Mangum ASGI adapter for the FastAPI app.

Lifespan events are off: a warm container keeps one CacheServices across
invocations, built on the first request (see api.dependencies.get_services).
Set DEPLOYMENT_MODE=lambda so no background sweep is expected; expired
entries are still dropped lazily on access.
"""

from mangum import Mangum

from bmo_server.main import app

handler = Mangum(app, lifespan="off")
