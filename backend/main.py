import os

from fastapi.openapi.utils import get_openapi
from dotenv import load_dotenv
from app.main import app

# Load environment variables for local development
load_dotenv()


def custom_openapi() -> dict:
    """Return OpenAPI schema with project metadata."""
    if app.openapi_schema:
        return app.openapi_schema
    app.openapi_schema = get_openapi(
        title="Ziyawa API",
        version="1.0.0",
        description=(
            "Event marketplace API: listings, tickets, performer bookings, "
            "payments, payouts, reviews and moderation."
        ),
        contact={"name": "Ziyawa Support", "email": "support@ziyawa.co.za"},
        routes=app.routes,
    )
    return app.openapi_schema


app.openapi = custom_openapi

if __name__ == "__main__":
    import uvicorn

    workers = int(os.getenv("UVICORN_WORKERS", "1"))
    keepalive = int(os.getenv("UVICORN_KEEPALIVE", "65"))
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=os.getenv("UVICORN_RELOAD", "0") == "1",
        workers=workers,
        timeout_keep_alive=keepalive,
    )
