"""Main FastAPI application."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatbridge import __version__
from chatbridge.api.endpoints import router
from chatbridge.config import ConfigurationError
from chatbridge.utils.logging import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Chatbridge",
    description=(
        "Backend for an embeddable chat widget. Streams model replies over server-sent events "
        "and can pause a conversation to ask the business owner for input by SMS."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {
            "name": "Chat",
            "description": "Stream assistant replies and load stored conversation history.",
        },
        {
            "name": "SMS",
            "description": "Inbound Twilio webhook carrying the owner's replies.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# The widget is embedded on arbitrary sites
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.error(f"Chat service not configured: {exc}")
    return JSONResponse(status_code=500, content={"error": "Chat service not configured"})


app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("chatbridge.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
