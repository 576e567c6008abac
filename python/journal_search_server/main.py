"""FastAPI server for journal-search."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from journal_search_server.api import embeddings, entries, search
from journal_search_server.config import settings
from journal_search_server.log_handler import get_memory_handler
from journal_search_server.services.chat import ChatService
from journal_search_server.services.database import Database
from journal_search_server.services.embedding_processor import \
    EmbeddingProcessor
from journal_search_server.services.embeddings import EmbeddingService

VERSION = "0.1.0"

# Set up logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Initialize memory log handler
memory_handler = get_memory_handler()
logger.info("journal-search server starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the shared services on startup and release them on shutdown."""
    logger.info("Server starting up...")
    app.state.db = Database(settings.db_path, settings.embedding_dimensions)
    app.state.embedding_service = EmbeddingService()
    app.state.chat_service = ChatService()
    app.state.embedding_processor = EmbeddingProcessor(
        app.state.db,
        app.state.embedding_service,
        concurrency=settings.embedding_concurrency)
    yield
    logger.info("Server shutting down, closing services...")
    try:
        await app.state.embedding_processor.close()
        await app.state.embedding_service.client.close()
        await app.state.chat_service.client.close()
    except Exception as e:
        logger.error(f"Error closing services: {e}")
    finally:
        app.state.db.close()


app = FastAPI(title="journal-search Server", version=VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(entries.router)
app.include_router(search.router)
app.include_router(embeddings.router)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request,
                                       exc: RequestValidationError):
    """Report invalid input as 400 with field-level errors."""
    return JSONResponse(status_code=400,
                        content={
                            "detail": "Invalid request parameters",
                            "errors": jsonable_encoder(exc.errors())
                        })


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok", "version": VERSION}


@app.get("/api/logs")
async def get_logs(lines: int = 10):
    """Get the last N lines of the server log."""
    logs = memory_handler.get_recent_logs(lines)
    return {"logs": logs, "count": len(logs)}


def run():
    """Run the server with uvicorn."""
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
