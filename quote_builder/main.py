import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from quote_builder.api.v1.quote import router as quote_router
from quote_builder.core.config import settings
from quote_builder.wiring.dependencies import shutdown


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        extras = []
        for key in ("action", "context", "duration_ms", "attempt", "size", "path", "reason", "error"):
            value = getattr(record, key, None)
            if value not in (None, ""):
                extras.append(f"{key}={value}")
        base = super().format(record)
        if extras:
            return f"{base} | " + " ".join(extras)
        return base


handler = logging.StreamHandler()
handler.setFormatter(ContextFormatter("%(levelname)s:%(name)s:%(message)s"))

root = logging.getLogger()
root.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
root.handlers.clear()
root.addHandler(handler)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Flushes a pending debounced save and detaches the sync channel
    shutdown()


app = FastAPI(title="Quote Builder State Core", version="1.0.0", lifespan=lifespan)

app.include_router(quote_router, prefix="/api/v1/quote", tags=["quote"])


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
