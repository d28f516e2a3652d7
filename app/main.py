import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from app.core.config import settings
from app.core.exceptions import SettlementEngineError
from app.db.database import Base, engine
from app.api.v1.routes.splits import router as splits_router
from app.api.v1.routes.balances import router as balances_router
from app.api.v1.routes.settlements import router as settlements_router

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="Settle Service - Shared Expense Settlement",
    description="Splits expenses, aggregates balances and settles debts",
    version="1.0.0"
)

app.include_router(splits_router)
app.include_router(balances_router)
app.include_router(settlements_router)


@app.exception_handler(SettlementEngineError)
async def handle_engine_error(request: Request, exc: SettlementEngineError):
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
def read_root():
    return {"message": "Settle Service API", "version": "1.0.0"}

@app.get("/health")
def health_check():
    return {"status": "healthy"}
