"""
FastAPI application for the progress query tester
"""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .config import Config, ExecutionLimits
from .database import create_query_pool, pool_health
from .query_tester import ProgressQueryTester
from .query_tester_routes import query_tester_router
from .secure_execution import ExecutionGateway

logging.basicConfig(
    level=Config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(title="Progress Query Tester API",
              description="Validation and sandboxed execution of achievement progress queries",
              version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=Config.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(query_tester_router)


@app.on_event("startup")
async def startup_event():
    """Validate configuration and open the shared connection pool"""
    Config.validate_config()
    pool = await create_query_pool()
    app.state.query_pool = pool
    app.state.query_tester = ProgressQueryTester(ExecutionGateway(pool), ExecutionLimits.from_config())
    logger.info(f"Progress query tester ready ({Config.ENVIRONMENT.value} environment)")


@app.on_event("shutdown")
async def shutdown_event():
    pool = getattr(app.state, "query_pool", None)
    if pool is not None:
        await pool.close()
        logger.info("Closed query connection pool")
    app.state.query_pool = None
    app.state.query_tester = None


@app.get("/health")
async def health_check(request: Request):
    pool = getattr(request.app.state, "query_pool", None)
    if pool is None:
        return {"status": "starting", "pool": None}
    return {"status": "ok", "pool": pool_health(pool)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("query_gateway.main:app", host=Config.HOST, port=Config.PORT)
