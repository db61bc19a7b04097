from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
import logging
from contextlib import asynccontextmanager

from app.api.health import router as health_router
from app.api.v1.endpoints.auth import router as auth_router
from app.api.v1.endpoints.documents import router as documents_router
from app.api.v1.deps import limiter
from app.core.config import settings
from app.core.errors import register_exception_handlers
from app.core.logging import configure_logging
from app.db.init_db import init_db
from app.db.migrations import run_migrations
from app.services.verification_client import VerificationGatewayClient

from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

configure_logging()
logger = logging.getLogger(__name__)

# Definir gerenciador de contexto para lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.RUN_MIGRATIONS:
        try:
            await run_migrations()
        except Exception as e:
            logger.error(f"Falha ao aplicar migrações: {e}")
            raise
    
    await init_db()
    
    # Credenciais da API de verificação são lidas uma única vez
    app.state.verification_client = VerificationGatewayClient.from_settings(settings)
    logger.info("Cliente da API de verificação inicializado")
    yield
    await app.state.verification_client.aclose()

# Inicialização do aplicativo
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="API do portal de envio e verificação de documentos de candidatos",
    version="1.0.0",
    lifespan=lifespan,
)

# Configuração do limiter
app.state.limiter = limiter

@app.exception_handler(RateLimitExceeded)
async def rate_limit_exceeded_handler(request, exc):
    return JSONResponse(
        status_code=429,
        content={"detail": "Limite de requisições excedido. Tente novamente mais tarde.", "code": "RATE_LIMITED"},
    )

register_exception_handlers(app)

app.add_middleware(SlowAPIMiddleware)

# Configuração CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Inclusão das rotas
app.include_router(health_router, tags=["Health"])
app.include_router(auth_router, prefix=settings.API_V1_STR, tags=["Autenticação"])
app.include_router(documents_router, prefix=settings.API_V1_STR, tags=["Documentos"])

# Configuração do Prometheus (métricas)
if settings.ENABLE_PROMETHEUS:
    instrumentator = Instrumentator()
    instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    
    # Métricas personalizadas
    from prometheus_client import Counter, Histogram
    import time
    
    # Contador de requisições por endpoint
    REQUESTS_COUNTER = Counter(
        "verification_portal_requests_total",
        "Total de requisições por endpoint",
        ["endpoint", "method", "status_code"]
    )
    
    # Histograma de tempo de resposta
    RESPONSE_TIME = Histogram(
        "verification_portal_response_time_seconds",
        "Tempo de resposta em segundos",
        ["endpoint", "method"]
    )
    
    @app.middleware("http")
    async def add_metrics(request, call_next):
        start_time = time.time()
        response = await call_next(request)
        
        # Usa o template da rota para não criar uma série por id de documento
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)
        method = request.method
        
        REQUESTS_COUNTER.labels(endpoint=endpoint, method=method, status_code=response.status_code).inc()
        RESPONSE_TIME.labels(endpoint=endpoint, method=method).observe(time.time() - start_time)
        
        return response
