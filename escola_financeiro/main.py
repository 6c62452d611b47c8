import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from escola_financeiro.config import CORS_ORIGINS, LOG_LEVEL
from escola_financeiro.routers import admin_comunicacao, admin_gateway, cobrancas, funcoes, mensalidades
from escola_financeiro.services.errors import CobrancaError

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Escola Financeiro")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- ERROS ---
@app.exception_handler(CobrancaError)
async def cobranca_error_handler(request: Request, exc: CobrancaError):
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Erro de banco em {request.url.path}: {exc}", exc_info=True)
    return JSONResponse({"error": "Erro interno de banco de dados."}, status_code=500)


# --- ROTAS ---
app.include_router(cobrancas.router)
app.include_router(funcoes.router)
app.include_router(mensalidades.router)
app.include_router(mensalidades.portal_router)
app.include_router(admin_gateway.router)
app.include_router(admin_comunicacao.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
