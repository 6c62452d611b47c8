"""
Dependências compartilhadas dos routers
escola_financeiro/dependencies.py

Configuração do gateway e fábricas de clientes HTTP entram via Depends
(substituíveis em app.dependency_overrides).
"""

from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from escola_financeiro.database import get_db
from escola_financeiro.schemas import GatewayConfig
from escola_financeiro.services.cobranca_detalhe import ChargeDetailService
from escola_financeiro.services.gateway_config import (
    DatabaseGatewayConfigProvider,
    GatewayConfigProvider,
)
from escola_financeiro.services.links_pagamento import AsaasFactory, default_asaas_factory
from escola_financeiro.services.whatsapp import EvolutionFactory, default_evolution_factory


def get_gateway_config_provider(db: Session = Depends(get_db)) -> GatewayConfigProvider:
    return DatabaseGatewayConfigProvider(db)


def get_gateway_config(
    provider: GatewayConfigProvider = Depends(get_gateway_config_provider),
) -> Optional[GatewayConfig]:
    return provider.get()


def get_asaas_factory() -> AsaasFactory:
    return default_asaas_factory


def get_evolution_factory() -> EvolutionFactory:
    return default_evolution_factory


def get_charge_service(
    db: Session = Depends(get_db),
    gateway_config: Optional[GatewayConfig] = Depends(get_gateway_config),
    asaas_factory: AsaasFactory = Depends(get_asaas_factory),
) -> ChargeDetailService:
    return ChargeDetailService(db, gateway_config, asaas_factory)
