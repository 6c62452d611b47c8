"""
Serviço: Configuração do Gateway de Pagamento
escola_financeiro/services/gateway_config.py

Lê o registro "finance_gateway_config" de app_settings e o normaliza
num único formato (GatewayConfig). O valor pode estar gravado como objeto,
como string JSON ou duplamente codificado.

Os serviços recebem a configuração já resolvida por um GatewayConfigProvider.
"""

import json
import logging
from typing import Any, Optional, Protocol

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from escola_financeiro.config import GATEWAY_CONFIG_KEY
from escola_financeiro.models import AppSetting
from escola_financeiro.schemas import GatewayConfig
from escola_financeiro.services.errors import GatewayConfigError

logger = logging.getLogger(__name__)

# Limite de decodificações para valores gravados como string de string
_MAX_DECODE = 3


def parse_setting_value(raw: Any) -> Optional[dict]:
    """
    Normaliza o valor de um app_setting para dict.

    parse_setting_value('{"a": 1}')        → {"a": 1}
    parse_setting_value('"{\\"a\\": 1}"')  → {"a": 1}
    parse_setting_value({"a": 1})          → {"a": 1}
    """
    value = raw
    for _ in range(_MAX_DECODE):
        if not isinstance(value, str):
            break
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Valor de configuração com JSON inválido, ignorando")
            return None
    if isinstance(value, dict):
        return value
    return None


def read_setting(db: Session, key: str) -> Optional[dict]:
    row = db.query(AppSetting).filter(AppSetting.key == key).first()
    if not row or row.value is None:
        return None
    return parse_setting_value(row.value)


def write_setting(db: Session, key: str, value: dict) -> None:
    """Grava sempre o objeto canônico (uma única codificação)."""
    row = db.query(AppSetting).filter(AppSetting.key == key).first()
    if row:
        row.value = value
    else:
        db.add(AppSetting(key=key, value=value))
    db.commit()


# ══════════════════════════════════════════════════════════
# PROVEDORES
# ══════════════════════════════════════════════════════════

class GatewayConfigProvider(Protocol):
    def get(self) -> Optional[GatewayConfig]:
        ...


class DatabaseGatewayConfigProvider:
    """Lê a configuração de app_settings a cada chamada."""

    def __init__(self, db: Session):
        self.db = db

    def get(self) -> Optional[GatewayConfig]:
        data = read_setting(self.db, GATEWAY_CONFIG_KEY)
        if data is None:
            return None
        try:
            return GatewayConfig.model_validate(data)
        except PydanticValidationError as e:
            logger.warning(f"finance_gateway_config inválida: {e}")
            return None


class StaticGatewayConfigProvider:
    def __init__(self, config: Optional[GatewayConfig]):
        self.config = config

    def get(self) -> Optional[GatewayConfig]:
        return self.config


def require_asaas(config: Optional[GatewayConfig]) -> GatewayConfig:
    """Garante provider=asaas com API key; senão GatewayConfigError."""
    if config is None:
        raise GatewayConfigError("Gateway de pagamento não configurado.")
    if not config.is_asaas or not config.api_key:
        raise GatewayConfigError("Provedor Asaas não está ativo ou sem API Key.")
    return config


def mask_api_key(api_key: str) -> str:
    if not api_key:
        return ""
    return "****" + api_key[-4:]
