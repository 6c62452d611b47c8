"""
Serviço: Cliente da API Asaas
escola_financeiro/services/asaas_client.py

Chamadas REST usadas pelas cobranças:
  GET    /customers?cpfCnpj=   → busca pagador
  POST   /customers            → cria pagador
  POST   /payments             → cria cobrança (BOLETO, que o Asaas também expõe como Pix)
  POST   /payments/{id}        → altera valor
  DELETE /payments/{id}        → cancela

Sem retry nem backoff: uma falha sobe como GatewayError.
"""

import logging
from decimal import Decimal
from datetime import date
from typing import Any, Dict, Optional

import httpx

from escola_financeiro.config import ASAAS_TIMEOUT
from escola_financeiro.schemas import GatewayConfig
from escola_financeiro.services.errors import GatewayError

logger = logging.getLogger(__name__)


def _error_description(data: Any) -> str:
    """Extrai a descrição que o Asaas devolve em {"errors": [{"description": ...}]}."""
    if isinstance(data, dict):
        errors = data.get("errors") or []
        if errors and isinstance(errors[0], dict):
            return errors[0].get("description") or "Erro desconhecido"
    return "Erro desconhecido"


class AsaasClient:
    """Cliente assíncrono do Asaas para uma configuração de gateway."""

    def __init__(self, config: GatewayConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.config.base_url,
            headers={
                "Content-Type": "application/json",
                "access_token": self.config.api_key,
            },
            timeout=ASAAS_TIMEOUT,
            transport=self.transport,
        )

    async def _request(self, method: str, path: str, context: str, **kwargs) -> Dict[str, Any]:
        try:
            async with self._client() as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException:
            raise GatewayError(f"{context}: timeout conectando ao Asaas")
        except httpx.RequestError as e:
            raise GatewayError(f"{context}: erro de conexão ({e})")

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            description = _error_description(data)
            logger.warning(f"Asaas {method} {path} → {response.status_code}: {description}")
            raise GatewayError(f"{context}: {description}")
        return data

    # ── Clientes ───────────────────────────────────────────

    async def find_customer_by_cpf(self, cpf: str) -> Optional[str]:
        data = await self._request(
            "GET", "/customers", "Erro buscar cliente Asaas", params={"cpfCnpj": cpf}
        )
        found = data.get("data") or []
        if found:
            return found[0].get("id")
        return None

    async def create_customer(self, name: str, cpf: str, email: str) -> str:
        data = await self._request(
            "POST", "/customers", "Erro criar cliente Asaas",
            json={
                "name": name,
                "cpfCnpj": cpf,
                "email": email,
                "notificationDisabled": False,
            },
        )
        return data["id"]

    async def get_or_create_customer(self, name: str, cpf: str, email: str) -> str:
        customer_id = await self.find_customer_by_cpf(cpf)
        if customer_id:
            return customer_id
        logger.info(f"Criando cliente Asaas para CPF final {cpf[-4:]}")
        return await self.create_customer(name, cpf, email)

    # ── Cobranças ──────────────────────────────────────────

    async def create_payment(
        self,
        customer_id: str,
        value: Decimal,
        due_date: date,
        description: str,
        external_reference: str,
    ) -> Dict[str, Any]:
        return await self._request(
            "POST", "/payments", "Erro Asaas",
            json={
                "customer": customer_id,
                "billingType": "BOLETO",
                "value": float(value),
                "dueDate": due_date.isoformat(),
                "description": description,
                "externalReference": external_reference,
            },
        )

    async def update_payment_value(self, payment_id: str, value: Decimal) -> Dict[str, Any]:
        return await self._request(
            "POST", f"/payments/{payment_id}", "Erro ao atualizar valor no Asaas",
            json={"value": float(value)},
        )

    async def cancel_payment(self, payment_id: str) -> Dict[str, Any]:
        return await self._request(
            "DELETE", f"/payments/{payment_id}", "Erro ao cancelar no Asaas"
        )
