"""
Serviço: Envio de notificações por WhatsApp (Evolution API)
escola_financeiro/services/whatsapp.py

Disparado na inserção de uma notificação. Fluxo:
  1. Lê whatsapp_config e school_info de app_settings
  2. Verifica se o canal (tipo da notificação) está habilitado
  3. Resolve o telefone: override de teste → metadados do usuário
     → responsável financeiro do aluno (data.student_id)
  4. Envia o texto para {url}/message/sendText/{instance}
  5. Registra sent/failed em wpp_notification_logs

Também lê/grava whatsapp_config para a tela de comunicação e dispara
o envio de teste (notificação com override_phone).
"""

import logging
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
from sqlalchemy.orm import Session

from escola_financeiro.config import EVOLUTION_TIMEOUT, SCHOOL_INFO_KEY, WHATSAPP_CONFIG_KEY
from escola_financeiro.models import Notification, Student, User, WppNotificationLog
from escola_financeiro.schemas import WhatsAppConfig, WhatsAppConfigIn, WhatsAppTestIn
from escola_financeiro.services.errors import NotFoundError, ValidationError
from escola_financeiro.services.gateway_config import read_setting, write_setting
from escola_financeiro.services.resolvers import (
    PHONE_KEYS_RESPONSIBLE,
    PHONE_KEYS_USER,
    normalize_br_phone,
    only_digits,
    phone_from_mapping,
    resolve_first,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADER = "Escola V2 Informa"
DEFAULT_CHANNEL = "diary"
DEFAULT_ENABLED_CHANNELS = {"finance": True, "diary": False, "occurrence": True}
TEST_TITLE = "Teste de Notificação"
TEST_MESSAGE = "Olá! Esta é uma mensagem de teste do WhatsApp da escola."


class EvolutionClient:

    def __init__(self, config: WhatsAppConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    async def send_text(self, number: str, text: str) -> Tuple[int, Dict[str, Any]]:
        url = f"{self.config.url.rstrip('/')}/message/sendText/{self.config.instance}"
        payload = {
            "number": number,
            "text": text,
            "delay": 1200,
            "linkPreview": True,
        }
        async with httpx.AsyncClient(timeout=EVOLUTION_TIMEOUT, transport=self.transport) as client:
            response = await client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json", "apikey": self.config.apikey},
            )
        try:
            result = response.json()
        except ValueError:
            result = {"error": "Invalid JSON response from Evolution", "status": response.status_code}
        return response.status_code, result


EvolutionFactory = Callable[[WhatsAppConfig], EvolutionClient]


def default_evolution_factory(config: WhatsAppConfig) -> EvolutionClient:
    return EvolutionClient(config)


# ══════════════════════════════════════════════════════════
# TELEFONE DO DESTINATÁRIO
# ══════════════════════════════════════════════════════════

class PhoneLookup:
    """Contexto da notificação para os resolvers de telefone."""

    def __init__(self, db: Session, record: dict):
        self.db = db
        self.record = record
        self.data = record.get("data") or {}

    def override(self) -> Optional[str]:
        phone = self.data.get("override_phone")
        if phone:
            logger.info("Usando telefone de override (teste manual)")
        return phone

    def from_user(self) -> Optional[str]:
        user = self.db.query(User).filter(User.id == self.record.get("user_id")).first()
        if not user:
            return None
        return phone_from_mapping(user.user_metadata, PHONE_KEYS_USER)

    def from_enrollment(self) -> Optional[str]:
        student_id = self.data.get("student_id")
        if not student_id:
            return None
        student = self.db.query(Student).filter(Student.id == student_id).first()
        if not student:
            return None
        phone = phone_from_mapping(student.financial_responsible, PHONE_KEYS_RESPONSIBLE)
        if phone:
            logger.info(f"Telefone encontrado na matrícula do aluno {student_id}")
        return phone


PHONE_RESOLVERS = [
    PhoneLookup.override,
    PhoneLookup.from_user,
    PhoneLookup.from_enrollment,
]


def resolve_phone(db: Session, record: dict) -> Optional[str]:
    raw = resolve_first(PHONE_RESOLVERS, PhoneLookup(db, record))
    return normalize_br_phone(raw) if raw else None


def format_message(header: str, title: str, message: str) -> str:
    return f"📢 *{header}*\n\n*{title}*\n{message}"


def _log(db: Session, notification_id, status: str, error: Optional[str] = None, response=None) -> None:
    db.add(WppNotificationLog(
        notification_id=notification_id,
        channel="whatsapp",
        status=status,
        error_message=error,
        provider_response=response,
    ))
    db.commit()


# ══════════════════════════════════════════════════════════
# ENVIO
# ══════════════════════════════════════════════════════════

async def enviar_notificacao(
    db: Session,
    payload: Any,
    evolution_factory: EvolutionFactory = default_evolution_factory,
) -> Tuple[int, dict]:
    record = payload.get("record") if isinstance(payload, dict) else None
    if not isinstance(record, dict) or not record.get("user_id") or not record.get("message"):
        logger.warning("Payload inválido: esperado registro de notificação")
        return 400, {"error": "Payload inválido. Esperado registro de notificação."}

    notification_id = record.get("id")
    logger.info(f"Processando notificação {notification_id} para User {record['user_id']}")

    wpp_config = WhatsAppConfig.model_validate(read_setting(db, WHATSAPP_CONFIG_KEY) or {})
    school_info = read_setting(db, SCHOOL_INFO_KEY) or {}

    if not wpp_config.is_complete():
        logger.error("Configuração WhatsApp incompleta")
        return 500, {"error": "Configuração WhatsApp incompleta."}

    channel = record.get("type") or DEFAULT_CHANNEL
    if wpp_config.enabled_channels.get(channel) is False:
        logger.info(f"Canal '{channel}' desabilitado. Cancelando envio.")
        return 200, {"message": "Canal desabilitado."}

    phone = resolve_phone(db, record)
    if not phone:
        logger.error(f"Telefone não encontrado para o usuário {record['user_id']}")
        _log(db, notification_id, "failed", "Telefone não encontrado para o usuário")
        return 400, {"error": "Telefone não encontrado."}

    text = format_message(
        school_info.get("name") or DEFAULT_HEADER,
        record.get("title") or "",
        record["message"],
    )

    logger.info(f"Enviando WhatsApp para ...{phone[-4:]} via instância {wpp_config.instance}")
    client = evolution_factory(wpp_config)
    try:
        status_code, result = await client.send_text(phone, text)
    except httpx.RequestError as e:
        logger.error(f"Erro de conexão com Evolution API: {e}")
        _log(db, notification_id, "failed", f"Erro de conexão: {e}")
        return 502, {"status": "failed", "error": f"Erro de conexão: {e}"}

    ok = 200 <= status_code < 300
    key = result.get("key") if isinstance(result, dict) else None
    message_key = (result.get("message") or {}) if isinstance(result, dict) else {}
    delivered = ok and (
        (isinstance(key, dict) and key.get("id"))
        or (isinstance(message_key, dict) and message_key.get("key"))
    )
    status = "sent" if delivered else "failed"

    _log(db, notification_id, status, None if ok else f"HTTP {status_code}", result)
    logger.info(f"Notificação {notification_id}: {status}")

    return (200 if delivered else 502), {
        "status": status,
        "notification_id": notification_id,
        "provider_response": result,
    }


# ══════════════════════════════════════════════════════════
# CONFIGURAÇÃO (admin)
# ══════════════════════════════════════════════════════════

def ler_configuracao(db: Session) -> WhatsAppConfig:
    """whatsapp_config gravado, com os canais padrão por baixo."""
    stored = WhatsAppConfig.model_validate(read_setting(db, WHATSAPP_CONFIG_KEY) or {})
    channels = {**DEFAULT_ENABLED_CHANNELS, **stored.enabled_channels}
    return stored.model_copy(update={"enabled_channels": channels})


def salvar_configuracao(db: Session, body: WhatsAppConfigIn) -> WhatsAppConfig:
    atual = ler_configuracao(db)
    cfg = WhatsAppConfig(
        url=body.url or atual.url,
        apikey=body.apikey or atual.apikey,
        instance=body.instance or atual.instance,
        enabled_channels={**atual.enabled_channels, **body.enabled_channels},
    )
    write_setting(db, WHATSAPP_CONFIG_KEY, cfg.model_dump())
    logger.info(f"Configuração WhatsApp atualizada (instância {cfg.instance})")
    return cfg


async def enviar_teste(
    db: Session,
    body: WhatsAppTestIn,
    evolution_factory: EvolutionFactory = default_evolution_factory,
) -> Tuple[int, dict]:
    if not db.query(User).filter(User.id == body.user_id).first():
        raise NotFoundError("Usuário não encontrado.")
    if not only_digits(body.phone):
        raise ValidationError("Telefone de teste inválido.")

    notificacao = Notification(
        user_id=body.user_id,
        type=body.channel,
        title=TEST_TITLE,
        message=body.message or TEST_MESSAGE,
        data={"override_phone": body.phone},
    )
    db.add(notificacao)
    db.commit()
    logger.info(f"Notificação de teste {notificacao.id} criada no canal '{body.channel}'")

    record = {
        "id": notificacao.id,
        "user_id": notificacao.user_id,
        "type": notificacao.type,
        "title": notificacao.title,
        "message": notificacao.message,
        "data": notificacao.data,
    }
    return await enviar_notificacao(db, {"record": record}, evolution_factory)
