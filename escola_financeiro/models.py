import enum
import uuid

from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, Date, Text, Numeric,
    ForeignKey, Index, JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from escola_financeiro.database import Base

# JSONB no Postgres, JSON genérico no SQLite (tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


# --- ENUMS ---
class InstallmentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class NegotiationType(str, enum.Enum):
    DISCOUNT = "discount"
    SURCHARGE = "surcharge"


class PaymentMethod(str, enum.Enum):
    PIX = "pix"
    BOLETO = "boleto"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    CASH = "cash"
    TRANSFER = "transfer"
    BULK_MANUAL = "bulk_manual"   # baixa em massa pela tela de recebíveis


# --- ACADÊMICO (somente o necessário para cobrança) ---
class Student(Base):
    __tablename__ = "students"
    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String, nullable=False)
    cpf = Column(String(20), nullable=True)

    # { "name", "cpf", "email", "phone" | "mobile" | "celular" | "whatsapp" }
    financial_responsible = Column(JSONType, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    enrollments = relationship("Enrollment", back_populates="student")


class Enrollment(Base):
    __tablename__ = "enrollments"
    id = Column(String(36), primary_key=True, default=_uuid)
    student_id = Column(String(36), ForeignKey("students.id"), nullable=True)
    candidate_name = Column(String, nullable=False)
    academic_year = Column(Integer, nullable=True)
    status = Column(String, default="approved")  # draft, pending, approved, rejected

    # Ficha da matrícula. Chaves documentadas em schemas.EnrollmentDetails
    details = Column(JSONType, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    student = relationship("Student", back_populates="enrollments")
    installments = relationship("Installment", back_populates="enrollment")


# --- FINANCEIRO ---
class Installment(Base):
    """Uma mensalidade (cobrança) de uma matrícula."""
    __tablename__ = "installments"
    __table_args__ = (
        Index("ix_installments_gateway_id", "gateway_integration_id"),
        Index("ix_installments_due_date", "due_date"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    enrollment_id = Column(String(36), ForeignKey("enrollments.id"), nullable=False)
    installment_number = Column(Integer, nullable=False, default=1)
    due_date = Column(Date, nullable=False)

    # Valores
    value = Column(Numeric(12, 2), nullable=False)            # valor a pagar hoje
    original_value = Column(Numeric(12, 2), nullable=True)    # capturado na 1a negociação
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    surcharge_value = Column(Numeric(12, 2), nullable=False, default=0)
    negotiation_type = Column(String(20), nullable=True)      # discount, surcharge
    negotiation_notes = Column(Text, nullable=True)
    negotiation_date = Column(DateTime(timezone=True), nullable=True)

    # Ciclo de vida
    status = Column(String(20), nullable=False, default=InstallmentStatus.PENDING.value)
    is_published = Column(Boolean, nullable=False, default=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)  # só com status=paid
    payment_method = Column(String(30), nullable=True)

    # Gateway (escrito apenas pela geração de cobrança)
    gateway_integration_id = Column(String(64), nullable=True)
    billing_url = Column(String, nullable=True)

    # "metadata" é reservado no declarative; atributo meta -> coluna metadata
    meta = Column("metadata", JSONType, default=dict)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    enrollment = relationship("Enrollment", back_populates="installments")


class AppSetting(Base):
    """Configurações chave/valor (finance_gateway_config, whatsapp_config, school_info)."""
    __tablename__ = "app_settings"
    key = Column(String(100), primary_key=True)
    value = Column(JSONType, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


# --- NOTIFICAÇÕES ---
class User(Base):
    """Espelho do usuário do provedor de autenticação."""
    __tablename__ = "users"
    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String, nullable=True)
    user_metadata = Column(JSONType, default=dict)  # phone, mobile, whatsapp, celular


class Notification(Base):
    __tablename__ = "notifications"
    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    type = Column(String(50), nullable=True)     # diary, financial, communication...
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    data = Column(JSONType, default=dict)        # student_id, override_phone
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class WppNotificationLog(Base):
    __tablename__ = "wpp_notification_logs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_id = Column(String(36), nullable=True)
    channel = Column(String(20), default="whatsapp")
    status = Column(String(20), nullable=False)  # sent, failed
    error_message = Column(Text, nullable=True)
    provider_response = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
