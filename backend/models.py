from __future__ import annotations

import enum
from datetime import date, datetime, time
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .auth_models import RuoloUtente, Utente, new_uuid  # noqa: F401
from .db import Base


def _valori(enum_cls: type[enum.Enum]) -> list[str]:
    # salva il valore "wire" (es. 'scheduled'), non il nome del membro
    return [m.value for m in enum_cls]


class StatoAppuntamento(enum.Enum):
    PROGRAMMATO = "scheduled"
    COMPLETATO = "completed"
    ANNULLATO = "cancelled"


class TipoNotifica(enum.Enum):
    APPUNTAMENTO = "appointment"
    PROMEMORIA = "reminder"
    MESSAGGIO = "message"
    AVVISO = "warning"
    SUCCESSO = "success"


class Paziente(Base):
    __tablename__ = "patients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    telephone: Mapped[str] = mapped_column(String(30), nullable=False, default="")
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    health_condition: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    appuntamenti: Mapped[list["Appuntamento"]] = relationship(back_populates="paziente")
    trattamenti: Mapped[list["RegistroTrattamento"]] = relationship(back_populates="paziente")

    def __repr__(self) -> str:
        return f"Paziente({self.name})"


class Appuntamento(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # Un solo appuntamento non annullato per (medico, giorno, ora)
        Index(
            "uq_appointments_slot_attivo",
            "doctor_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)

    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"), nullable=False)
    doctor_id: Mapped[str] = mapped_column(ForeignKey("utenti.id"), nullable=False)

    appointment_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    appointment_time: Mapped[time] = mapped_column(Time, nullable=False)

    treatment: Mapped[str] = mapped_column(String(160), nullable=False)
    tooth: Mapped[str | None] = mapped_column(String(10), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[StatoAppuntamento] = mapped_column(
        Enum(StatoAppuntamento, values_callable=_valori, native_enum=False, length=20),
        default=StatoAppuntamento.PROGRAMMATO,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    paziente: Mapped["Paziente"] = relationship(back_populates="appuntamenti")
    medico: Mapped["Utente"] = relationship()

    def __repr__(self) -> str:
        return f"Appuntamento({self.appointment_date} {self.appointment_time:%H:%M}, {self.status.value})"


class RegistroTrattamento(Base):
    """Voce del registro interventi (per dente). Letto dai promemoria di follow-up."""
    __tablename__ = "surgery_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    patient_id: Mapped[str] = mapped_column(ForeignKey("patients.id"), nullable=False)
    doctor_id: Mapped[str] = mapped_column(ForeignKey("utenti.id"), nullable=False)

    data_trattamento: Mapped[date] = mapped_column("date", Date, nullable=False, index=True)
    tooth_number: Mapped[str] = mapped_column(String(10), nullable=False, default="")
    treatment: Mapped[str] = mapped_column(String(160), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    paziente: Mapped["Paziente"] = relationship(back_populates="trattamenti")


class Notifica(Base):
    __tablename__ = "notifications"
    # chiave su cui filtrano le iscrizioni realtime
    __realtime_chiave__ = "user_id"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("utenti.id"), nullable=False, index=True)

    type: Mapped[TipoNotifica] = mapped_column(
        Enum(TipoNotifica, values_callable=_valori, native_enum=False, length=20),
        default=TipoNotifica.AVVISO,
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "data": self.data,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class MessaggioInterno(Base):
    __tablename__ = "internal_messages"
    __realtime_chiave__ = "to_user_id"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    from_user_id: Mapped[str] = mapped_column(ForeignKey("utenti.id"), nullable=False, index=True)
    to_user_id: Mapped[str] = mapped_column(ForeignKey("utenti.id"), nullable=False, index=True)

    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    patient_id: Mapped[str | None] = mapped_column(ForeignKey("patients.id"), nullable=True)
    appointment_id: Mapped[str | None] = mapped_column(ForeignKey("appointments.id"), nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from_user_id": self.from_user_id,
            "to_user_id": self.to_user_id,
            "subject": self.subject,
            "content": self.content,
            "patient_id": self.patient_id,
            "appointment_id": self.appointment_id,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PromemoriaInviato(Base):
    """
    Watermark dei promemoria già emessi: (kind, reminder_key, user_id) è univoco,
    così un secondo giro del batch nello stesso giorno non duplica nulla.
    """
    __tablename__ = "reminder_watermarks"
    __table_args__ = (
        UniqueConstraint("kind", "reminder_key", "user_id", name="uq_watermark_kind_key_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    reminder_key: Mapped[str] = mapped_column(String(200), nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("utenti.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
