from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from backend.db import Base


def new_uuid() -> str:
    return str(uuid.uuid4())


class RuoloUtente(enum.Enum):
    MEDICO = "doctor"
    RECEPTION = "receptionist"
    ADMIN = "admin"


class Utente(Base):
    """
    Utente dello staff (profilo + credenziali).
    - username univoco
    - password_hash con bcrypt (passlib)
    - role: i promemoria di follow-up vanno a tutti i 'doctor' attivi
    """
    __tablename__ = "utenti"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    username: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    full_name: Mapped[str] = mapped_column(String(160), nullable=False, default="")
    email: Mapped[str | None] = mapped_column(String(120), nullable=True)
    role: Mapped[RuoloUtente] = mapped_column(
        Enum(RuoloUtente, values_callable=lambda e: [m.value for m in e], native_enum=False, length=20),
        default=RuoloUtente.RECEPTION,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"Utente({self.username}, {self.role.value})"
