from __future__ import annotations

from sqlalchemy import select

from .auth_models import RuoloUtente, Utente
from .auth_security import hash_password
from .db import db_session
from .models import Paziente


def seed_base() -> None:
    """
    Popola dati minimi (idempotente):
    - staff (medici + reception)
    - pazienti demo
    """
    with db_session() as s:
        # Staff: username, nome completo, ruolo, email
        staff = [
            ("rossi", "Dott. Mario Rossi", RuoloUtente.MEDICO, "m.rossi@studio.local"),
            ("bianchi", "Dott.ssa Laura Bianchi", RuoloUtente.MEDICO, "l.bianchi@studio.local"),
            ("reception", "Reception", RuoloUtente.RECEPTION, None),
        ]
        for username, nome, ruolo, email in staff:
            if s.execute(select(Utente).where(Utente.username == username)).scalar_one_or_none() is None:
                s.add(
                    Utente(
                        username=username,
                        password_hash=hash_password("studio"),
                        full_name=nome,
                        role=ruolo,
                        email=email,
                    )
                )

        # Pazienti
        pazienti = [
            ("Giulia Verdi", "3331112222", 34),
            ("Paolo Neri", "3334445555", 58),
        ]
        for nome, telefono, eta in pazienti:
            if s.execute(select(Paziente).where(Paziente.name == nome)).scalar_one_or_none() is None:
                s.add(Paziente(name=nome, telephone=telefono, age=eta))
