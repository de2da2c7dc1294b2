from __future__ import annotations

import logging
from datetime import date, datetime, time

from sqlalchemy import and_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .auth_models import RuoloUtente, Utente
from .calendario import is_slot_valido, slot_occupato_db
from .db import Base, db_session, engine
from .errori import ConflittoSlot, ErroreValidazione, NonTrovato, TransizioneNonValida
from .models import Appuntamento, Paziente, RegistroTrattamento, StatoAppuntamento

logger = logging.getLogger(__name__)


# =========================
# Bootstrap DB
# =========================
def init_db() -> None:
    """Crea le tabelle se non esistono."""
    # registra gli hook del change feed prima di qualunque sessione
    from . import realtime  # noqa: F401

    Base.metadata.create_all(bind=engine)


# =========================
# CRUD base
# =========================
def crea_paziente(
    nome: str, telefono: str = "", eta: int | None = None, condizioni: str | None = None
) -> str:
    nome = (nome or "").strip()
    if not nome:
        raise ErroreValidazione("Il nome del paziente è obbligatorio.")
    with db_session() as s:
        p = Paziente(name=nome, telephone=(telefono or "").strip(), age=eta, health_condition=condizioni)
        s.add(p)
        s.flush()
        return p.id


def registra_trattamento(
    paziente_id: str,
    medico_id: str,
    giorno: date,
    trattamento: str,
    dente: str = "",
    note: str | None = None,
) -> str:
    """Nuova voce del registro interventi (per dente)."""
    if not paziente_id or not medico_id or giorno is None or not (trattamento or "").strip():
        raise ErroreValidazione("Paziente, medico, data e trattamento sono obbligatori.")
    with db_session() as s:
        _paziente(s, paziente_id)
        _medico(s, medico_id)
        log = RegistroTrattamento(
            patient_id=paziente_id,
            doctor_id=medico_id,
            data_trattamento=giorno,
            tooth_number=dente or "",
            treatment=trattamento.strip(),
            notes=note,
        )
        s.add(log)
        s.flush()
        return log.id


# =========================
# Query utili
# =========================
def lista_medici_flat() -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Utente.id, Utente.full_name, Utente.email)
            .where(and_(Utente.role == RuoloUtente.MEDICO, Utente.is_active.is_(True)))
            .order_by(Utente.full_name)
        ).all()
        return [{"id": r.id, "full_name": r.full_name, "email": r.email} for r in rows]


def lista_pazienti_flat() -> list[dict]:
    with db_session() as s:
        rows = s.execute(
            select(Paziente.id, Paziente.name, Paziente.telephone, Paziente.age).order_by(Paziente.name)
        ).all()
        return [{"id": r.id, "name": r.name, "telephone": r.telephone, "age": r.age} for r in rows]


def agenda_giornaliera_flat(medico_id: str, giorno: date) -> list[dict]:
    """
    Versione 'flat': ritorna dict serializzabili.
    Include anche gli annullati (lo stato lo decide la UI).
    """
    with db_session() as s:
        q = (
            select(
                Appuntamento.id,
                Appuntamento.appointment_time,
                Appuntamento.treatment,
                Appuntamento.tooth,
                Appuntamento.status,
                Appuntamento.notes,
                Paziente.name.label("patient_name"),
            )
            .join(Paziente, Paziente.id == Appuntamento.patient_id)
            .where(and_(Appuntamento.doctor_id == medico_id, Appuntamento.appointment_date == giorno))
            .order_by(Appuntamento.appointment_time.asc())
        )

        rows = s.execute(q).all()
        return [
            {
                "id": r.id,
                "time": r.appointment_time.strftime("%H:%M"),
                "patient_name": r.patient_name,
                "treatment": r.treatment,
                "tooth": r.tooth,
                "status": r.status.value,
                "notes": r.notes,
            }
            for r in rows
        ]


# =========================
# Helper
# =========================
def _paziente(s: Session, paziente_id: str) -> Paziente:
    p = s.get(Paziente, paziente_id)
    if p is None:
        raise NonTrovato("Paziente", paziente_id)
    return p


def _medico(s: Session, medico_id: str) -> Utente:
    m = s.get(Utente, medico_id)
    if m is None or m.role != RuoloUtente.MEDICO or not m.is_active:
        raise NonTrovato("Medico", medico_id)
    return m


def _appuntamento(s: Session, appuntamento_id: str) -> Appuntamento:
    a = s.get(Appuntamento, appuntamento_id)
    if a is None:
        raise NonTrovato("Appuntamento", appuntamento_id)
    return a


def _valida_slot(giorno: date | None, ora: time | None) -> None:
    if giorno is None or ora is None:
        raise ErroreValidazione("Data e ora sono obbligatorie.")
    if not is_slot_valido(ora):
        raise ErroreValidazione(f"L'orario {ora.isoformat()} non appartiene alla griglia degli slot.")


def _e_conflitto_slot(err: IntegrityError) -> bool:
    msg = str(err.orig).lower()
    return "uq_appointments_slot_attivo" in msg or "appointments.doctor_id" in msg


# =========================
# Prenotazione (use case core)
# =========================
def prenota_appuntamento(
    paziente_id: str,
    medico_id: str,
    giorno: date,
    ora: time,
    trattamento: str,
    dente: str | None = None,
    note: str | None = None,
) -> Appuntamento:
    """
    Use case: Prenotare appuntamento.
    - Valida campi obbligatori e appartenenza dell'ora alla griglia
    - Verifica paziente e medico
    - Ricontrolla l'occupazione nella stessa transazione dell'insert;
      l'indice univoco parziale fa da arbitro finale tra prenotazioni concorrenti
    """
    if not paziente_id or not medico_id or not (trattamento or "").strip():
        raise ErroreValidazione("Paziente, medico e trattamento sono obbligatori.")
    _valida_slot(giorno, ora)

    try:
        with db_session() as s:
            _paziente(s, paziente_id)
            _medico(s, medico_id)

            if slot_occupato_db(s, giorno, medico_id, ora):
                raise ConflittoSlot(medico_id, giorno, ora)

            app = Appuntamento(
                patient_id=paziente_id,
                doctor_id=medico_id,
                appointment_date=giorno,
                appointment_time=ora,
                treatment=trattamento.strip(),
                tooth=dente or None,
                notes=note,
                status=StatoAppuntamento.PROGRAMMATO,
            )
            s.add(app)
            s.flush()
    except IntegrityError as e:
        if _e_conflitto_slot(e):
            logger.info("Prenotazione concorrente respinta: %s %s medico %s", giorno, ora, medico_id)
            raise ConflittoSlot(medico_id, giorno, ora) from e
        raise

    logger.info("Appuntamento %s prenotato: %s %s medico %s", app.id, giorno, ora.strftime("%H:%M"), medico_id)
    return app


# =========================
# Stati
# =========================
TRANSIZIONI: dict[StatoAppuntamento, frozenset[StatoAppuntamento]] = {
    StatoAppuntamento.PROGRAMMATO: frozenset({StatoAppuntamento.COMPLETATO, StatoAppuntamento.ANNULLATO}),
    StatoAppuntamento.COMPLETATO: frozenset(),
    StatoAppuntamento.ANNULLATO: frozenset(),
}


def _stato(valore: StatoAppuntamento | str) -> StatoAppuntamento:
    if isinstance(valore, StatoAppuntamento):
        return valore
    try:
        return StatoAppuntamento(valore)
    except ValueError:
        raise ErroreValidazione(f"Stato sconosciuto: {valore!r}") from None


def imposta_stato(appuntamento_id: str, nuovo_stato: StatoAppuntamento | str) -> Appuntamento:
    """
    Use case: cambio di stato.
    - scheduled -> completed | cancelled, gli stati finali non si lasciano
    - update condizionato sullo stato letto: due transizioni concorrenti non vincono entrambe
    - annullare libera lo slot (l'occupazione è una query live)
    - il registro trattamenti non si tocca: lo compila il medico a parte
    """
    nuovo = _stato(nuovo_stato)

    with db_session() as s:
        app = _appuntamento(s, appuntamento_id)
        attuale = app.status
        if nuovo not in TRANSIZIONI[attuale]:
            raise TransizioneNonValida(attuale, nuovo)

        res = s.execute(
            update(Appuntamento)
            .where(and_(Appuntamento.id == appuntamento_id, Appuntamento.status == attuale))
            .values(status=nuovo, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            s.refresh(app)
            raise TransizioneNonValida(app.status, nuovo)

        s.flush()
        s.refresh(app)

    logger.info("Appuntamento %s: %s -> %s", appuntamento_id, attuale.value, nuovo.value)
    return app


def annulla_appuntamento(appuntamento_id: str) -> Appuntamento:
    return imposta_stato(appuntamento_id, StatoAppuntamento.ANNULLATO)


def completa_appuntamento(appuntamento_id: str) -> Appuntamento:
    return imposta_stato(appuntamento_id, StatoAppuntamento.COMPLETATO)


# =========================
# Spostamento (drag & drop da calendario)
# =========================
def sposta_appuntamento(appuntamento_id: str, nuovo_giorno: date, nuova_ora: time) -> Appuntamento:
    """
    Use case: spostare un appuntamento su un altro slot (qualunque stato).
    Stesse regole della prenotazione sul nuovo slot, escluso l'appuntamento stesso.
    Cambiano solo data/ora/updated_at, lo stato resta quello che era;
    in caso di errore l'appuntamento resta dov'era.
    """
    _valida_slot(nuovo_giorno, nuova_ora)

    try:
        with db_session() as s:
            app = _appuntamento(s, appuntamento_id)
            if slot_occupato_db(s, nuovo_giorno, app.doctor_id, nuova_ora, escludi_id=app.id):
                raise ConflittoSlot(app.doctor_id, nuovo_giorno, nuova_ora)

            origine = (app.appointment_date, app.appointment_time)
            app.appointment_date = nuovo_giorno
            app.appointment_time = nuova_ora
            app.updated_at = datetime.utcnow()
            s.flush()
    except IntegrityError as e:
        if _e_conflitto_slot(e):
            raise ConflittoSlot(app.doctor_id, nuovo_giorno, nuova_ora) from e
        raise

    logger.info(
        "Appuntamento %s spostato da %s %s a %s %s",
        appuntamento_id, origine[0], origine[1].strftime("%H:%M"), nuovo_giorno, nuova_ora.strftime("%H:%M"),
    )
    return app
