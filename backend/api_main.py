from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime, time
from typing import Any

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from pydantic import BaseModel, ConfigDict, Field

from backend.auth_models import RuoloUtente, Utente
from backend.auth_security import crea_token, utente_da_token
from backend.auth_service import autentica, crea_utente, utente_attivo
from backend.calendario import slot_disponibili
from backend.config import CRON_SECRET, LIMITE_NOTIFICHE, configura_logging
from backend.errori import ConflittoSlot, ErroreValidazione, NonTrovato, TransizioneNonValida
from backend.messaggi import (
    conta_messaggi_non_letti,
    invia_messaggio,
    iscrivi_messaggi,
    lista_messaggi,
    segna_messaggio_letto,
)
from backend.models import StatoAppuntamento
from backend.notifiche import (
    conta_non_lette,
    elimina_notifica,
    iscrivi_notifiche,
    lista_notifiche,
    segna_letta,
    segna_tutte_lette,
)
from backend.promemoria import esegui_promemoria
from backend.realtime import Iscrizione
from backend.seed import seed_base
from backend.services import (
    agenda_giornaliera_flat,
    crea_paziente,
    imposta_stato,
    init_db,
    lista_medici_flat,
    lista_pazienti_flat,
    prenota_appuntamento,
    registra_trattamento,
    sposta_appuntamento,
)

logger = logging.getLogger(__name__)

# OAuth2 Bearer (Authorization: Bearer <token>)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

app = FastAPI(title="Studio Dentistico API", version="1.0.0")



# Startup

@app.on_event("startup")
def startup() -> None:
    # Logging, tabelle e seed base (idempotente)
    configura_logging()
    init_db()
    seed_base()



# Errori di dominio -> HTTP

def _errore(status_code: int):
    async def handler(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"ok": False, "detail": str(exc)})
    return handler


app.add_exception_handler(ErroreValidazione, _errore(status.HTTP_422_UNPROCESSABLE_ENTITY))
app.add_exception_handler(NonTrovato, _errore(status.HTTP_404_NOT_FOUND))
app.add_exception_handler(ConflittoSlot, _errore(status.HTTP_409_CONFLICT))
app.add_exception_handler(TransizioneNonValida, _errore(status.HTTP_409_CONFLICT))



# Schemi Auth

class RegisterIn(BaseModel):
    username: str
    password: str
    full_name: str = ""
    role: RuoloUtente = RuoloUtente.RECEPTION
    email: str | None = None


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeOut(BaseModel):
    id: str
    username: str
    full_name: str
    role: RuoloUtente
    is_active: bool



# Schemi Domain

class PazienteCreateIn(BaseModel):
    name: str = Field(..., min_length=1)
    telephone: str = ""
    age: int | None = None
    health_condition: str | None = None


class AppuntamentoCreateIn(BaseModel):
    patient_id: str
    doctor_id: str
    appointment_date: date
    appointment_time: time
    treatment: str = Field(..., min_length=1)
    tooth: str | None = None
    notes: str | None = None


class AppuntamentoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    patient_id: str
    doctor_id: str
    appointment_date: date
    appointment_time: time
    treatment: str
    tooth: str | None
    notes: str | None
    status: StatoAppuntamento
    created_at: datetime
    updated_at: datetime


class StatoIn(BaseModel):
    status: str


class SpostaIn(BaseModel):
    appointment_date: date
    appointment_time: time


class TrattamentoIn(BaseModel):
    patient_id: str
    doctor_id: str
    data_trattamento: date = Field(..., alias="date")
    treatment: str = Field(..., min_length=1)
    tooth_number: str = ""
    notes: str | None = None


class MessaggioIn(BaseModel):
    to_user_id: str
    subject: str
    content: str
    patient_id: str | None = None
    appointment_id: str | None = None



# Dipendenze auth

def get_current_user(token: str = Depends(oauth2_scheme)) -> Utente:
    user_id = utente_da_token(token)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token non valido")

    u = utente_attivo(user_id)
    if u is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Utente non valido")
    return u



# AUTH endpoints

@app.post("/api/auth/register", response_model=dict)
def register(payload: RegisterIn) -> dict[str, Any]:
    user_id = crea_utente(payload.username, payload.password, payload.full_name, payload.role, payload.email)
    return {"ok": True, "user_id": user_id}


@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = autentica(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenziali non valide")

    token = crea_token(u.id, username=u.username, role=u.role.value)
    return TokenOut(access_token=token)


@app.get("/api/me", response_model=MeOut)
def me(user: Utente = Depends(get_current_user)) -> MeOut:
    return MeOut(id=user.id, username=user.username, full_name=user.full_name, role=user.role, is_active=user.is_active)



# Anagrafiche

@app.get("/api/medici")
def api_medici(user: Utente = Depends(get_current_user)) -> list[dict]:
    return lista_medici_flat()


@app.get("/api/pazienti")
def api_pazienti(user: Utente = Depends(get_current_user)) -> list[dict]:
    return lista_pazienti_flat()


@app.post("/api/pazienti")
def api_crea_paziente(payload: PazienteCreateIn, user: Utente = Depends(get_current_user)) -> dict[str, Any]:
    pid = crea_paziente(payload.name, payload.telephone, payload.age, payload.health_condition)
    return {"ok": True, "patient_id": pid}



# Agenda e prenotazioni

@app.get("/api/slot")
def api_slot(
    medico_id: str = Query(...),
    giorno: date = Query(...),
    user: Utente = Depends(get_current_user),
) -> list[dict]:
    return slot_disponibili(giorno, medico_id)


@app.get("/api/agenda")
def api_agenda(
    medico_id: str = Query(...),
    giorno: date = Query(...),
    user: Utente = Depends(get_current_user),
) -> list[dict]:
    return agenda_giornaliera_flat(medico_id, giorno)


@app.post("/api/appuntamenti", response_model=AppuntamentoOut, status_code=status.HTTP_201_CREATED)
def api_crea_appuntamento(payload: AppuntamentoCreateIn, user: Utente = Depends(get_current_user)):
    return prenota_appuntamento(
        paziente_id=payload.patient_id,
        medico_id=payload.doctor_id,
        giorno=payload.appointment_date,
        ora=payload.appointment_time,
        trattamento=payload.treatment,
        dente=payload.tooth,
        note=payload.notes,
    )


@app.patch("/api/appuntamenti/{appuntamento_id}/stato", response_model=AppuntamentoOut)
def api_stato_appuntamento(appuntamento_id: str, payload: StatoIn, user: Utente = Depends(get_current_user)):
    return imposta_stato(appuntamento_id, payload.status)


@app.patch("/api/appuntamenti/{appuntamento_id}/sposta", response_model=AppuntamentoOut)
def api_sposta_appuntamento(appuntamento_id: str, payload: SpostaIn, user: Utente = Depends(get_current_user)):
    return sposta_appuntamento(appuntamento_id, payload.appointment_date, payload.appointment_time)


@app.post("/api/trattamenti", status_code=status.HTTP_201_CREATED)
def api_registra_trattamento(payload: TrattamentoIn, user: Utente = Depends(get_current_user)) -> dict[str, Any]:
    tid = registra_trattamento(
        payload.patient_id, payload.doctor_id, payload.data_trattamento, payload.treatment, payload.tooth_number, payload.notes
    )
    return {"ok": True, "id": tid}



# Notifiche

@app.get("/api/notifiche")
def api_notifiche(limit: int = LIMITE_NOTIFICHE, user: Utente = Depends(get_current_user)) -> list[dict]:
    return lista_notifiche(user.id, limit=limit)


@app.get("/api/notifiche/non-lette")
def api_notifiche_non_lette(user: Utente = Depends(get_current_user)) -> dict[str, int]:
    return {"notifiche": conta_non_lette(user.id), "messaggi": conta_messaggi_non_letti(user.id)}


@app.post("/api/notifiche/lette")
def api_segna_tutte_lette(user: Utente = Depends(get_current_user)) -> dict[str, Any]:
    return {"ok": True, "aggiornate": segna_tutte_lette(user.id)}


@app.post("/api/notifiche/{notifica_id}/letta")
def api_segna_letta(notifica_id: str, user: Utente = Depends(get_current_user)) -> dict:
    return segna_letta(user.id, notifica_id)


@app.delete("/api/notifiche/{notifica_id}", status_code=status.HTTP_204_NO_CONTENT)
def api_elimina_notifica(notifica_id: str, user: Utente = Depends(get_current_user)) -> None:
    elimina_notifica(user.id, notifica_id)



# Posta interna

@app.get("/api/messaggi")
def api_messaggi(user: Utente = Depends(get_current_user)) -> list[dict]:
    return lista_messaggi(user.id)


@app.post("/api/messaggi", status_code=status.HTTP_201_CREATED)
def api_invia_messaggio(payload: MessaggioIn, user: Utente = Depends(get_current_user)) -> dict:
    return invia_messaggio(
        user.id, payload.to_user_id, payload.subject, payload.content, payload.patient_id, payload.appointment_id
    )


@app.post("/api/messaggi/{messaggio_id}/letto")
def api_messaggio_letto(messaggio_id: str, user: Utente = Depends(get_current_user)) -> dict:
    return segna_messaggio_letto(user.id, messaggio_id)



# Batch promemoria (cron)

@app.post("/api/promemoria/esegui")
def api_esegui_promemoria(x_cron_secret: str | None = Header(default=None)) -> JSONResponse:
    if CRON_SECRET and x_cron_secret != CRON_SECRET:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Secret non valido")

    esito = esegui_promemoria()
    return JSONResponse(status_code=200 if esito["success"] else 500, content=esito)



# Realtime (WebSocket)

async def _inoltra(websocket: WebSocket, iscrizione: Iscrizione) -> None:
    async for evento in iscrizione:
        await websocket.send_json(evento.as_dict())


async def _attendi_disconnessione(websocket: WebSocket) -> None:
    # il client non manda nulla di utile: serve solo a vedere la disconnessione
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass


async def _sessione_realtime(websocket: WebSocket, token: str | None, iscrivi) -> None:
    utente = await asyncio.to_thread(utente_attivo, utente_da_token(token))
    if utente is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    # iscrizione prima dell'accept: nessun evento perso tra handshake e ascolto
    iscrizione = iscrivi(utente.id)
    await websocket.accept()
    invio = asyncio.create_task(_inoltra(websocket, iscrizione))
    ascolto = asyncio.create_task(_attendi_disconnessione(websocket))
    try:
        # finisce il primo dei due: client disconnesso o invio fallito
        await asyncio.wait({invio, ascolto}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        iscrizione.chiudi()
        for compito in (invio, ascolto):
            compito.cancel()
        esiti = await asyncio.gather(invio, ascolto, return_exceptions=True)

    for esito in esiti:
        if isinstance(esito, Exception):
            logger.warning("WebSocket di %s chiuso per errore: %r", utente.id, esito)
    logger.debug("WebSocket chiuso per %s", utente.id)


@app.websocket("/ws/notifiche")
async def ws_notifiche(websocket: WebSocket, token: str | None = Query(None)) -> None:
    await _sessione_realtime(websocket, token, iscrivi_notifiche)


@app.websocket("/ws/messaggi")
async def ws_messaggi(websocket: WebSocket, token: str | None = Query(None)) -> None:
    await _sessione_realtime(websocket, token, iscrivi_messaggi)
