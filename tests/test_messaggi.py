import asyncio
from datetime import date, time

import pytest

from backend.auth_models import Utente
from backend.db import db_session
from backend.errori import ErroreValidazione, NonTrovato
from backend.messaggi import (
    conta_messaggi_non_letti,
    invia_messaggio,
    iscrivi_messaggi,
    lista_messaggi,
    segna_messaggio_letto,
)
from backend.notifiche import iscrivi_notifiche
from backend.realtime import ContatoreNonLette
from backend.services import prenota_appuntamento


def test_invio_e_lista(medico, reception):
    m = invia_messaggio(reception, medico, "Paziente in ritardo", "Arriva alle 10:15")

    assert m["from_user_id"] == reception
    assert m["to_user_id"] == medico
    assert m["is_read"] is False
    # il messaggio compare sia a chi scrive sia a chi riceve
    assert [x["id"] for x in lista_messaggi(medico)] == [m["id"]]
    assert [x["id"] for x in lista_messaggi(reception)] == [m["id"]]


def test_lista_non_mostra_messaggi_altrui(medico, medico2, reception):
    invia_messaggio(reception, medico, "Oggetto", "Testo")
    assert lista_messaggi(medico2) == []


def test_riferimenti_a_paziente_e_appuntamento(medico, reception, paziente):
    app = prenota_appuntamento(paziente, medico, date(2024, 6, 10), time(9), "Igiene")

    m = invia_messaggio(reception, medico, "Igiene", "Chiede di anticipare", paziente_id=paziente, appuntamento_id=app.id)

    assert m["patient_id"] == paziente
    assert m["appointment_id"] == app.id


def test_contatore_e_lettura(medico, reception):
    m = invia_messaggio(reception, medico, "Oggetto", "Testo")
    assert conta_messaggi_non_letti(medico) == 1
    assert conta_messaggi_non_letti(reception) == 0

    assert segna_messaggio_letto(medico, m["id"])["is_read"] is True
    assert conta_messaggi_non_letti(medico) == 0


def test_solo_il_destinatario_segna_letto(medico, reception):
    m = invia_messaggio(reception, medico, "Oggetto", "Testo")
    with pytest.raises(NonTrovato):
        segna_messaggio_letto(reception, m["id"])


@pytest.mark.parametrize(
    "oggetto,contenuto",
    [("", "Testo"), ("Oggetto", ""), ("   ", "Testo")],
)
def test_campi_obbligatori(medico, reception, oggetto, contenuto):
    with pytest.raises(ErroreValidazione):
        invia_messaggio(reception, medico, oggetto, contenuto)


def test_niente_messaggi_a_se_stessi(medico):
    with pytest.raises(ErroreValidazione):
        invia_messaggio(medico, medico, "Oggetto", "Testo")


def test_destinatario_inesistente_o_disattivato(medico, reception):
    with pytest.raises(NonTrovato):
        invia_messaggio(reception, "non-esiste", "Oggetto", "Testo")

    with db_session() as s:
        s.get(Utente, medico).is_active = False
    with pytest.raises(NonTrovato):
        invia_messaggio(reception, medico, "Oggetto", "Testo")


def test_paziente_inesistente(medico, reception):
    with pytest.raises(NonTrovato):
        invia_messaggio(reception, medico, "Oggetto", "Testo", paziente_id="non-esiste")


def test_messaggio_arriva_in_tempo_reale(medico, reception):
    async def scenario():
        messaggi = iscrivi_messaggi(medico)
        notifiche = iscrivi_notifiche(medico)
        m = invia_messaggio(reception, medico, "Oggetto", "Testo")

        evento = await messaggi.prossimo(timeout=2)
        # il messaggio non passa dal canale delle notifiche
        with pytest.raises(asyncio.TimeoutError):
            await notifiche.prossimo(timeout=0.2)
        return m, evento

    m, evento = asyncio.run(scenario())

    assert evento.evento == "INSERT"
    assert evento.tabella == "internal_messages"
    assert evento.new["id"] == m["id"]
    assert ContatoreNonLette(valore=0).applica(evento) == 0


def test_mittente_non_riceve_l_evento(medico, reception):
    async def scenario():
        iscr = iscrivi_messaggi(reception)
        invia_messaggio(reception, medico, "Oggetto", "Testo")
        with pytest.raises(asyncio.TimeoutError):
            await iscr.prossimo(timeout=0.2)

    asyncio.run(scenario())
