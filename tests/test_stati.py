from datetime import date, time

import pytest
from sqlalchemy import func, select

from backend.db import db_session
from backend.errori import ErroreValidazione, NonTrovato, TransizioneNonValida
from backend.models import Appuntamento, RegistroTrattamento, StatoAppuntamento
from backend.services import TRANSIZIONI, annulla_appuntamento, completa_appuntamento, imposta_stato, prenota_appuntamento

GIORNO = date(2024, 6, 10)


@pytest.fixture
def appuntamento(medico, paziente):
    return prenota_appuntamento(paziente, medico, GIORNO, time(10), "Devitalizzazione", dente="36")


def test_stati_finali_senza_uscite():
    assert TRANSIZIONI[StatoAppuntamento.COMPLETATO] == frozenset()
    assert TRANSIZIONI[StatoAppuntamento.ANNULLATO] == frozenset()


def test_completamento(appuntamento):
    app = completa_appuntamento(appuntamento.id)
    assert app.status == StatoAppuntamento.COMPLETATO

    with db_session() as s:
        assert s.get(Appuntamento, appuntamento.id).status == StatoAppuntamento.COMPLETATO


def test_completamento_non_scrive_il_registro_trattamenti(appuntamento):
    completa_appuntamento(appuntamento.id)

    with db_session() as s:
        assert s.scalar(select(func.count(RegistroTrattamento.id))) == 0


def test_annullamento_accetta_stringa(appuntamento):
    app = imposta_stato(appuntamento.id, "cancelled")
    assert app.status == StatoAppuntamento.ANNULLATO


def test_completato_non_torna_programmato(appuntamento):
    completa_appuntamento(appuntamento.id)
    with pytest.raises(TransizioneNonValida):
        imposta_stato(appuntamento.id, StatoAppuntamento.PROGRAMMATO)


def test_annullato_non_si_completa(appuntamento):
    annulla_appuntamento(appuntamento.id)
    with pytest.raises(TransizioneNonValida):
        completa_appuntamento(appuntamento.id)
    with pytest.raises(TransizioneNonValida):
        annulla_appuntamento(appuntamento.id)


def test_stesso_stato_rifiutato(appuntamento):
    with pytest.raises(TransizioneNonValida):
        imposta_stato(appuntamento.id, "scheduled")


def test_stato_sconosciuto(appuntamento):
    with pytest.raises(ErroreValidazione):
        imposta_stato(appuntamento.id, "no_show")


def test_appuntamento_inesistente():
    with pytest.raises(NonTrovato):
        annulla_appuntamento("non-esiste")
