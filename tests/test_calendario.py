from datetime import date, time
from types import SimpleNamespace

import pytest

from backend.calendario import genera_slot, is_slot_valido, slot_disponibili, slot_giornata, slot_occupato
from backend.errori import ErroreValidazione
from backend.models import StatoAppuntamento
from backend.services import annulla_appuntamento, prenota_appuntamento

GIORNO = date(2024, 6, 10)


def _app(id, medico, ora, stato=StatoAppuntamento.PROGRAMMATO, giorno=GIORNO):
    return SimpleNamespace(id=id, doctor_id=medico, appointment_date=giorno, appointment_time=ora, status=stato)


class TestGeneraSlot:
    def test_griglia_standard(self):
        slots = genera_slot(9, 17, 30)

        assert len(slots) == 16
        assert slots[0] == time(9, 0)
        assert slots[-1] == time(16, 30)
        assert all(a < b for a, b in zip(slots, slots[1:]))
        assert len(set(slots)) == len(slots)

    def test_default_uguale_a_griglia_standard(self):
        assert genera_slot() == genera_slot(9, 17, 30)

    def test_ripetibile(self):
        assert genera_slot(8, 12, 45) == genera_slot(8, 12, 45)

    def test_passo_orario(self):
        assert genera_slot(8, 12, 60) == [time(8), time(9), time(10), time(11)]

    @pytest.mark.parametrize("apertura,chiusura,passo", [(9, 17, 0), (9, 17, -30), (17, 9, 30), (9, 9, 30), (-1, 10, 30), (9, 25, 30)])
    def test_parametri_non_validi(self, apertura, chiusura, passo):
        with pytest.raises(ErroreValidazione):
            genera_slot(apertura, chiusura, passo)

    def test_slot_giornata_legati_alla_data(self):
        slots = slot_giornata(GIORNO)
        assert len(slots) == 16
        assert {s.data for s in slots} == {GIORNO}
        assert slots[0].inizio.isoformat() == "2024-06-10T09:00:00"


class TestSlotValido:
    def test_orari_della_griglia(self):
        assert is_slot_valido(time(9, 0))
        assert is_slot_valido(time(16, 30))

    def test_orari_fuori_griglia(self):
        assert not is_slot_valido(time(10, 15))
        assert not is_slot_valido(time(17, 0))
        assert not is_slot_valido(time(8, 30))
        assert not is_slot_valido(time(10, 0, 30))


class TestSlotOccupato:
    def test_stesso_medico_occupa(self):
        apps = [_app("a1", "doc1", time(10))]
        assert slot_occupato(GIORNO, "doc1", time(10), apps)

    def test_altro_medico_non_blocca(self):
        apps = [_app("a1", "doc1", time(10))]
        assert not slot_occupato(GIORNO, "doc2", time(10), apps)

    def test_annullato_non_occupa(self):
        apps = [_app("a1", "doc1", time(10), StatoAppuntamento.ANNULLATO)]
        assert not slot_occupato(GIORNO, "doc1", time(10), apps)

    def test_completato_occupa(self):
        apps = [_app("a1", "doc1", time(10), StatoAppuntamento.COMPLETATO)]
        assert slot_occupato(GIORNO, "doc1", time(10), apps)

    def test_altro_giorno_o_altra_ora(self):
        apps = [_app("a1", "doc1", time(10), giorno=date(2024, 6, 11))]
        assert not slot_occupato(GIORNO, "doc1", time(10), apps)
        assert not slot_occupato(date(2024, 6, 11), "doc1", time(10, 30), apps)

    def test_escludi_se_stesso(self):
        apps = [_app("a1", "doc1", time(10))]
        assert not slot_occupato(GIORNO, "doc1", time(10), apps, escludi_id="a1")


def test_slot_disponibili_per_medico(medico, medico2, paziente):
    app = prenota_appuntamento(paziente, medico, GIORNO, time(10), "Otturazione")

    griglia = {s["time"]: s["is_available"] for s in slot_disponibili(GIORNO, medico)}
    assert len(griglia) == 16
    assert griglia["10:00"] is False
    assert griglia["10:30"] is True

    altro = {s["time"]: s["is_available"] for s in slot_disponibili(GIORNO, medico2)}
    assert altro["10:00"] is True

    annulla_appuntamento(app.id)
    griglia = {s["time"]: s["is_available"] for s in slot_disponibili(GIORNO, medico)}
    assert griglia["10:00"] is True
