import pytest

from backend import cli
from backend.seed import seed_base
from backend.services import lista_medici_flat, lista_pazienti_flat


@pytest.fixture(autouse=True)
def senza_logging(monkeypatch):
    # il dictConfig legherebbe l'handler allo stderr catturato da pytest
    monkeypatch.setattr(cli, "configura_logging", lambda: None)


def _prenota(capsys, paziente, medico, ora="10:00") -> str:
    cli.main([
        "book", "--paziente-id", paziente, "--medico-id", medico,
        "--giorno", "2024-06-10", "--ora", ora, "--trattamento", "Igiene",
    ])
    return capsys.readouterr().out.strip().splitlines()[-1].split(": ")[1]


def test_seed_idempotente():
    seed_base()
    seed_base()

    assert [m["full_name"] for m in lista_medici_flat()] == ["Dott. Mario Rossi", "Dott.ssa Laura Bianchi"]
    assert len(lista_pazienti_flat()) == 2


def test_prenota_e_slot(capsys, medico, paziente):
    _prenota(capsys, paziente, medico)

    cli.main(["slots", "--medico-id", medico, "--giorno", "2024-06-10"])
    righe = capsys.readouterr().out.splitlines()
    assert len(righe) == 16
    assert "10:00  occupato" in righe
    assert "10:30  libero" in righe


def test_conflitto_esce_con_errore(capsys, medico, paziente, paziente2):
    _prenota(capsys, paziente, medico)

    with pytest.raises(SystemExit) as exc:
        _prenota(capsys, paziente2, medico)
    assert exc.value.code == 1
    assert "ERRORE" in capsys.readouterr().out


def test_sposta_e_annulla(capsys, medico, paziente):
    app_id = _prenota(capsys, paziente, medico)

    cli.main(["reschedule", "--appuntamento-id", app_id, "--giorno", "2024-06-11", "--ora", "15:30"])
    assert "Spostato a 2024-06-11 15:30." in capsys.readouterr().out

    cli.main(["cancel", "--appuntamento-id", app_id])
    assert "Annullato." in capsys.readouterr().out

    with pytest.raises(SystemExit):
        cli.main(["status", "--appuntamento-id", app_id, "--stato", "completed"])


def test_promemoria_e_notifiche(capsys, medico, paziente):
    _prenota(capsys, paziente, medico)

    cli.main(["reminders", "--oggi", "2024-06-09"])
    assert "Promemoria inviati: 1" in capsys.readouterr().out

    cli.main(["notifications", "--user-id", medico, "--mark-read"])
    out = capsys.readouterr().out
    assert "Promemoria appuntamento" in out
    assert "Segnate come lette: 1" in out

    cli.main(["notifications", "--user-id", medico])
    assert capsys.readouterr().out.startswith("  [appointment]")
