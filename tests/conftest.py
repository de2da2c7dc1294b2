"""
Configurazione pytest: DB SQLite temporaneo, schema ricreato a ogni test.
"""
import os
import tempfile
from pathlib import Path

# L'engine si crea all'import di backend.db: l'URL va impostato PRIMA
_TMP = Path(tempfile.mkdtemp(prefix="studio_dentistico_test_"))
os.environ["STUDIO_DATABASE_URL"] = f"sqlite:///{_TMP / 'test.sqlite'}"
os.environ.pop("CRON_SECRET", None)

import pytest  # noqa: E402

from backend.auth_models import RuoloUtente  # noqa: E402
from backend.auth_security import crea_token  # noqa: E402
from backend.auth_service import crea_utente  # noqa: E402
from backend.db import Base, engine  # noqa: E402
from backend.realtime import canale  # noqa: E402
from backend.services import crea_paziente, init_db  # noqa: E402


@pytest.fixture(autouse=True)
def db_pulito():
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield
    canale.reset()


@pytest.fixture
def medico() -> str:
    return crea_utente("rossi", "segreta", "Dott. Mario Rossi", RuoloUtente.MEDICO)


@pytest.fixture
def medico2() -> str:
    return crea_utente("bianchi", "segreta", "Dott.ssa Laura Bianchi", RuoloUtente.MEDICO)


@pytest.fixture
def reception() -> str:
    return crea_utente("reception", "segreta", "Reception", RuoloUtente.RECEPTION)


@pytest.fixture
def paziente() -> str:
    return crea_paziente("Giulia Verdi", "3331112222", 34)


@pytest.fixture
def paziente2() -> str:
    return crea_paziente("Paolo Neri", "3334445555", 58)


@pytest.fixture
def auth_header():
    def _header(user_id: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {crea_token(user_id)}"}
    return _header
