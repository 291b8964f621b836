# test_config.py
import logging

from core import config
from core.models import RespiratorySupport
from services import db_operations


def test_validate_config(monkeypatch):
    monkeypatch.setattr(config, "OPENAI_API_KEY", "your-openai-api-key-here")
    ok, message = config.validate_config()
    assert not ok
    assert "OPENAI_API_KEY" in message

    monkeypatch.setattr(config, "OPENAI_API_KEY", "sk-test")
    assert config.validate_config() == (True, "Configuration valid")


def test_configure_logging_adds_one_handler():
    logger = config.configure_logging("debug")
    config.configure_logging("info")
    assert logger.name == "mila"
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1


def test_update_respiratory_support(db, patient):
    db_operations.create_patient(patient)
    assert not db_operations.get_patient(patient.id).on_respiratory_support

    assert db_operations.update_respiratory_support(patient.id, RespiratorySupport.CPAP)
    stored = db_operations.get_patient(patient.id)
    assert stored.respiratory_support == RespiratorySupport.CPAP
    assert stored.on_respiratory_support

    assert not db_operations.update_respiratory_support("missing", RespiratorySupport.CPAP)
