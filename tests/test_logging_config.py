import json
import logging

from app.core.config import Settings
from app.core.logging_config import build_logging_config, configure_logging


def _settings(**overrides) -> Settings:
    values = {"DATABASE_URL": "sqlite+aiosqlite://", "JWT_SECRET_KEY": "test-secret"}
    values.update(overrides)
    return Settings(**values)


def test_plain_format_by_default() -> None:
    config = build_logging_config(_settings(LOG_LEVEL="debug"))
    assert config["handlers"]["console"]["formatter"] == "standard"
    assert config["loggers"]["app"]["level"] == "DEBUG"


def test_json_format_emits_json(capsys) -> None:
    configure_logging(_settings(LOG_JSON=True))
    try:
        logging.getLogger("app.api.v1.fees.service").info("structure created", extra={"version": 2})
        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["message"] == "structure created"
        assert record["level"] == "INFO"
        assert record["logger"] == "app.api.v1.fees.service"
        assert record["version"] == 2
    finally:
        configure_logging(_settings())
