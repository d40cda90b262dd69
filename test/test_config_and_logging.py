import json
import logging
from pathlib import Path

import pytest

from atenea.application.container import build_container
from atenea.config import BackendSettings, load_backend_settings
from atenea.logging_config import LOG_AREAS, setup_logging
from atenea.repositories.rest_backend import RestBackend


def test_rest_backend_needs_https_url_and_key():
    settings = load_backend_settings(
        {
            "ATENEA_SUPABASE_URL": "https://demo.supabase.co/",
            "ATENEA_SUPABASE_ANON_KEY": "anon",
            "ATENEA_USER_ID": "u1",
        }
    )
    assert settings == BackendSettings(
        kind="rest", url="https://demo.supabase.co", api_key="anon", access_token=None, user_id="u1"
    )


def test_incomplete_rest_settings_fall_back_to_sqlite(caplog):
    with caplog.at_level(logging.WARNING):
        settings = load_backend_settings({"ATENEA_BACKEND": "rest", "ATENEA_SUPABASE_URL": "http://insecure"})
    assert settings.kind == "sqlite"
    assert "rest_backend_not_configured" in caplog.text


def test_explicit_sqlite_wins_over_rest_settings():
    settings = load_backend_settings(
        {"ATENEA_BACKEND": "sqlite", "ATENEA_SUPABASE_URL": "https://x.supabase.co", "ATENEA_SUPABASE_ANON_KEY": "k"}
    )
    assert not settings.is_rest


def test_container_builds_rest_backend_without_touching_disk(tmp_path: Path):
    settings = BackendSettings(kind="rest", url="https://demo.supabase.co", api_key="anon")
    app = build_container(settings=settings)

    assert isinstance(app.backend, RestBackend)
    assert app.identity is None
    assert list(tmp_path.iterdir()) == []


def test_sqlite_container_requires_a_path():
    with pytest.raises(ValueError):
        build_container(settings=BackendSettings(kind="sqlite"))


def test_logging_writes_json_lines_per_area(tmp_path: Path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    sales_logger = logging.getLogger("atenea.sales")
    saved_sales = sales_logger.handlers[:]
    root.handlers = []
    sales_logger.handlers = []
    try:
        setup_logging(tmp_path, level=logging.INFO)
        setup_logging(tmp_path, level=logging.INFO)
        sales_logger.info("sale_settled id=%s", "V250314001")
        for h in root.handlers + sales_logger.handlers:
            h.flush()

        lines = (tmp_path / "sales.log").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 1
        record = json.loads(lines[0])
        assert record["logger"] == "atenea.sales"
        assert record["message"] == "sale_settled id=V250314001"
        assert record["where"].startswith("test_config_and_logging:")
        assert "V250314001" in (tmp_path / "app.log").read_text(encoding="utf-8")
        assert (tmp_path / "errors.log").read_text(encoding="utf-8") == ""
        assert (tmp_path / "expenses.log").exists()
    finally:
        areas = [logging.getLogger(name) for name in LOG_AREAS]
        for h in root.handlers + [h for area in areas for h in area.handlers]:
            h.close()
        root.handlers = saved_handlers
        root.setLevel(saved_level)
        for area in areas:
            area.handlers = []
        sales_logger.handlers = saved_sales
