from __future__ import annotations

from pathlib import Path

import pytest

from log_whisperer.clients.llm_factory import build_llm_client
from log_whisperer.models.model_config import GeminiModel
from log_whisperer.utils.config import load_settings
from log_whisperer.utils.json_schema import analysis_result_schema, to_gemini_schema, validate_json

ENV_KEYS = ("GEMINI_API_KEY", "GOOGLE_API_KEY", "API_KEY", "GCP_PROJECT_ID", "LOGWHISPERER_MODEL", "LOGWHISPERER_EVENT_LOG")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_load_settings_defaults_without_file(tmp_path: Path):
    settings = load_settings(tmp_path / "missing.yaml")
    assert settings["llm"]["temperature"] == 0.2
    assert settings["llm"]["max_output_tokens"] == 8192
    assert settings["analysis"]["max_input_chars"] == 50000


def test_load_settings_merges_yaml_and_env(tmp_path: Path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text("llm:\n  timeout_sec: 30\nanalysis:\n  max_input_chars: 1000\n", encoding="utf-8")
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setenv("LOGWHISPERER_MODEL", "gemini-3-pro-preview")
    settings = load_settings(path)
    assert settings["llm"]["timeout_sec"] == 30
    assert settings["llm"]["temperature"] == 0.2
    assert settings["llm"]["api_key"] == "test-key"
    assert settings["llm"]["default_model"] == "gemini-3-pro-preview"
    assert settings["analysis"]["max_input_chars"] == 1000


def test_build_llm_client_without_key_returns_none():
    assert build_llm_client(load_settings(None)) is None


def test_build_llm_client_service_account_requires_project():
    settings = load_settings(None)
    settings["llm"]["auth_method"] = "service_account"
    with pytest.raises(ValueError):
        build_llm_client(settings)


def test_gemini_model_parse():
    assert GeminiModel.parse(None) == GeminiModel.FLASH
    assert GeminiModel.parse("PRO") == GeminiModel.PRO
    assert GeminiModel.parse("gemini-2.5-flash") == GeminiModel.FLASH
    with pytest.raises(ValueError):
        GeminiModel.parse("gemini-1.0")


def test_gemini_schema_conversion():
    schema = to_gemini_schema(analysis_result_schema())
    assert "$schema" not in schema and "title" not in schema
    assert schema["properties"]["threatScore"]["type"] == "INTEGER"
    mitre_item = schema["properties"]["mitreMapping"]["items"]
    assert mitre_item["type"] == "OBJECT"
    assert mitre_item["required"] == ["tactic", "id", "name"]


def test_validate_json_reports_all_errors(tmp_path: Path):
    schema_path = Path(__file__).resolve().parents[1] / "src" / "log_whisperer" / "schemas" / "analysis_result.schema.json"
    validate_json({"threatScore": 1, "markdownReport": "", "timeline": [], "mitreMapping": []}, schema_path)
    with pytest.raises(ValueError, match="timeline"):
        validate_json({"threatScore": 1, "markdownReport": ""}, schema_path)
