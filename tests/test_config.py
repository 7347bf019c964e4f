from Playlog import config as config_module
from Playlog.config import Settings
from Playlog.logging import redact_settings


def test_toml_source_maps_importer_and_logging(tmp_path, monkeypatch):
    (tmp_path / "config.toml").write_text(
        """
[importer]
batch_size = 25
max_retries = 5

[logging]
level = "debug"
console = false
to_file = "warning"
""",
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)
    out = config_module._toml_settings_source()
    assert out["importer_batch_size"] == 25
    assert out["importer_max_retries"] == 5
    assert out["logging_console"] == "NONE"
    assert out["logging_file"] == "WARNING"


def test_env_overrides_toml(tmp_path, monkeypatch):
    (tmp_path / "config.toml").write_text("[importer]\nbatch_size = 25\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("IMPORTER_BATCH_SIZE", "10")
    assert Settings().importer_batch_size == 10


def test_defaults_without_toml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("IMPORTER_BATCH_SIZE", raising=False)
    s = Settings(database_url="sqlite+aiosqlite:///:memory:")
    assert s.importer_batch_size == 50
    assert s.importer_max_retries == 3
    assert s.importer_retry_base_seconds == 1.0


def test_redact_settings_hides_database_password():
    s = Settings(database_url="postgresql+asyncpg://app:hunter2@db:5432/playlog")
    data = redact_settings(s)
    assert "hunter2" not in data["database_url"]
    assert "app" in data["database_url"]
