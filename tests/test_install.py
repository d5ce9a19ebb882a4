from __future__ import annotations

import importlib.util
from pathlib import Path

import pytest

INSTALL_PY = Path(__file__).resolve().parent.parent / "install.py"


@pytest.fixture(scope="module")
def install():
    spec = importlib.util.spec_from_file_location("fanuc_bot_install", INSTALL_PY)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def test_token_replaces_empty_assignment(install, tmp_path):
    env = tmp_path / ".env"
    env.write_text("# telegram\nTELEGRAM_BOT_TOKEN=\nOTHER=1\n", encoding="utf-8")

    install._write_env(str(env), "TELEGRAM_BOT_TOKEN", "123:abc")

    assert env.read_text(encoding="utf-8") == "# telegram\nTELEGRAM_BOT_TOKEN=123:abc\nOTHER=1\n"
    assert install._read_env(str(env)) == {"TELEGRAM_BOT_TOKEN": "123:abc", "OTHER": "1"}


def test_token_is_appended_to_new_file(install, tmp_path):
    env = tmp_path / ".env"

    install._write_env(str(env), "TELEGRAM_BOT_TOKEN", "123:abc")

    assert install._read_env(str(env))["TELEGRAM_BOT_TOKEN"] == "123:abc"


def test_missing_env_file_reads_empty(install, tmp_path):
    assert install._read_env(str(tmp_path / "absent.env")) == {}


def test_existing_config_is_not_overwritten(install, tmp_path):
    (tmp_path / "config.example.yaml").write_text("new: 1\n", encoding="utf-8")
    (tmp_path / "config.yaml").write_text("kept: 1\n", encoding="utf-8")

    install._copy_if_missing(str(tmp_path), "config.example.yaml", "config.yaml")
    install._copy_if_missing(str(tmp_path), "config.example.yaml", "other.yaml")

    assert (tmp_path / "config.yaml").read_text(encoding="utf-8") == "kept: 1\n"
    assert (tmp_path / "other.yaml").read_text(encoding="utf-8") == "new: 1\n"
