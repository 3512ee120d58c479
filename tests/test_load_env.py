import json
import os
from pathlib import Path

import run


def _parse_env_file(env_path: Path, *, override: bool = False) -> None:
    for line in env_path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip()
        if override or key not in os.environ:
            os.environ[key] = val


def test_load_env_is_optional_and_does_not_override_env(tmp_path: Path, monkeypatch):
    env_path = tmp_path / ".env"
    env_path.write_text("GOOGLE_MAPS_API_KEY=from-dotenv\n", encoding="utf-8")

    called = {}

    def fake_load_dotenv(*, dotenv_path, override=False):
        called["dotenv_path"] = Path(dotenv_path).resolve()
        _parse_env_file(Path(dotenv_path), override=bool(override))
        return True

    monkeypatch.setattr(run, "_load_dotenv", fake_load_dotenv)
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "from-env")

    run.load_env(root_dir=tmp_path)

    assert called["dotenv_path"] == env_path.resolve()
    assert os.environ.get("GOOGLE_MAPS_API_KEY") == "from-env"


def test_load_env_skips_missing_file(tmp_path: Path, monkeypatch):
    def fake_load_dotenv(**kwargs):
        raise AssertionError("should not load a missing .env")

    monkeypatch.setattr(run, "_load_dotenv", fake_load_dotenv)
    run.load_env(root_dir=tmp_path)


def test_write_json_atomic_replaces_file(tmp_path: Path):
    out = tmp_path / "nested" / "community.json"
    run.write_json_atomic(str(out), {"city": "Austin"})
    run.write_json_atomic(str(out), {"city": "Boise"})
    assert json.loads(out.read_text(encoding="utf-8")) == {"city": "Boise"}
    assert [p.name for p in out.parent.iterdir()] == ["community.json"]


def test_main_requires_zip_and_api_key(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(run, "load_env", lambda *args, **kwargs: None)
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
    missing_config = str(tmp_path / "absent.json")

    assert run.main(["--config", missing_config]) == 2
    assert run.main(["--zip", "94110", "--config", missing_config]) == 1
