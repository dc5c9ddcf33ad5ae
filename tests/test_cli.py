import pytest

import main as cli
from screenflow.models import ScreenRecord
from screenflow.pipeline import ScreenFlow

from conftest import FakeOCREngine, FakeProvider, job_spec, make_runtime, png_bytes


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    monkeypatch.setenv("SCREENFLOW_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("SCREENFLOW_DB_PATH", raising=False)
    monkeypatch.delenv("SCREENFLOW_SHARED_DIR", raising=False)
    monkeypatch.delenv("SCREENFLOW_MODEL_STRATEGY", raising=False)
    monkeypatch.delenv("SCREENFLOW_MODEL_TIMEOUT", raising=False)


def test_packs_lists_catalog(capsys):
    assert cli.main(["packs"]) == 0
    out = capsys.readouterr().out
    assert "Action Packs" in out
    assert "job_listing.save_tracker@1.0.0 (job_listing) requires job.company, job.role" in out


def test_history_without_screens(capsys):
    assert cli.main(["history"]) == 0
    assert "No screens imported." in capsys.readouterr().out


def test_ingest_shared_without_inbox(capsys):
    assert cli.main(["ingest-shared"]) == 0
    assert "Ingested 0 shared screen(s)" in capsys.readouterr().out


def test_run_pack_for_unknown_screen_fails(capsys):
    assert cli.main(["run-pack", "f" * 64, "job_listing.save_tracker"]) == 1
    assert "no extraction stored" in capsys.readouterr().err


def test_bad_strategy_is_reported(monkeypatch, capsys):
    monkeypatch.setenv("SCREENFLOW_MODEL_STRATEGY", "sometimes")
    assert cli.main(["packs"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_process_then_run_pack_then_history(tmp_path, monkeypatch, capsys, screenflow_config, runtime_config):
    def factory(config):
        return ScreenFlow(
            screenflow_config,
            ocr_engine=FakeOCREngine(["Senior iOS Engineer", "Role at Acme Corp"]),
            runtime=make_runtime(runtime_config, FakeProvider([job_spec().to_json()])),
        )

    monkeypatch.setattr(cli, "ScreenFlow", factory)
    image = tmp_path / "capture.png"
    image.write_bytes(png_bytes())

    assert cli.main(["process", str(image)]) == 0
    out = capsys.readouterr().out
    assert "job_listing (0.91)" in out
    assert "- job_listing.save_tracker" in out
    assert "Resolved by primary tier" in out
    listing = factory(None)
    screen = listing.repository.list(ScreenRecord)[0]
    listing.close()
    assert out.startswith(f"Screen {screen.id[:12]}: job_listing (0.91)")

    assert cli.main(["run-pack", screen.id, "job_listing.save_tracker"]) == 0
    assert "Status: success" in capsys.readouterr().out

    assert cli.main(["history"]) == 0
    history = capsys.readouterr().out
    assert "Screens: 1" in history
    assert "job_listing.save_tracker@1.0.0: success" in history
