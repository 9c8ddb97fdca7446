import anyio
from click.testing import CliRunner

from process_intake import cli as cli_module
from process_intake.services import intake_service
from process_intake.services.intake_chat_service import SlotFillingChatBackend


def _start(db, backend, owner="owner-1"):
    return anyio.run(intake_service.start_intake, db, backend, owner)


def test_list_intakes(db, backend, monkeypatch):
    monkeypatch.setattr(cli_module, "SessionLocal", lambda: db)
    intake_id = _start(db, backend).id

    result = CliRunner().invoke(cli_module.cli, ["list-intakes", "--owner", "owner-1"])

    assert result.exit_code == 0, result.output
    assert str(intake_id) in result.output
    assert "draft" in result.output

    result = CliRunner().invoke(cli_module.cli, ["list-intakes", "--owner", "nobody"])
    assert "No intakes for nobody" in result.output


def test_set_enriched_text_from_file(db, backend, storage, monkeypatch, tmp_path):
    monkeypatch.setattr(cli_module, "SessionLocal", lambda: db)
    intake_id = _start(db, backend).id
    attachment = anyio.run(
        intake_service.add_attachment, db, storage, intake_id, "call.mp3", b"ID3"
    )
    attachment_id = attachment.id
    text_file = tmp_path / "transcript.txt"
    text_file.write_text("We reconcile invoices every Friday.", encoding="utf-8")

    result = CliRunner().invoke(
        cli_module.cli, ["set-enriched-text", str(attachment_id), str(text_file)]
    )
    assert result.exit_code == 0, result.output

    refreshed = intake_service.get_intake(db, intake_id)
    assert refreshed.attachments[0].enriched_text == "We reconcile invoices every Friday."

    result = CliRunner().invoke(
        cli_module.cli, ["set-enriched-text", str(attachment_id), str(text_file)]
    )
    assert result.exit_code == 1
    assert "already has enriched text" in result.output


def test_analyse_command(db, backend, monkeypatch):
    monkeypatch.setattr(cli_module, "SessionLocal", lambda: db)
    intake_id = _start(db, backend).id

    result = CliRunner().invoke(cli_module.cli, ["analyse", str(intake_id)])

    assert result.exit_code == 0, result.output
    assert f"Analysed intake {intake_id}" in result.output
    assert "7 checkpoints, 7 actionables" in result.output
    assert intake_service.get_intake(db, intake_id).status == "analysed"


class _StalledBackend(SlotFillingChatBackend):
    async def synthesize(self, title, description, attachment_texts):
        await anyio.sleep(5)
        return await super().synthesize(title, description, attachment_texts)


def test_analyse_command_gives_up_after_timeout(db, backend, monkeypatch):
    monkeypatch.setattr(cli_module, "SessionLocal", lambda: db)
    monkeypatch.setattr(
        cli_module.intake_chat_service, "get_chat_backend", lambda: _StalledBackend()
    )
    intake_id = _start(db, backend).id

    result = CliRunner().invoke(cli_module.cli, ["analyse", str(intake_id), "--timeout", "0.05"])

    assert result.exit_code == 1
    assert "did not finish within 0.05 seconds" in result.output
    refreshed = intake_service.get_intake(db, intake_id)
    assert refreshed.status == "draft"
    assert refreshed.analysis_brief is None
