"""CLI tools for intake operations (enrichment hand-off, manual analysis)."""

from pathlib import Path
from uuid import UUID

import click
from sqlalchemy import select

from process_intake.core.async_utils import run_async
from process_intake.db.models import IntakeAttachment
from process_intake.db.session import SessionLocal
from process_intake.services import intake_chat_service, intake_service
from process_intake.services.intake_chat_service import ChatBackendError
from process_intake.services.intake_service import IntakeServiceError


@click.group()
def cli():
    """Process intake CLI tools."""
    pass


@cli.command()
@click.option("--owner", required=True, help="Owner ID whose intakes to list")
def list_intakes(owner: str):
    """
    List an owner's intakes, newest first.

    Example:
        python -m process_intake.cli list-intakes --owner alice
    """
    db = SessionLocal()
    try:
        intakes = intake_service.list_intakes(db, owner)
        if not intakes:
            click.echo(f"No intakes for {owner}")
            return
        for intake in intakes:
            click.echo(
                f"{intake.id}  {intake.status:<10} {intake.title or '(untitled)'}"
                f"  [{len(intake.attachments)} attachment(s)]"
            )
    finally:
        db.close()


@cli.command()
@click.argument("attachment_id", type=click.UUID)
@click.argument("text_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def set_enriched_text(attachment_id: UUID, text_file: Path):
    """
    Store extracted text / transcription for an attachment (read from a UTF-8 file).

    Example:
        python -m process_intake.cli set-enriched-text <attachment-id> transcript.txt
    """
    text = text_file.read_text(encoding="utf-8")
    db = SessionLocal()
    try:
        attachment = db.execute(
            select(IntakeAttachment).where(IntakeAttachment.id == attachment_id)
        ).scalar_one_or_none()
        if not attachment:
            click.echo(f"❌ Attachment {attachment_id} not found")
            raise SystemExit(1)

        run_async(
            intake_service.set_attachment_enriched_text(
                db, attachment.intake_session_id, attachment_id, text
            )
        )
        click.echo(f"✓ Enriched text stored for {attachment_id} ({len(text)} chars)")
    except IntakeServiceError as e:
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    finally:
        db.close()


@cli.command()
@click.argument("intake_id", type=click.UUID)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Give up after this many seconds (default: no overall limit)",
)
def analyse(intake_id: UUID, timeout: float | None):
    """
    Run the analysis for an intake with the configured backend.

    Example:
        python -m process_intake.cli analyse <intake-id> --timeout 300
    """
    db = SessionLocal()
    try:
        backend = intake_chat_service.get_chat_backend()
        intake = run_async(
            intake_service.analyse_intake(db, backend, intake_id), timeout=timeout
        )
        click.echo(f"✓ Analysed intake {intake.id}")
        click.echo(intake.analysis_brief)
        click.echo(
            f"  {len(intake.analysis_checkpoints or [])} checkpoints, "
            f"{len(intake.analysis_actionables or [])} actionables"
        )
    except (IntakeServiceError, ChatBackendError) as e:
        click.echo(f"❌ Error: {e}")
        raise SystemExit(1)
    except TimeoutError:
        click.echo(f"❌ Error: analysis did not finish within {timeout} seconds")
        raise SystemExit(1)
    finally:
        db.close()


if __name__ == "__main__":
    cli()
