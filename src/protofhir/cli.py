"""Protocol to FHIR CLI."""

from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from protofhir.config import settings
from protofhir.exceptions import DeploymentError, ExtractionError
from protofhir.logging_config import configure_logging
from protofhir.models import Document, ResourceBundle, Severity, ValidationReport
from protofhir.pipeline import BundleValidator, DeploymentGate, PipelineController

app = typer.Typer(
    name="protofhir",
    help="Convert clinical protocols to validated FHIR resources and deploy them",
    add_completion=False,
)
console = Console()

_SEVERITY_STYLES = {
    Severity.ERROR: "red",
    Severity.WARNING: "yellow",
    Severity.INFORMATION: "blue",
}


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Log level (default from settings)"),
) -> None:
    """Configure logging for every command."""
    configure_logging(log_level)


def print_report(report: ValidationReport) -> None:
    """Render a validation report as a table."""
    status = "[green]valid[/green]" if report.valid else "[red]invalid[/red]"
    console.print(
        f"[bold]Validation:[/bold] {status}  "
        f"resources={report.resource_count} errors={report.errors} "
        f"warnings={report.warnings} information={report.information}"
    )

    table = Table(show_header=True, header_style="bold")
    table.add_column("Severity")
    table.add_column("Code")
    table.add_column("Location")
    table.add_column("Details")
    for issue in report.issues:
        style = _SEVERITY_STYLES[issue.severity]
        table.add_row(
            f"[{style}]{issue.severity.value}[/{style}]",
            issue.code,
            issue.location,
            issue.details,
        )
    console.print(table)


def load_bundle(path: Path) -> ResourceBundle:
    """Read an exported bundle, exiting with an error message if malformed."""
    try:
        return ResourceBundle.from_json(path.read_bytes())
    except ValidationError as exc:
        console.print(f"[bold red]Invalid bundle file:[/bold red] {exc}")
        raise typer.Exit(code=1)


def _finish_conversion(controller: PipelineController, output: Path) -> None:
    bundle = controller.convert()
    session = controller.session

    console.print(
        f"[bold blue]Bundle:[/bold blue] {bundle.id} "
        f"({bundle.resource_count} resources, source: {session.bundle_source.value})"
    )
    if controller.last_synthesis and controller.last_synthesis.is_fallback:
        console.print("[yellow]Remote synthesis unavailable; local fallback bundle used[/yellow]")

    print_report(session.validation)
    bundle.write_json(output)
    console.print(f"[dim]Bundle written to {output}[/dim]")


@app.command()
def convert(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Protocol document (.docx, .tex, .txt, .pdf)"),
    output: Path = typer.Option(Path("fhir-resources.json"), help="Output bundle JSON"),
    language: Optional[str] = typer.Option(None, help="Language sent to the synthesis service"),
) -> None:
    """Convert a protocol document into a validated FHIR bundle."""
    console.print(f"[bold blue]Processing:[/bold blue] {path}")
    document = Document.from_path(path)

    with PipelineController(locale=language) as controller:
        try:
            extracted = controller.ingest_document(document)
        except ExtractionError as exc:
            console.print(f"[bold red]Error processing file:[/bold red] {exc.message}")
            raise typer.Exit(code=1)

        console.print(f"[dim]Extracted {len(extracted.text)} characters[/dim]")
        _finish_conversion(controller, output)


@app.command()
def generate(
    prompt: Optional[str] = typer.Option(None, help="Study description for the protocol"),
    output: Path = typer.Option(Path("fhir-resources.json"), help="Output bundle JSON"),
    text_output: Optional[Path] = typer.Option(None, help="Also save the generated protocol text"),
    language: Optional[str] = typer.Option(None, help="Language sent to the synthesis service"),
) -> None:
    """Generate a protocol with AI and convert it into a FHIR bundle."""
    with PipelineController(locale=language) as controller:
        extracted = controller.author_protocol(prompt)
        if text_output:
            text_output.write_text(extracted.text, encoding="utf-8")
            console.print(f"[dim]Protocol text written to {text_output}[/dim]")
        _finish_conversion(controller, output)


@app.command()
def validate(
    bundle_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Bundle JSON file"),
) -> None:
    """Validate an exported bundle."""
    report = BundleValidator().validate(load_bundle(bundle_path))
    print_report(report)
    if not report.valid:
        raise typer.Exit(code=1)


@app.command()
def deploy(
    bundle_path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Bundle JSON file"),
    skip_validation: bool = typer.Option(False, help="Deploy without a validation report"),
) -> None:
    """Validate and deploy a bundle to the configured FHIR server."""
    bundle = load_bundle(bundle_path)
    report = None
    if skip_validation:
        console.print("[yellow]Skipping validation; bundle will be deployed as-is[/yellow]")
    else:
        report = BundleValidator().validate(bundle)
        print_report(report)

    try:
        gate = DeploymentGate()
    except ValueError as exc:
        console.print(f"[bold red]Error deploying:[/bold red] {exc}")
        raise typer.Exit(code=1)

    try:
        receipt = gate.deploy(bundle, report)
    except DeploymentError as exc:
        console.print(f"[bold red]Error deploying:[/bold red] {exc.message}")
        raise typer.Exit(code=1)

    console.print("[bold green]Successfully deployed![/bold green]")
    console.print(f"Bundle ID: {receipt.bundle_id}")
    console.print(f"Resources: {receipt.resource_count}")
    console.print(f"Target: {receipt.target}")
    console.print(f"Deployed at: {receipt.deployed_at.isoformat()}")


@app.command()
def status() -> None:
    """Show effective pipeline configuration."""
    console.print("[bold blue]Protocol to FHIR Pipeline Status[/bold blue]")
    console.print()

    table = Table(show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_row("Synthesis service", settings.synthesis_base_url)
    table.add_row("Candidate endpoints", ", ".join(settings.synthesis_endpoints) or "(none)")
    table.add_row("Language", settings.synthesis_language)
    table.add_row("Timeout per candidate", f"{settings.synthesis_timeout_seconds:g}s")
    table.add_row("Deploy target", settings.deploy_target)
    table.add_row("FHIR server", settings.fhir_server_url or "(not set)")
    console.print(table)


if __name__ == "__main__":
    app()
