import signal
import sys
import typer
from pathlib import Path
from typing import List, Optional
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from flash.logger import setup_logger, info, warn, error
from flash.config import (
    ENV_FILE,
    ConfigError,
    config_manager,
    describe_api_status,
    load_credentials_file,
    load_env,
    resolve_provider_settings,
    settings_from_credentials,
)
from flash.llm import LLMClient, LLMError, ProviderSettings
from flash.analyzer import AnalysisError, VulnerabilityAnalyzer
from flash.parser import ParseError
from flash.report import print_markdown, write_markdown
from flash.scanner import ScanError, scan_directory, scan_file

VERSION = "v1.0.1"

app = typer.Typer(
    name="flash",
    help="Flash: LLM-assisted source code vulnerability review",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "-H", "--help"]},
)
console = Console()
core_config = config_manager.config.get("core", {})
log_level = core_config.get("log_level", "INFO")
logger = setup_logger(log_level=log_level)

BANNER = r"""
 _____ __    _____ _____ _____
|   __|  |  |  _  |   __|  |  |
|   __|  |__|     |__   |     |
|__|  |_____|__|__|_____|__|__|
"""


def print_banner():
    text = Text(BANNER, style="bold cyan")
    panel = Panel(text, border_style="bold blue", title=VERSION, subtitle="LLM Code Vulnerability Review")
    console.print(panel)


def _handle_interrupt(signum, frame):
    console.print("\n[yellow]Interrupted, exiting.[/yellow]")
    sys.exit(130)


def install_signal_handlers():
    try:
        signal.signal(signal.SIGINT, _handle_interrupt)
    except ValueError:
        # Not in the main thread (embedded use); leave default handling.
        pass


def check_api_configuration(env_file: Path = Path(ENV_FILE)) -> Optional[str]:
    """Report which API credentials are available without creating any files."""
    load_env(env_file, create=False)
    provider = describe_api_status()
    if provider == "openai":
        info("OpenAI API is configured and ready.")
    elif provider == "azure":
        info("Azure OpenAI API is configured and ready.")
    else:
        warn("No OpenAI or Azure API configuration found. Set the appropriate environment variables.")
    return provider


def resolve_settings(credentials: Optional[Path]) -> Optional[ProviderSettings]:
    llm_config = config_manager.config.get("llm", {})
    if credentials:
        data = load_credentials_file(credentials)
        return settings_from_credentials(data, llm_config)
    return resolve_provider_settings(llm_config=llm_config)


def build_analyzer(settings: ProviderSettings) -> VulnerabilityAnalyzer:
    llm_settings = config_manager.get_llm_settings()
    client = LLMClient(settings, timeout_seconds=llm_settings["timeout_seconds"])
    return VulnerabilityAnalyzer(
        client,
        max_tokens=llm_settings["max_tokens"],
        temperature=llm_settings["temperature"],
    )


def review_file(analyzer: VulnerabilityAnalyzer, path: Path, output: Optional[Path] = None) -> bool:
    """
    Analyze one file, print the report, and optionally save it.
    Returns False after reporting the first error.
    """
    try:
        code = scan_file(path)
    except ScanError as e:
        error(f"Error reading code from file: {e}")
        return False

    logger.info(f"Reviewing {path}")
    try:
        with console.status(f"[bold green]Analyzing {path}...[/bold green]"):
            vulnerabilities = analyzer.analyze(code)
    except (AnalysisError, LLMError, ParseError) as e:
        error(f"Error analyzing code: {e}")
        return False

    print_markdown(vulnerabilities, console=console)

    if output:
        try:
            saved = write_markdown(vulnerabilities, output)
        except OSError as e:
            error(f"Error saving markdown report to {output}: {e}")
            return False
        info(f"Results successfully saved to {saved}")
    return True


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """
    Flash Entry Point.
    """
    install_signal_handlers()
    print_banner()
    if ctx.invoked_subcommand is None:
        console.print("Use [bold cyan]--help[/bold cyan] to see available commands.")
        check_api_configuration()


@app.command()
def scan(
    code: Optional[Path] = typer.Option(None, "--code", "-C", help="Path to the file containing the code to review"),
    directory: Optional[Path] = typer.Option(None, "--dir", "-D", help="Review every matching file under this directory"),
    output: Optional[Path] = typer.Option(None, "--output", "-O", help="Optional: save the markdown results here (a directory with --dir)"),
    extensions: Optional[List[str]] = typer.Option(None, "--ext", "-e", help="File extension to include with --dir (repeatable)"),
    credentials: Optional[Path] = typer.Option(None, "--credentials", help="Optional JSON credentials file (azure_openai/openai)"),
    env_file: Path = typer.Option(Path(ENV_FILE), "--env-file", help=".env file to load (created with defaults if missing)"),
):
    """
    Send source code to the LLM and report the vulnerabilities it finds.
    """
    if not code and not directory:
        info("No code file provided. Please use --help for help.")
        check_api_configuration(env_file)
        return
    if code and directory:
        error("Use either --code or --dir, not both.")
        raise typer.Exit(code=1)

    load_env(env_file)

    try:
        settings = resolve_settings(credentials)
    except ConfigError as e:
        error(f"Error loading credentials: {e}")
        raise typer.Exit(code=1)
    if settings is None:
        warn("API configuration missing. Either Azure or OpenAI credentials must be set.")
        info("No results will be produced without valid API credentials.")
        if directory:
            raise typer.Exit(code=1)
        return

    info(f"Using {settings.label} API")
    try:
        analyzer = build_analyzer(settings)
    except LLMError as e:
        error(f"Invalid API configuration: {e}")
        raise typer.Exit(code=1)

    if code:
        logger.info(f"Command 'scan' triggered for file: {code}")
        review_file(analyzer, code, output)
        return

    logger.info(f"Command 'scan' triggered for directory: {directory}")
    exts = list(extensions) if extensions else config_manager.get_scan_extensions()
    try:
        files = scan_directory(directory, exts)
    except ScanError as e:
        error(f"Error scanning directory: {e}")
        raise typer.Exit(code=1)
    if not files:
        warn(f"No files matching {', '.join(exts)} found under {directory}")
        return

    info(f"Found {len(files)} files to review")
    for path in files:
        target = None
        if output:
            rel = path.relative_to(directory)
            target = output / rel.with_name(rel.name + ".md")
        console.print(f"[bold blue][*] {path}[/bold blue]")
        if not review_file(analyzer, path, target):
            raise typer.Exit(code=1)
    info(f"Reviewed {len(files)} files")


@app.command()
def status(
    env_file: Path = typer.Option(Path(ENV_FILE), "--env-file", help=".env file to read"),
):
    """
    Check whether OpenAI or Azure OpenAI credentials are configured.
    """
    check_api_configuration(env_file)


@app.command()
def config(
    model: str = typer.Option(None, "--model", "-m", help="Set the OpenAI model used when OPENAI_MODEL is unset"),
    max_tokens: int = typer.Option(None, "--max-tokens", help="Set the max output tokens per request"),
    temperature: float = typer.Option(None, "--temperature", help="Set the sampling temperature"),
    extensions: Optional[List[str]] = typer.Option(None, "--ext", "-e", help="Set the file extensions reviewed with --dir (repeatable)"),
    show: bool = typer.Option(False, "--show", help="Print the current configuration"),
):
    """
    View or update configuration settings.
    """
    logger.info("Command 'config' triggered")
    console.print(Panel("[bold green]Configuration Manager[/bold green]", expand=False))

    any_changes = False
    if model:
        config_manager.set_model(model)
        console.print(f"Model updated to: [green]{model}[/green]")
        any_changes = True
    if max_tokens is not None:
        if max_tokens <= 0:
            console.print("[red]--max-tokens must be positive[/red]")
            raise typer.Exit(code=1)
        config_manager.set_max_tokens(max_tokens)
        console.print(f"Max tokens updated to: [green]{max_tokens}[/green]")
        any_changes = True
    if temperature is not None:
        config_manager.set_temperature(temperature)
        console.print(f"Temperature updated to: [green]{temperature}[/green]")
        any_changes = True
    if extensions:
        config_manager.set_extensions(list(extensions))
        console.print(f"Extensions updated to: [green]{', '.join(extensions)}[/green]")
        any_changes = True

    if any_changes:
        console.print(f"[bold green]Configuration saved to {config_manager.config_file}[/bold green]")
    if any_changes and not show:
        return

    llm_settings = config_manager.get_llm_settings()
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Setting")
    table.add_column("Value")
    table.add_row("config file", str(config_manager.config_file))
    table.add_row("model", str(llm_settings["model"]))
    table.add_row("endpoint", str(llm_settings["endpoint"]))
    table.add_row("max_tokens", str(llm_settings["max_tokens"]))
    table.add_row("temperature", "default" if llm_settings["temperature"] is None else str(llm_settings["temperature"]))
    table.add_row("timeout_seconds", str(llm_settings["timeout_seconds"]))
    table.add_row("extensions", ", ".join(config_manager.get_scan_extensions()))
    console.print(table)


if __name__ == "__main__":
    app()
