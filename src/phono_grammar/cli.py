"""Command-line interface for phono-grammar.

Uses Typer for a type-hinted CLI and Rich for tables.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

# Environment overrides from ~/.phono-grammar/.env, then a local .env
_user_env = Path.home() / ".phono-grammar" / ".env"
if _user_env.exists():
    load_dotenv(_user_env)
load_dotenv()

from phono_grammar import __version__
from phono_grammar.config import MatcherSettings, load_settings
from phono_grammar.errors import MalformedRequest, PhonoGrammarError, format_error_for_display
from phono_grammar.logging import LogLevel, set_verbosity
from phono_grammar.matching import create_recognizer
from phono_grammar.phonemes import PhonemeCache, create_oracle, levenshtein_distance, normalize_text
from phono_grammar.protocol import handle_request

app = typer.Typer(
    name="phono-grammar",
    help="Match speech recognition n-best lists against a closed grammar by phonetic similarity.",
    add_completion=False,
    rich_markup_mode="rich",
)

console = Console()
err_console = Console(stderr=True)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Settings JSON file."),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"phono-grammar version {__version__}")
        raise typer.Exit()


def _load_settings_or_exit(config: Path | None) -> MatcherSettings:
    try:
        return load_settings(config)
    except PhonoGrammarError as e:
        err_console.print(f"[red]Error:[/red] {escape(format_error_for_display(e))}")
        raise typer.Exit(1)


def _fail(error: Exception) -> None:
    err_console.print(f"[red]Error:[/red] {escape(format_error_for_display(error))}")
    raise typer.Exit(1)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log progress.")] = False,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Only log errors.")] = False,
) -> None:
    """Phono Grammar - phonetic post-processing for speech recognition.

    [bold]match[/bold]: rank a grammar file against an n-best list.

    [bold]request[/bold]: answer [dim]expected===hypotheses[/dim] protocol lines.
    """
    if verbose:
        set_verbosity(LogLevel.VERBOSE)
    elif quiet:
        set_verbosity(LogLevel.QUIET)


@app.command()
def match(
    grammar_file: Annotated[Path, typer.Argument(help="Grammar file, one sentence or word per line")],
    hypotheses: Annotated[list[str], typer.Argument(help="Recognizer hypotheses, best first")],
    k: Annotated[
        Optional[int], typer.Option("--k", "-k", min=1, help="Number of ranked results")
    ] = None,
    words: Annotated[
        bool, typer.Option("--words", "-w", help="Correct the best hypothesis word by word")
    ] = False,
    rebuild: Annotated[
        bool, typer.Option("--rebuild", help="Ignore and replace the phoneme snapshot")
    ] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the result as JSON")] = False,
    config: ConfigOption = None,
) -> None:
    """Match hypotheses against a grammar file."""
    settings = _load_settings_or_exit(config)
    updates: dict = {}
    if k is not None:
        updates["k"] = k
    if words:
        updates["recognizer"] = "words"
    if updates:
        settings = settings.model_copy(update=updates)

    try:
        cache = PhonemeCache(
            create_oracle(settings.oracle),
            cache_dir=settings.cache_dir,
            persist=settings.persist,
        )
        if rebuild:
            cache.invalidate(str(grammar_file.resolve()))

        recognizer = create_recognizer(settings, grammar_path=grammar_file, cache=cache)
        result = recognizer.recognize(hypotheses)
    except (PhonoGrammarError, FileNotFoundError) as e:
        _fail(e)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return

    if result.is_empty:
        console.print("[yellow]No grammar entry matched.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Match", style="cyan")
    table.add_column("Distance", justify="right")
    for position, (text, candidate) in enumerate(zip(result.matches, result.candidates), start=1):
        table.add_row(str(position), escape(text), str(candidate.distance))
    console.print(table)

    console.print(f"[bold]Best:[/bold] {escape(result.raw_text)}", highlight=False)
    console.print(f"[bold]Confidence:[/bold] {result.confidence:.2f}")


@app.command("build-cache")
def build_cache(
    grammar_file: Annotated[Path, typer.Argument(help="Grammar file, one sentence or word per line")],
    config: ConfigOption = None,
) -> None:
    """Phonemize a grammar file and write its snapshot."""
    settings = _load_settings_or_exit(config)
    if not settings.persist:
        console.print("[yellow]Warning:[/yellow] persist is disabled in the settings; nothing is written.")

    try:
        cache = PhonemeCache(
            create_oracle(settings.oracle),
            cache_dir=settings.cache_dir,
            persist=settings.persist,
        )
        source_id = str(grammar_file.resolve())
        cache.invalidate(source_id)
        database = cache.load_or_build_file(grammar_file)
    except (PhonoGrammarError, FileNotFoundError) as e:
        _fail(e)

    console.print(f"[green]Built[/green] {len(database)} entries with oracle '{database.oracle}'.")
    if settings.persist:
        console.print(f"Snapshot: {cache.snapshot_path(source_id)}")


@app.command()
def distance(
    text_a: Annotated[str, typer.Argument(help="First text")],
    text_b: Annotated[str, typer.Argument(help="Second text")],
    config: ConfigOption = None,
) -> None:
    """Show phonemes and phoneme edit distance of two texts."""
    settings = _load_settings_or_exit(config)

    try:
        oracle = create_oracle(settings.oracle)
        normalized_a = normalize_text(text_a)
        normalized_b = normalize_text(text_b)
        phonemes_a = oracle.phoneticize(normalized_a) if normalized_a else []
        phonemes_b = oracle.phoneticize(normalized_b) if normalized_b else []
    except PhonoGrammarError as e:
        _fail(e)

    table = Table(show_header=True, header_style="bold")
    table.add_column("Text")
    table.add_column("Phonemes", style="cyan")
    table.add_row(escape(text_a), " ".join(phonemes_a) or "-")
    table.add_row(escape(text_b), " ".join(phonemes_b) or "-")
    console.print(table)
    console.print(f"[bold]Distance:[/bold] {levenshtein_distance(phonemes_a, phonemes_b)}")


@app.command()
def request(
    line: Annotated[
        Optional[str],
        typer.Argument(help="Request line; read from stdin when omitted"),
    ] = None,
    config: ConfigOption = None,
) -> None:
    """Answer [dim]expected1|expected2===hyp1|hyp2[/dim] request lines.

    Prints one [dim]bestRawText===confidence[/dim] line per request.
    Exits with code 2 if any request was malformed.
    """
    settings = _load_settings_or_exit(config)
    lines = [line] if line is not None else [raw for raw in sys.stdin if raw.strip()]

    malformed = False
    try:
        oracle = create_oracle(settings.oracle)
        for request_line in lines:
            try:
                typer.echo(handle_request(request_line, oracle, k=settings.k))
            except MalformedRequest as e:
                malformed = True
                err_console.print(f"[red]Error:[/red] {escape(format_error_for_display(e))}")
    except PhonoGrammarError as e:
        _fail(e)

    if malformed:
        raise typer.Exit(2)


if __name__ == "__main__":
    app()
