"""Command line interface for compiling and running faceted searches."""

import logging
from dataclasses import dataclass
from pathlib import Path

import click
from click.exceptions import Exit
from rich.console import Console
from rich.table import Table

from facetsearch import __version__
from facetsearch.backends.opensearch import FullTextMode, OpenSearchBackend, QuerySerializer
from facetsearch.config import SearchConfig, load_search_config
from facetsearch.exceptions import ConfigurationError, SearchError
from facetsearch.geometry import GeometryNormalizer
from facetsearch.parameters import SearchParameter
from facetsearch.requests import FacetedSearchRequest, SearchRequestBuilder
from facetsearch.service import SearchService

CLIENT_ERROR_EXIT_CODE = 2


@dataclass
class Context:
    """CLI context that holds shared resources."""

    console: Console
    config: SearchConfig
    debug: bool = False


def setup_logging(
    verbose: bool = False, quiet: bool = False, debug: bool = False
) -> None:
    """Configure logging based on CLI flags."""
    if quiet:
        level = logging.WARNING
    elif verbose or debug:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
        if not debug
        else "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_console(no_color: bool = False, width: int | None = None) -> Console:
    """Create Rich console with appropriate settings."""
    return Console(
        no_color=no_color,
        width=width or 120,
        highlight=not no_color,
        color_system=None if no_color else "auto",
    )


class FacetSearchGroup(click.Group):
    """Custom group that reports search errors and handles KeyboardInterrupt."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except KeyboardInterrupt:
            console = getattr(ctx.obj, "console", None) if ctx.obj else None
            if console:
                console.print("[yellow]Interrupted[/yellow]")
            ctx.exit(130)
        except (click.ClickException, click.Abort, Exit, SystemExit):
            raise
        except Exception as e:
            debug = getattr(ctx.obj, "debug", False) if ctx.obj else False
            if debug:
                raise
            console = getattr(ctx.obj, "console", None) if ctx.obj else None
            if console:
                console.print(f"[red]Error:[/red] {e}")
            else:
                click.echo(f"Error: {e}", err=True)
            # invalid filters, shapes and facet windows are the caller's fault
            client_error = isinstance(e, SearchError) and isinstance(e, ValueError)
            ctx.exit(CLIENT_ERROR_EXIT_CODE if client_error else 1)


def parse_filters(
    parameters: type[SearchParameter], filters: tuple[str, ...]
) -> dict[SearchParameter, set[str]]:
    """Parse repeated PARAM=VALUE options into a filter map."""
    parsed: dict[SearchParameter, set[str]] = {}
    for item in filters:
        name, separator, value = item.partition("=")
        if not separator:
            raise click.BadParameter(f"expected PARAM=VALUE, got {item!r}", param_hint="--filter")
        parameter = parameters.lookup(name)
        if parameter is None:
            raise click.BadParameter(f"unknown parameter {name!r}", param_hint="--filter")
        parsed.setdefault(parameter, set()).add(value)
    return parsed


def parse_facets(
    parameters: type[SearchParameter], facets: tuple[str, ...]
) -> list[SearchParameter]:
    result = []
    for name in facets:
        parameter = parameters.lookup(name)
        if parameter is None:
            raise click.BadParameter(f"unknown parameter {name!r}", param_hint="--facet")
        result.append(parameter)
    return result


def request_options(func):
    """Options shared by commands that build a faceted search request."""
    options = [
        click.option("--q", "q", help="Free-text term ('*' matches everything)"),
        click.option("--filter", "filters", multiple=True, metavar="PARAM=VALUE", help="Filter value (repeatable)"),
        click.option("--facet", "facets", multiple=True, metavar="PARAM", help="Facet to count (repeatable)"),
        click.option("--multi-select", is_flag=True, help="Use multi-select facet counts"),
        click.option("--facet-limit", type=int, default=None, help="Buckets per facet"),
        click.option("--facet-offset", type=int, default=0, help="Buckets to skip per facet"),
        click.option("--facet-min-count", type=int, default=None, help="Minimum bucket count"),
        click.option("--limit", type=int, default=None, help="Number of hits"),
        click.option("--offset", type=int, default=0, help="Hits to skip"),
        click.option("--facets-only", is_flag=True, help="Only compute facets"),
        click.option("--highlight", is_flag=True, help="Highlight matches"),
        click.option("--spellcheck", is_flag=True, help="Request spelling suggestions"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_request(config: SearchConfig, **options) -> FacetedSearchRequest:
    """Build a faceted request from command line options."""
    if config.parameters is None or config.catalog is None:
        raise ConfigurationError(
            "No search parameters configured; pass --config with a parameters section"
        )

    settings = config.settings
    limit = options["limit"]
    facet_limit = options["facet_limit"]
    return FacetedSearchRequest(
        q=options["q"],
        filters=parse_filters(config.parameters, options["filters"]),
        facets=parse_facets(config.parameters, options["facets"]),
        multi_select=options["multi_select"],
        facet_limit=settings.facet_limit if facet_limit is None else facet_limit,
        facet_offset=options["facet_offset"],
        facet_min_count=options["facet_min_count"],
        limit=settings.default_limit if limit is None else limit,
        offset=options["offset"],
        facets_only=options["facets_only"],
        highlight=options["highlight"],
        spellcheck=options["spellcheck"],
    )


def create_serializer(config: SearchConfig, mode: str) -> QuerySerializer:
    return QuerySerializer(
        config.catalog,
        mode=FullTextMode(mode),
        pre_tag=config.settings.highlight_pre_tag,
        post_tag=config.settings.highlight_post_tag,
    )


@click.group(cls=FacetSearchGroup)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-error output")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option("--debug", is_flag=True, help="Enable debug mode with full tracebacks")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.version_option(
    version=__version__,
    prog_name="facetsearch",
    message="facetsearch version %(version)s",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    no_color: bool,
    debug: bool,
    config: Path | None,
) -> None:
    """Faceted search query compiler.

    Compiles filters, facets and free text into OpenSearch requests and
    runs them against an index.
    """
    setup_logging(verbose=verbose, quiet=quiet, debug=debug)
    console = create_console(no_color=no_color)

    try:
        search_config = load_search_config(config)
    except ConfigurationError as e:
        if debug:
            raise
        console.print(f"[red]Error loading config file:[/red] {e}")
        ctx.exit(1)

    ctx.obj = Context(console=console, config=search_config, debug=debug)


@cli.command("compile")
@request_options
@click.option(
    "--mode",
    type=click.Choice([m.value for m in FullTextMode]),
    default=FullTextMode.MATCH.value,
    show_default=True,
    help="Full-text query flavour",
)
@click.pass_obj
def compile_command(ctx: Context, mode: str, **options) -> None:
    """Print the OpenSearch request body of a search."""
    request = build_request(ctx.config, **options)
    compiled = SearchRequestBuilder(ctx.config.catalog, ctx.config.settings).build(request)
    body = create_serializer(ctx.config, mode).request_body(compiled)
    ctx.console.print_json(data=body)


@cli.command("search")
@request_options
@click.option("--host", envvar="FACETSEARCH_HOST", default="http://localhost:9200", show_default=True)
@click.option("--index", envvar="FACETSEARCH_INDEX", required=True, help="Index to search")
@click.option("--timeout", type=float, default=None, help="Request timeout in seconds")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in FullTextMode]),
    default=FullTextMode.MATCH.value,
    show_default=True,
)
@click.pass_obj
def search_command(
    ctx: Context, host: str, index: str, timeout: float | None, mode: str, **options
) -> None:
    """Run a faceted search against an OpenSearch index."""
    request = build_request(ctx.config, **options)
    backend = OpenSearchBackend.connect(host, index, create_serializer(ctx.config, mode))
    service = SearchService(ctx.config.catalog, backend, ctx.config.settings)
    response = service.search(request, timeout=timeout)

    console = ctx.console
    console.print(f"[bold]{response.total}[/bold] results")

    if response.results:
        table = Table(show_header=True, header_style="bold")
        columns = sorted({key for result in response.results for key in result})
        for column in columns:
            table.add_column(column)
        for result in response.results:
            table.add_row(*(str(result.get(column, "")) for column in columns))
        console.print(table)

    for facet in response.facets:
        console.print(f"\n[bold cyan]{facet.parameter}[/bold cyan]")
        for count in facet.counts:
            console.print(f"  {count.name}: {count.count}")

    if response.spell_check and not response.spell_check.correctly_spelled:
        for suggestion in response.spell_check.suggestions.values():
            console.print(
                f"[yellow]Did you mean:[/yellow] {', '.join(suggestion.alternatives)}"
            )


@cli.command("wkt")
@click.argument("shape")
@click.pass_obj
def wkt_command(ctx: Context, shape: str) -> None:
    """Print the normalized form of a WKT shape."""
    ctx.console.print(GeometryNormalizer().normalize(shape), highlight=False, soft_wrap=True)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
