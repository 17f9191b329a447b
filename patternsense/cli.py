#!/usr/bin/env python3
"""
Command-line interface for PatternSense.
"""

import click
import json
import sys
from contextlib import contextmanager
from pathlib import Path

import yaml
from rich.console import Console
from rich.table import Table

from .config import Config
from .utils import logger, set_log_level, parse_key_values
from .learning import AdaptiveEngine, FeedbackAction, FeedbackEvent, create_blob_store

console = Console()


@contextmanager
def open_engine(ctx):
    """Engine for the selected domain, flushed and stopped on exit."""
    config = ctx.obj['config'].config
    engine = AdaptiveEngine(config, create_blob_store(config), domain=ctx.obj['domain'])
    engine.init(start_scheduler=False)
    try:
        yield engine
    finally:
        engine.shutdown()


def parse_context(pairs):
    try:
        return parse_key_values(pairs)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--context")


@click.group()
@click.option('--config', '-c', type=click.Path(exists=True), help='Config file path')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Quiet output')
@click.option('--domain', '-d', default='general', show_default=True, help='Analysis domain')
@click.pass_context
def cli(ctx, config, verbose, quiet, domain):
    """PatternSense - adaptive confidence for learned coding patterns"""
    ctx.ensure_object(dict)
    ctx.obj['config'] = Config(config)
    ctx.obj['domain'] = domain

    if verbose:
        set_log_level('DEBUG')
    elif quiet:
        set_log_level('ERROR')
    else:
        set_log_level(ctx.obj['config'].config.logging.level)


@cli.command()
@click.argument('kind')
@click.argument('content')
@click.option('--language', '-l', required=True, help='Language of the observed code')
@click.option('--context', '-x', multiple=True, help='Context attribute as key=value')
@click.pass_context
def observe(ctx, kind, content, language, context):
    """Record an observed pattern."""
    observation = {
        'kind': kind,
        'content': content,
        'language': language,
        'context': parse_context(context),
    }
    with open_engine(ctx) as engine:
        pattern_id = engine.observe(observation)
        pattern = engine.get_pattern(pattern_id) if pattern_id else None

    if pattern is None:
        console.print("[red]✗[/red] Observation was not recorded")
        ctx.exit(1)

    console.print(f"[green]✓[/green] {pattern_id} (confidence {pattern.confidence:.2f})")


@cli.command()
@click.argument('pattern_id')
@click.argument('action', type=click.Choice(['accept', 'reject', 'ignore']))
@click.option('--reason', '-r', help='Why the suggestion was rejected')
@click.option('--context', '-x', multiple=True, help='Context attribute as key=value')
@click.pass_context
def feedback(ctx, pattern_id, action, reason, context):
    """Record user feedback on a suggested pattern."""
    event = FeedbackEvent(
        pattern_id=pattern_id,
        action=FeedbackAction(action),
        context=parse_context(context),
        reason=reason
    )
    with open_engine(ctx) as engine:
        outcome = engine.feedback(event)

    if not outcome.ok:
        console.print(f"[red]✗[/red] {outcome.error}")
        ctx.exit(1)

    console.print(
        f"[green]✓[/green] {pattern_id}: "
        f"{outcome.old_confidence:.2f} -> {outcome.new_confidence:.2f}"
    )


@cli.command()
@click.argument('language')
@click.option('--context', '-x', multiple=True, help='Context attribute as key=value')
@click.option('--min-confidence', '-m', type=float, default=0.0, show_default=True,
              help='Minimum adjusted confidence')
@click.option('--limit', '-n', type=int, help='Maximum number of suggestions')
@click.option('--kind', '-k', multiple=True, help='Only these pattern kinds')
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']),
              default='table')
@click.pass_context
def suggest(ctx, language, context, min_confidence, limit, kind, output_format):
    """Rank learned patterns for a language and context."""
    query_context = parse_context(context)
    try:
        with open_engine(ctx) as engine:
            suggestions = engine.suggestions(
                language,
                query_context,
                min_confidence=min_confidence,
                limit=limit,
                kinds=kind or None
            )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        ctx.exit(1)

    if output_format == 'json':
        click.echo(json.dumps([s.to_dict() for s in suggestions], indent=2))
        return

    if not suggestions:
        console.print("[yellow]No suggestions above the confidence threshold[/yellow]")
        return

    table = Table(title=f"Suggestions for {language}")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Kind", style="cyan")
    table.add_column("Pattern")
    table.add_column("ID", style="dim")

    for suggestion in suggestions:
        table.add_row(
            f"{suggestion.score:.2f}",
            suggestion.pattern.kind.value,
            suggestion.pattern.content,
            suggestion.pattern_id
        )

    console.print(table)


@cli.command()
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']),
              default='table')
@click.pass_context
def stats(ctx, output_format):
    """Show adaptation statistics and acceptance rates."""
    with open_engine(ctx) as engine:
        adaptation = engine.stats()
        acceptance = engine.acceptance_summary()
        behavior = engine.behavior_insights()

    if output_format == 'json':
        click.echo(json.dumps({
            'adaptation': adaptation,
            'acceptance': acceptance,
            'behavior': behavior,
        }, indent=2, default=str))
        return

    table = Table(title=f"Pattern Statistics ({ctx.obj['domain']})")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Patterns", str(adaptation['total_patterns']))
    table.add_row("Average confidence", f"{adaptation['average_confidence']:.2f}")
    table.add_row("Suggested", str(acceptance['suggested']))
    table.add_row("Accepted", str(acceptance['accepted']))
    table.add_row("Rejected", str(acceptance['rejected']))
    table.add_row("Acceptance rate", f"{acceptance['acceptance_rate']:.1%}")
    table.add_row("Feedback events", str(behavior['total_feedback']))
    console.print(table)

    if adaptation['top_patterns']:
        top_table = Table(title="Top Patterns")
        top_table.add_column("Confidence", justify="right", style="green")
        top_table.add_column("Kind", style="cyan")
        top_table.add_column("Pattern")
        for item in adaptation['top_patterns']:
            top_table.add_row(f"{item['confidence']:.2f}", item['kind'], item['content'])
        console.print(top_table)

    strategy_table = Table(title="Strategy Weights")
    strategy_table.add_column("Strategy", style="cyan")
    strategy_table.add_column("Weight", justify="right")
    for name, weight in adaptation['strategy_effectiveness'].items():
        strategy_table.add_row(name, f"{weight:.2f}")
    console.print(strategy_table)


@cli.command()
@click.pass_context
def maintain(ctx):
    """Run one maintenance sweep (decay, cleanup, ranking)."""
    with open_engine(ctx) as engine:
        report = engine.maintain()

    if report is None:
        console.print("[red]✗[/red] Maintenance did not run")
        ctx.exit(1)

    console.print(f"[green]✓[/green] Decayed {report.decayed} patterns, removed {len(report.removed)}")

    if report.top:
        table = Table(title="Top Patterns")
        table.add_column("#", justify="right")
        table.add_column("Confidence", justify="right", style="green")
        table.add_column("Kind", style="cyan")
        table.add_column("Pattern")
        for position, pattern in enumerate(report.top, start=1):
            table.add_row(str(position), f"{pattern.confidence:.2f}", pattern.kind.value, pattern.content)
        console.print(table)


@cli.group()
def config():
    """Configuration management."""
    pass


@config.command('show')
@click.pass_context
def config_show(ctx):
    """Show the effective configuration."""
    click.echo(yaml.dump(ctx.obj['config'].config.model_dump(), default_flow_style=False, sort_keys=False))


@config.command('init')
@click.option('--path', '-p', default='.patternsense.yaml', show_default=True, help='Where to write the file')
@click.option('--force', '-f', is_flag=True, help='Overwrite an existing file')
def config_init(path, force):
    """Write a default configuration file."""
    if Path(path).exists() and not force:
        console.print("[yellow]⚠[/yellow] Configuration file already exists. Use --force to overwrite.")
        return

    Config.create_default(path)
    console.print(f"[green]✓[/green] Configuration written to {path}")


def main():
    """Main entry point."""
    try:
        cli(obj={})
    except Exception as e:
        logger.debug("Unhandled CLI error", exc_info=True)
        console.print(f"[red]Error:[/red] {str(e)}")
        sys.exit(1)


if __name__ == '__main__':
    main()
