import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from .cli_config import create_sample_config, load_config, reset_config
from .error_handling import BitbakeError, Diagnostics, report_fatal
from .recipe import RecipeOptions, __version__, generate_recipe
from .structured_logging import configure_logging, verbosity_to_level

console = Console(highlight=False)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    cargo-bitbake: generates BitBake recipes for Cargo projects.

    Translates the resolved dependency graph of a Cargo package into a
    recipe that fetches every crate and git dependency reproducibly.
    """
    if version:
        console.print(f"cargo-bitbake version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command()
@click.option("--quiet", "-q", is_flag=True, help="Silence all output")
@click.option("-v", "verbose", count=True, help="Verbose mode (-v, -vv, -vvv, etc.)")
@click.option(
    "--reproducible",
    "-r",
    is_flag=True,
    help="Reproducible mode: output exact git references for git projects",
)
@click.option(
    "--no-checksums",
    "-c",
    is_flag=True,
    help="Don't emit inline checksums",
)
@click.option(
    "--legacy-overrides",
    "-l",
    is_flag=True,
    help="Legacy overrides: use legacy override syntax (PV_append)",
)
@click.option(
    "--manifest-path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to Cargo.toml (default: search upward from the current directory)",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory to write the recipe to (default: current directory)",
)
def bitbake(
    quiet: bool,
    verbose: int,
    reproducible: bool,
    no_checksums: bool,
    legacy_overrides: bool,
    manifest_path: Optional[Path],
    output_dir: Optional[Path],
) -> None:
    """
    Generates a BitBake recipe for a given Cargo project.

    Examples:

      cargo-bitbake bitbake

      cargo-bitbake bitbake -r --manifest-path path/to/Cargo.toml

      cargo-bitbake bitbake --no-checksums --legacy-overrides
    """
    config = load_config()
    log_level = verbosity_to_level(verbose, quiet, config.logging.log_level)
    configure_logging(log_level)
    diagnostics = Diagnostics(verbosity=verbose, quiet=quiet, console=console, log_level=log_level)

    options = RecipeOptions(
        reproducible=reproducible or config.recipe.reproducible,
        checksums=config.recipe.checksums and not no_checksums,
        legacy_overrides=legacy_overrides or config.recipe.legacy_overrides,
        manifest_path=manifest_path,
        output_dir=output_dir or (Path(config.recipe.output_dir) if config.recipe.output_dir else None),
    )

    if not quiet and verbose:
        console.print(
            Panel(
                f"[bold blue]cargo-bitbake[/bold blue] v{__version__}",
                border_style="blue",
            )
        )
        diagnostics.debug(
            f"reproducible={options.reproducible} checksums={options.checksums} "
            f"legacy_overrides={options.legacy_overrides}"
        )

    try:
        recipe_path = generate_recipe(options, diagnostics)
    except KeyboardInterrupt:
        Console(stderr=True).print("\n⚠️  Interrupted by user", style="yellow")
        sys.exit(130)
    except BitbakeError as e:
        report_fatal(e, "main", "bitbake", diagnostics.error_handler)
        Console(stderr=True, highlight=False).print(f"❌ Error: {e}", style="red", markup=False, soft_wrap=True)
        sys.exit(1)

    diagnostics.info(f"Wrote: {recipe_path}")


@cli.group()
def config():
    """Manage cargo-bitbake configuration."""
    pass


@config.command("init")
@click.option(
    "--path",
    default=".cargo-bitbake.json",
    help="Config file path",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)
    if config_path.exists() and not force:
        raise click.ClickException(f"Config file already exists: {config_path} (use --force)")
    try:
        config_path.write_text(create_sample_config() + "\n", encoding="utf-8")
    except OSError as e:
        raise click.ClickException(f"Unable to write config file {config_path}: {e}")
    console.print(f"✅ Created config file: {config_path}", style="green")


@config.command("show")
def config_show():
    """Show the effective configuration."""
    reset_config()
    console.print_json(json.dumps(asdict(load_config())))


if __name__ == "__main__":
    cli()
