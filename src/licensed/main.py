import logging
import sys
import time
import uuid
from pathlib import Path
from typing import List, Optional

import click
from rich import box
from rich.console import Console
from rich.table import Table

from .cli_config import (
    STDOUT_SENTINEL,
    GenerationConfig,
    LicensedConfig,
    create_sample_config,
    load_config,
    load_config_file,
    resolve_destination_dir,
    validate_config_values,
    validate_generated_names,
)
from .dependency import DependencyRecord
from .discovery import (
    detect_target_package,
    find_project_root,
    get_dependencies,
    locate_licenses,
)
from .error_handling import (
    ErrorLevel,
    get_error_handler,
    setup_error_handling,
)
from .generator import generate as generate_module
from .generator import write_output
from .structured_logging import (
    clear_run_context,
    configure_logging,
    set_run_context,
)

__version__ = "1.0.0"

console = Console()
err_console = Console(stderr=True)


def _setup_logging(config: LicensedConfig, verbose: bool) -> None:
    log_level = "DEBUG" if verbose else config.logging.log_level
    configure_logging(
        log_level, config.logging.enable_json, config.logging.log_format
    )
    setup_error_handling(getattr(logging, log_level.upper(), logging.WARNING))


def _fail(error: Exception, function: str) -> None:
    """Record a fatal error and exit with a single diagnostic line."""
    get_error_handler().report(error, __name__, function, level=ErrorLevel.DEBUG)
    message = " ".join(str(error).split()) or type(error).__name__
    err_console.print(
        f"❌ Error: {message}", style="red", markup=False, highlight=False, soft_wrap=True
    )
    sys.exit(1)


def discover_records(
    config: LicensedConfig, cwd: Path, project_root: Optional[str]
) -> List[DependencyRecord]:
    """Find the project root, list its vendored dependencies and their licenses."""
    discovery = config.discovery
    root = (
        Path(project_root).resolve()
        if project_root
        else find_project_root(cwd, discovery.vendor_dir)
    )
    records = get_dependencies(
        root,
        discovery.vendor_dir,
        discovery.pip_executable,
        discovery.tool_timeout_seconds,
    )
    locate_licenses(records, root / discovery.vendor_dir, discovery.license_patterns)
    return records


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.pass_context
def cli(ctx, version):
    """
    📜 licensed: embed third-party license texts in a generated Python module

    Lists the dependencies vendored into the project, finds each one's
    license file and writes a module exposing them as compiled-in data.
    """
    if version:
        console.print(f"licensed version {__version__}", style="bold blue")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command()
@click.option(
    "--output",
    "-o",
    help="Path of the module to generate, '-' for stdout (default: licenses_generated.py)",
)
@click.option(
    "--func",
    "function_name",
    help="Name of the function to generate (default: get_license_infos)",
)
@click.option(
    "--type",
    "type_name",
    help="Name of the record type to generate (default: LicenseInfo)",
)
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False),
    help="Project directory holding the vendor directory (default: search upward)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress status output")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def generate(
    output: Optional[str],
    function_name: Optional[str],
    type_name: Optional[str],
    project_root: Optional[str],
    quiet: bool,
    verbose: bool,
) -> None:
    """
    Generate the license module.

    Examples:

      licensed generate

      licensed generate -o mypkg/licenses_generated.py --func third_party_licenses

      licensed generate -o - > licenses_generated.py
    """
    cwd = Path.cwd()
    try:
        config = load_config(cwd)
        _setup_logging(config, verbose)

        output = output or config.generate.output
        function_name = function_name or config.generate.function_name
        type_name = type_name or config.generate.type_name

        validate_generated_names(function_name, type_name)
        destination_dir = resolve_destination_dir(output, cwd)
        output_path = None
        if output != STDOUT_SENTINEL:
            output_path = Path(output) if Path(output).is_absolute() else cwd / output

        set_run_context(run_id=f"run_{uuid.uuid4().hex[:12]}", output=output)
        started = time.perf_counter()

        records = discover_records(config, cwd, project_root)
        package_name = detect_target_package(destination_dir, exclude=output_path)

        generation_config = GenerationConfig(
            output=str(output_path) if output_path else STDOUT_SENTINEL,
            function_name=function_name,
            type_name=type_name,
            package_name=package_name,
        )
        source = generate_module(records, generation_config)
        write_output(source, generation_config.output)

        if not quiet:
            elapsed_ms = int((time.perf_counter() - started) * 1000)
            target = "stdout" if generation_config.to_stdout else generation_config.output
            err_console.print(
                f"✅ Embedded {len(records)} licenses into {target} ({elapsed_ms} ms)",
                style="green",
                highlight=False,
                soft_wrap=True,
            )
    except KeyboardInterrupt:
        err_console.print("\n⚠️  Generation interrupted by user", style="yellow")
        sys.exit(130)
    except Exception as e:
        _fail(e, "generate")
    finally:
        clear_run_context()


@cli.command("list")
@click.option(
    "--project-root",
    type=click.Path(exists=True, file_okay=False),
    help="Project directory holding the vendor directory (default: search upward)",
)
def list_dependencies(project_root: Optional[str]) -> None:
    """Show vendored dependencies and the license file found for each."""
    cwd = Path.cwd()
    try:
        config = load_config(cwd)
        _setup_logging(config, verbose=False)
        records = discover_records(config, cwd, project_root)
    except Exception as e:
        _fail(e, "list_dependencies")

    table = Table(title="📜 Vendored Dependencies", box=box.ROUNDED, title_style="bold cyan")
    table.add_column("Dependency", style="bold")
    table.add_column("License File")

    missing = 0
    for record in records:
        if record.license_path is None:
            missing += 1
            table.add_row(record.name, "[bold red]MISSING[/bold red]")
        else:
            table.add_row(record.name, str(record.license_path))

    console.print(table)
    if missing:
        console.print(f"❌ {missing} dependencies have no license file", style="red")
        sys.exit(1)
    console.print(f"✅ All {len(records)} dependencies have a license file", style="green")


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".licensed.json",
    help="Path where to create the config file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)

    if config_path.exists() and not force:
        console.print(
            f"⚠️  Config file already exists at {config_path}", style="yellow", soft_wrap=True
        )
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())
    except OSError as e:
        _fail(e, "config_init")

    console.print(
        f"✅ Created configuration file at {config_path}", style="green", soft_wrap=True
    )


@config.command("show")
def config_show():
    """Show the effective configuration."""
    try:
        current_config = load_config(Path.cwd())
    except Exception as e:
        _fail(e, "config_show")

    console.print("\n[bold cyan]⚙️  Generate Settings:[/bold cyan]")
    console.print(f"  Output: {current_config.generate.output}")
    console.print(f"  Function Name: {current_config.generate.function_name}")
    console.print(f"  Type Name: {current_config.generate.type_name}")

    console.print("\n[bold cyan]🔍 Discovery Settings:[/bold cyan]")
    console.print(f"  Vendor Directory: {current_config.discovery.vendor_dir}")
    console.print(f"  Pip Executable: {current_config.discovery.pip_executable}")
    console.print(f"  Tool Timeout: {current_config.discovery.tool_timeout_seconds}s")
    console.print(
        f"  License Patterns: {', '.join(current_config.discovery.license_patterns)}"
    )

    console.print("\n[bold cyan]📝 Logging Settings:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")
    console.print(f"  JSON Logs: {current_config.logging.enable_json}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def config_validate(config_file: str):
    """Validate a configuration file."""
    config_data = load_config_file(Path(config_file))
    if config_data is None:
        err_console.print(
            f"❌ Could not load config from {config_file}", style="red", soft_wrap=True
        )
        sys.exit(1)

    candidate = LicensedConfig()
    errors = []
    for section_name, section_data in config_data.items():
        section = getattr(candidate, section_name, None)
        if section is None or not isinstance(section_data, dict):
            errors.append(f"unknown section {section_name!r}")
            continue
        for key, value in section_data.items():
            if not hasattr(section, key):
                errors.append(f"unknown key {section_name}.{key}")
            else:
                setattr(section, key, value)

    if not errors:
        errors = validate_config_values(candidate)

    if errors:
        err_console.print("❌ Configuration validation failed:", style="red")
        for error in errors:
            err_console.print(f"  • {error}", style="red", soft_wrap=True)
        sys.exit(1)

    console.print(
        f"✅ Configuration file {config_file} is valid", style="green", soft_wrap=True
    )


if __name__ == "__main__":
    cli()
