"""CLI interface for rpxpatch."""

import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from rpxpatch import __version__
from rpxpatch.binary.assembler import KeystoneAssembler
from rpxpatch.binary.codec import WiiuRpxTool
from rpxpatch.binary.compiler import PatchCompiler, parse_address
from rpxpatch.binary.hax import read_hax, write_hax
from rpxpatch.binary.patcher import (
    Patch,
    PatchApplier,
    load_patch_list,
    save_patch_list,
)
from rpxpatch.config import Settings, get_settings
from rpxpatch.errors import PatchError
from rpxpatch.presets.rules import parse_rules

app = typer.Typer(
    name="rpxpatch",
    help="Compile graphic pack patches and apply them to U-King.rpx",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"rpxpatch version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
):
    """rpxpatch - preset-driven RPX patch compiler."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# --- Shared helpers ---


def _fail(error: PatchError) -> None:
    console.print(f"[red]{error.code}:[/] {escape(error.message)}")
    raise typer.Exit(1)


def _make_compiler(settings: Settings) -> PatchCompiler:
    return PatchCompiler(KeystoneAssembler(), settings.target)


def _make_applier(settings: Settings) -> PatchApplier:
    tool = settings.find_rpxtool()
    if tool is None:
        console.print("[red]wiiurpxtool not found. Set RPXPATCH_RPXTOOL or place it beside rpxpatch.[/]")
        raise typer.Exit(1)
    return PatchApplier(WiiuRpxTool(tool), settings.cache_path, settings.target)


def _parse_choices(presets: list[str]) -> dict[str, str]:
    choices = {}
    for item in presets:
        category, sep, name = item.partition("=")
        if not sep:
            console.print(f"[red]Preset must be CATEGORY=NAME: {item}[/]")
            raise typer.Exit(1)
        choices[category.strip()] = name.strip()
    return choices


def _print_patches(patches: list[Patch], title: str) -> None:
    table = Table(title=title)
    table.add_column("Address", style="cyan")
    table.add_column("Opcode")
    for p in patches:
        table.add_row(f"0x{p.address:08X}", p.opcode.hex(" ").upper())
    console.print(table)


def _load_patches(path: Path, settings: Settings) -> list[Patch]:
    if path.suffix.lower() == ".hax":
        return read_hax(path, settings.target)
    return load_patch_list(path)


# --- Commands ---


@app.command("rules")
def show_rules(
    rules_path: Annotated[Path, typer.Argument(help="Path to rules.txt")],
):
    """List the presets defined in a rules file."""
    try:
        rules = parse_rules(rules_path)
    except PatchError as e:
        _fail(e)

    if rules.is_empty:
        console.print("[yellow]No presets defined[/]")
        return

    console.print(f"[bold]Variables:[/] {', '.join(rules.variables)}")
    table = Table(title=rules.source_path)
    table.add_column("Category", style="cyan")
    table.add_column("Preset")
    table.add_column("Values", style="dim")
    for category, presets in rules.categories.items():
        for preset in presets:
            values = ", ".join(f"{k}={v}" for k, v in preset.values.items())
            table.add_row(category, preset.name, values)
    console.print(table)


@app.command("compile")
def compile_patches(
    pack_dir: Annotated[Path, typer.Argument(help="Graphic pack directory")],
    rules_path: Annotated[
        Optional[Path], typer.Option("--rules", "-r", help="Rules file (default: PACK_DIR/rules.txt)")
    ] = None,
    preset: Annotated[
        Optional[list[str]], typer.Option("--preset", "-p", help="CATEGORY=NAME, repeatable")
    ] = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Save patch list JSON")] = None,
    sort: Annotated[bool, typer.Option("--sort", help="Sort patches by address")] = False,
):
    """Compile a graphic pack's patch file, optionally with presets.

    Example: rpxpatch compile FPS++ -p "FPS Limit=60 FPS" -o fps.json
    """
    settings = get_settings()
    try:
        substitutions = None
        rules_file = rules_path or pack_dir / "rules.txt"
        if preset or rules_file.exists():
            # Without --preset every variable takes its default value.
            rules = parse_rules(rules_file)
            substitutions = rules.select(_parse_choices(preset or []))
        patches = _make_compiler(settings).compile(pack_dir, substitutions)
    except PatchError as e:
        _fail(e)

    if sort:
        patches = sorted(patches, key=lambda p: p.address)
    _print_patches(patches, f"{len(patches)} patches")
    if output:
        save_patch_list(patches, output)
        console.print(f"[green]Saved:[/] {output}")


@app.command("decode-hax")
def decode_hax_file(
    hax_path: Annotated[Path, typer.Argument(help="Legacy .hax patch list")],
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Save patch list JSON")] = None,
):
    """Decode a legacy .hax patch list."""
    settings = get_settings()
    try:
        patches = read_hax(hax_path, settings.target)
    except PatchError as e:
        _fail(e)

    _print_patches(patches, f"{hax_path.name}: {len(patches)} patches")
    if output:
        save_patch_list(patches, output)
        console.print(f"[green]Saved:[/] {output}")


@app.command("export-hax")
def export_hax(
    patch_list: Annotated[Path, typer.Argument(help="Patch list JSON")],
    output: Annotated[Path, typer.Argument(help="Destination .hax file")],
):
    """Write a patch list as a legacy .hax file."""
    settings = get_settings()
    try:
        patches = load_patch_list(patch_list)
        write_hax(patches, output, settings.target)
    except PatchError as e:
        _fail(e)
    console.print(f"[green]Wrote {len(patches)} patches:[/] {output}")


@app.command("validate")
def validate_instruction(
    address: Annotated[str, typer.Argument(help="Hex address, e.g. 0x02D90790")],
    instruction: Annotated[str, typer.Argument(help="Instruction, e.g. 'li r3, 60'")],
):
    """Assemble a single instruction and print its opcode."""
    settings = get_settings()
    try:
        patch = _make_compiler(settings).assemble(parse_address(address), instruction)
    except PatchError as e:
        _fail(e)
    console.print(f"0x{patch.address:08X}: [green]{patch.opcode.hex(' ').upper()}[/]")


@app.command("apply")
def apply_patches(
    input_rpx: Annotated[Path, typer.Argument(help="Original U-King.rpx")],
    output_rpx: Annotated[Path, typer.Argument(help="Destination RPX")],
    patch_file: Annotated[Path, typer.Argument(help="Patch list JSON or legacy .hax")],
):
    """Apply a patch list to an RPX image.

    Example: rpxpatch apply U-King.rpx out/U-King.rpx fps.json
    """
    settings = get_settings()
    try:
        patches = _load_patches(patch_file, settings)
        result = _make_applier(settings).apply(input_rpx, output_rpx, patches)
    except PatchError as e:
        _fail(e)

    cache_note = " (cached image)" if result.used_cache else ""
    console.print(
        f"[green]Applied {result.patches_applied} patches{cache_note}:[/] {result.output_path}"
    )


@app.command()
def info():
    """Show configuration and status information."""
    settings = get_settings()
    target = settings.target

    table = Table(title="rpxpatch Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_column("Status")

    tool = settings.find_rpxtool()
    tool_status = "[green]Found[/]" if tool else "[red]Not found[/]"
    table.add_row("wiiurpxtool", str(tool) if tool else "Not found", tool_status)

    cache_status = "[green]Cached[/]" if settings.cache_path.exists() else "[yellow]Not cached[/]"
    table.add_row("Decompressed cache", str(settings.cache_path), cache_status)

    table.add_row("Module id", target.module_id, "")
    table.add_row("Logical base", f"0x{target.logical_base:X}", "")
    table.add_row("Physical bias", f"0x{target.physical_bias:X}", "")
    table.add_row("Legacy address bias", f"0x{target.legacy_address_bias:X}", "")

    console.print(table)


if __name__ == "__main__":
    app()
