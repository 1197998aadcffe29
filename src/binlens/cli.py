"""Command-line interface for binlens."""

from pathlib import Path
from dataclasses import dataclass

import click
from rich.table import Table
from rich.panel import Panel
from rich.markup import escape
from rich.console import Console

from binlens.log import configure_logging
from binlens.config import BinlensConfig
from binlens.errors import LoaderError
from binlens.loader import BinaryFormat
from binlens.loader import pe as pe_format
from binlens.loader import elf as elf_format
from binlens.analysis import ByteHistogram, hex_rows, diff_rows, count_differences


@dataclass
class CliState:
    config: BinlensConfig
    console: Console


class HexInt(click.ParamType):
    """Non-negative integer accepting 0x/0o/0b prefixes."""

    name = "integer"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            number = value
        else:
            try:
                number = int(value, 0)
            except ValueError:
                self.fail(f"{value!r} is not a valid integer", param, ctx)
        if number < 0:
            self.fail(f"{value!r} must not be negative", param, ctx)
        return number


HEX_INT = HexInt()


class BinlensGroup(click.Group):
    """Reports loader failures as a one-line error with exit status 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except LoaderError as e:
            Console(stderr=True).print(f"[red]Error:[/red] {escape(str(e))}")
            ctx.exit(1)


@click.group(cls=BinlensGroup)
@click.version_option(version="0.1.0")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="TOML configuration file (default: $BINLENS_CONFIG or ./binlens.toml)",
)
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-vv for debug)")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, verbose: int) -> None:
    """binlens - ELF and PE executable inspector."""
    try:
        config = BinlensConfig.load(config_path)
        config.loader.translation_mode
        config.display.validate()
    except ValueError as e:
        raise click.UsageError(str(e)) from None

    level = config.logging.level
    if verbose == 1:
        level = "INFO"
    elif verbose >= 2:
        level = "DEBUG"
    configure_logging(
        level,
        config.logging.file,
        max_bytes=config.logging.max_bytes,
        backup_count=config.logging.backup_count,
    )
    ctx.obj = CliState(config=config, console=Console())


def _open(state: CliState, binary: str):
    from binlens import Project

    return Project.load(
        binary,
        translation=state.config.loader.translation_mode,
        syntax=state.config.display.syntax,
    )


def _flags_str(fmt: BinaryFormat, flags: int) -> str:
    if fmt is BinaryFormat.PE:
        return pe_format.section_flags_str(flags)
    return elf_format.section_flags_str(flags)


def _print_header(console: Console, proj) -> None:
    b = proj.binary
    title = f"{b.format.value} {b.bits}-bit"
    console.print(Panel.fit(f"[bold]{escape(Path(str(b.path)).name)}[/bold]", title=title))

    table = Table(show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", overflow="fold")
    for name, value in b.header_fields():
        table.add_row(name, escape(value))
    console.print(table)


def _print_segments(console: Console, proj) -> None:
    segments = proj.segments
    if not segments:
        console.print("[dim]No program headers[/dim]")
        return

    table = Table(title="Program Headers")
    table.add_column("Type", style="cyan", no_wrap=True)
    table.add_column("Offset", style="green")
    table.add_column("VirtAddr", style="green")
    table.add_column("FileSiz")
    table.add_column("MemSiz")
    table.add_column("Flags")
    table.add_column("Align")
    for seg in segments:
        table.add_row(
            seg.kind_name,
            f"{seg.offset:#x}",
            f"{seg.vaddr:#x}",
            f"{seg.filesz:#x}",
            f"{seg.memsz:#x}",
            seg.flags_str,
            f"{seg.align:#x}",
        )
    console.print(table)


def _print_sections(console: Console, proj) -> None:
    b = proj.binary
    if not b.sections:
        console.print("[dim]No sections[/dim]")
        return

    table = Table(title="Sections")
    table.add_column("#", justify="right")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Type")
    table.add_column("Address", style="green")
    table.add_column("Offset")
    table.add_column("Size")
    table.add_column("Flags")
    for i, sec in enumerate(b.sections):
        table.add_row(
            str(i),
            escape(sec.name),
            sec.kind.label,
            f"{sec.address:#x}",
            f"{sec.offset:#x}",
            f"{sec.size:#x}",
            _flags_str(b.format, sec.flags),
        )
    console.print(table)


def _print_functions(console: Console, proj, limit: int) -> None:
    functions = list(proj.functions)
    if not functions:
        console.print("[dim]No function symbols[/dim]")
        return

    table = Table(title="Functions")
    table.add_column("Name", style="cyan", overflow="fold")
    table.add_column("Address", style="green")
    table.add_column("Offset")
    table.add_column("Size")
    table.add_column("Status")
    shown = functions if limit <= 0 else functions[:limit]
    for func in shown:
        if func.error is not None:
            status = f"[red]{escape(str(func.error))}[/red]"
        elif not func.is_valid:
            status = "[yellow]empty[/yellow]"
        else:
            status = "ok"
        table.add_row(
            escape(func.name) or "[dim]<unnamed>[/dim]",
            f"{func.address:#x}",
            f"{func.file_offset:#x}" if func.file_offset is not None else "--------",
            str(func.size),
            status,
        )
    console.print(table)
    if len(shown) < len(functions):
        console.print(f"  ... and {len(functions) - len(shown)} more")
    console.print(f"\nTotal: {len(functions)} functions")


def _print_errors(console: Console, proj) -> None:
    for err in proj.binary.errors:
        console.print(f"[yellow]warning:[/yellow] {escape(str(err))}")


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def header(state: CliState, binary: str) -> None:
    """Display file header fields."""
    _print_header(state.console, _open(state, binary))


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def segments(state: CliState, binary: str) -> None:
    """List program headers."""
    _print_segments(state.console, _open(state, binary))


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def sections(state: CliState, binary: str) -> None:
    """List section headers."""
    proj = _open(state, binary)
    _print_sections(state.console, proj)
    _print_errors(state.console, proj)


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False))
@click.option("-a", "--all", "show_all", is_flag=True, help="Show every function")
@click.pass_obj
def funcs(state: CliState, binary: str, show_all: bool) -> None:
    """List function symbols with their file offsets."""
    proj = _open(state, binary)
    limit = 0 if show_all else state.config.display.function_limit
    _print_functions(state.console, proj, limit)
    _print_errors(state.console, proj)


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False))
@click.option("-s", "--section", "section_name", help="Only disassemble this section")
@click.pass_obj
def dump(state: CliState, binary: str, section_name: str | None) -> None:
    """Disassemble executable sections."""
    console = state.console
    proj = _open(state, binary)

    if section_name:
        section = proj.binary.get_section(section_name)
        if section is None:
            raise click.BadParameter(f"No section named {section_name!r}", param_hint="--section")
        targets = [section]
    else:
        targets = proj.binary.executable_sections()

    if not targets:
        console.print("[dim]No executable sections[/dim]")
        return

    index = proj.binary.function_index()
    for section in targets:
        console.print(f"\n[bold]Disassembly of section {escape(section.name)}:[/bold]")
        for insn in proj.disassemble_section(section):
            func = index.by_address(insn.address)
            if func is not None and func.name:
                console.print(f"\n[bold]{insn.address:016x} <{escape(func.name)}>:[/bold]")

            if insn.is_call:
                style = "yellow"
            elif insn.is_jump or insn.is_return:
                style = "magenta"
            else:
                style = "white"

            hex_bytes = " ".join(f"{b:02x}" for b in insn.bytes)
            console.print(
                f"[green]{insn.address:016x}[/green]  {hex_bytes:<30}  "
                f"[{style}]{insn.mnemonic:<8}[/{style}] {escape(insn.op_str)}",
                highlight=False,
            )


@main.command("all")
@click.argument("binary", type=click.Path(exists=True, dir_okay=False))
@click.pass_obj
def show_all(state: CliState, binary: str) -> None:
    """Header, program headers, sections and functions."""
    console = state.console
    proj = _open(state, binary)
    _print_header(console, proj)
    _print_segments(console, proj)
    _print_sections(console, proj)
    if proj.binary.format is BinaryFormat.ELF:
        _print_functions(console, proj, state.config.display.function_limit)
    _print_errors(console, proj)


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False))
@click.option("-n", "--top", default=20, show_default=True, help="Mnemonics to list")
@click.pass_obj
def analyze(state: CliState, binary: str, top: int) -> None:
    """Count instructions and calls across all functions."""
    console = state.console
    proj = _open(state, binary)
    summary = proj.analyze()

    table = Table(title="Functions")
    table.add_column("Name", style="cyan", overflow="fold")
    table.add_column("Instructions", justify="right")
    table.add_column("Calls", justify="right")
    table.add_column("Leaf")
    for report in summary.reports:
        table.add_row(
            escape(report.name),
            str(report.instruction_count),
            str(len(report.calls)),
            "yes" if report.is_leaf else "",
        )
    console.print(table)

    mnemonics = Table(title="Mnemonics")
    mnemonics.add_column("Mnemonic", style="cyan")
    mnemonics.add_column("Count", justify="right")
    for mnemonic, count in summary.ranked_mnemonics()[:top]:
        mnemonics.add_row(mnemonic, str(count))
    console.print(mnemonics)

    calls = summary.call_counts()
    if calls:
        callees = Table(title="Call targets")
        callees.add_column("Target", style="cyan")
        callees.add_column("Calls", justify="right")
        for name, count in calls[:top]:
            callees.add_row(escape(name), str(count))
        console.print(callees)

    console.print(
        f"\n{len(summary.reports)} functions analyzed, "
        f"{len(summary.skipped)} skipped, {summary.instruction_count} instructions"
    )


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False))
@click.option("-o", "--offset", type=HEX_INT, default=0, help="Start offset")
@click.option("-n", "--length", type=HEX_INT, default=256, show_default=True, help="Bytes to show")
@click.option("-w", "--width", type=click.IntRange(min=1), help="Bytes per row")
@click.pass_obj
def hexdump(state: CliState, binary: str, offset: int, length: int, width: int | None) -> None:
    """Hex dump of a file range (no format parsing)."""
    width = width or state.config.display.hexdump_width
    with open(binary, "rb") as f:
        f.seek(offset)
        data = f.read(length)

    for row in hex_rows(data, width, base=offset):
        state.console.print(
            f"[green]{row.offset:08x}[/green]  {row.hex(width)}  |{escape(row.ascii())}|",
            highlight=False,
        )


@main.command()
@click.argument("left", type=click.Path(exists=True, dir_okay=False))
@click.argument("right", type=click.Path(exists=True, dir_okay=False))
@click.option("-w", "--width", type=click.IntRange(min=1), help="Bytes per row")
@click.option("--all-rows", is_flag=True, help="Also print rows without differences")
@click.pass_obj
def diff(state: CliState, left: str, right: str, width: int | None, all_rows: bool) -> None:
    """Byte-level diff of two files."""
    console = state.console
    width = width or state.config.display.hexdump_width
    lhs = Path(left).read_bytes()
    rhs = Path(right).read_bytes()

    for row in diff_rows(lhs, rhs, width):
        if not (all_rows or row.has_changes):
            continue
        console.print(
            f"[green]{row.offset:08x}[/green]  "
            f"{_diff_cells(row.left, row.changed, width)}  "
            f"{_diff_cells(row.right, row.changed, width)}",
            highlight=False,
        )

    differences = count_differences(lhs, rhs)
    if differences:
        console.print(f"\n{differences} differing bytes")
    else:
        console.print("Files are identical")


def _diff_cells(data: bytes, changed: tuple[bool, ...], width: int) -> str:
    cells = []
    for i in range(width):
        if i >= len(data):
            cells.append("  ")
        elif i < len(changed) and changed[i]:
            cells.append(f"[bold red]{data[i]:02x}[/bold red]")
        else:
            cells.append(f"{data[i]:02x}")
    return " ".join(cells)


@main.command()
@click.argument("binary", type=click.Path(exists=True, dir_okay=False))
@click.option("-n", "--top", type=int, help="Byte values to list")
@click.pass_obj
def histogram(state: CliState, binary: str, top: int | None) -> None:
    """Byte frequency histogram and entropy of a file."""
    console = state.console
    hist = ByteHistogram.from_data(Path(binary).read_bytes())
    top = top or state.config.display.histogram_top

    console.print(f"Size: {hist.total} bytes")
    console.print(f"Entropy: {hist.entropy:.4f} bits/byte")
    console.print(f"Distinct byte values: {hist.distinct}")

    table = Table(title="Most frequent bytes")
    table.add_column("Byte", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Share", justify="right")
    table.add_column("")
    for byte, count in hist.ranked()[:top]:
        share = count / hist.total if hist.total else 0.0
        bar = "#" * round(20 * count / hist.max_count) if hist.max_count else ""
        table.add_row(f"{byte:#04x}", str(count), f"{share:.2%}", bar)
    console.print(table)


if __name__ == "__main__":
    main()
