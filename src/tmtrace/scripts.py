from collections.abc import Iterable
from pathlib import Path
from typing import Annotated

from rich.console import Console
from rich.markup import escape
from rich.theme import Theme
from typer import Abort, Argument, Option, Typer

from tmtrace.turing_machine import TM, Configuration

app = Typer(pretty_exceptions_show_locals=False)
theme = Theme({
    "success": "green",
    "warning": "orange3",
    "error": "red",
    "heading": "blue",
    "info": "dim cyan",
})
console = Console(theme=theme, highlight=False, soft_wrap=True, emoji=False)

DEFAULT_FILE = Path("goal.tm")


def load(file: Path, example: str | None) -> TM:
    source = f"bundled machine '{example}'" if example else f"machine file '{file}'"
    try:
        return TM.get(example) if example else TM.load(file)
    except OSError as e:
        console.print(f"[error]Could not read {escape(source)}:[/] {escape(e.strerror or str(e))}")
        raise Abort from e
    except ValueError as e:
        console.print(f"[error]The {escape(source)} is formatted incorrectly:[/]\n{escape(str(e))}")
        raise Abort from e


@app.command()
def run(
    file: Annotated[Path, Argument(help="Machine definition to simulate.")] = DEFAULT_FILE,
    *,
    example: Annotated[
        str | None,
        Option("--example", "-e", help=f"Run a bundled machine instead of FILE, one of: {", ".join(TM.bundled())}."),
    ] = None,
    max_steps: Annotated[
        int | None,
        Option("--max-steps", "-m", min=0, help="Give up after this many steps. The default never gives up."),
    ] = None,
    quiet: Annotated[bool, Option("--quiet", "-q", help="Only print the verdict, not the trace.")] = False,
    plain: Annotated[bool, Option("--plain", "-p", help="Print the trace without any highlighting.")] = False,
):
    """Simulate a Turing machine, printing every configuration and whether it accepts."""
    tm = load(file, example)
    machine = tm.machine()

    def trace(config: Configuration) -> None:
        if plain:
            console.print(str(config), markup=False)
        else:
            console.print(config.pretty())

    try:
        accepted = machine.run(None if quiet else trace, max_steps=max_steps)
    except TimeoutError as e:
        console.print(f"[warning]The machine did not halt within {e.args[0]} steps.")
        raise Abort from e

    if accepted:
        console.print(f"[success]Accepted[/] in state '{escape(machine.state)}' after {machine.steps} steps.")
    else:
        console.print(f"[error]Rejected[/] in state '{escape(machine.state)}' after {machine.steps} steps.")


def collect_tms(path: Path) -> Iterable[Path]:
    if path.is_file() and path.suffix == ".tm":
        yield path
    elif path.is_dir() and not path.name.startswith("."):
        for child in sorted(path.iterdir()):
            yield from collect_tms(child)


@app.command()
def check(
    paths: Annotated[list[Path], Argument(help="Machine files or folders containing them.")],
):
    """Load machine definitions without running them and summarize their rules."""
    failed = 0
    found = [file for path in paths for file in collect_tms(path)]
    if not found:
        console.print("[error]Could not find any .tm files.")
        raise Abort
    for file in found:
        console.print(f"[heading]{escape(str(file))}")
        try:
            tm = TM.load(file)
        except (OSError, ValueError) as e:
            console.print(f"[error]The machine file could not be loaded:[/]\n{escape(str(e))}")
            failed += 1
            continue
        accepting = ", ".join(tm.accepting) or "nothing"
        console.print(f"{len(tm.rules)} rules, start state '{escape(tm.start)}', accepting {escape(accepting)}")
        console.print(f"[info]States: {escape(", ".join(sorted(tm.states())))}")
        console.print(f"[info]Halting states: {escape(", ".join(sorted(tm.terminal_states())))}")
    if failed:
        console.print(f"[error]{failed} of {len(found)} machine files could not be loaded.")
        raise Abort
    console.print(f"[success]All {len(found)} machine files loaded.")


if __name__ == "__main__":
    app()
