import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import ClassVar, Self

from rich.markup import escape

TM_FOLDER = Path(__file__).parent / "tms"
ERASE = "Delete"


class Movement(IntEnum):
    L = -1
    S = 0
    R = 1

    @classmethod
    def parse(cls, val: str) -> Self:
        match val:
            case "l":
                return cls.L
            case "r":
                return cls.R
            case _ if len(val) == 1:
                return cls.S
            case _:
                raise ValueError(f"Movement must be a single character, got '{val}'")


@dataclass(frozen=True)
class AnySymbol:
    def matches(self, symbol: str | None) -> bool:
        return symbol is not None

    def __str__(self) -> str:
        return "any"


@dataclass(frozen=True)
class Blank:
    def matches(self, symbol: str | None) -> bool:
        return symbol is None

    def __str__(self) -> str:
        return "empty"


@dataclass(frozen=True)
class OneOf:
    symbols: str

    def matches(self, symbol: str | None) -> bool:
        return symbol is not None and symbol in self.symbols

    def __str__(self) -> str:
        return self.symbols


type ReadPattern = AnySymbol | Blank | OneOf


def parse_read(val: str) -> ReadPattern:
    match val:
        case "any":
            return AnySymbol()
        case "empty":
            return Blank()
        case "":
            raise ValueError("Read pattern must not be empty")
        case _:
            return OneOf(val)


@dataclass(frozen=True)
class NoOp:
    def __str__(self) -> str:
        return "none"


@dataclass(frozen=True)
class Erase:
    def __str__(self) -> str:
        return ERASE


@dataclass(frozen=True)
class Set:
    symbol: str

    def __str__(self) -> str:
        return self.symbol


type WriteAction = NoOp | Erase | Set


def parse_write(val: str) -> WriteAction:
    match val:
        case "none":
            return NoOp()
        case "Delete":
            return Erase()
        case _ if len(val) == 1:
            return Set(val)
        case _:
            raise ValueError(f"Written symbol must be a single character, got '{val}'")


def parse_offset(val: str) -> int:
    if not re.fullmatch(r"[+-]?[0-9]+", val, re.ASCII):
        raise ValueError(f"Tape offset must be a decimal integer, got '{val}'")
    offset = int(val)
    if not -(2**31) <= offset < 2**31:
        raise ValueError(f"Tape offset {offset} is out of range")
    return offset


@dataclass(frozen=True)
class Transition:
    """A rule `state read write movement target`."""

    state: str
    read: ReadPattern
    write: WriteAction
    move: Movement
    target: str

    def applies(self, state: str, symbol: str | None) -> bool:
        return self.state == state and self.read.matches(symbol)

    def __str__(self) -> str:
        return f"{self.state} {self.read} {self.write} {self.move.name.lower()} {self.target}"

    @classmethod
    def parse(cls, val: str) -> Self:
        match val.split():
            case [state, read, write, move, target]:
                return cls(state, parse_read(read), parse_write(write), Movement.parse(move), target)
            case tokens:
                raise ValueError(f"Rule needs 5 fields (state read write movement target), got {len(tokens)}")


@dataclass
class Tape:
    """Sparse tape, blank wherever no symbol is stored.

    `min_head` and `max_head` are the display bounds. They start at the extent of the loaded input and are only
    widened by `Machine.move`, writing outside of them does not change them.
    """

    cells: dict[int, str]
    min_head: int
    max_head: int

    @classmethod
    def load(cls, input: str, offset: int, alphabet: str) -> Self:
        cells = {offset + i: char for i, char in enumerate(input) if char in alphabet}
        return cls(cells, min(cells, default=0), max(cells, default=0))

    def read(self, position: int) -> str | None:
        return self.cells.get(position)

    def write(self, position: int, symbol: str) -> None:
        self.cells[position] = symbol

    def erase(self, position: int) -> None:
        self.cells.pop(position, None)

    def bounds(self) -> tuple[int, int]:
        return self.min_head, self.max_head

    def __str__(self) -> str:
        return "".join(self.cells.get(i, " ") for i in range(self.min_head, self.max_head + 1))


@dataclass(frozen=True)
class Configuration:
    state: str
    cells: str
    head: int

    def __str__(self) -> str:
        return f"{self.cells}:{self.state}\n{" " * self.head}^head"

    def pretty(self) -> str:
        return f"{escape(self.cells)}:[cyan]{escape(self.state)}[/]\n{" " * self.head}[cyan]^head[/]"


@dataclass
class Machine:
    tape: Tape
    state: str
    accepting: frozenset[str]
    rules: Sequence[Transition]
    head: int = 0
    steps: int = 0

    @property
    def accepted(self) -> bool:
        return self.state in self.accepting

    def configuration(self) -> Configuration:
        return Configuration(self.state, str(self.tape), abs(self.head - self.tape.min_head))

    def find_transition(self, state: str, symbol: str | None) -> Transition | None:
        """Returns the first declared rule for `state` whose pattern matches `symbol`."""
        return next((rule for rule in self.rules if rule.applies(state, symbol)), None)

    def step(self, transition: Transition) -> None:
        match transition.write:
            case Set(symbol):
                self.tape.write(self.head, symbol)
            case Erase():
                self.tape.erase(self.head)
            case NoOp():
                pass
        self.move(transition.move)
        self.state = transition.target
        self.steps += 1

    def move(self, movement: Movement) -> None:
        self.head += movement
        match movement:
            case Movement.L if self.head < self.tape.min_head:
                self.tape.min_head = self.head
            case Movement.R if self.head > self.tape.max_head:
                self.tape.max_head = self.head

    def run(self, trace: Callable[[Configuration], object] | None = None, *, max_steps: int | None = None) -> bool:
        """Runs until no rule matches and returns whether the final state is accepting.

        `trace` receives the configuration before every step and once more for the halting configuration. Without
        `max_steps` a machine that never halts runs forever, otherwise a `TimeoutError` is raised once that many
        steps have been taken.
        """
        while True:
            if trace is not None:
                trace(self.configuration())
            transition = self.find_transition(self.state, self.tape.read(self.head))
            if transition is None:
                break
            if max_steps is not None and self.steps >= max_steps:
                raise TimeoutError(self.steps)
            self.step(transition)
        return self.accepted


@dataclass
class TM:
    tape: str = ""
    tape_offset: int = 0
    alphabet: str = ""
    start: str = ""
    accepting: list[str] = field(default_factory=list)
    rules: list[Transition] = field(default_factory=list)

    _cache: ClassVar[dict[str, Self]] = {}

    @classmethod
    def from_spec(cls, spec: str) -> Self:
        tm = cls()
        for num, line in enumerate(spec.splitlines(), 1):
            name, sep, val = line.partition(":")
            if not sep:
                continue
            val = val.strip()
            try:
                match name:
                    case "tape":
                        tm.tape = val
                    case "tape_offset":
                        tm.tape_offset = parse_offset(val)
                    case "alphabet":
                        tm.alphabet = val
                    case "start_state":
                        tm.start = val
                    case "accepted_states":
                        tm.accepting.append(val)
                    case "rule":
                        tm.rules.append(Transition.parse(val))
            except ValueError as e:
                raise ValueError(f"Line {num}: {e}") from e
        return tm

    @classmethod
    def load(cls, path: Path) -> Self:
        return cls.from_spec(path.read_text())

    @classmethod
    def get(cls, name: str) -> Self:
        if name not in cls._cache:
            cls._cache[name] = cls.load(TM_FOLDER.joinpath(f"{name}.tm"))
        return cls._cache[name]

    @classmethod
    def bundled(cls) -> list[str]:
        return sorted(p.stem for p in TM_FOLDER.glob("*.tm"))

    def states(self) -> set[str]:
        return {self.start, *(rule.state for rule in self.rules), *(rule.target for rule in self.rules)}

    def terminal_states(self) -> set[str]:
        sources = {rule.state for rule in self.rules}
        return {state for state in self.states() if state not in sources}

    def machine(self) -> Machine:
        return Machine(
            tape=Tape.load(self.tape, self.tape_offset, self.alphabet),
            state=self.start,
            accepting=frozenset(self.accepting),
            rules=tuple(self.rules),
        )

    def __call__(self, trace: Callable[[Configuration], object] | None = None, *, max_steps: int | None = None) -> bool:
        return self.machine().run(trace, max_steps=max_steps)
