"""
The registry of TXL mutation operators available to the repair search.

Each operator is a named source transformation implemented by a TXL
program. Operators are tagged with the defect categories they are intended
to fix, which the MutationSelector uses to bias its choice.
"""

from dataclasses import dataclass
from pathlib import Path

# Argument placeholders understood by the TXL operators.
ARG_SYNC_VAR = "-syncvar"

# Values substituted for the placeholders.
SYNC_VAR_VALUE = "this"
ARG_VALUES = {ARG_SYNC_VAR: SYNC_VAR_VALUE}


@dataclass(frozen=True)
class MutationOperator:
    """A TXL mutation operator descriptor."""

    name: str
    txl_file: str
    fixes_data_races: bool
    fixes_deadlocks: bool
    args: tuple[str, ...] = ()

    def command(
        self,
        txl_program: str,
        operators_dir: Path,
        source_file: Path,
        outfile: str,
        outdir: Path,
    ) -> list[str]:
        """Build the TXL command line that applies this operator to one file."""
        cmd = [
            txl_program,
            str(source_file),
            str(Path(operators_dir) / self.txl_file),
            "-",
            "-outfile",
            outfile,
            "-outdir",
            str(outdir),
        ]
        for arg in self.args:
            cmd.extend([arg, ARG_VALUES.get(arg, "")])
        return cmd

    def __str__(self) -> str:
        return self.name


OPERATORS: tuple[MutationOperator, ...] = (
    MutationOperator("ASAT", "ASAT_RND.Txl", True, True, (ARG_SYNC_VAR,)),
    MutationOperator("ASIM", "ASIM_RND.Txl", True, True),
    MutationOperator("ASM", "ASM_V.Txl", True, True, (ARG_SYNC_VAR,)),
    MutationOperator("CSO", "CSO.Txl", False, True),
    MutationOperator("EXSB", "EXSB.Txl", True, True),
    MutationOperator("EXSA", "EXSA.Txl", True, True),
    MutationOperator("RSAS", "RSAS.Txl", False, True),
    MutationOperator("RSAV", "RSAV.Txl", False, True),
    MutationOperator("RSIM", "RSIM.Txl", False, True),
    MutationOperator("RSM", "RSM.Txl", False, True),
    MutationOperator("SHSA", "SHSA.Txl", False, True),
    MutationOperator("SHSB", "SHSB.Txl", False, True),
)

_BY_NAME = {op.name: op for op in OPERATORS}
_BY_FILE = {op.txl_file: op for op in OPERATORS}


def get_operator(name: str) -> MutationOperator:
    """Return the operator registered under ``name``; raise KeyError otherwise."""
    return _BY_NAME[name]


def operator_for_file(txl_file: str) -> MutationOperator | None:
    """Return the operator whose TXL program file is ``txl_file``, if any."""
    return _BY_FILE.get(txl_file)


def data_race_operators(
    operators: tuple[MutationOperator, ...] = OPERATORS,
) -> list[MutationOperator]:
    return [op for op in operators if op.fixes_data_races]


def deadlock_operators(
    operators: tuple[MutationOperator, ...] = OPERATORS,
) -> list[MutationOperator]:
    return [op for op in operators if op.fixes_deadlocks]
