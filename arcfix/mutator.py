"""
Invocation of the TXL mutation operators.

The TxlMutationApplier runs each operator over an individual's source files
and writes the produced mutant files to a deterministic location:
``<mutants_dir>/<generation>/<individual id>/<operator file>/``. Applying
the same operator to the same individual twice reuses the earlier output.
"""

import logging
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from arcfix.operators import OPERATORS, MutationOperator

if TYPE_CHECKING:
    from arcfix.population import Individual

logger = logging.getLogger(__name__)

TXL_TIMEOUT = 120  # seconds per source file


class MutationError(RuntimeError):
    """Raised when the mutation output location cannot be created."""


class TxlMutationApplier:
    """Apply TXL mutation operators to the source files of individuals."""

    def __init__(
        self,
        mutants_dir: Path,
        operators_dir: Path,
        txl_program: str = "txl",
        source_suffix: str = ".java",
        operators: tuple[MutationOperator, ...] = OPERATORS,
        timeout: float = TXL_TIMEOUT,
    ) -> None:
        self.mutants_dir = Path(mutants_dir)
        self.operators_dir = Path(operators_dir)
        self.txl_program = txl_program
        self.source_suffix = source_suffix
        self.operators = operators
        self.timeout = timeout

    def individual_dir(self, individual: "Individual") -> Path:
        """Return the directory holding every mutant produced from ``individual``."""
        return self.mutants_dir / str(individual.generation) / str(individual.id)

    def output_dir(self, individual: "Individual", operator: MutationOperator) -> Path:
        return self.individual_dir(individual) / operator.txl_file

    def apply(
        self,
        individual: "Individual",
        operator: MutationOperator,
        source_files: list[str],
    ) -> list[Path]:
        """Mutate every source file of ``individual`` with ``operator``.

        Returns the mutant files found in the operator's output directory.
        If that directory already exists, nothing is regenerated.
        """
        root = self.output_dir(individual, operator)
        if root.exists():
            print(
                f"    -> Reusing {operator.name} mutants of individual {individual.key}",
                file=sys.stderr,
            )
            return self.mutant_files(root)

        try:
            root.mkdir(parents=True)
        except OSError as e:
            raise MutationError(f"Unable to create directory for mutation: '{root}': {e}") from e

        print(f"    -> Applying {operator.name} to individual {individual.key}", file=sys.stderr)
        for rel in source_files:
            src = individual.path / rel
            if not src.is_file():
                logger.warning(f"  [!] Unable to find source file: '{src}'.")
                continue
            outdir = (root / rel).parent
            outdir.mkdir(parents=True, exist_ok=True)
            cmd = operator.command(self.txl_program, self.operators_dir, src, src.name, outdir)
            try:
                proc = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    errors="replace",
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired:
                logger.warning(f"  [!] {operator.name} timed out on '{rel}'.")
                continue
            except OSError as e:
                raise MutationError(
                    f"Failed to mutate '{rel}' using the TXL mutation operator {operator.name}: {e}"
                ) from e
            if proc.returncode != 0:
                logger.warning(
                    f"  [!] {operator.name} exited with code {proc.returncode} on '{rel}': "
                    f"{proc.stderr.strip()[:200]}"
                )
        return self.mutant_files(root)

    def apply_all(self, individual: "Individual", source_files: list[str]) -> list[Path]:
        """Apply every registered operator to ``individual``."""
        produced: list[Path] = []
        for operator in self.operators:
            produced.extend(self.apply(individual, operator, source_files))
        return produced

    def mutant_files(self, root: Path) -> list[Path]:
        """Return the mutant files under ``root``, e.g. ``Account.java_3``."""
        return sorted(
            p for p in Path(root).rglob(f"*{self.source_suffix}*") if p.is_file()
        )
