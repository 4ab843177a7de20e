"""
The population model for the repair search.

An Individual is one candidate program variant materialized on disk, a
Generation is the cohort of individuals evaluated together, and a Mutant is
the deduplication identity of a variant: the sorted set of file paths that
make up its edited sources.
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Iterable, Mapping

from arcfix.types import TestingSummary


class Mutant:
    """Identity of a candidate edit, defined only by its sorted file paths.

    Two mutants touching the same files are considered equal even when the
    file contents differ.
    """

    def __init__(self, files: Iterable[str | Path] = ()) -> None:
        self.files: tuple[str, ...] = tuple(sorted(str(f) for f in files))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mutant):
            return NotImplemented
        return self.files == other.files

    def __hash__(self) -> int:
        return hash(self.files)

    def __len__(self) -> int:
        return len(self.files)

    def __repr__(self) -> str:
        return f"Mutant({list(self.files)!r})"


class Individual:
    """A candidate program variant and its test outcomes.

    ``file_map`` maps each relative source path of the project to the file
    that currently supplies its content: the baseline copy for the original
    program, or a mutant file produced by the mutation applier.
    """

    def __init__(
        self,
        id: int,
        generation: int,
        path: Path,
        source: Individual | None = None,
    ) -> None:
        self.id = id
        self.generation = generation
        self.path = Path(path)
        self.source = source
        self.mutation: str | None = None
        self.summary: TestingSummary | None = None
        self.file_map: dict[str, str] = {}
        self.mutant: Mutant | None = None
        # Set when the individual could not be tested
        self.error: str | None = None

    @property
    def is_tested(self) -> bool:
        return self.summary is not None and self.summary.run_count > 0

    @property
    def score(self) -> float:
        """Fitness: total successes over total executed tests.

        Untested individuals score negative infinity; a tested individual for
        which no unit tests were counted scores 0.0.
        """
        if not self.is_tested:
            return -math.inf
        tests = self.summary.total_tests
        if tests <= 0:
            return 0.0
        return self.summary.total_successes / tests

    @property
    def key(self) -> str:
        return f"{self.generation}/{self.id}"

    def set_baseline(self, files: Mapping[str, str | Path]) -> Mutant:
        """Record the baseline files of the original program and return its Mutant."""
        self.file_map = {rel: str(p) for rel, p in files.items()}
        self.mutant = Mutant(self.file_map.values())
        return self.mutant

    def mutate(self, rel_path: str, mutant_file: str | Path) -> tuple[dict[str, str], Mutant]:
        """Derive the file map and Mutant obtained by replacing one source file.

        The individual itself is left untouched; the caller decides whether
        the derived variant is kept.
        """
        file_map = dict(self.file_map)
        file_map[rel_path] = str(mutant_file)
        return file_map, Mutant(file_map.values())

    def adopt(
        self,
        source: Individual,
        mutation: str,
        file_map: dict[str, str],
        mutant: Mutant,
    ) -> None:
        """Make this individual the variant produced from ``source`` by ``mutation``."""
        self.source = source
        self.mutation = mutation
        self.file_map = file_map
        self.mutant = mutant

    def lineage(self) -> list[str]:
        """Return the operators applied since the original program, oldest first."""
        operators: list[str] = []
        node: Individual | None = self
        while node is not None:
            if node.mutation is not None:
                operators.append(node.mutation)
            node = node.source
        operators.reverse()
        return operators

    # Ordering is by score; equality stays identity-based
    def __lt__(self, other: Individual) -> bool:
        return self.score < other.score

    def __gt__(self, other: Individual) -> bool:
        return self.score > other.score

    def __repr__(self) -> str:
        return (
            f"Individual(generation={self.generation}, id={self.id}, "
            f"score={self.score:.4f}, mutation={self.mutation!r})"
        )


class Generation:
    """An ordered cohort of individuals sharing a generation number."""

    def __init__(self, number: int, population: list[Individual] | None = None) -> None:
        self.number = number
        self.population: list[Individual] = population if population is not None else []

    def best(self) -> Individual | None:
        """Return the highest-scoring individual; the earliest wins ties."""
        best: Individual | None = None
        for individual in self.population:
            if best is None or individual.score > best.score:
                best = individual
        return best

    def better(self, control: Individual) -> list[Individual]:
        """Return individuals with a score strictly greater than ``control``."""
        threshold = control.score
        return [i for i in self.population if i.score > threshold]

    def better_or_same(self, control: Individual) -> list[Individual]:
        """Return individuals with a score at least that of ``control``."""
        threshold = control.score
        return [i for i in self.population if i.score >= threshold]

    def truncate(self, size: int) -> list[Individual]:
        """Shrink the population to ``size`` and return the removed individuals."""
        removed = self.population[size:]
        del self.population[size:]
        return removed

    def __len__(self) -> int:
        return len(self.population)

    def __iter__(self):
        return iter(self.population)

    def __repr__(self) -> str:
        return f"Generation({self.number}, size={len(self.population)})"
