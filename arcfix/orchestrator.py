"""
This module contains the main orchestrator for the arcfix repair engine.

It defines the `RepairOrchestrator` class, the "brain" of the search, which
runs the genetic algorithm: it seeds generation 0 with the unmodified
program, tests it, and then repeatedly selects the most promising
individuals, mutates them with the TXL operators, builds and tests the new
variants, and hands any candidate that passed every run to the
FixValidator. The search ends with a validated fix, when the generation cap
is reached, or on the first fatal error.

This file also contains the `main` function, which parses command-line
arguments and starts a repair run.
"""

import argparse
import json
import os
import platform
import socket
import sys
import threading
from datetime import datetime
from pathlib import Path
from textwrap import dedent
from typing import Any

from arcfix.artifacts import ResultWriter
from arcfix.compiler import ProjectCompiler
from arcfix.config import ConfigError, RepairConfig, load_config
from arcfix.events import EventReporter
from arcfix.harness import ExecutionHarness, HarnessError
from arcfix.mutation_controller import MutationSelector
from arcfix.mutator import MutationError, TxlMutationApplier
from arcfix.population import Generation, Individual, Mutant
from arcfix.types import Exhausted, Fatal, Fixed, RepairResult, TestingSummary, TestStatus
from arcfix.utils import (
    TeeLogger,
    copy_files,
    copy_tree,
    find_source_files,
    load_run_stats,
    remove_tree,
    save_run_stats,
)
from arcfix.validator import FixValidator
from arcfix.workspace import Workspace

# Population slots that share a starting candidate before moving to the next.
SLOTS_PER_CANDIDATE = 3


class SearchAborted(Exception):
    """Raised inside the search loop when the run cannot continue."""


class RepairOrchestrator:
    """
    Drive the generation loop: seed, evaluate, select, mutate, evaluate.

    One orchestrator owns the state of one run (generations so far and the
    registry of Mutants already produced). Build a fresh instance per run.
    """

    def __init__(
        self,
        config: RepairConfig,
        harness: ExecutionHarness,
        workspace: Workspace,
        applier: TxlMutationApplier,
        validator: FixValidator,
        reporter: EventReporter | None = None,
        selector: MutationSelector | None = None,
        stop_event: threading.Event | None = None,
    ):
        self.config = config
        self.harness = harness
        self.workspace = workspace
        self.applier = applier
        self.validator = validator
        self.reporter = reporter or EventReporter()
        self.selector = selector or MutationSelector(applier.operators)
        self.stop_event = stop_event or threading.Event()

        self.generations: list[Generation] = []
        self.mutants: set[Mutant] = set()
        self.source_files: list[str] = []
        self.stats: dict[str, Any] = {
            "generations": 0,
            "individuals_generated": 0,
            "individuals_evaluated": 0,
            "test_suite_executions": 0,
            "duplicate_mutants": 0,
            "compile_failures": 0,
        }

    # --- Cooperative cancellation ---

    def request_stop(self) -> None:
        """Ask the search to halt at its next checkpoint."""
        self.stop_event.set()

    def should_stop(self) -> bool:
        return self.stop_event.is_set()

    # --- Entry point ---

    def run(self) -> RepairResult:
        """Run the search and return Fixed, Exhausted or Fatal.

        No exception escapes: every failure is reported through the event
        reporter and returned as Fatal with its first cause.
        """
        try:
            result = self._search()
        except (SearchAborted, ConfigError, HarnessError, MutationError) as e:
            result = self._fatal(str(e))
        except OSError as e:
            result = self._fatal(f"I/O error: {e}")
        except Exception as e:
            result = self._fatal(f"Unexpected error: {e!r}")
        self.reporter.finish_phase()
        return result

    def _fatal(self, reason: str) -> Fatal:
        self.reporter.fatal(reason)
        return Fatal(self.reporter.fatal_message or reason)

    def _stopped(self) -> Exhausted:
        print("[!] Stop requested; halting the search.", file=sys.stderr)
        self.reporter.warning("The search was requested to stop.")
        return Exhausted(generations=max(len(self.generations) - 1, 0), stopped=True)

    def _search(self) -> RepairResult:
        self.reporter.new_phase("Setup")
        self.prepare()

        self.reporter.new_phase("Generation 0")
        original = self.seed()
        print(f"[*] Testing the original program ({self.config.runs} runs)...", file=sys.stderr)
        if not self.evaluate(original):
            raise SearchAborted(f"Unable to test the original program: {original.error}")
        print(f"[+] Baseline score: {original.score:.4f} {original.summary!r}", file=sys.stderr)

        if self.validator.is_final_solution(original):
            print("[+] The original program already passes validation.", file=sys.stderr)
            return self._fixed(original)
        if self.should_stop():
            return self._stopped()

        for number in range(1, self.config.generations + 1):
            self.reporter.new_phase(f"Generation {number}")
            print(f"\n--- Generation {number}/{self.config.generations} ---", file=sys.stderr)
            solution = self.evolve(number)
            if solution is not None:
                return self._fixed(solution)
            if self.should_stop():
                return self._stopped()

        message = f"No fix was found after {self.config.generations} generations."
        print(f"[-] {message}", file=sys.stderr)
        self.reporter.warning(message)
        return Exhausted(generations=self.config.generations)

    def _fixed(self, individual: Individual) -> Fixed:
        lineage = tuple(individual.lineage())
        print(
            f"[+] FIX FOUND: individual {individual.key} via {list(lineage) or 'no mutation'}",
            file=sys.stderr,
        )
        self.reporter.debug(f"Solution found: {individual!r}")
        return Fixed(
            individual=individual,
            lineage=lineage,
            baseline_summary=individual.summary,
            validation_summary=self.validator.validation_summary(individual) or TestingSummary(),
        )

    # --- Setup ---

    def prepare(self) -> None:
        """Create the working project from the original program and build it."""
        original_dir = self.config.original_project_dir
        if original_dir is None or not Path(original_dir).is_dir():
            raise SearchAborted(f"No original project directory found at '{original_dir}'.")

        for directory in (self.config.tmp_dir, self.config.mutants_dir):
            remove_tree(directory)
            directory.mkdir(parents=True)
        copy_tree(original_dir, self.config.project_dir)

        self.source_files = find_source_files(self.config.project_dir, self.config.source_suffix)
        if not self.source_files:
            raise SearchAborted(
                f"No '{self.config.source_suffix}' files to mutate in the project."
            )
        self.workspace.source_files = list(self.source_files)
        print(f"[+] Found {len(self.source_files)} source file(s) to mutate.", file=sys.stderr)

        build = self.workspace.build()
        if not build.success:
            self.reporter.debug(build.log)
            raise SearchAborted("Unable to compile the original project.")

        if self.config.calibrate:
            self.reporter.debug("Acquiring timeout limit dynamically...")
            timeout = self.harness.calibrate_timeout(
                self.config.calibration_runs, self.config.timeout_multiplier
            )
            self.reporter.debug(f"Max program execution time: {timeout:.2f}s")

    def seed(self) -> Individual:
        """Materialize generation 0: one individual holding the unmodified program."""
        path = self.individual_path(0, 0)
        path.mkdir(parents=True, exist_ok=True)
        copy_files(self.config.project_dir, path, self.source_files)

        original = Individual(0, 0, path)
        baseline = original.set_baseline({rel: path / rel for rel in self.source_files})
        self.mutants.add(baseline)
        self.generations = [Generation(0, [original])]
        return original

    def individual_path(self, generation: int, individual_id: int) -> Path:
        return self.config.tmp_dir / str(generation) / str(individual_id)

    # --- Evaluation ---

    def evaluate(self, individual: Individual) -> bool:
        """Test ``individual`` and store its summary; False if it could not be tested."""
        summary = self.harness.execute(individual, self.config.runs)
        self.stats["individuals_evaluated"] += 1
        self.stats["test_suite_executions"] += summary.run_count

        if summary.run_count == 0 or summary.count(TestStatus.INVALID) == summary.run_count:
            errors = [e for r in summary.results for e in r.errors]
            individual.error = "; ".join(errors) or "no test runs were executed"
            self.reporter.warning(f"Unable to run tests for individual {individual.key}.")
            return False

        individual.summary = summary
        print(
            f"  [+] Individual {individual.key} score={individual.score:.4f} "
            f"{summary.histogram()}",
            file=sys.stderr,
        )
        self.reporter.debug(f"Score of {individual.key}: {individual.score}")
        return True

    # --- Evolution ---

    def mutation_candidates(self) -> list[Individual]:
        """Return the individuals to mutate next, best first.

        Individuals from generations 1..g-1 that beat the original program
        are preferred. When there are none, the original program itself and
        every individual scoring at least as well as it are used. Ties keep
        their discovery order.
        """
        original = self.generations[0].population[0]
        earlier = self.generations[1:]

        candidates: list[Individual] = []
        for generation in reversed(earlier):
            candidates.extend(generation.better(original))
        if not candidates:
            candidates.append(original)
            for generation in reversed(earlier):
                candidates.extend(generation.better_or_same(original))

        return sorted(candidates, key=lambda i: i.score, reverse=True)

    def new_generation(self, number: int) -> Generation:
        """Create the directories and empty individuals of a generation."""
        population = []
        for i in range(self.config.population_size):
            path = self.individual_path(number, i)
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise SearchAborted(
                    f"Unable to create directories for generation {number}: {e}"
                ) from e
            population.append(Individual(i, number, path))
        return Generation(number, population)

    def generate_mutants(self, candidates: list[Individual]) -> None:
        """Apply every operator to every candidate (reusing earlier output)."""
        for candidate in candidates:
            print(f"  [~] Generating mutants of {candidate.key}...", file=sys.stderr)
            self.applier.apply_all(candidate, self.source_files)

    def populate(self, generation: Generation, candidates: list[Individual]) -> None:
        """Fill each slot of ``generation`` with a new, compiling, unseen mutant.

        Raises SearchAborted if not even the first slot can be filled; later
        shortfalls shrink the generation.
        """
        n = len(candidates)
        for i, individual in enumerate(list(generation.population)):
            start = (i // SLOTS_PER_CANDIDATE) % n
            if not self.create_mutant_program(candidates, individual, start):
                if i == 0:
                    raise SearchAborted(
                        f"Unable to find valid mutant for individual {individual.id} "
                        f"from generation {individual.generation}."
                    )
                self.reporter.warning(
                    f"Not enough mutations to create the entire population size "
                    f"({self.config.population_size} mutants); keeping {i}."
                )
                for removed in generation.truncate(i):
                    remove_tree(removed.path)
                return
            if self.should_stop():
                return

    def create_mutant_program(
        self,
        candidates: list[Individual],
        individual: Individual,
        start: int,
    ) -> bool:
        """Build ``individual`` from the first usable mutant, walking candidates round robin."""
        n = len(candidates)
        for offset in range(n):
            source = candidates[(start + offset) % n]
            source_dir = self.applier.individual_dir(source)
            mutant_files = self.applier.mutant_files(source_dir)
            if not mutant_files:
                continue

            for mutant_file, operator, rel, file_map, mutant in self.selector.candidate_mutants(
                source, source_dir, mutant_files, self.source_files, self.mutants
            ):
                print(f"  [~] Trying {operator.name} mutant {mutant_file.name}", file=sys.stderr)
                try:
                    self.workspace.checkout(source.path)
                    self.workspace.overlay(rel, mutant_file)
                except OSError as e:
                    self.reporter.warning(f"Could not reconstruct {mutant_file}: {e}")
                    continue

                if not self.workspace.build().success:
                    self.stats["compile_failures"] += 1
                    print(f"    -> Discarding {mutant_file.name}: build failed", file=sys.stderr)
                    mutant_file.unlink(missing_ok=True)
                    continue

                try:
                    self.workspace.store(individual.path)
                except OSError as e:
                    self.reporter.warning(f"Could not copy mutant program to {individual.path}: {e}")
                    continue

                individual.adopt(source, operator.name, file_map, mutant)
                self.mutants.add(mutant)
                self.stats["individuals_generated"] += 1
                return True
        return False

    def evolve(self, number: int) -> Individual | None:
        """Run one generation. Return a validated solution, or None."""
        generation = self.new_generation(number)
        candidates = self.mutation_candidates()
        print(f"[*] {len(candidates)} mutation candidate(s).", file=sys.stderr)

        self.generate_mutants(candidates)
        if self.should_stop():
            return None
        self.populate(generation, candidates)
        self.stats["duplicate_mutants"] = self.selector.duplicates
        self.generations.append(generation)
        self.stats["generations"] = number
        if self.should_stop():
            return None

        failed = 0
        for individual in generation.population:
            self.reporter.debug(f"Generation {number}, individual {individual.id}")
            if not self.evaluate(individual):
                failed += 1
            elif self.validator.is_final_solution(individual):
                return individual
            if self.should_stop():
                return None

        if failed == len(generation.population):
            raise SearchAborted(f"Unable to test any individual from generation {number}.")

        best = generation.best()
        if best is not None:
            print(f"[+] Best of generation {number}: {best!r}", file=sys.stderr)
            self.reporter.debug(
                f"Best individual in generation {number} (with score {best.score}): {best!r}"
            )
        return None


def build_orchestrator(
    config: RepairConfig,
    reporter: EventReporter | None = None,
) -> RepairOrchestrator:
    """Wire the default collaborators for ``config`` into an orchestrator."""
    reporter = reporter or EventReporter()
    compiler = ProjectCompiler(config.project_dir, config.compile_command)
    workspace = Workspace(config.project_dir, [], compiler)
    harness = ExecutionHarness(
        test_command=config.test_command,
        project_dir=config.project_dir,
        timeout=config.timeout,
        memory_mb=config.memory_mb,
        poll_interval=config.poll_interval,
        workspace=workspace,
    )
    applier = TxlMutationApplier(
        mutants_dir=config.mutants_dir,
        operators_dir=config.operators_dir,
        txl_program=config.txl_program,
        source_suffix=config.source_suffix,
    )
    validator = FixValidator(harness, config.validation_runs, reporter)
    return RepairOrchestrator(config, harness, workspace, applier, validator, reporter)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="arcfix: automatic repair of data races and deadlocks."
    )
    parser.add_argument("project", type=Path, nargs="?", help="The project to repair.")
    parser.add_argument("--config", type=Path, default=None, help="JSON settings file.")
    parser.add_argument(
        "--test-command",
        type=str,
        default=None,
        help="Command that runs the test suite once; may use {memory_mb} and {project_dir}.",
    )
    parser.add_argument("--compile-command", type=str, default=None, help="Build command.")
    parser.add_argument("--population", dest="population_size", type=int, default=None)
    parser.add_argument("--generations", type=int, default=None)
    parser.add_argument(
        "--runs", type=int, default=None, help="Test-suite executions per individual."
    )
    parser.add_argument(
        "--validation-runs",
        type=int,
        default=None,
        help="Test-suite executions required to accept a fix.",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Seconds per run.")
    parser.add_argument("--memory-mb", type=int, default=None)
    parser.add_argument(
        "--calibrate",
        action="store_true",
        default=None,
        help="Derive the timeout from the average time of exploratory runs.",
    )
    parser.add_argument("--txl", dest="txl_program", type=str, default=None)
    parser.add_argument("--operators-dir", type=Path, default=None)
    parser.add_argument("--work-dir", type=Path, default=None)
    parser.add_argument("--output-dir", type=Path, default=None)
    parser.add_argument("--logs-dir", type=Path, default=None)
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress per-run and per-mutant detail lines.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Parse command-line arguments and run the arcfix repair engine."""
    args = parse_args(argv)
    overrides = {
        key: value
        for key, value in vars(args).items()
        if key not in ("config", "project", "quiet")
    }
    if args.project is not None:
        overrides["original_project_dir"] = args.project
    try:
        config = load_config(args.config, overrides)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    run_start_time = datetime.now()
    timestamp_iso = run_start_time.isoformat()
    safe_timestamp = timestamp_iso.replace(":", "-").replace("+", "Z")
    log_path = config.logs_dir / f"arcfix_run_{safe_timestamp}.log"
    events_path = config.logs_dir / f"arcfix_events_{safe_timestamp}.jsonl"

    original_stdout = sys.stdout
    original_stderr = sys.stderr
    try:
        config.logs_dir.mkdir(parents=True, exist_ok=True)
        tee_logger = TeeLogger(log_path, original_stdout, verbose=not args.quiet)
    except OSError as e:
        print(f"[!!!] Unable to create the run log in {config.logs_dir}: {e}", file=sys.stderr)
        return 2
    print(f"[+] Starting arcfix. Full log will be at: {log_path}")

    sys.stdout = tee_logger
    sys.stderr = tee_logger

    start_stats = load_run_stats()
    reporter = EventReporter(events_path)
    result: RepairResult | None = None
    orchestrator: RepairOrchestrator | None = None
    termination_reason = "Completed"

    try:
        header = f"""
================================================================================
ARCFIX REPAIR RUN
================================================================================
- Hostname:          {socket.gethostname()}
- Platform:          {platform.platform()}
- Process ID:        {os.getpid()}
- Working Dir:       {Path.cwd()}
- Log File:          {log_path}
- Event Log:         {events_path}
- Start Time:        {timestamp_iso}
- Command:           {" ".join(sys.argv)}
--------------------------------------------------------------------------------
Configuration:
{json.dumps(config.to_dict(), indent=4, default=str)}
================================================================================
"""
        print(dedent(header))

        orchestrator = build_orchestrator(config, reporter)
        result = orchestrator.run()

        writer = ResultWriter(config.output_dir)
        if isinstance(result, Fixed):
            writer.copy_solution(result.individual, orchestrator.source_files)
        writer.write_result(result, orchestrator.stats, reporter.history())
    except KeyboardInterrupt:
        print("\n[!] Repair run stopped by user.")
        termination_reason = "KeyboardInterrupt"
    except Exception as e:
        termination_reason = f"Error: {e}"
        print(f"\n[!!!] An unexpected error occurred: {e}", file=original_stderr)
        import traceback

        traceback.print_exc(file=original_stderr)
    finally:
        end_time = datetime.now()
        stats = orchestrator.stats if orchestrator is not None else {}
        end_stats = dict(start_stats)
        end_stats["total_runs"] = start_stats.get("total_runs", 0) + 1
        end_stats["fixes_found"] = start_stats.get("fixes_found", 0) + int(
            isinstance(result, Fixed)
        )
        end_stats["generations_evolved"] = start_stats.get("generations_evolved", 0) + stats.get(
            "generations", 0
        )
        for key in ("individuals_generated", "individuals_evaluated", "test_suite_executions"):
            end_stats[key] = start_stats.get(key, 0) + stats.get(key, 0)
        save_run_stats(end_stats)

        if isinstance(result, Fixed):
            outcome = f"FIXED (lineage: {' -> '.join(result.lineage) or 'original'})"
        elif isinstance(result, Exhausted):
            outcome = "STOPPED" if result.stopped else "EXHAUSTED"
        elif isinstance(result, Fatal):
            outcome = f"FATAL: {result.reason}"
        else:
            outcome = "NONE"

        summary = f"""
================================================================================
REPAIR RUN SUMMARY
================================================================================
- Termination:       {termination_reason}
- Outcome:           {outcome}
- End Time:          {end_time.isoformat()}
- Total Duration:    {str(end_time - run_start_time)}

--- This Run ---
{json.dumps(stats, indent=4)}
================================================================================
"""
        print(dedent(summary))
        sys.stdout = original_stdout
        sys.stderr = original_stderr
        tee_logger.close()

    if isinstance(result, Fixed):
        return 0
    return 1


if __name__ == "__main__":
    sys.exit(main())
