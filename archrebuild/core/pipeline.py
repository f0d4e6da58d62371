"""Build pipeline: pin the source tree, build targets and restore the tree.

The run follows a deterministic state machine::

    idle -> revision_pinned -> submodules_ready
         -> per target: building -> classifying -> image_assembled | failed
         -> state_restored -> succeeded | failed

The source tree is pinned for the whole run under a lock shared by every
pipeline working on the same checkout, and restored on every exit path.
Targets build in parallel worker threads, each with its own ``StateMachine``
and output directory. A failure in one target never aborts its siblings, and
images a target assembled stay available even when the run as a whole fails.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from archrebuild.backends.protocols import ContainerRuntime, SourceControl, Toolchain
from archrebuild.config import RebuildSettings
from archrebuild.config import settings as default_settings
from archrebuild.core.context import PipelineContext
from archrebuild.core.pinning import PinnedTree, pinned_revision, repository_lock
from archrebuild.core.state_machine import StateMachine
from archrebuild.core.strategies import BuildStrategy, strategy_for
from archrebuild.core.verification import VerificationAggregator
from archrebuild.errors import (
    BuildError,
    ClassificationError,
    CommandError,
    InventoryError,
    RestoreError,
    RevisionResolutionError,
)
from archrebuild.models.architecture import Architecture
from archrebuild.models.catalog import DEFAULT_CATALOG, VersionCatalog
from archrebuild.models.reports import BinaryVerdict, BuildOutcome, PipelineResult
from archrebuild.models.states import PipelineState
from archrebuild.models.versions import BuildTarget, ImageBuilder, VersionSpec

logger = logging.getLogger(__name__)


class BuildPipeline:
    """Rebuilds every target of a version and reports per-target outcomes.

    Parameters
    ----------
    runtime, source, toolchain:
        Capability backends (see :mod:`archrebuild.backends.protocols`).
    settings:
        Paths, naming, parallelism and timeouts. Defaults to the
        module-level settings.
    catalog:
        Where version labels are looked up.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        source: SourceControl,
        toolchain: Toolchain,
        *,
        settings: RebuildSettings | None = None,
        catalog: VersionCatalog | None = None,
        aggregator: VerificationAggregator | None = None,
    ) -> None:
        self._runtime = runtime
        self._source = source
        self._toolchain = toolchain
        self._settings = settings or default_settings
        self._catalog = catalog or DEFAULT_CATALOG
        self._aggregator = aggregator or VerificationAggregator()
        self._active: set[threading.Event] = set()
        self._active_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def cancel(self) -> None:
        """Ask the targets of every run in progress to stop at their next step.

        Runs started afterwards are unaffected; the source tree is still
        restored before ``run()`` returns.
        """
        logger.warning("Cancellation requested")
        with self._active_lock:
            for event in self._active:
                event.set()

    def run(
        self,
        version: str | VersionSpec,
        architectures: Sequence[Architecture] | None = None,
    ) -> PipelineResult:
        """Rebuild *version* for *architectures* (default: settings targets).

        Raises ``RevisionResolutionError`` if the pinned revision cannot be
        resolved or checked out, and ``RestoreError`` (carrying the partial
        result) if the source tree cannot be put back. Any other failure is
        reported in the returned result.
        """
        spec = self._catalog.get(version) if isinstance(version, str) else version
        archs = list(architectures or self._settings.target_architectures)
        targets = [BuildTarget(version=spec.version, architecture=a) for a in archs]
        machine = StateMachine.for_run()
        ctx = PipelineContext(
            settings=self._settings,
            runtime=self._runtime,
            toolchain=self._toolchain,
            cancel_event=threading.Event(),
        )
        outcomes: list[BuildOutcome] = []

        logger.info(
            "Rebuilding %s at %s for %s",
            spec.version,
            spec.revision,
            ", ".join(a.value for a in archs),
        )
        lock = repository_lock(ctx.repo_root)
        with self._active_lock:
            self._active.add(ctx.cancel_event)
        try:
            with pinned_revision(self._source, spec.revision, lock=lock) as tree:
                machine.transition(
                    PipelineState.REVISION_PINNED,
                    reason=f"{spec.revision} -> {tree.resolved}",
                )
                try:
                    self._prepare(spec, ctx, tree, machine)
                except BuildError as exc:
                    logger.error("Preparation failed at %s: %s", exc.stage, exc.cause)
                    outcomes = [self._not_started(t, exc) for t in targets]
                else:
                    outcomes = self._run_targets(spec, ctx, targets)
        except RevisionResolutionError:
            logger.error("Cannot pin %s to %s", spec.version, spec.revision)
            raise
        except RestoreError as exc:
            exc.result = self._result(
                spec, exc.tree, machine, outcomes, PipelineState.FAILED
            )
            raise
        finally:
            with self._active_lock:
                self._active.discard(ctx.cancel_event)

        machine.transition(PipelineState.STATE_RESTORED, reason=f"at {tree.restored}")
        ok = bool(outcomes) and all(o.succeeded for o in outcomes)
        final = PipelineState.SUCCEEDED if ok else PipelineState.FAILED
        failed = [str(o.target) for o in outcomes if not o.succeeded]
        machine.transition(
            final, reason=None if ok else f"failed targets: {', '.join(failed)}"
        )
        result = self._result(spec, tree, machine, outcomes, final)
        if ok:
            logger.info("Rebuild of %s succeeded", spec.version)
        else:
            logger.error("Rebuild of %s failed: %s", spec.version, ", ".join(failed))
        return result

    # ------------------------------------------------------------------
    # Run-level steps
    # ------------------------------------------------------------------

    def _prepare(
        self,
        spec: VersionSpec,
        ctx: PipelineContext,
        tree: PinnedTree,
        machine: StateMachine,
    ) -> None:
        try:
            self._source.update_submodules()
        except CommandError as exc:
            raise BuildError("submodules", exc) from exc
        tree.submodules_ready = True

        for name in spec.revision_submodules:
            try:
                tree.submodule_revisions[name] = self._source.submodule_revision(name)
            except (RevisionResolutionError, CommandError) as exc:
                logger.warning("No pinned revision for submodule %s: %s", name, exc)
        ctx.submodule_revisions = dict(tree.submodule_revisions)
        machine.transition(PipelineState.SUBMODULES_READY)

        if any(image.builder is ImageBuilder.BUILDX for image in spec.images):
            try:
                self._runtime.ensure_builder(self._settings.buildx_builder)
            except CommandError as exc:
                raise BuildError("buildx builder", exc) from exc

    def _run_targets(
        self, spec: VersionSpec, ctx: PipelineContext, targets: list[BuildTarget]
    ) -> list[BuildOutcome]:
        strategy = strategy_for(spec.strategy)
        workers = self._settings.max_parallel_targets
        if not strategy.parallel_targets(spec):
            workers = 1
        workers = max(1, min(workers, len(targets)))
        logger.debug("%d targets on %d workers", len(targets), workers)

        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="archrebuild-target"
        ) as pool:
            futures = [
                pool.submit(self._run_target, ctx, spec, strategy, target)
                for target in targets
            ]
            try:
                return [future.result() for future in futures]
            except BaseException:
                # Interrupted while waiting; let workers stop before restore
                ctx.cancel_event.set()
                raise

    # ------------------------------------------------------------------
    # Per-target steps
    # ------------------------------------------------------------------

    def _run_target(
        self,
        ctx: PipelineContext,
        spec: VersionSpec,
        strategy: BuildStrategy,
        target: BuildTarget,
    ) -> BuildOutcome:
        machine = StateMachine.for_target(str(target))
        verdicts: list[BinaryVerdict] = []
        images: dict[str, str] = {}

        def failed(stage: str, error: str) -> BuildOutcome:
            machine.transition(PipelineState.FAILED, reason=f"{stage}: {error}")
            return BuildOutcome(
                target=target,
                state=machine.state,
                verdicts=verdicts,
                failed_stage=stage,
                error=error,
                history=machine.history,
            )

        try:
            machine.transition(PipelineState.BUILDING)
            products = strategy.run(ctx, spec, target)

            machine.transition(PipelineState.CLASSIFYING)
            for directory, binaries in products.binary_sets:
                report = self._aggregator.verify_directory(
                    directory, binaries, target.architecture
                )
                verdicts.extend(report.results)
            failures = [v for v in verdicts if v.verdict.is_failing]
            if failures:
                names = ", ".join(sorted({v.name for v in failures}))
                logger.error("%s: failing verdicts for %s", target, names)
                return failed(
                    "classify", f"{len(failures)} binaries failed verification: {names}"
                )

            ctx.raise_if_cancelled("assemble")
            images = strategy.assemble(ctx, spec, target, products)
        except BuildError as exc:
            return failed(exc.stage, str(exc.cause))
        except (ClassificationError, InventoryError) as exc:
            logger.error("%s: classification failed: %s", target, exc)
            return failed("classify", str(exc))

        machine.transition(PipelineState.IMAGE_ASSEMBLED)
        return BuildOutcome(
            target=target,
            state=machine.state,
            verdicts=verdicts,
            images=images,
            history=machine.history,
        )

    @staticmethod
    def _not_started(target: BuildTarget, exc: BuildError) -> BuildOutcome:
        machine = StateMachine.for_target(str(target))
        machine.transition(PipelineState.FAILED, reason=str(exc))
        return BuildOutcome(
            target=target,
            state=machine.state,
            failed_stage=exc.stage,
            error=str(exc.cause),
            history=machine.history,
        )

    @staticmethod
    def _result(
        spec: VersionSpec,
        tree: PinnedTree | None,
        machine: StateMachine,
        outcomes: list[BuildOutcome],
        state: PipelineState,
    ) -> PipelineResult:
        return PipelineResult(
            version=spec.version,
            revision=spec.revision,
            resolved_revision=tree.resolved if tree else "",
            original_position=tree.original if tree else "",
            restored_position=tree.restored if tree else "",
            state=state,
            outcomes=outcomes,
            submodule_revisions=dict(tree.submodule_revisions) if tree else {},
            history=machine.history,
        )
