"""Integration tests for the BuildPipeline against in-memory backends.

Every scenario checks that the source tree ends up back where it started.
"""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from archrebuild.core.pipeline import BuildPipeline
from archrebuild.errors import CommandError, RestoreError, RevisionResolutionError
from archrebuild.models.architecture import Architecture
from archrebuild.models.catalog import DEFAULT_CATALOG
from archrebuild.models.states import PipelineState


# ---------------------------------------------------------------------------
# Test: direct host strategy (1.23)
# ---------------------------------------------------------------------------


class TestDirectHostRun:
    def test_all_targets_assembled(self, pipeline, runtime, source, toolchain):
        result = pipeline.run("1.23")

        assert result.state is PipelineState.SUCCEEDED
        assert result.exit_code == 0
        assert result.resolved_revision == source.revisions["e7a73a0"]
        assert result.original_position == "main"
        assert result.restored_position == "main"
        assert source.position == "main"
        assert source.checkouts == ["e7a73a0", "main"]

        for arch in (Architecture.AMD64, Architecture.ARM64):
            outcome = result.outcome(arch)
            assert outcome.state is PipelineState.IMAGE_ASSEMBLED
            assert len(outcome.verdicts) == 8
            assert not outcome.failures
            assert outcome.images == {
                "server": f"temporalio/server:1.23-rebuild-{arch.value}",
                "admin-tools": f"temporalio/admin-tools:1.23-rebuild-{arch.value}",
            }

    def test_explicit_goarch_for_every_owner(self, pipeline, toolchain):
        pipeline.run("1.23", [Architecture.ARM64])
        assert ("go", "temporal-server", "arm64") in toolchain.calls
        assert ("go", "tdbg", "arm64") in toolchain.calls
        assert ("make", "cli", "arm64") in toolchain.calls
        # tctl-authorization-plugin comes from the tctl make target
        assert [c for c in toolchain.calls if c[0] == "make" and c[1] == "tctl"] == [
            ("make", "tctl", "arm64")
        ]

    def test_images_built_for_target_platform(self, pipeline, runtime, source):
        pipeline.run("1.23", [Architecture.ARM64])
        server = next(b for b in runtime.builds if b["dockerfile"] == "server.Dockerfile")
        assert server["platform"] == "linux/arm64"
        assert server["stage"] == "server"
        assert server["build_args"] == {
            "TEMPORAL_SHA": source.submodules["temporal"],
            "TCTL_SHA": source.submodules["tctl"],
        }
        assert runtime.builders == ["builder-x"]

    def test_binaries_left_in_build_dir(self, pipeline, rebuild_settings):
        pipeline.run("1.23", [Architecture.ARM64])
        out = Path(rebuild_settings.repo_root) / "build" / "arm64"
        assert sorted(p.name for p in out.iterdir()) == sorted(
            b.name for b in DEFAULT_CATALOG.get("1.23").binaries
        )

    def test_one_failed_target_does_not_abort_the_other(self, pipeline, toolchain, source):
        toolchain.fail.add(("temporal-server", "arm64"))
        result = pipeline.run("1.23")

        assert result.state is PipelineState.FAILED
        assert result.exit_code == 1
        assert result.outcome(Architecture.AMD64).state is PipelineState.IMAGE_ASSEMBLED
        failed = result.outcome(Architecture.ARM64)
        assert failed.state is PipelineState.FAILED
        assert failed.failed_stage == "go build temporal-server"
        assert "exit status 2" in failed.error
        assert source.position == "main"

    def test_failed_target_output_discarded(self, pipeline, toolchain, rebuild_settings):
        toolchain.fail.add(("tctl", "arm64"))
        result = pipeline.run("1.23")
        assert result.outcome(Architecture.ARM64).failed_stage == "make tctl"
        root = Path(rebuild_settings.repo_root) / "build"
        assert not (root / "arm64").exists()
        assert (root / "amd64" / "tctl").is_file()

    def test_wrong_architecture_blocks_assembly(self, pipeline, runtime, toolchain):
        toolchain.ignores_goarch.add("tdbg")
        result = pipeline.run("1.23")

        assert result.outcome(Architecture.AMD64).succeeded
        arm = result.outcome(Architecture.ARM64)
        assert arm.state is PipelineState.FAILED
        assert arm.failed_stage == "classify"
        assert "tdbg" in arm.error
        assert [v.name for v in arm.failures] == ["tdbg"]
        assert not any(b["tag"].endswith("-arm64") for b in runtime.builds)

    def test_missing_make_output(self, pipeline, toolchain):
        toolchain.make_outputs["tctl"] = ["tctl"]
        result = pipeline.run("1.23", [Architecture.AMD64])
        outcome = result.outcome(Architecture.AMD64)
        assert outcome.failed_stage == "make tctl"
        assert "tctl-authorization-plugin was not produced" in outcome.error


# ---------------------------------------------------------------------------
# Test: in-container strategy (1.22)
# ---------------------------------------------------------------------------


class TestInContainerRun:
    def test_all_targets_assembled(self, pipeline, runtime, source):
        result = pipeline.run("1.22")

        assert result.succeeded
        assert source.position == "main"
        for arch in (Architecture.AMD64, Architecture.ARM64):
            outcome = result.outcome(arch)
            assert outcome.images["server"] == f"temporalio/server:1.22-rebuild-{arch.value}"
            assert f"temporalio/admin-tools:1.22-rebuild-{arch.value}" in runtime.images
        # staging containers are always removed
        assert not runtime.containers

    def test_admin_tools_based_on_target_server(self, pipeline, runtime):
        pipeline.run("1.22", [Architecture.ARM64])
        admin = next(b for b in runtime.builds if b["dockerfile"] == "admin-tools.Dockerfile")
        assert admin["build_args"] == {
            "SERVER_IMAGE": "archrebuild-staging/server:1.22-arm64"
        }
        assert admin["platform"] == "linux/arm64"

    def test_platform_ignored_is_caught(self, pipeline, runtime):
        runtime.ignores_platform.add("tctl")
        result = pipeline.run("1.22")

        assert result.outcome(Architecture.AMD64).succeeded
        arm = result.outcome(Architecture.ARM64)
        assert arm.failed_stage == "classify"
        assert {v.name for v in arm.failures} == {"tctl"}
        assert "temporalio/server:1.22-rebuild-arm64" not in runtime.images

    def test_image_build_failure(self, pipeline, runtime, source):
        runtime.fail_builds.add("archrebuild-staging/server:1.22-arm64")
        result = pipeline.run("1.22")
        arm = result.outcome(Architecture.ARM64)
        assert arm.failed_stage == "build image server"
        assert result.outcome(Architecture.AMD64).succeeded
        assert source.position == "main"


# ---------------------------------------------------------------------------
# Test: restoration on every exit path
# ---------------------------------------------------------------------------


def _fail_submodules(runtime, source, toolchain):
    source.fail_submodules = True


def _fail_builder(runtime, source, toolchain):
    def ensure_builder(name):
        raise CommandError(["docker", "buildx", "create"], "no driver", returncode=1)

    runtime.ensure_builder = ensure_builder


def _fail_build(runtime, source, toolchain):
    toolchain.fail.add(("dockerize", "amd64"))
    toolchain.fail.add(("dockerize", "arm64"))


def _fail_classification(runtime, source, toolchain):
    toolchain.ignores_goarch.update({"temporal-server"})


class TestRestoration:
    @pytest.mark.parametrize(
        "inject, stage",
        [
            (_fail_submodules, "submodules"),
            (_fail_builder, "buildx builder"),
            (_fail_build, "go build dockerize"),
        ],
    )
    def test_restored_after_failure(self, pipeline, runtime, source, toolchain, inject, stage):
        inject(runtime, source, toolchain)
        result = pipeline.run("1.23")

        assert result.state is PipelineState.FAILED
        assert source.position == "main"
        assert result.restored_position == "main"
        assert all(o.failed_stage == stage for o in result.outcomes)

    def test_restored_after_classification_failure(self, pipeline, runtime, source, toolchain):
        _fail_classification(runtime, source, toolchain)
        result = pipeline.run("1.23")
        assert result.outcome(Architecture.ARM64).failed_stage == "classify"
        assert source.position == "main"

    def test_unresolvable_revision(self, pipeline, source):
        spec = DEFAULT_CATALOG.get("1.23").model_copy(update={"revision": "nope"})
        with pytest.raises(RevisionResolutionError):
            pipeline.run(spec)
        assert source.checkouts == []
        assert source.position == "main"

    def test_checkout_failure_still_restores(self, pipeline, source):
        source.fail_checkout.add("e7a73a0")
        with pytest.raises(RevisionResolutionError):
            pipeline.run("1.23")
        assert source.checkouts == ["e7a73a0", "main"]
        assert source.position == "main"

    def test_restore_failure_carries_result(self, pipeline, source):
        source.fail_checkout.add("main")
        with pytest.raises(RestoreError) as excinfo:
            pipeline.run("1.23")
        partial = excinfo.value.result
        assert partial is not None
        assert partial.state is PipelineState.FAILED
        assert len(partial.outcomes) == 2
        assert partial.original_position == "main"
        assert partial.resolved_revision == source.revisions["e7a73a0"]
        assert source.position == "e7a73a0"

    def test_cancellation_restores(self, pipeline, source, toolchain):
        toolchain.on_call = lambda name: pipeline.cancel()
        result = pipeline.run("1.23")

        assert result.state is PipelineState.FAILED
        assert all(o.error == "cancelled" for o in result.outcomes)
        assert source.position == "main"
        # only the first step ran
        assert len(toolchain.calls) == 1

    def test_cancel_without_run_does_not_affect_next_run(self, pipeline, toolchain):
        pipeline.cancel()
        result = pipeline.run("1.23", [Architecture.AMD64])
        assert result.succeeded

    def test_cancel_after_run_does_not_affect_next_run(self, pipeline, toolchain):
        toolchain.on_call = lambda name: pipeline.cancel()
        assert not pipeline.run("1.23", [Architecture.AMD64]).succeeded
        toolchain.on_call = None
        assert pipeline.run("1.23", [Architecture.AMD64]).succeeded


# ---------------------------------------------------------------------------
# Test: history
# ---------------------------------------------------------------------------


class TestHistory:
    def test_run_history(self, pipeline):
        result = pipeline.run("1.23")
        assert [t.to_state for t in result.history] == [
            PipelineState.REVISION_PINNED,
            PipelineState.SUBMODULES_READY,
            PipelineState.STATE_RESTORED,
            PipelineState.SUCCEEDED,
        ]
        assert all(t.subject == "run" for t in result.history)

    def test_target_history(self, pipeline):
        result = pipeline.run("1.23", [Architecture.ARM64])
        outcome = result.outcome(Architecture.ARM64)
        assert [t.to_state for t in outcome.history] == [
            PipelineState.BUILDING,
            PipelineState.CLASSIFYING,
            PipelineState.IMAGE_ASSEMBLED,
        ]
        assert outcome.history[0].subject == "1.23/arm64"

    def test_failure_reason_recorded(self, pipeline, toolchain):
        toolchain.fail.add(("temporal-server", "amd64"))
        result = pipeline.run("1.23", [Architecture.AMD64])
        last = result.history[-1]
        assert last.to_state is PipelineState.FAILED
        assert last.reason == "failed targets: 1.23/amd64"

    def test_submodule_revisions_recorded(self, pipeline, source):
        result = pipeline.run("1.23")
        assert result.submodule_revisions == {
            "temporal": source.submodules["temporal"],
            "tctl": source.submodules["tctl"],
        }


# ---------------------------------------------------------------------------
# Test: pipelines sharing one source tree
# ---------------------------------------------------------------------------


class TestSharedSourceTree:
    def _start(self, pipeline, results, key) -> threading.Thread:
        def run() -> None:
            results[key] = pipeline.run("1.23", [Architecture.AMD64])

        thread = threading.Thread(target=run, daemon=True)
        thread.start()
        return thread

    def test_second_pipeline_waits_for_pin(self, runtime, source, toolchain, rebuild_settings):
        started, gate = threading.Event(), threading.Event()

        def hold(name: str) -> None:
            started.set()
            gate.wait(timeout=10)

        toolchain.on_call = hold
        first = BuildPipeline(runtime, source, toolchain, settings=rebuild_settings)
        other_source = type(source)()
        second = BuildPipeline(
            runtime, other_source, type(toolchain)(), settings=rebuild_settings
        )
        results: dict[str, object] = {}

        first_thread = self._start(first, results, "first")
        assert started.wait(timeout=10)
        second_thread = self._start(second, results, "second")
        second_thread.join(timeout=0.2)
        assert second_thread.is_alive()
        assert other_source.checkouts == []

        gate.set()
        first_thread.join(timeout=10)
        second_thread.join(timeout=10)
        assert results["first"].succeeded
        assert results["second"].succeeded
        assert other_source.checkouts == ["e7a73a0", "main"]

    def test_cancel_is_scoped_to_the_pipeline(self, runtime, source, toolchain, rebuild_settings):
        first = BuildPipeline(runtime, source, toolchain, settings=rebuild_settings)
        second = BuildPipeline(
            runtime, type(source)(), type(toolchain)(), settings=rebuild_settings
        )
        toolchain.on_call = lambda name: (first.cancel(), second.cancel())

        assert not first.run("1.23", [Architecture.AMD64]).succeeded
        assert second.run("1.23", [Architecture.AMD64]).succeeded
