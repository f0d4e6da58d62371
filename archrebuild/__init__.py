"""archrebuild: rebuild multi-architecture container images from source.

Pins a source tree to a release line's revision, compiles every binary for
each target architecture (inside the Dockerfiles, or directly on the host
for toolchains that drop the target architecture), classifies every binary
from its ELF header before an image is assembled, and diffs the result
against the published reference image.
"""

__version__ = "0.1.0"
__description__ = (
    "Rebuild multi-architecture container images from source and verify "
    "their binaries"
)

from archrebuild.core.diff_engine import compare_images, diff_inventories
from archrebuild.core.pipeline import BuildPipeline
from archrebuild.core.verification import VerificationAggregator

__all__ = [
    "BuildPipeline",
    "VerificationAggregator",
    "compare_images",
    "diff_inventories",
    "__version__",
]
