"""Capability backends: container runtime, source control, host toolchain."""

from archrebuild.backends.docker import DockerCli
from archrebuild.backends.git import GitSourceControl
from archrebuild.backends.protocols import ContainerRuntime, SourceControl, Toolchain
from archrebuild.backends.toolchain import HostToolchain

__all__ = [
    "ContainerRuntime",
    "SourceControl",
    "Toolchain",
    "DockerCli",
    "GitSourceControl",
    "HostToolchain",
]
