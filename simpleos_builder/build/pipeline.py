"""The build graph for one variant.

compile (cargo) -> partition.img (FAT32) -> image.img (GPT) -> image.vdi

``kernel.dbg`` is a side branch: a plain copy of the kernel binary handed to
the debugger.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from simpleos_builder.build.artifacts import ArtifactLocator
from simpleos_builder.build.graph import BuildGraph, Target
from simpleos_builder.build.variants import BuildVariant
from simpleos_builder.config.settings import BuildConfig
from simpleos_builder.domain.models import SECTOR_SIZE, ArtifactKind, PackagedFile
from simpleos_builder.storage.composer import check_fits, compose
from simpleos_builder.storage.packager import pack
from simpleos_builder.vm.virtualbox import convert_to_vdi


@dataclass(frozen=True)
class ImageLayout:
    """Output paths of one variant under ``target/image/<tag>``."""

    directory: Path

    @classmethod
    def for_variant(cls, config: BuildConfig, variant: BuildVariant) -> ImageLayout:
        return cls(config.image_root / variant.tag)

    @property
    def partition(self) -> Path:
        return self.directory / "partition.img"

    @property
    def image(self) -> Path:
        return self.directory / "image.img"

    @property
    def vdi(self) -> Path:
        return self.directory / "image.vdi"

    @property
    def kernel_symbols(self) -> Path:
        return self.directory / "kernel.dbg"


def packaged_files(locator: ArtifactLocator, variant: BuildVariant) -> list[PackagedFile]:
    """The bootloader and kernel under their names on the system partition."""
    return [
        PackagedFile.for_artifact(kind, locator.locate(kind, variant))
        for kind in (ArtifactKind.BOOTLOADER, ArtifactKind.KERNEL)
    ]


def create_build_graph(
    config: BuildConfig,
    variant: BuildVariant,
    locator: Optional[ArtifactLocator] = None,
) -> BuildGraph:
    """Targets ``bootloader``, ``kernel``, ``partition``, ``image``, ``vdi``
    and ``kernel-debug`` for ``variant``.

    Raises:
        ImageTooSmallError: If the configured filesystem does not fit the disk.
        GeometryMismatchError: If the configured partition layout is invalid.
    """
    check_fits(config.filesystem_sectors * SECTOR_SIZE, config.geometry())
    locator = locator or ArtifactLocator(config)
    layout = ImageLayout.for_variant(config, variant)
    graph = BuildGraph()

    for kind in (ArtifactKind.BOOTLOADER, ArtifactKind.KERNEL):
        graph.add(
            Target(
                name=kind.value,
                inputs=tuple(locator.source_inputs(kind, variant)),
                outputs=(locator.locate(kind, variant),),
                action=lambda target, kind=kind: locator.ensure_built(kind, variant),
                description=f"cargo build {kind.crate}",
            )
        )

    files = packaged_files(locator, variant)
    graph.add(
        Target(
            name="partition",
            inputs=tuple(packaged.source for packaged in files),
            outputs=(layout.partition,),
            action=lambda target: pack(
                files,
                layout.partition,
                size_in_sectors=config.filesystem_sectors,
                label=config.volume_label,
            ),
            description="FAT32 system partition",
        )
    )
    graph.add(
        Target(
            name="image",
            inputs=(layout.partition,),
            outputs=(layout.image,),
            action=lambda target: compose(layout.partition, layout.image, config.geometry()),
            description="GPT disk image",
        )
    )
    graph.add(
        Target(
            name="vdi",
            inputs=(layout.image,),
            outputs=(layout.vdi,),
            action=lambda target: convert_to_vdi(layout.image, layout.vdi, config),
            description="VirtualBox disk",
        )
    )
    kernel = locator.locate(ArtifactKind.KERNEL, variant)
    graph.add(
        Target(
            name="kernel-debug",
            inputs=(kernel,),
            outputs=(layout.kernel_symbols,),
            action=lambda target: shutil.copyfile(kernel, layout.kernel_symbols),
            description="kernel symbols for gdb",
        )
    )
    return graph


def requested_outputs(command: str, layout: ImageLayout) -> list[Path]:
    """Files a CLI command needs brought up to date."""
    if command == "build":
        return [layout.image]
    if command == "run":
        return [layout.vdi]
    if command == "debug":
        return [layout.image, layout.kernel_symbols]
    raise ValueError(f"Command {command!r} does not build anything")
