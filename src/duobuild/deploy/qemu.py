"""QEMU launcher for the built board image.

Boots the image on the ``virt`` machine with:
- the openEuler OpenSBI payload as kernel, no separate BIOS
- user-mode networking with SSH forwarded to the host
- an xHCI controller with USB keyboard and tablet
- the image as a raw virtio disk
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from duobuild.config import BuildConfig, EmulatorSettings
from duobuild.errors import EnvironmentStateError
from duobuild.fetch import Fetcher
from duobuild.layout import Layout
from duobuild.models import CommandSpec
from duobuild.process import CommandRunner
from duobuild.toolchain.state import is_marker_present

LOG = logging.getLogger("duobuild.deploy")

IMAGE_PATTERN = "milkv-duo*.img"
QEMU_BINARY = "qemu-system-riscv64"

KERNEL_APPEND = (
    "root=/dev/vda2",
    "rw",
    "console=ttyS0",
    "swiotlb=1",
    "loglevel=3",
    "systemd.default_timeout_start_sec=600",
    "selinux=0",
    "highres=off",
    "mem=512M",
    "earlycon",
)


def find_image(sdk_root: Path) -> Path | None:
    out_dir = sdk_root / "out"
    if not out_dir.is_dir():
        return None
    matches = sorted(out_dir.rglob(IMAGE_PATTERN))
    return matches[0] if matches else None


def qemu_argv(
    *,
    binary: Path,
    firmware: Path,
    image: Path,
    settings: EmulatorSettings,
) -> tuple[str, ...]:
    return (
        str(binary),
        "-M", "virt",
        "-kernel", str(firmware),
        "-bios", "none",
        "-nographic",
        "-m", settings.memory,
        "-smp", str(settings.cpus),
        "-netdev", f"user,id=net0,hostfwd=tcp::{settings.ssh_port}-:22",
        "-device", "virtio-net-device,netdev=net0",
        "-device", "qemu-xhci",
        "-usb",
        "-device", "usb-kbd",
        "-device", "usb-tablet",
        "-drive", f"file={image},format=raw,if=virtio",
        "-append", " ".join(KERNEL_APPEND),
    )


@dataclass(slots=True)
class QemuLauncher:
    layout: Layout
    config: BuildConfig
    fetcher: Fetcher
    runner: CommandRunner
    build_board: Callable[[], object]

    @property
    def sdk_root(self) -> Path:
        return self.layout.source_tree(self.config.sources.sdk.name)

    @property
    def qemu_prefix(self) -> Path:
        return self.layout.host_tools / "qemu"

    @property
    def qemu_binary(self) -> Path:
        return self.qemu_prefix / "bin" / QEMU_BINARY

    @property
    def firmware_path(self) -> Path:
        return self.layout.output / self.config.emulator.firmware.name

    def launch(self) -> None:
        image = self.ensure_image()
        binary = self.ensure_emulator()
        firmware = self.ensure_firmware()
        argv = qemu_argv(
            binary=binary,
            firmware=firmware,
            image=image,
            settings=self.config.emulator,
        )
        LOG.info("Booting %s (ssh on localhost:%d)", image.name, self.config.emulator.ssh_port)
        self.runner.run(CommandSpec(argv), stage="run")

    def ensure_image(self) -> Path:
        image = find_image(self.sdk_root)
        if image is not None:
            return image
        LOG.info("No board image found; running the board build first")
        self.build_board()
        image = find_image(self.sdk_root)
        if image is None:
            raise EnvironmentStateError(
                "Board build finished without producing a disk image.",
                hint=f"Expected {IMAGE_PATTERN} under the SDK out directory.",
                context={"operation": "ensure_image", "path": str(self.sdk_root / "out")},
            )
        return image

    def ensure_emulator(self) -> Path:
        if is_marker_present(self.qemu_binary):
            return self.qemu_binary
        source = self.fetcher.clone_pinned(self.config.sources.qemu)
        LOG.info("Building qemu")
        target_list = ",".join(self.config.emulator.target_list)
        self.runner.run(
            CommandSpec(
                ("./configure", f"--prefix={self.qemu_prefix}", f"--target-list={target_list}"),
                cwd=source,
            ),
            stage="emulator",
        )
        self.runner.run(
            CommandSpec(("make", "-j", str(self.config.jobs)), cwd=source), stage="emulator"
        )
        self.runner.run(CommandSpec(("make", "install"), cwd=source), stage="emulator")
        if not is_marker_present(self.qemu_binary):
            raise EnvironmentStateError(
                "qemu install finished but the emulator binary is missing.",
                context={"operation": "ensure_emulator", "path": str(self.qemu_binary)},
            )
        return self.qemu_binary

    def ensure_firmware(self) -> Path:
        if self.firmware_path.is_file():
            return self.firmware_path
        LOG.info("Retrieving the firmware payload")
        return self.fetcher.download_file(self.config.emulator.firmware)
