"""The three ABI variants of the RISC-V cross-toolchain."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

COMMON_CONFIGURE_FLAGS = (
    "--with-cmodel=medany",
    "--with-arch=rv64imafd",
    "--with-abi=lp64d",
    "--with-system-zlib",
    "--enable-tls",
    "--with-newlib",
    "--enable-multilib",
    "--disable-shared",
)


class VariantName(StrEnum):
    ELF = "elf"
    LINUX_GNU = "linux-gnu"
    LINUX_MUSL = "linux-musl"


@dataclass(frozen=True, slots=True)
class ToolchainVariant:
    name: VariantName
    directory: str
    triple: str
    make_goal: str | None = None
    needs_musl_source: bool = False

    def install_dir_name(self, host_arch: str) -> str:
        return f"{self.directory}-{host_arch}"

    def prefix(self, host_tools: Path, host_arch: str) -> Path:
        return host_tools / "gcc" / self.install_dir_name(host_arch)

    def marker(self, host_tools: Path, host_arch: str) -> Path:
        """Path of the compiler whose presence means this variant is built."""
        return self.prefix(host_tools, host_arch) / "bin" / f"{self.triple}-gcc"

    def configure_argv(self, *, prefix: Path, musl_source: Path | None) -> tuple[str, ...]:
        argv = ["./configure"]
        if self.needs_musl_source:
            if musl_source is None:
                raise ValueError(f"variant {self.name} needs the musl source tree")
            argv.append(f"--with-musl-src={musl_source}")
        argv.append(f"--prefix={prefix}")
        argv.extend(COMMON_CONFIGURE_FLAGS)
        return tuple(argv)

    def make_argv(self, *, jobs: int) -> tuple[str, ...]:
        argv = ["make"]
        if self.make_goal:
            argv.append(self.make_goal)
        argv.extend(["-j", str(jobs)])
        return tuple(argv)


ELF = ToolchainVariant(
    name=VariantName.ELF,
    directory="riscv64-elf",
    triple="riscv64-unknown-elf",
)
LINUX_GNU = ToolchainVariant(
    name=VariantName.LINUX_GNU,
    directory="riscv64-linux",
    triple="riscv64-unknown-linux-gnu",
    make_goal="linux",
)
LINUX_MUSL = ToolchainVariant(
    name=VariantName.LINUX_MUSL,
    directory="riscv64-linux-musl",
    triple="riscv64-unknown-linux-musl",
    make_goal="musl",
    needs_musl_source=True,
)

VARIANTS: tuple[ToolchainVariant, ...] = (ELF, LINUX_GNU, LINUX_MUSL)
