"""Board image build on top of the vendor buildroot SDK."""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from duobuild.config import BuildConfig
from duobuild.dependencies import install_dependencies
from duobuild.errors import EnvironmentStateError
from duobuild.fetch import Fetcher
from duobuild.layout import Layout
from duobuild.models import CommandSpec
from duobuild.patches import apply_plan, discover
from duobuild.process import CommandRunner
from duobuild.toolchain import ToolchainBuilder
from duobuild.toolchain.variants import ELF, LINUX_GNU, LINUX_MUSL, ToolchainVariant

LOG = logging.getLogger("duobuild.sdk")

SETUP_SCRIPT = Path("build/milkvsetup.sh")
COMMON_TOOLS = Path("build/tools/common")
GEN_INIT_CPIO_SOURCE = Path("linux_5.10/usr/gen_init_cpio.c")

CROSS_COMPILE_VARIABLES: tuple[tuple[str, ToolchainVariant], ...] = (
    ("CROSS_COMPILE_PATH_64_NONOS_RISCV64", ELF),
    ("CROSS_COMPILE_PATH_GLIBC_RISCV64", LINUX_GNU),
    ("CROSS_COMPILE_PATH_MUSL_RISCV64", LINUX_MUSL),
)


def rewrite_toolchain_paths(setup_script: Path, *, host_arch: str) -> None:
    """Point the SDK's cross-compile variables at the toolchains copied into it."""
    try:
        content = setup_script.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise EnvironmentStateError(
            "SDK checkout has no milkvsetup.sh.",
            hint="The SDK tag may have changed layout; check the pinned sources.",
            context={"operation": "rewrite_toolchain_paths", "path": str(setup_script)},
        ) from exc
    for variable, variant in CROSS_COMPILE_VARIABLES:
        assignment = f'{variable}="$TOOLCHAIN_PATH"/gcc/{variant.install_dir_name(host_arch)}'
        content = re.sub(
            rf"^{variable}=.*$",
            lambda _match, line=assignment: line,
            content,
            flags=re.MULTILINE,
        )
    setup_script.write_text(content, encoding="utf-8")


@dataclass(slots=True)
class BoardBuilder:
    layout: Layout
    config: BuildConfig
    fetcher: Fetcher
    runner: CommandRunner
    toolchain: ToolchainBuilder

    @property
    def sdk_root(self) -> Path:
        return self.layout.source_tree(self.config.sources.sdk.name)

    def build(self) -> Path:
        """Run toolchain, dependencies, SDK preparation and the native SDK build."""
        self.toolchain.run()
        install_dependencies(self.config.packages, runner=self.runner)
        self.layout.output.mkdir(parents=True, exist_ok=True)
        sdk_root = self.fetcher.clone_pinned(self.config.sources.sdk)

        self.inject_host_tools(sdk_root)
        self.build_gen_init_cpio(sdk_root)
        self.build_uboot_mkimage(sdk_root)
        rewrite_toolchain_paths(sdk_root / SETUP_SCRIPT, host_arch=self.config.host_arch)

        apply_plan(discover(self.layout.patches), sdk_root, runner=self.runner)

        LOG.info("Building board image %s", self.config.board)
        self.runner.run(CommandSpec(("./build.sh", self.config.board), cwd=sdk_root), stage="sdk")
        return sdk_root

    def inject_host_tools(self, sdk_root: Path) -> None:
        LOG.info("Copying host tools into %s", sdk_root)
        shutil.copytree(
            self.layout.host_tools,
            sdk_root / self.layout.host_tools.name,
            symlinks=True,
            dirs_exist_ok=True,
        )

    def build_gen_init_cpio(self, sdk_root: Path) -> None:
        target = sdk_root / COMMON_TOOLS / "gen_init_cpio"
        target.unlink(missing_ok=True)
        target.parent.mkdir(parents=True, exist_ok=True)
        self.runner.run(
            CommandSpec(("gcc", str(sdk_root / GEN_INIT_CPIO_SOURCE), "-o", str(target))),
            stage="sdk:gen_init_cpio",
        )

    def build_uboot_mkimage(self, sdk_root: Path) -> None:
        uboot_root = self.fetcher.clone_pinned(self.config.sources.uboot)
        self.runner.run(CommandSpec(("make", "defconfig"), cwd=uboot_root), stage="sdk:mkimage")
        self.runner.run(CommandSpec(("make", "tools"), cwd=uboot_root), stage="sdk:mkimage")
        prebuild = sdk_root / COMMON_TOOLS / "prebuild"
        prebuild.mkdir(parents=True, exist_ok=True)
        shutil.copy2(uboot_root / "tools" / "mkimage", prebuild / "mkimage")
