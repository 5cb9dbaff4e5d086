from dataclasses import replace
from pathlib import Path

import pytest

from conftest import FakeFetcher, RecordingRunner, create_git_repo, make_executable
from duobuild.cache import ArtifactCache
from duobuild.config import BuildConfig, Sources
from duobuild.dependencies import DependencyReport
from duobuild.errors import EnvironmentStateError, PatchError
from duobuild.fetch import Fetcher
from duobuild.layout import Layout
from duobuild.models import CommandSpec, GitSource
from duobuild.process import SubprocessRunner
from duobuild.sdk import BoardBuilder, rewrite_toolchain_paths
from duobuild.toolchain import VARIANTS, ToolchainBuilder

SETUP_SH = """#!/bin/bash
function milkv_setup() {
CROSS_COMPILE_PATH_64_NONOS_RISCV64="$TOOLCHAIN_PATH"/gcc/riscv64-elf-x86_64
CROSS_COMPILE_PATH_GLIBC_RISCV64="$TOOLCHAIN_PATH"/gcc/riscv64-linux-x86_64
CROSS_COMPILE_PATH_MUSL_RISCV64="$TOOLCHAIN_PATH"/gcc/riscv64-linux-musl-x86_64
}
"""


def test_rewrite_toolchain_paths_targets_host_arch(tmp_path: Path) -> None:
    script = tmp_path / "milkvsetup.sh"
    script.write_text(SETUP_SH, encoding="utf-8")

    rewrite_toolchain_paths(script, host_arch="arm64")

    lines = script.read_text(encoding="utf-8").splitlines()
    assert lines[2] == 'CROSS_COMPILE_PATH_64_NONOS_RISCV64="$TOOLCHAIN_PATH"/gcc/riscv64-elf-arm64'
    assert lines[3] == 'CROSS_COMPILE_PATH_GLIBC_RISCV64="$TOOLCHAIN_PATH"/gcc/riscv64-linux-arm64'
    assert lines[4] == (
        'CROSS_COMPILE_PATH_MUSL_RISCV64="$TOOLCHAIN_PATH"/gcc/riscv64-linux-musl-arm64'
    )
    assert lines[0] == "#!/bin/bash"


def test_rewrite_toolchain_paths_requires_setup_script(tmp_path: Path) -> None:
    with pytest.raises(EnvironmentStateError):
        rewrite_toolchain_paths(tmp_path / "milkvsetup.sh", host_arch="arm64")


def test_board_build_prepares_sdk_then_builds(
    layout: Layout, config: BuildConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    deps: list[tuple[str, ...]] = []
    monkeypatch.setattr(
        "duobuild.sdk.install_dependencies",
        lambda packages, *, runner: deps.append(tuple(packages)) or DependencyReport(),
    )
    for variant in VARIANTS:
        make_executable(variant.marker(layout.host_tools, "arm64"))
    make_executable(layout.patches / "10-defconfig.sh")
    runner = RecordingRunner()
    board = _board(layout, config, runner)

    sdk_root = board.build()

    assert sdk_root == layout.output / "duo-buildroot-sdk"
    assert deps == [config.packages]
    assert runner.argvs == [
        (
            "gcc",
            str(sdk_root / "linux_5.10/usr/gen_init_cpio.c"),
            "-o",
            str(sdk_root / "build/tools/common/gen_init_cpio"),
        ),
        ("make", "defconfig"),
        ("make", "tools"),
        (str(layout.patches / "10-defconfig.sh"), str(sdk_root)),
        ("./build.sh", "milkv-duo256m"),
    ]
    assert runner.commands[-1].cwd == sdk_root
    assert runner.stages[-1] == "sdk"
    assert (sdk_root / "host-tools/gcc/riscv64-elf-arm64/bin/riscv64-unknown-elf-gcc").is_file()
    assert (sdk_root / "build/tools/common/prebuild/mkimage").read_bytes() == b"mkimage"
    setup = (sdk_root / "build/milkvsetup.sh").read_text(encoding="utf-8")
    assert "riscv64-linux-musl-arm64" in setup
    assert "x86_64" not in setup


def test_board_build_stops_on_failed_patch(
    layout: Layout, config: BuildConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        "duobuild.sdk.install_dependencies",
        lambda packages, *, runner: DependencyReport(skipped=True),
    )
    for variant in VARIANTS:
        make_executable(variant.marker(layout.host_tools, "arm64"))
    make_executable(layout.patches / "10-broken.sh", "#!/bin/sh\nexit 1\n")

    def handler(command: CommandSpec) -> int:
        return 1 if command.argv[0].endswith("10-broken.sh") else 0

    runner = RecordingRunner(handler=handler)

    with pytest.raises(PatchError):
        _board(layout, config, runner).build()

    assert ("./build.sh", "milkv-duo256m") not in runner.argvs


def test_board_build_twice_reuses_cached_checkouts(
    layout: Layout, config: BuildConfig, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        "duobuild.sdk.install_dependencies",
        lambda packages, *, runner: DependencyReport(skipped=True),
    )
    for variant in VARIANTS:
        make_executable(variant.marker(layout.host_tools, "arm64"))
    upstream = layout.root.parent / "upstream"
    sdk_repo = create_git_repo(
        upstream / "sdk",
        tag="Duo-V1.1.0",
        files={
            "build/milkvsetup.sh": SETUP_SH,
            "linux_5.10/usr/gen_init_cpio.c": "int main;\n",
        },
    )
    uboot_repo = create_git_repo(upstream / "u-boot", tag="v2021.10", files={"Makefile": "all:\n"})
    sources = Sources(
        sdk=GitSource(sdk_repo.as_uri(), "duo-buildroot-sdk", "Duo-V1.1.0"),
        uboot=GitSource(uboot_repo.as_uri(), "u-boot-2021.10", "v2021.10"),
    )
    config = replace(config, sources=sources)
    git = SubprocessRunner()

    def handler(command: CommandSpec) -> int:
        if command.argv[0] == "git":
            return git.run(command, stage="fetch", check=False).returncode
        if command.argv == ("make", "tools"):
            assert command.cwd is not None
            (command.cwd / "tools").mkdir(exist_ok=True)
            (command.cwd / "tools" / "mkimage").write_bytes(b"mkimage")
        return 0

    first = RecordingRunner(handler=handler)
    sdk_root = _cached_board(layout, config, first).build()
    second = RecordingRunner(handler=handler)
    again = _cached_board(layout, config, second).build()

    assert again == sdk_root
    assert [argv[:2] for argv in first.argvs].count(("git", "clone")) == 2
    assert [argv[:2] for argv in second.argvs].count(("git", "clone")) == 0
    assert sorted(path.name for path in layout.pkgcache.iterdir()) == [
        "duo-buildroot-sdk-Duo-V1.1.0.tbz",
        "u-boot-2021.10-v2021.10.tbz",
    ]
    assert second.argvs[-1] == ("./build.sh", "milkv-duo256m")
    assert "riscv64-linux-musl-arm64" in (sdk_root / "build/milkvsetup.sh").read_text(
        encoding="utf-8"
    )
    assert (sdk_root / "build/tools/common/prebuild/mkimage").read_bytes() == b"mkimage"


def _cached_board(layout: Layout, config: BuildConfig, runner: RecordingRunner) -> BoardBuilder:
    fetcher = Fetcher(layout.output, ArtifactCache(layout.pkgcache), runner)
    toolchain = ToolchainBuilder(layout, config, fetcher, runner)
    return BoardBuilder(layout, config, fetcher, runner, toolchain)

def _board(layout: Layout, config: BuildConfig, runner: RecordingRunner) -> BoardBuilder:
    fetcher = FakeFetcher(
        layout.output,
        populate={"duo-buildroot-sdk": _populate_sdk, "u-boot-2021.10": _populate_uboot},
    )
    toolchain = ToolchainBuilder(layout, config, fetcher, runner)
    return BoardBuilder(layout, config, fetcher, runner, toolchain)


def _populate_sdk(root: Path) -> None:
    (root / "build").mkdir(parents=True, exist_ok=True)
    (root / "build" / "milkvsetup.sh").write_text(SETUP_SH, encoding="utf-8")
    (root / "linux_5.10" / "usr").mkdir(parents=True, exist_ok=True)
    (root / "linux_5.10" / "usr" / "gen_init_cpio.c").write_text("int main;\n", encoding="utf-8")


def _populate_uboot(root: Path) -> None:
    (root / "tools").mkdir(parents=True, exist_ok=True)
    (root / "tools" / "mkimage").write_bytes(b"mkimage")
