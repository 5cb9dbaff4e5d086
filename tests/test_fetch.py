import shutil
from pathlib import Path

import pytest

from conftest import RecordingRunner, create_git_repo
from duobuild.cache import ArtifactCache
from duobuild.errors import EnvironmentStateError, ProcessError
from duobuild.fetch import Fetcher, clone_argv, clone_pinned, download_file
from duobuild.models import CommandSpec, FileSource, GitSource
from duobuild.observability import StructuredLogger
from duobuild.process import SubprocessRunner


def test_clone_pinned_checks_out_tag_and_caches_it(tmp_path: Path) -> None:
    repo = _create_repo(tmp_path / "upstream", tag="v1.2.5")
    output = tmp_path / "output"
    cache = ArtifactCache(tmp_path / "pkgcache")

    tree = clone_pinned(
        repo.as_uri(),
        "musl",
        "v1.2.5",
        output_root=output,
        cache=cache,
        runner=SubprocessRunner(),
    )

    assert tree == output / "musl"
    assert (tree / "README.md").read_text(encoding="utf-8") == "tagged content\n"
    assert cache.lookup("musl", "v1.2.5") == tmp_path / "pkgcache" / "musl-v1.2.5.tbz"


def test_clone_pinned_restores_from_cache_without_network(tmp_path: Path) -> None:
    repo = _create_repo(tmp_path / "upstream", tag="v1.2.5")
    output = tmp_path / "output"
    cache = ArtifactCache(tmp_path / "pkgcache")
    events = StructuredLogger()
    clone_pinned(
        repo.as_uri(),
        "musl",
        "v1.2.5",
        output_root=output,
        cache=cache,
        runner=SubprocessRunner(events),
    )
    shutil.rmtree(output)
    shutil.rmtree(repo)
    runner = RecordingRunner()

    tree = clone_pinned(
        repo.as_uri(),
        "musl",
        "v1.2.5",
        output_root=output,
        cache=cache,
        runner=runner,
    )

    assert runner.commands == []
    assert (tree / "README.md").read_text(encoding="utf-8") == "tagged content\n"
    assert len(events.records_for_stage("fetch:musl")) == 2


def test_clone_pinned_twice_over_existing_checkout(tmp_path: Path) -> None:
    repo = _create_repo(tmp_path / "upstream", tag="Duo-V1.1.0")
    output = tmp_path / "output"
    cache = ArtifactCache(tmp_path / "pkgcache")
    first = clone_pinned(
        repo.as_uri(),
        "sdk",
        "Duo-V1.1.0",
        output_root=output,
        cache=cache,
        runner=SubprocessRunner(),
    )
    objects = [path for path in (first / ".git").rglob("*") if path.is_file()]
    runner = RecordingRunner()

    second = clone_pinned(
        repo.as_uri(),
        "sdk",
        "Duo-V1.1.0",
        output_root=output,
        cache=cache,
        runner=runner,
    )

    assert second == first
    assert runner.commands == []
    assert (second / "README.md").read_text(encoding="utf-8") == "tagged content\n"
    assert all(path.is_file() for path in objects)


def test_clone_pinned_rejects_empty_destination(tmp_path: Path) -> None:
    output = tmp_path / "output"
    (output / "sdk").mkdir(parents=True)
    cache = ArtifactCache(tmp_path / "pkgcache")
    runner = RecordingRunner()

    with pytest.raises(EnvironmentStateError) as excinfo:
        clone_pinned(
            "https://example.invalid/sdk.git",
            "sdk",
            "Duo-V1.1.0",
            output_root=output,
            cache=cache,
            runner=runner,
        )

    assert "sdk already exists in output as an empty directory" in str(excinfo.value)
    assert runner.commands == []
    assert not (tmp_path / "pkgcache").exists()


def test_clone_pinned_runs_clone_then_submodules(tmp_path: Path) -> None:
    output = tmp_path / "output"
    runner = RecordingRunner(handler=_fake_clone)

    clone_pinned(
        "https://example.invalid/qemu.git",
        "qemu",
        "stable-8.1",
        output_root=output,
        cache=ArtifactCache(tmp_path / "pkgcache"),
        runner=runner,
    )

    assert runner.argvs == [
        (
            "git",
            "clone",
            "-b",
            "stable-8.1",
            "--single-branch",
            "--depth",
            "1",
            "https://example.invalid/qemu.git",
            str(output / "qemu"),
        ),
        ("git", "submodule", "update", "--init", "--recursive"),
    ]
    assert runner.commands[1].cwd == output / "qemu"
    assert runner.stages == ["fetch:qemu", "fetch:qemu"]


def test_clone_failure_is_a_process_error(tmp_path: Path) -> None:
    runner = RecordingRunner(handler=lambda command: 128)

    with pytest.raises(ProcessError) as excinfo:
        clone_pinned(
            "https://example.invalid/u-boot.git",
            "u-boot-2021.10",
            "v2021.10",
            output_root=tmp_path / "output",
            cache=ArtifactCache(tmp_path / "pkgcache"),
            runner=runner,
        )

    assert excinfo.value.context["stage"] == "fetch:u-boot-2021.10"
    assert excinfo.value.context["returncode"] == "128"
    assert len(runner.commands) == 1


def test_clone_argv_without_tag_tracks_default_branch(tmp_path: Path) -> None:
    assert clone_argv("repo.git", tmp_path / "x", tag=None) == (
        "git",
        "clone",
        "--depth",
        "1",
        "repo.git",
        str(tmp_path / "x"),
    )


def test_download_file_is_cached_by_name(tmp_path: Path) -> None:
    payload = tmp_path / "upstream" / "fw_payload_oe_qemuvirt.elf"
    payload.parent.mkdir()
    payload.write_bytes(b"\x7fELF firmware")
    output = tmp_path / "output"
    cache = ArtifactCache(tmp_path / "pkgcache")

    first = download_file(payload.as_uri(), "fw_payload.elf", output_root=output, cache=cache)
    first.unlink()
    payload.unlink()
    second = download_file(payload.as_uri(), "fw_payload.elf", output_root=output, cache=cache)

    assert first == second == output / "fw_payload.elf"
    assert second.read_bytes() == b"\x7fELF firmware"
    assert not (output / ".fw_payload.elf.part").exists()


def test_download_file_rejects_empty_destination(tmp_path: Path) -> None:
    output = tmp_path / "output"
    (output / "fw_payload.elf").mkdir(parents=True)

    with pytest.raises(EnvironmentStateError):
        download_file(
            "https://example.invalid/fw.elf",
            "fw_payload.elf",
            output_root=output,
            cache=ArtifactCache(tmp_path / "pkgcache"),
        )


def test_download_failure_is_a_process_error(tmp_path: Path) -> None:
    missing = (tmp_path / "nowhere" / "fw.elf").as_uri()

    with pytest.raises(ProcessError) as excinfo:
        download_file(
            missing,
            "fw_payload.elf",
            output_root=tmp_path / "output",
            cache=ArtifactCache(tmp_path / "pkgcache"),
        )

    assert excinfo.value.context["url"] == missing
    assert not (tmp_path / "output" / "fw_payload.elf").exists()
    assert not (tmp_path / "pkgcache").exists()


def test_fetcher_binds_sources(tmp_path: Path) -> None:
    output = tmp_path / "output"
    runner = RecordingRunner(handler=_fake_clone)
    fetcher = Fetcher(output, ArtifactCache(tmp_path / "pkgcache"), runner)
    payload = tmp_path / "fw.elf"
    payload.write_bytes(b"fw")

    tree = fetcher.clone_pinned(GitSource("https://example.invalid/m.git", "musl", "v1.2.5"))
    firmware = fetcher.download_file(FileSource(payload.as_uri(), "fw_payload.elf"))

    assert tree == output / "musl"
    assert firmware.read_bytes() == b"fw"


def _fake_clone(command: CommandSpec) -> None:
    if command.argv[:2] == ("git", "clone"):
        destination = Path(command.argv[-1])
        destination.mkdir(parents=True)
        (destination / "README").write_text("checkout\n", encoding="utf-8")
    return None


def _create_repo(path: Path, *, tag: str) -> Path:
    return create_git_repo(path, tag=tag, files={"README.md": "tagged content\n"})
