"""Best-effort installation of host build packages via apt."""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from duobuild.errors import ProcessError
from duobuild.models import CommandSpec
from duobuild.process import CommandRunner

LOG = logging.getLogger("duobuild.dependencies")

INSTALLED_STATUS = "install ok installed"


@dataclass(frozen=True, slots=True)
class DependencyReport:
    present: tuple[str, ...] = ()
    installed: tuple[str, ...] = ()
    failed: tuple[str, ...] = ()
    skipped: bool = False


def install_dependencies(
    packages: Iterable[str],
    *,
    runner: CommandRunner,
    which: Callable[[str], str | None] = shutil.which,
    is_root: bool | None = None,
) -> DependencyReport:
    """Install every package that dpkg does not report as installed.

    Failures are logged and collected; they never stop the build.
    """
    if which("dpkg-query") is None:
        LOG.warning("dpkg-query not found; skipping host dependency installation")
        return DependencyReport(skipped=True)
    if is_root is None:
        is_root = os.geteuid() == 0

    LOG.info("Installing buildroot dependencies...")
    present: list[str] = []
    installed: list[str] = []
    failed: list[str] = []
    for package in packages:
        if is_installed(package, runner=runner):
            present.append(package)
            continue
        argv = ("apt-get", "install", "-y", package)
        if not is_root:
            argv = ("sudo", *argv)
        try:
            result = runner.run(CommandSpec(argv), stage="deps", check=False)
        except ProcessError as exc:
            LOG.warning("Could not install %s (%s); continuing", package, exc.context.get("error"))
            failed.append(package)
            continue
        if result.ok:
            installed.append(package)
        else:
            LOG.warning(
                "Could not install %s (exit status %s); continuing", package, result.returncode
            )
            failed.append(package)

    if failed:
        LOG.warning("Packages left uninstalled: %s", ", ".join(failed))
    return DependencyReport(
        present=tuple(present),
        installed=tuple(installed),
        failed=tuple(failed),
    )


def is_installed(package: str, *, runner: CommandRunner) -> bool:
    result = runner.run(
        CommandSpec(("dpkg-query", "-W", "-f=${Status}", package)),
        stage="deps",
        check=False,
        capture=True,
    )
    return result.ok and result.stdout.strip().endswith(INSTALLED_STATUS)
