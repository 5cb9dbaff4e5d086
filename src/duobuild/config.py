"""Build configuration: pinned sources, board target and host settings.

Lookup order is an explicit path, then ``$DUOBUILD_CONFIG``, then
``<root>/duobuild.yml``, then the built-in defaults. A YAML file only needs the
keys it overrides; everything else keeps its default.
"""

from __future__ import annotations

import os
import platform
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from duobuild.errors import ValidationError
from duobuild.models import FileSource, GitSource

CONFIG_ENV_VAR = "DUOBUILD_CONFIG"
CONFIG_FILENAME = "duobuild.yml"

HOST_ARCH_ALIASES = {
    "aarch64": "arm64",
    "arm64": "arm64",
    "x86_64": "x86_64",
    "amd64": "x86_64",
}

DEFAULT_PACKAGES = (
    "pkg-config",
    "build-essential",
    "ninja-build",
    "automake",
    "autoconf",
    "libtool",
    "wget",
    "curl",
    "git",
    "gcc",
    "libssl-dev",
    "bc",
    "slib",
    "squashfs-tools",
    "android-sdk-libsparse-utils",
    "jq",
    "python3-distutils",
    "scons",
    "parallel",
    "tree",
    "python3-dev",
    "python3-pip",
    "device-tree-compiler",
    "ssh",
    "cpio",
    "fakeroot",
    "libncurses5",
    "flex",
    "bison",
    "libncurses5-dev",
    "genext2fs",
    "rsync",
    "unzip",
    "dosfstools",
    "mtools",
    "tcl",
    "openssh-client",
    "cmake",
    "expect",
)


def detect_host_arch(machine: str | None = None) -> str:
    raw = (machine if machine is not None else platform.machine()).lower()
    return HOST_ARCH_ALIASES.get(raw, raw)


@dataclass(frozen=True, slots=True)
class Sources:
    toolchain: GitSource = GitSource(
        repo="https://github.com/T-head-Semi/xuantie-gnu-toolchain",
        name="xuantie-gnu-toolchain",
        tag="V2.8.1",
    )
    musl: GitSource = GitSource(
        repo="https://git.musl-libc.org/git/musl",
        name="musl",
        tag="v1.2.5",
    )
    sdk: GitSource = GitSource(
        repo="https://github.com/milkv-duo/duo-buildroot-sdk.git",
        name="duo-buildroot-sdk",
        tag="Duo-V1.1.0",
    )
    uboot: GitSource = GitSource(
        repo="https://github.com/u-boot/u-boot",
        name="u-boot-2021.10",
        tag="v2021.10",
    )
    qemu: GitSource = GitSource(
        repo="https://gitlab.com/qemu-project/qemu",
        name="qemu",
        tag="stable-8.1",
    )


@dataclass(frozen=True, slots=True)
class EmulatorSettings:
    memory: str = "1G"
    cpus: int = 8
    ssh_port: int = 2222
    target_list: tuple[str, ...] = (
        "aarch64-softmmu",
        "arm-softmmu",
        "riscv32-softmmu",
        "riscv64-softmmu",
    )
    firmware: FileSource = FileSource(
        url=(
            "https://de-repo.openeuler.org/openEuler-preview/RISC-V/"
            "openEuler-22.03-V1-riscv64/QEMU/fw_payload_oe_qemuvirt.elf"
        ),
        name="fw_payload.elf",
    )


@dataclass(frozen=True, slots=True)
class BuildConfig:
    board: str = "milkv-duo256m"
    host_arch: str = field(default_factory=detect_host_arch)
    jobs: int = field(default_factory=lambda: os.cpu_count() or 1)
    sources: Sources = field(default_factory=Sources)
    emulator: EmulatorSettings = field(default_factory=EmulatorSettings)
    packages: tuple[str, ...] = DEFAULT_PACKAGES

    def with_jobs(self, jobs: int | None) -> BuildConfig:
        if jobs is None:
            return self
        if jobs < 1:
            raise ValidationError("jobs must be a positive integer.", context={"jobs": str(jobs)})
        return replace(self, jobs=jobs)


def resolve_config_path(root: Path, explicit: str | Path | None = None) -> Path | None:
    if explicit is not None:
        return Path(explicit)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    candidate = root / CONFIG_FILENAME
    if candidate.is_file():
        return candidate
    return None


def load_config(root: str | Path, path: str | Path | None = None) -> BuildConfig:
    config_path = resolve_config_path(Path(root), path)
    if config_path is None:
        return BuildConfig()
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ValidationError(
            "Configuration file does not exist.",
            hint=f"Create it or unset ${CONFIG_ENV_VAR}.",
            context={"path": str(config_path)},
        ) from exc
    try:
        payload = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ValidationError(
            "Configuration file is not valid YAML.",
            hint=str(exc),
            context={"path": str(config_path)},
        ) from exc
    if payload is None:
        return BuildConfig()
    return parse_config(payload, origin=str(config_path))


def parse_config(payload: object, *, origin: str = "<memory>") -> BuildConfig:
    mapping = _require_mapping(payload, key="<root>", origin=origin)
    base = BuildConfig()
    _reject_unknown(mapping, allowed=_field_names(BuildConfig), key="<root>", origin=origin)

    updates: dict[str, Any] = {}
    if "board" in mapping:
        updates["board"] = _require_str(mapping["board"], key="board", origin=origin)
    if "host_arch" in mapping:
        updates["host_arch"] = detect_host_arch(
            _require_str(mapping["host_arch"], key="host_arch", origin=origin)
        )
    if "jobs" in mapping:
        jobs = _require_int(mapping["jobs"], key="jobs", origin=origin)
        if jobs < 1:
            raise ValidationError(
                "jobs must be a positive integer.",
                context={"key": "jobs", "origin": origin},
            )
        updates["jobs"] = jobs
    if "packages" in mapping:
        updates["packages"] = _require_str_tuple(mapping["packages"], key="packages", origin=origin)
    if "sources" in mapping:
        updates["sources"] = _parse_sources(mapping["sources"], base=base.sources, origin=origin)
    if "emulator" in mapping:
        updates["emulator"] = _parse_emulator(
            mapping["emulator"], base=base.emulator, origin=origin
        )
    return replace(base, **updates)


def _parse_sources(payload: object, *, base: Sources, origin: str) -> Sources:
    mapping = _require_mapping(payload, key="sources", origin=origin)
    _reject_unknown(mapping, allowed=_field_names(Sources), key="sources", origin=origin)
    updates: dict[str, GitSource] = {}
    for name, raw in mapping.items():
        key = f"sources.{name}"
        entry = _require_mapping(raw, key=key, origin=origin)
        _reject_unknown(entry, allowed=("repo", "name", "tag"), key=key, origin=origin)
        current: GitSource = getattr(base, name)
        updates[name] = GitSource(
            repo=_require_str(entry.get("repo", current.repo), key=f"{key}.repo", origin=origin),
            name=_require_name(entry.get("name", current.name), key=f"{key}.name", origin=origin),
            tag=_require_tag(entry.get("tag", current.tag), key=f"{key}.tag", origin=origin),
        )
    return replace(base, **updates)


def _parse_emulator(payload: object, *, base: EmulatorSettings, origin: str) -> EmulatorSettings:
    mapping = _require_mapping(payload, key="emulator", origin=origin)
    _reject_unknown(mapping, allowed=_field_names(EmulatorSettings), key="emulator", origin=origin)
    updates: dict[str, Any] = {}
    if "memory" in mapping:
        updates["memory"] = _require_str(mapping["memory"], key="emulator.memory", origin=origin)
    if "cpus" in mapping:
        updates["cpus"] = _require_int(mapping["cpus"], key="emulator.cpus", origin=origin)
    if "ssh_port" in mapping:
        updates["ssh_port"] = _require_int(
            mapping["ssh_port"], key="emulator.ssh_port", origin=origin
        )
    if "target_list" in mapping:
        updates["target_list"] = _require_str_tuple(
            mapping["target_list"], key="emulator.target_list", origin=origin
        )
    if "firmware" in mapping:
        entry = _require_mapping(mapping["firmware"], key="emulator.firmware", origin=origin)
        _reject_unknown(entry, allowed=("url", "name"), key="emulator.firmware", origin=origin)
        updates["firmware"] = FileSource(
            url=_require_str(
                entry.get("url", base.firmware.url), key="emulator.firmware.url", origin=origin
            ),
            name=_require_name(
                entry.get("name", base.firmware.name), key="emulator.firmware.name", origin=origin
            ),
        )
    return replace(base, **updates)


def _field_names(cls: type) -> tuple[str, ...]:
    return tuple(f.name for f in fields(cls))


def _reject_unknown(
    mapping: Mapping[str, object], *, allowed: tuple[str, ...], key: str, origin: str
) -> None:
    unknown = sorted(set(mapping) - set(allowed))
    if unknown:
        raise ValidationError(
            f"Unknown configuration keys under `{key}`: {', '.join(unknown)}.",
            hint=f"Allowed keys: {', '.join(allowed)}.",
            context={"origin": origin},
        )


def _require_mapping(value: object, *, key: str, origin: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping) or not all(isinstance(k, str) for k in value):
        raise ValidationError(
            f"Configuration `{key}` must be a mapping.",
            context={"key": key, "origin": origin},
        )
    return value


def _require_str(value: object, *, key: str, origin: str) -> str:
    if not isinstance(value, str) or not value:
        raise ValidationError(
            f"Configuration `{key}` must be a non-empty string.",
            context={"key": key, "origin": origin},
        )
    return value


def _require_name(value: object, *, key: str, origin: str) -> str:
    name = _require_str(value, key=key, origin=origin)
    if "/" in name or name in {".", ".."}:
        raise ValidationError(
            f"Configuration `{key}` must be a plain file name.",
            context={"key": key, "origin": origin, "value": name},
        )
    return name


def _require_tag(value: object, *, key: str, origin: str) -> str:
    tag = _require_str(value, key=key, origin=origin)
    if "/" in tag:
        raise ValidationError(
            f"Configuration `{key}` must not contain `/`; it names a cache archive.",
            hint="Use a tag name without slashes.",
            context={"key": key, "origin": origin, "value": tag},
        )
    return tag


def _require_int(value: object, *, key: str, origin: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"Configuration `{key}` must be an integer.",
            context={"key": key, "origin": origin},
        )
    return value


def _require_str_tuple(value: object, *, key: str, origin: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not all(isinstance(item, str) and item for item in value):
        raise ValidationError(
            f"Configuration `{key}` must be a list of strings.",
            context={"key": key, "origin": origin},
        )
    return tuple(value)
