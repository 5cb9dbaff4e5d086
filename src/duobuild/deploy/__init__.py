"""Emulation launch of the built image."""

from .qemu import IMAGE_PATTERN, QemuLauncher, find_image, qemu_argv

__all__ = ["IMAGE_PATTERN", "QemuLauncher", "find_image", "qemu_argv"]
