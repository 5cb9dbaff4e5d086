"""Single-file download cached by name."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from urllib.request import urlopen

from duobuild.cache import ArtifactCache
from duobuild.errors import ProcessError
from duobuild.layout import reject_empty_destination

LOG = logging.getLogger("duobuild.fetch")


def download_file(
    url: str,
    name: str,
    *,
    output_root: Path,
    cache: ArtifactCache,
) -> Path:
    """Place the file at *url* into ``output_root / name``.

    The cache is keyed by *name* alone; a cached copy is reused regardless of
    the URL it originally came from.
    """
    destination = output_root / name
    reject_empty_destination(destination, operation="download_file")
    output_root.mkdir(parents=True, exist_ok=True)

    cached = cache.lookup_file(name)
    if cached is not None:
        LOG.info("File [%s] is cached. Using cached version", name)
        shutil.copy2(cached, destination)
        return destination

    LOG.info("File [%s] is not cached. Retrieving %s", name, url)
    temp_path = destination.with_name(f".{name}.part")
    try:
        with urlopen(url) as response, temp_path.open("wb") as out:  # noqa: S310 - pinned URL
            shutil.copyfileobj(response, out)
        os.replace(temp_path, destination)
    except (OSError, ValueError) as exc:
        raise ProcessError(
            "Download failed.",
            hint="Check network access and the configured URL.",
            context={"stage": f"fetch:{name}", "url": url, "error": str(exc)},
        ) from exc
    finally:
        if temp_path.exists():
            temp_path.unlink()

    cache.store_file(name, destination)
    return destination
