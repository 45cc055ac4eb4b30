"""Extra mount exposure without containers.

Requested mounts are validated by the external allowlist, then exposed
inside the group directory under ``extra/`` as directory symlinks.

``readonly`` cannot be enforced here: a symlink grants whatever access the
host user already has. It is advisory only; a real boundary needs OS-level
enforcement outside this package.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

from nanoclaw.logger import logger
from nanoclaw.types import AdditionalMount, RegisteredGroup, VolumeMount

EXTRA_MOUNT_PREFIX = "/workspace/extra/"

# (requested mounts, group name, is_main) -> mounts that passed the allowlist
MountValidator = Callable[[list[AdditionalMount], str, bool], list[VolumeMount]]


def build_extra_mounts(
    group: RegisteredGroup,
    is_main: bool,
    validate_mounts: MountValidator | None,
) -> list[VolumeMount]:
    """Run the group's requested mounts through the allowlist validator."""
    requested = group.container_config.additional_mounts if group.container_config else []
    if not requested:
        return []
    if validate_mounts is None:
        logger.warning(
            "No mount validator configured, skipping additional mounts",
            group=group.name,
            requested=len(requested),
        )
        return []
    return list(validate_mounts(requested, group.name, is_main))


def expose_extra_mounts(group_dir: Path, mounts: list[VolumeMount]) -> list[Path]:
    """Symlink each ``/workspace/extra/<rel>`` mount to ``<group_dir>/extra/<rel>``.

    Existing targets are left untouched. Returns the links that exist afterwards.
    """
    exposed: list[Path] = []
    for mount in mounts:
        if not mount.container_path.startswith(EXTRA_MOUNT_PREFIX):
            continue
        rel = mount.container_path[len(EXTRA_MOUNT_PREFIX) :].strip("/")
        if not rel or ".." in Path(rel).parts:
            logger.warning("Rejecting extra mount path", container_path=mount.container_path)
            continue

        target = group_dir / "extra" / rel
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            if not target.exists() and not target.is_symlink():
                os.symlink(mount.host_path, target, target_is_directory=True)
            exposed.append(target)
        except OSError as exc:
            logger.warning(
                "Failed to expose extra mount via symlink",
                host_path=mount.host_path,
                target=str(target),
                err=str(exc),
            )
    return exposed
