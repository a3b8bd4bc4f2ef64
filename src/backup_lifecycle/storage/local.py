"""
Filesystem tier operations.

Listing, oldest-first deletion with sidecars, and copying artifacts
between local tiers.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path

from backup_lifecycle.core.exceptions import TierAccessError
from backup_lifecycle.core.models import Artifact, LocalDeletionResult
from backup_lifecycle.ledger import ErrorLedger
from backup_lifecycle.retry import bounded_retry
from backup_lifecycle.storage.naming import NamingScheme, sidecar_names

logger = logging.getLogger(__name__)


def ensure_directory(directory: Path, tier: str = "") -> Path:
    """Create a tier directory, raising TierAccessError if impossible."""
    directory = Path(directory)
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise TierAccessError(
            f"Cannot create directory: {e}", tier=tier or None, path=str(directory)
        ) from e
    if not directory.is_dir():
        raise TierAccessError("Not a directory", tier=tier or None, path=str(directory))
    return directory


def list_artifacts(directory: Path, scheme: NamingScheme) -> list[Artifact]:
    """
    List qualifying artifacts oldest first.

    Ties on modification time are broken by path so that the order is
    deterministic.
    """
    directory = Path(directory)
    if not directory.is_dir():
        return []

    artifacts = []
    for entry in directory.iterdir():
        if not scheme.matches(entry.name) or not entry.is_file():
            continue
        try:
            artifacts.append(Artifact.from_path(entry))
        except FileNotFoundError:
            continue
    artifacts.sort(key=lambda a: (a.mtime, str(a.path)))
    return artifacts


def count_artifacts(directory: Path, scheme: NamingScheme) -> int:
    return len(list_artifacts(directory, scheme))


def find_sidecars(directory: Path, scheme: NamingScheme, name: str) -> list[Path]:
    """Files sharing the artifact's base name, excluding other artifacts."""
    related = []
    for entry in Path(directory).iterdir():
        if scheme.matches(entry.name):
            continue
        if scheme.is_related(name, entry.name) and entry.is_file():
            related.append(entry)
    return sorted(related)


def delete_oldest(
    directory: Path,
    scheme: NamingScheme,
    n: int,
    ledger: ErrorLedger,
    *,
    dry_run: bool = False,
) -> LocalDeletionResult:
    """
    Delete the n oldest artifacts of a directory together with their sidecars.

    Args:
        directory: Tier directory
        scheme: Include and exclude patterns for the artifact kind
        n: Number of artifacts to delete
        ledger: Ledger receiving failures
        dry_run: Log the selection without deleting

    Returns:
        LocalDeletionResult; success is False only when an artifact
        itself could not be deleted
    """
    result = LocalDeletionResult(requested=n)
    if n <= 0:
        return result

    candidates = list_artifacts(directory, scheme)[:n]
    if len(candidates) < n:
        logger.debug(f"Only {len(candidates)} of {n} candidates available in {directory}")

    for artifact in candidates:
        if dry_run:
            logger.info(f"[dry-run] Would delete {artifact.path}")
            result.deleted.append(artifact.name)
            result.deleted_count += 1
            continue

        sidecars = find_sidecars(directory, scheme, artifact.name)

        try:
            artifact.path.unlink()
        except FileNotFoundError:
            logger.debug(f"Artifact already removed: {artifact.path}")
        except OSError as e:
            result.had_errors = True
            ledger.warning("local_delete", f"Failed to delete {artifact.name}", str(e))
            continue

        logger.info(f"Deleted {artifact.path}")
        result.deleted.append(artifact.name)
        result.deleted_count += 1

        for sidecar in sidecars:
            try:
                sidecar.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                result.sidecar_failures.append(sidecar.name)
                ledger.info("local_delete", f"Failed to delete sidecar {sidecar.name}", str(e))
                continue
            logger.debug(f"Deleted sidecar {sidecar}")
            result.sidecars_deleted.append(sidecar.name)

    return result


@dataclass
class CopyResult:
    """Result of copying an artifact to another local tier."""

    success: bool
    created: bool = False
    destination: Path | None = None
    sidecars_copied: list[str] | None = None
    error: str | None = None


def copy_artifact(
    source: Path,
    directory: Path,
    ledger: ErrorLedger,
    *,
    verify_attempts: int = 2,
    verify_pause: float = 2.0,
    tier: str = "secondary",
) -> CopyResult:
    """
    Copy an artifact and its existing sidecars into a directory.

    The copy is verified to exist and be non-empty. ``created`` tells the
    caller whether a new artifact appeared on the tier.

    Raises:
        TierAccessError: If the destination directory cannot be created
    """
    source = Path(source)
    ensure_directory(directory, tier)
    destination = Path(directory) / source.name
    created = not destination.exists()

    try:
        shutil.copy2(source, destination)
    except OSError as e:
        ledger.warning("copy", f"Failed to copy {source.name} to {tier} tier", str(e))
        return CopyResult(success=False, destination=destination, error=str(e))

    def _present() -> bool:
        return destination.is_file() and destination.stat().st_size > 0

    check = bounded_retry(
        _present, verify_attempts, verify_pause, description=f"verify copy {destination}"
    )
    if not check.success:
        ledger.warning("copy", f"Copy of {source.name} on {tier} tier is missing or empty")
        return CopyResult(success=False, destination=destination, error="verification failed")

    copied = []
    for name in sidecar_names(source.name):
        sidecar = source.with_name(name)
        if not sidecar.is_file():
            continue
        try:
            shutil.copy2(sidecar, Path(directory) / name)
        except OSError as e:
            ledger.warning("copy", f"Failed to copy sidecar {name} to {tier} tier", str(e))
            continue
        copied.append(name)

    logger.info(f"Copied {source.name} to {directory}")
    return CopyResult(success=True, created=created, destination=destination, sidecars_copied=copied)
