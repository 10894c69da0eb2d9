"""Pure eligibility rules for optimization and migration."""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlparse

from .eligibility_models import (
    EligibilityDecision,
    FileInfo,
    MigrationReconciliation,
    MigrationStatus,
    Repair,
)

ALWAYS_OPTIMIZE_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/heic", "image/heif", "image/tiff"}
)
SIZE_GATED_OPTIMIZE_TYPES = frozenset({"image/webp", "image/avif"})
OPTIMIZATION_TYPES = ALWAYS_OPTIMIZE_TYPES | SIZE_GATED_OPTIMIZE_TYPES
MIGRATION_TYPES = frozenset(
    {
        "image/avif",
        "image/webp",
        "image/svg+xml",
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/heic",
        "image/heif",
        "image/tiff",
    }
)
OPTIMIZATION_CEILING_KB = 10240
REMOTE_HOST_MARKERS = ("bunnycdn.com", "b-cdn.net")


def remote_hosts(custom_hostname: str = "") -> tuple[str, ...]:
    host = custom_hostname.strip().strip("/")
    if host:
        return (host, *REMOTE_HOST_MARKERS)
    return REMOTE_HOST_MARKERS


def is_remote_url(url: str, hosts: Iterable[str] = REMOTE_HOST_MARKERS) -> bool:
    if not url:
        return False
    netloc = urlparse(url).netloc.lower() or url.lower()
    return any(host and host.lower() in netloc for host in hosts)


def optimization_type_allows(mime_type: str, size_kb: float, max_file_size_kb: int) -> bool:
    """Type and size gate shared by the decision and the stats funnel."""
    if mime_type in ALWAYS_OPTIMIZE_TYPES:
        return True
    if mime_type in SIZE_GATED_OPTIMIZE_TYPES:
        return max_file_size_kb < size_kb < OPTIMIZATION_CEILING_KB
    return False


def optimization_decision(
    info: FileInfo,
    *,
    optimized: bool,
    public_url: str,
    max_file_size_kb: int,
    hosts: Iterable[str] = REMOTE_HOST_MARKERS,
) -> EligibilityDecision:
    if not info.exists:
        return EligibilityDecision(False, "missing")
    if not info.readable:
        return EligibilityDecision(False, "unreadable")
    if optimized:
        return EligibilityDecision(False, "already_optimized")
    if is_remote_url(public_url, hosts):
        return EligibilityDecision(False, "remote")
    if info.mime_type in ALWAYS_OPTIMIZE_TYPES:
        return EligibilityDecision(True, "eligible")
    if info.mime_type in SIZE_GATED_OPTIMIZE_TYPES:
        if info.size_kb <= max_file_size_kb:
            return EligibilityDecision(False, "below_size_threshold")
        if info.size_kb >= OPTIMIZATION_CEILING_KB:
            return EligibilityDecision(False, "above_size_ceiling")
        return EligibilityDecision(True, "eligible")
    return EligibilityDecision(False, "unsupported_type")


def reconcile_migration_state(
    *,
    migrated_flag: bool,
    bunny_url: str,
    resolved_url: str,
    in_progress: bool = False,
    hosts: Iterable[str] = REMOTE_HOST_MARKERS,
) -> MigrationReconciliation:
    """Map stored flags and the resolved public URL to one migration status.

    A remote URL without the flag means the file already lives remotely; the
    cached URL is reset and the asset counts as migrated. A flag whose URL is
    local (or whose ``bunny_url`` is empty) cannot be trusted and is cleared.
    """
    hosts = tuple(hosts)
    url_remote = is_remote_url(resolved_url, hosts)
    if migrated_flag:
        if bunny_url and url_remote:
            return MigrationReconciliation(MigrationStatus.MIGRATED)
        return MigrationReconciliation(MigrationStatus.INCONSISTENT, Repair.CLEAR_MIGRATION)
    if url_remote:
        return MigrationReconciliation(MigrationStatus.INCONSISTENT, Repair.RESET_PUBLIC_URL)
    if in_progress:
        return MigrationReconciliation(MigrationStatus.MIGRATING)
    return MigrationReconciliation(MigrationStatus.NOT_MIGRATED)


def migration_decision(
    info: FileInfo,
    *,
    reconciliation: MigrationReconciliation,
    max_file_size_kb: int,
) -> EligibilityDecision:
    if not info.exists:
        return EligibilityDecision(False, "missing")
    if not info.readable:
        return EligibilityDecision(False, "unreadable")
    if reconciliation.treat_as_migrated:
        return EligibilityDecision(False, "already_migrated")
    if info.mime_type not in MIGRATION_TYPES:
        return EligibilityDecision(False, "unsupported_type")
    if info.size_kb > max_file_size_kb:
        return EligibilityDecision(False, "above_size_threshold")
    return EligibilityDecision(True, "eligible")
