"""Move eligible files to CDN storage and keep references consistent.

Per file: check eligibility (after reconciliation), upload the primary,
upload variants, record the remote URL and rewrite references, then delete
the local copies. Only a primary upload failure aborts a file; variant
failures are logged and the file still migrates.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from ..assets.assets_models import Asset, AssetFlag
from ..assets.assets_store import AssetStore
from ..assets.attachment_resolver import AttachmentResolver
from ..config import MediaLayout, ProcessingLimits, StorageSettings
from ..eligibility.eligibility_service import EligibilityService
from ..exceptions import NotFoundError, RemoteServiceError
from ..media.image_sizes import critical_sizes, generate_size
from ..media.media_paths import guess_mime_type, relative_path
from ..media.reference_rewriter import ReferenceRewriter
from ..queue.queue_models import BatchOutcome
from ..utils.clock import utcnow
from .migrator_models import CompletenessReport, CompletenessStatus, FixResult
from .storage_client import StorageClient

logger = logging.getLogger(__name__)

_RESET_ON_FORCE = (
    *AssetFlag.MIGRATION_STATE,
    AssetFlag.MIGRATION_IN_PROGRESS,
    AssetFlag.LOCAL_DELETED,
    AssetFlag.SIZE_URLS,
    AssetFlag.VERSION_HASH,
    AssetFlag.PUBLIC_URL,
)
_LEFTOVER_STATUSES = (CompletenessStatus.DELETION_FAILED, CompletenessStatus.INCOMPLETE_DELETION)


@dataclass(slots=True)
class UploadedVariant:
    path: Path
    relative_path: str
    size_name: str | None


@dataclass
class MigratorService:
    storage: StorageClient
    eligibility: EligibilityService
    resolver: AttachmentResolver
    assets: AssetStore
    rewriter: ReferenceRewriter
    layout: MediaLayout
    settings: StorageSettings
    limits: ProcessingLimits
    clock: Callable[[], datetime] = utcnow
    log: logging.Logger = field(default_factory=lambda: logger)

    def is_eligible_for_migration(self, path: str | Path) -> bool:
        return self.eligibility.is_eligible_for_migration(path)

    async def migrate_batch(self, paths: Iterable[str]) -> int | bool:
        """Success count, or ``False`` when every attempted file failed."""
        outcome = await self.process_batch(list(paths))
        if outcome.failed and not outcome.succeeded:
            return False
        return len(outcome.succeeded)

    async def process_batch(self, paths: list[str]) -> BatchOutcome:
        self.storage.ensure_configured()
        outcome = BatchOutcome(attempted=list(paths))
        resolved = self.resolver.resolve_batch(paths)

        for path in paths:
            asset_id = resolved.get(path)
            asset = self.assets.get_asset(asset_id) if asset_id is not None else None
            if asset is None:
                outcome.dropped.append(path)
                outcome.messages.append(f"{Path(path).name}: no owning asset")
                continue

            decision = self.eligibility.migration_decision_for(asset)
            if not decision.eligible:
                self.log.info(
                    "migrator.validate.skipped",
                    extra={"path": path, "reason": decision.reason},
                )
                outcome.dropped.append(path)
                outcome.messages.append(f"{asset.filename}: skipped ({decision.reason})")
                continue

            migrated = await self._migrate_asset(asset)
            if not migrated:
                self.log.warning("migrator.retry_with_force", extra={"path": path})
                migrated = await self.force_migrate_asset(asset.id)

            if migrated:
                outcome.succeeded.append(path)
                outcome.messages.append(f"{asset.filename}: migrated")
            else:
                outcome.failed.append(path)
                outcome.messages.append(f"{asset.filename}: migration failed")

        self.log.info(
            "migrator.batch.done",
            extra={"succeeded": len(outcome.succeeded), "failed": len(outcome.failed)},
        )
        return outcome

    async def force_migrate_file(self, path: str | Path) -> bool:
        asset_id = self.resolver.resolve(path)
        if asset_id is None:
            self.log.warning("migrator.force.unresolved", extra={"path": str(path)})
            return False
        return await self.force_migrate_asset(asset_id)

    async def force_migrate_asset(self, asset_id: int) -> bool:
        """Clear all migration state and run the full pipeline unconditionally.

        Nothing is cleared when the primary file is missing locally.
        """
        self.storage.ensure_configured()
        asset = self.assets.get_asset(asset_id)
        if asset is None:
            return False
        if not (self.layout.root / asset.path).is_file():
            self.log.warning("migrator.force.missing_file", extra={"asset_id": asset_id, "path": asset.path})
            return False
        for key in _RESET_ON_FORCE:
            self.assets.delete_flag(asset_id, key)
            asset.meta.pop(key, None)
        return await self._migrate_asset(asset)

    async def _migrate_asset(self, asset: Asset) -> bool:
        primary = self.layout.root / asset.path
        self.assets.set_flag(asset.id, AssetFlag.MIGRATION_IN_PROGRESS, True)
        try:
            await self.storage.upload(
                primary,
                asset.path,
                mime_type=asset.mime_type,
                timeout_seconds=self.settings.primary_timeout_seconds,
            )
        except (RemoteServiceError, OSError) as exc:
            self.log.error(
                "migrator.upload.primary_failed",
                extra={"asset_id": asset.id, "path": asset.path, "error": str(exc)},
            )
            self.assets.delete_flag(asset.id, AssetFlag.MIGRATION_IN_PROGRESS)
            return False

        variants = await self._upload_variants(asset, primary)
        self._mark_migrated(asset, primary, variants)
        self._delete_local(asset, primary, variants)
        return True

    async def _upload_variants(self, asset: Asset, primary: Path) -> list[UploadedVariant]:
        """Upload recorded sizes, then disk-only variants, then missing critical sizes."""
        uploaded: list[UploadedVariant] = []
        seen: set[Path] = {primary}
        sizes = dict(asset.sizes)

        candidates: list[tuple[Path, str | None]] = [
            (self.layout.root / rel, name) for name, rel in asset.variant_paths().items()
        ]
        candidates.extend((path, None) for path in self.resolver.related_files(asset.id))

        for path, size_name in candidates:
            if path in seen or not path.is_file():
                continue
            seen.add(path)
            variant = await self._upload_variant(asset, path, size_name)
            if variant is not None:
                uploaded.append(variant)

        generated_sizes = False
        for spec in critical_sizes(self.limits.commerce_sizes):
            if spec.name in sizes:
                continue
            generated = await asyncio.to_thread(generate_size, primary, spec)
            if generated is None:
                continue
            sizes[spec.name] = generated.name
            generated_sizes = True
            if generated in seen:
                for variant in uploaded:
                    if variant.path == generated and variant.size_name is None:
                        variant.size_name = spec.name
                continue
            seen.add(generated)
            variant = await self._upload_variant(asset, generated, spec.name)
            if variant is not None:
                uploaded.append(variant)

        if generated_sizes:
            self.assets.update_asset_file(asset.id, path=asset.path, mime_type=asset.mime_type, sizes=sizes)
            asset.sizes = sizes
        return uploaded

    async def _upload_variant(self, asset: Asset, path: Path, size_name: str | None) -> UploadedVariant | None:
        relative = relative_path(path, self.layout.root)
        try:
            await self.storage.upload(
                path,
                relative,
                mime_type=guess_mime_type(path),
                timeout_seconds=self.settings.variant_timeout_seconds,
            )
        except (RemoteServiceError, OSError) as exc:
            self.log.warning(
                "migrator.upload.variant_failed",
                extra={"asset_id": asset.id, "path": relative, "error": str(exc)},
            )
            return None
        return UploadedVariant(path=path, relative_path=relative, size_name=size_name)

    def _mark_migrated(self, asset: Asset, primary: Path, variants: list[UploadedVariant]) -> None:
        bunny_url = self.settings.public_url(asset.path)
        original_url = self.layout.local_url(asset.path)

        size_urls = {
            variant.size_name or variant.path.name: {
                "original": self.layout.local_url(variant.relative_path),
                "remote": self.settings.public_url(variant.relative_path),
            }
            for variant in variants
        }

        if self.limits.file_versioning:
            digest = hashlib.md5(primary.read_bytes()).hexdigest()
            self.assets.set_flag(asset.id, AssetFlag.VERSION_HASH, digest[:3])

        self.assets.set_flag(asset.id, AssetFlag.MIGRATED, True)
        self.assets.set_flag(asset.id, AssetFlag.BUNNY_URL, bunny_url)
        self.assets.set_flag(asset.id, AssetFlag.MIGRATION_DATE, self.clock().isoformat())
        self.assets.set_flag(asset.id, AssetFlag.ORIGINAL_URL, original_url)
        if size_urls:
            self.assets.set_flag(asset.id, AssetFlag.SIZE_URLS, size_urls)
        self.assets.delete_flag(asset.id, AssetFlag.PUBLIC_URL)
        self.assets.delete_flag(asset.id, AssetFlag.MIGRATION_IN_PROGRESS)
        asset.meta.update({AssetFlag.MIGRATED: True, AssetFlag.BUNNY_URL: bunny_url})

        replacements = {original_url: bunny_url}
        replacements.update({urls["original"]: urls["remote"] for urls in size_urls.values()})
        fields = self.rewriter.rewrite_many(replacements)
        self.log.info(
            "migrator.marked_migrated",
            extra={
                "asset_id": asset.id,
                "bunny_url": bunny_url,
                "variants": len(variants),
                "fields_rewritten": fields,
            },
        )

    def _delete_local(self, asset: Asset, primary: Path, variants: list[UploadedVariant]) -> None:
        recorded = [variant for variant in variants if variant.size_name in asset.sizes]
        discovered = [variant for variant in variants if variant.size_name not in asset.sizes]
        for path in [primary, *(v.path for v in recorded), *(v.path for v in discovered)]:
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                self.log.warning(
                    "migrator.delete_local.failed",
                    extra={"asset_id": asset.id, "path": str(path), "error": str(exc)},
                )
        if not primary.exists():
            self.assets.set_flag(asset.id, AssetFlag.LOCAL_DELETED, True)

    def verify_migration_completeness(self, asset_id: int) -> CompletenessReport:
        asset = self.assets.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(f"asset '{asset_id}' not found")

        local_deleted = bool(asset.meta.get(AssetFlag.LOCAL_DELETED))
        report = CompletenessReport(
            asset_id=asset_id,
            status=CompletenessStatus.NOT_MIGRATED,
            bunny_url=asset.bunny_url,
            local_deleted=local_deleted,
        )
        if not asset.migrated:
            return report
        if not asset.bunny_url:
            report.status = CompletenessStatus.MISSING_BUNNY_URL
            return report

        report.local_files = self._remaining_local_files(asset)
        if not report.local_files:
            report.status = CompletenessStatus.COMPLETE
        elif local_deleted:
            report.status = CompletenessStatus.DELETION_FAILED
        else:
            report.status = CompletenessStatus.INCOMPLETE_DELETION
        return report

    def batch_verify_migration(self, asset_ids: Iterable[int] | None = None) -> list[CompletenessReport]:
        ids = list(asset_ids) if asset_ids is not None else self.assets.ids_with_flag(AssetFlag.MIGRATED)
        return [self.verify_migration_completeness(asset_id) for asset_id in ids]

    async def fix_incomplete_migration(self, asset_id: int) -> FixResult:
        report = self.verify_migration_completeness(asset_id)
        if report.status is CompletenessStatus.COMPLETE:
            return FixResult(asset_id=asset_id, status="already_complete", new_status=report.status)

        asset = self.assets.get_asset(asset_id)
        if asset is None:
            raise NotFoundError(f"asset '{asset_id}' not found")
        primary_present = (self.layout.root / asset.path).is_file()
        if report.status in _LEFTOVER_STATUSES and not primary_present:
            # Remote copy is live and references already point at it.
            self._delete_leftovers(asset, report.local_files)
        elif primary_present:
            await self.force_migrate_asset(asset_id)
        else:
            return FixResult(
                asset_id=asset_id,
                status="error",
                new_status=report.status,
                message=f"file not found: {asset.path}",
            )

        after = self.verify_migration_completeness(asset_id)
        if after.status is CompletenessStatus.COMPLETE:
            return FixResult(asset_id=asset_id, status="fixed", new_status=after.status)
        return FixResult(
            asset_id=asset_id,
            status="error",
            new_status=after.status,
            message=f"migration still {after.status.value}",
        )

    def _delete_leftovers(self, asset: Asset, local_files: list[str]) -> None:
        for relative in local_files:
            try:
                (self.layout.root / relative).unlink(missing_ok=True)
            except OSError as exc:
                self.log.warning(
                    "migrator.delete_local.failed",
                    extra={"asset_id": asset.id, "path": relative, "error": str(exc)},
                )
        self.assets.set_flag(asset.id, AssetFlag.LOCAL_DELETED, True)
        self.log.info("migrator.fix.leftovers_deleted", extra={"asset_id": asset.id, "files": len(local_files)})

    async def delete_from_remote(self, asset_id: int) -> bool:
        asset = self.assets.get_asset(asset_id)
        if asset is None or not asset.bunny_url:
            return False
        try:
            await self.storage.delete(asset.path)
        except RemoteServiceError as exc:
            self.log.error(
                "migrator.delete_remote.failed",
                extra={"asset_id": asset_id, "error": str(exc), "status_code": exc.status_code},
            )
            return False

        for key in (*AssetFlag.MIGRATION_STATE, AssetFlag.VERSION_HASH):
            self.assets.delete_flag(asset_id, key)
        self.log.info("migrator.delete_remote.done", extra={"asset_id": asset_id})
        return True

    def _remaining_local_files(self, asset: Asset) -> list[str]:
        primary = self.layout.root / asset.path
        paths = [primary, *(self.layout.root / rel for rel in asset.variant_paths().values())]
        paths.extend(self.resolver.related_files(asset.id))
        remaining = []
        for path in dict.fromkeys(paths):
            if path.is_file():
                remaining.append(relative_path(path, self.layout.root))
        return remaining
