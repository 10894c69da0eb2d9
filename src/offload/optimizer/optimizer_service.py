"""Optimize queued images through the remote API and apply the results."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from ..assets.assets_models import Asset, AssetFlag
from ..assets.assets_store import AssetStore
from ..assets.attachment_resolver import AttachmentResolver
from ..config import MediaLayout, ProcessingLimits
from ..eligibility.eligibility_models import FileInfo
from ..eligibility.eligibility_rules import MIGRATION_TYPES, optimization_decision
from ..eligibility.eligibility_service import EligibilityService
from ..exceptions import InvalidImageDataError, RemoteServiceError
from ..media.image_validation import decode_image_payload, to_data_url, validate_image_bytes
from ..media.media_paths import extension_of, relative_path
from ..media.reference_rewriter import ReferenceRewriter
from ..queue.queue_models import BatchOutcome
from ..queue.work_queue import WorkQueue
from ..utils.clock import utcnow
from .optimizer_client import ImagePayload, OptimizationResult, OptimizerClient

logger = logging.getLogger(__name__)

SUPPORTED_TARGET_FORMATS = frozenset({"jpg", "jpeg", "png", "gif", "webp", "avif", "heif"})
EXTENSION_FOR_FORMAT = {"jpeg": "jpg", "heif": "avif"}
MIME_FOR_EXTENSION = {
    "jpg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "avif": "image/avif",
    "heic": "image/heic",
    "tiff": "image/tiff",
    "tif": "image/tiff",
}


def resolve_target_format(requested: str | None, original_ext: str) -> str:
    """Requested output format, falling back to the source format."""
    fmt = (requested or "").lower().strip(".")
    if fmt not in SUPPORTED_TARGET_FORMATS:
        fmt = original_ext
    return "jpeg" if fmt == "jpg" else fmt


def output_extension(fmt: str) -> str:
    return EXTENSION_FOR_FORMAT.get(fmt, fmt)


@dataclass(slots=True)
class _Candidate:
    path: str
    asset: Asset
    info: FileInfo


@dataclass
class OptimizerService:
    client: OptimizerClient
    eligibility: EligibilityService
    resolver: AttachmentResolver
    assets: AssetStore
    rewriter: ReferenceRewriter
    layout: MediaLayout
    limits: ProcessingLimits
    migration_queue: WorkQueue | None = None
    clock: Callable[[], datetime] = utcnow
    log: logging.Logger = field(default_factory=lambda: logger)

    def is_eligible_for_optimization(self, path: str | Path) -> bool:
        return self.eligibility.is_eligible_for_optimization(path)

    async def optimize_batch(self, paths: Iterable[str]) -> int | bool:
        """Success count, or ``False`` when the API call itself failed."""
        outcome = await self.process_batch(list(paths))
        return outcome.as_result()

    async def process_batch(self, paths: list[str]) -> BatchOutcome:
        self.client.ensure_configured()
        outcome = BatchOutcome(attempted=list(paths))
        candidates = self._validate(paths, outcome)
        if not candidates:
            return outcome

        payload: list[ImagePayload] = []
        sendable: list[_Candidate] = []
        for candidate in candidates:
            try:
                data = await asyncio.to_thread(candidate.info.path.read_bytes)
            except OSError as exc:
                self.log.warning(
                    "optimizer.read.failed",
                    extra={"path": candidate.path, "error": str(exc)},
                )
                outcome.failed.append(candidate.path)
                outcome.messages.append(f"{candidate.info.path.name}: cannot read file")
                continue
            payload.append(
                ImagePayload(
                    file=candidate.info.path.name,
                    image_data=to_data_url(data, candidate.info.mime_type),
                )
            )
            sendable.append(candidate)

        if not sendable:
            return outcome

        self.log.info("optimizer.batch.start", extra={"files": len(sendable)})
        try:
            results = await self.client.optimize(payload, max_size_kb=self.limits.max_file_size_kb)
        except RemoteServiceError as exc:
            self.log.error(
                "optimizer.batch.transport_failed",
                extra={"error": str(exc), "status_code": exc.status_code, "files": len(sendable)},
            )
            outcome.failed.extend(candidate.path for candidate in sendable)
            outcome.messages.append(str(exc))
            outcome.transport_failed = True
            return outcome

        for index, candidate in enumerate(sendable):
            if index >= len(results):
                outcome.deferred.append(candidate.path)
                continue
            self._apply_result(candidate, results[index], outcome)

        self.log.info(
            "optimizer.batch.done",
            extra={
                "succeeded": len(outcome.succeeded),
                "failed": len(outcome.failed),
                "deferred": len(outcome.deferred),
            },
        )
        return outcome

    def _validate(self, paths: list[str], outcome: BatchOutcome) -> list[_Candidate]:
        """Re-check eligibility; the queue may be stale."""
        resolved = self.resolver.resolve_batch(paths)
        candidates = []
        for path in paths:
            asset_id = resolved.get(path)
            asset = self.assets.get_asset(asset_id) if asset_id is not None else None
            if asset is None:
                outcome.dropped.append(path)
                outcome.messages.append(f"{Path(path).name}: no owning asset")
                continue
            info = self.eligibility.file_info(path, asset)
            decision = optimization_decision(
                info,
                optimized=asset.optimized,
                public_url=self.eligibility.public_url(asset),
                max_file_size_kb=self.limits.max_file_size_kb,
                hosts=self.eligibility.hosts,
            )
            if not decision.eligible:
                self.log.info(
                    "optimizer.validate.skipped",
                    extra={"path": path, "reason": decision.reason},
                )
                outcome.dropped.append(path)
                outcome.messages.append(f"{info.path.name}: skipped ({decision.reason})")
                continue
            candidates.append(_Candidate(path=path, asset=asset, info=info))
        return candidates

    def _apply_result(
        self,
        candidate: _Candidate,
        result: OptimizationResult,
        outcome: BatchOutcome,
    ) -> None:
        name = candidate.info.path.name
        if result.skipped:
            self._mark_optimized(
                candidate.asset,
                final_path=candidate.info.path,
                stats={"skipped": True, "originalSize": candidate.info.size_bytes},
            )
            outcome.succeeded.append(candidate.path)
            outcome.messages.append(f"{name}: already optimal")
            return

        if not result.success or result.data is None or not result.data.base64:
            reason = result.error_message if not result.success else "response missing image data"
            self.log.warning("optimizer.result.failed", extra={"path": candidate.path, "error": reason})
            outcome.failed.append(candidate.path)
            outcome.messages.append(f"{name}: {reason}")
            return

        original_ext = extension_of(candidate.info.path)
        fmt = resolve_target_format(result.data.targetFormat, original_ext)
        try:
            data = decode_image_payload(result.data.base64)
            validate_image_bytes(data, fmt)
            final_path = self._write_output(candidate, data, fmt)
        except (InvalidImageDataError, OSError) as exc:
            self.log.warning(
                "optimizer.result.invalid",
                extra={"path": candidate.path, "format": fmt, "error": str(exc)},
            )
            outcome.failed.append(candidate.path)
            outcome.messages.append(f"{name}: {exc}")
            return

        compressed = len(data)
        original = result.data.originalSize or candidate.info.size_bytes
        ratio = result.data.compressionRatio
        if ratio is None and original:
            ratio = round((1 - compressed / original) * 100, 2)
        self._mark_optimized(
            candidate.asset,
            final_path=final_path,
            stats={
                "originalFormat": original_ext,
                "targetFormat": fmt,
                "originalSize": original,
                "compressedSize": result.data.compressedSize or compressed,
                "compressionRatio": ratio,
                "optimizedQuality": result.data.optimizedQuality,
            },
        )
        outcome.succeeded.append(candidate.path)
        outcome.messages.append(f"{name}: optimized to {fmt} ({original} -> {compressed} bytes)")
        self._chain_migration(final_path)

    def _write_output(self, candidate: _Candidate, data: bytes, fmt: str) -> Path:
        source = candidate.info.path
        new_ext = output_extension(fmt)
        same_format = output_extension(resolve_target_format(None, extension_of(source))) == new_ext
        destination = source if same_format else source.with_suffix(f".{new_ext}")

        temp = destination.with_name(f"{destination.name}.tmp")
        temp.write_bytes(data)
        os.replace(temp, destination)

        if not same_format:
            self._switch_primary_file(candidate.asset, source, destination, new_ext)
        return destination

    def _switch_primary_file(self, asset: Asset, source: Path, destination: Path, new_ext: str) -> None:
        old_relative = asset.path
        new_relative = relative_path(destination, self.layout.root)
        old_url = self.eligibility.public_url(asset)
        new_url = self.layout.local_url(new_relative)

        # Variants keep the old extension; record them explicitly.
        sizes = dict(asset.sizes)
        recorded = set(sizes.values())
        for variant in self.resolver.related_files(asset.id):
            if variant.name not in recorded:
                sizes[variant.name] = variant.name

        self.assets.update_asset_file(
            asset.id,
            path=new_relative,
            mime_type=MIME_FOR_EXTENSION.get(new_ext, f"image/{new_ext}"),
            sizes=sizes,
        )
        self.assets.set_flag(asset.id, AssetFlag.ORIGINAL_PATH, old_relative)
        self.assets.set_flag(asset.id, AssetFlag.OLD_URL, old_url)
        self.assets.set_flag(asset.id, AssetFlag.NEW_URL, new_url)
        self.assets.delete_flag(asset.id, AssetFlag.PUBLIC_URL)
        self.rewriter.rewrite(old_url, new_url)
        source.unlink(missing_ok=True)
        asset.path = new_relative
        asset.sizes = sizes
        self.log.info(
            "optimizer.format_changed",
            extra={"asset_id": asset.id, "old_path": old_relative, "new_path": new_relative},
        )

    def _mark_optimized(self, asset: Asset, *, final_path: Path, stats: dict[str, Any]) -> None:
        self.assets.set_flag(asset.id, AssetFlag.OPTIMIZED, True)
        self.assets.set_flag(asset.id, AssetFlag.OPTIMIZATION_DATE, self.clock().isoformat())
        self.assets.set_flag(asset.id, AssetFlag.FILE_SIZE, final_path.stat().st_size)
        self.assets.set_flag(asset.id, AssetFlag.OPTIMIZATION_STATS, stats)

    def _chain_migration(self, final_path: Path) -> None:
        if not self.limits.auto_migrate or self.migration_queue is None:
            return
        asset_id = self.resolver.resolve(final_path)
        asset = self.assets.get_asset(asset_id) if asset_id is not None else None
        if asset is None or asset.mime_type not in MIGRATION_TYPES:
            return
        if final_path.stat().st_size / 1024 > self.limits.max_file_size_kb:
            return
        if self.migration_queue.add(asset.path):
            self.log.info("optimizer.auto_migrate.queued", extra={"path": asset.path})
