"""Rewrite stored references from one media URL to another."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

from ..assets.assets_store import ContentStore
from .url_rewrite import rewrite_text

logger = logging.getLogger(__name__)

# Page-builder fields always hold JSON documents.
BUILDER_FIELDS = frozenset(
    {
        "_elementor_data",
        "brizy_post_data",
        "_et_pb_post_settings",
        "_et_pb_use_builder",
        "_fl_builder_data",
    }
)
OWN_FIELD_PREFIXES = ("_nofb_", "_offload_")
SKIPPED_FIELDS = frozenset({"_wp_attachment_metadata", "_wp_attached_file"})


@dataclass
class ReferenceRewriter:
    content: ContentStore
    log: logging.Logger = field(default_factory=lambda: logger)

    def rewrite(self, old_url: str, new_url: str) -> int:
        """Replace ``old_url`` in every stored field; return fields updated."""
        if not old_url or old_url == new_url:
            return 0

        candidates = {}
        for needle in (old_url, old_url.replace("/", "\\/")):
            for item in self.content.find_containing(needle):
                candidates[item.id] = item

        updated = 0
        for item in candidates.values():
            if item.kind == "meta" and self._is_skipped(item.name):
                continue
            structured = item.kind == "meta" and item.name in BUILDER_FIELDS
            value, changed = rewrite_text(item.value, old_url, new_url, structured=structured)
            if changed:
                self.content.update_value(item.id, value)
                updated += 1

        if updated:
            self.log.info(
                "references.rewritten",
                extra={"old_url": old_url, "new_url": new_url, "fields": updated},
            )
        return updated

    def rewrite_many(self, mapping: Mapping[str, str]) -> int:
        return sum(self.rewrite(old, new) for old, new in mapping.items())

    @staticmethod
    def _is_skipped(name: str) -> bool:
        return name in SKIPPED_FIELDS or name.startswith(OWN_FIELD_PREFIXES)
