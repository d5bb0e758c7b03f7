"""
Effect dispatch.

Persisted filter records carry an id, but the effect to run is decided by
the record's *name*. The registry does that name match once, when the
catalog is loaded, and keeps an id -> EffectId table so per-frame lookups
never compare strings.
"""

import logging
from typing import Dict, Iterable, List, Optional

from filtercam.effects import EFFECTS, EffectFn, EffectId, effect_id_for_name
from filtercam.models import FilterDescriptor
from filtercam.pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)


class EffectRegistry:
    """Maps catalog filter ids to effect functions."""

    def __init__(self, descriptors: Iterable[FilterDescriptor] = ()):
        self._descriptors: List[FilterDescriptor] = []
        self._by_id: Dict[str, EffectId] = {}
        self.refresh(descriptors)

    @classmethod
    def from_catalog(cls, catalog) -> "EffectRegistry":
        """Build from anything with a list_filters() method."""
        return cls(catalog.list_filters())

    def refresh(self, descriptors: Iterable[FilterDescriptor]) -> None:
        """Replace the catalog. Names are matched to effects here, once."""
        descriptors = list(descriptors)
        by_id = {}
        for descriptor in descriptors:
            effect_id = effect_id_for_name(descriptor.name)
            if effect_id is EffectId.NORMAL and descriptor.name != EffectId.NORMAL.value:
                logger.warning("Filter %r (%s) has no effect, using Normal", descriptor.name, descriptor.id)
            by_id[descriptor.id] = effect_id

        # Swap whole tables so a reader on another thread sees old or new, never half
        self._descriptors = descriptors
        self._by_id = by_id
        logger.debug("Effect registry loaded %d filters", len(descriptors))

    @property
    def descriptors(self) -> List[FilterDescriptor]:
        return list(self._descriptors)

    def descriptor(self, filter_id: Optional[str]) -> Optional[FilterDescriptor]:
        for descriptor in self._descriptors:
            if descriptor.id == filter_id:
                return descriptor
        return None

    def effect_id(self, filter_id: Optional[str]) -> EffectId:
        """Unknown or missing ids fall back to Normal."""
        if filter_id is None:
            return EffectId.NORMAL
        return self._by_id.get(filter_id, EffectId.NORMAL)

    def resolve(self, filter_id: Optional[str]) -> EffectFn:
        return EFFECTS[self.effect_id(filter_id)]

    def apply(self, buffer: PixelBuffer, filter_id: Optional[str]) -> None:
        self.resolve(filter_id)(buffer, buffer.width, buffer.height)

    def __contains__(self, filter_id: str) -> bool:
        return filter_id in self._by_id

    def __len__(self) -> int:
        return len(self._descriptors)
