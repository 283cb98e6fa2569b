# Stage 2: Cluster Merging
"""
Reconciles the raw regions from all passes into one set of text regions.
- Step 1: DBSCAN on region centers; each cluster becomes one region,
  noise points pass through as singletons
- Step 2: overlap coalescing; any two regions whose boxes intersect are
  merged, repeated until a full pass makes no merge
"""

import logging
import re
from typing import List, Sequence

import numpy as np
from sklearn.cluster import DBSCAN

from data_models import Box, MergedRegion, TextRegion

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')


def _normalize_text(text: str) -> str:
    return _WHITESPACE.sub(' ', text or '').strip()


def join_texts(texts: Sequence[str], dedupe: bool) -> str:
    """Join non-empty texts with a space; with dedupe, identical texts appear once"""
    parts = []
    seen = set()
    for text in texts:
        normalized = _normalize_text(text)
        if not normalized:
            continue
        if dedupe:
            if normalized in seen:
                continue
            seen.add(normalized)
        parts.append(normalized)
    return ' '.join(parts)


def _unique(items: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(items))


class ClusterMerger:
    """Stage 2: density clustering followed by iterative overlap coalescing"""

    def __init__(self, eps_px: float = 40, min_pts: int = 2, max_iterations: int = 20,
                 dedupe_text: bool = True):
        self.eps_px = eps_px
        self.min_pts = min_pts
        self.max_iterations = max_iterations
        self.dedupe_text = dedupe_text

    def merge(self, regions: Sequence[TextRegion]) -> List[MergedRegion]:
        """Cluster then coalesce"""
        clustered = self.cluster(regions)
        merged = self.coalesce_overlaps(clustered)
        logger.info(f"[Stage 2] {len(regions)} raw regions -> {len(clustered)} clustered -> {len(merged)} merged")
        return merged

    def cluster(self, regions: Sequence[TextRegion]) -> List[MergedRegion]:
        """DBSCAN over region center points"""
        if not regions:
            return []

        points = np.array([r.box.center for r in regions], dtype=float)
        labels = DBSCAN(eps=self.eps_px, min_samples=self.min_pts).fit(points).labels_

        clusters = {}
        noise = []
        for idx, label in enumerate(labels):
            if label == -1:
                noise.append(regions[idx])
            else:
                clusters.setdefault(int(label), []).append(regions[idx])

        result = [self._merge_members(members) for _, members in sorted(clusters.items())]
        result.extend(self._merge_members([r]) for r in noise)

        logger.debug(f"[Stage 2] DBSCAN: {len(clusters)} clusters, {len(noise)} noise points")
        return result

    def _merge_members(self, members: Sequence[TextRegion]) -> MergedRegion:
        """Envelope box, reading-order text, mean confidence"""
        ordered = sorted(members, key=lambda m: (m.box.min_y, m.box.min_x))
        return MergedRegion(
            text=join_texts([m.text for m in ordered], self.dedupe_text),
            confidence=sum(m.confidence for m in members) / len(members),
            box=Box.envelope([m.box for m in members]),
            sources=_unique([m.source_pass for m in ordered])
        )

    def _merge_two(self, a: MergedRegion, b: MergedRegion) -> MergedRegion:
        return MergedRegion(
            text=join_texts([a.text, b.text], self.dedupe_text),
            confidence=(a.confidence + b.confidence) / 2,
            box=a.box.union(b.box),
            sources=_unique(a.sources + b.sources)
        )

    def coalesce_overlaps(self, regions: Sequence[MergedRegion]) -> List[MergedRegion]:
        """
        Merge regions whose boxes intersect with non-zero area.
        Keeps iterating until a full pass makes no merge or the iteration cap
        is reached. Output of a completed run contains no intersecting pair,
        so running it again changes nothing.
        """
        current = list(regions)
        merged_anything = True
        iteration = 0

        while merged_anything and iteration < self.max_iterations:
            iteration += 1
            merged_anything = False
            new_regions = []
            absorbed = set()

            for i in range(len(current)):
                if i in absorbed:
                    continue
                region = current[i]
                for j in range(i + 1, len(current)):
                    if j in absorbed:
                        continue
                    if region.box.intersects(current[j].box):
                        region = self._merge_two(region, current[j])
                        absorbed.add(j)
                        merged_anything = True
                new_regions.append(region)

            current = new_regions
            logger.debug(f"[Stage 2] Coalescing iteration {iteration}: {len(current)} regions")

        if merged_anything:
            logger.warning(f"[Stage 2] Stopped coalescing after {self.max_iterations} iterations")
        return current
