"""Nearest-neighbour identity matching over enrolled face descriptors."""
from __future__ import annotations

import logging
import math
from typing import Iterable, List, Optional

import numpy as np

from core.types import DESCRIPTOR_SIZE, EnrolledIdentity, MatchResult, as_descriptor


class IdentityMatcher:
    """Euclidean nearest-neighbour matcher.

    A linear scan over the enrolled set is enough here: populations are tens
    to low hundreds of people and recognition runs at ~10 Hz.
    """

    def __init__(
        self,
        match_threshold: float = 0.6,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.match_threshold = float(match_threshold)
        self._logger = logger or logging.getLogger(__name__)
        self._identities: List[EnrolledIdentity] = []
        # (K, D) stacked in enrollment order
        self._matrix: Optional[np.ndarray] = None
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    @property
    def count(self) -> int:
        return len(self._identities)

    @property
    def labels(self) -> List[str]:
        return [identity.label for identity in self._identities]

    def load(self, identities: Iterable[EnrolledIdentity]) -> None:
        """Replace the enrolled set. The first entry wins when labels repeat."""
        accepted: List[EnrolledIdentity] = []
        seen = set()
        for identity in identities:
            if identity.descriptor.shape != (DESCRIPTOR_SIZE,):
                raise ValueError(
                    f"Descriptor for {identity.label!r} has shape {identity.descriptor.shape}"
                )
            if identity.label in seen:
                self._logger.warning(
                    "[Matcher] Duplicate label %r skipped", identity.label
                )
                continue
            seen.add(identity.label)
            accepted.append(identity)

        self._identities = accepted
        if accepted:
            self._matrix = np.stack([identity.descriptor for identity in accepted], axis=0)
        else:
            self._matrix = None
        self._loaded = True
        self._logger.info("[Matcher] Loaded %d enrolled identities", len(accepted))

    def recognize(self, descriptor) -> MatchResult:
        if self._matrix is None:
            return MatchResult.unknown(math.inf)

        query = as_descriptor(descriptor)
        distances = np.linalg.norm(self._matrix - query, axis=1)
        # argmin returns the first minimum, so ties resolve in enrollment order
        best = int(np.argmin(distances))
        best_distance = float(distances[best])

        if best_distance <= self.match_threshold:
            identity = self._identities[best]
            return MatchResult(label=identity.label, distance=best_distance, identity=identity)
        return MatchResult.unknown(best_distance)
