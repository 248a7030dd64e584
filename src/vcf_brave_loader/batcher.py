"""Fixed-capacity batching of aggregated variants."""

from .models import AggregatedVariant, SubmissionBatch


class Batcher:
    """Collect variants in arrival order into batches of ``capacity``."""

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError(f"batch capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._sequence = 0
        self._current = self._new_batch()

    def _new_batch(self) -> SubmissionBatch:
        self._sequence += 1
        return SubmissionBatch(sequence=self._sequence)

    @property
    def pending(self) -> int:
        return len(self._current)

    def add(self, variant: AggregatedVariant) -> SubmissionBatch | None:
        """Append a variant; return the batch when it reaches capacity."""
        self._current.variants.append(variant)
        if len(self._current) >= self.capacity:
            return self._take()
        return None

    def flush(self) -> SubmissionBatch | None:
        """Return the partial batch at end of stream, if any."""
        if not self._current.variants:
            return None
        return self._take()

    def _take(self) -> SubmissionBatch:
        batch = self._current
        self._current = self._new_batch()
        return batch
