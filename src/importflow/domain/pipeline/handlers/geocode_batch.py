"""geocode-batch: resolve row coordinates from provided values or the geocoder."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from importflow.domain.model import GeocodeSource, GeocodingResult, ImportStage
from importflow.domain.pipeline.events import extract_address, extract_coordinates
from importflow.domain.pipeline.handlers._batches import enter_batch
from importflow.domain.pipeline.runner import StageOutcome
from importflow.domain.ports import read_batch

if TYPE_CHECKING:
    from importflow.config import PipelineConfig
    from importflow.domain.pipeline.runner import StageContext
    from importflow.domain.ports import GeocodeResult, Geocoder, SourceReader

log = getLogger(__name__)

PROVIDED_CONFIDENCE = 1.0


class GeocodeBatchHandler:
    stage = ImportStage.GEOCODE_BATCH

    def __init__(
        self,
        reader: SourceReader,
        config: PipelineConfig,
        geocoder: Geocoder | None = None,
        *,
        min_confidence: float = 0.0,
    ) -> None:
        self._reader = reader
        self._config = config
        self._geocoder = geocoder
        self._min_confidence = min_confidence

    def run(self, context: StageContext) -> StageOutcome:
        job = context.job
        batch_number = context.batch_number
        mappings = job.field_mappings

        if not context.dataset.geocoding_enabled or not mappings.is_geocodable:
            log.info("Skipping geocoding for job %s: nothing to geocode", job.id)
            return StageOutcome(ImportStage.CREATE_EVENTS)

        resume_at = enter_batch(job, self.stage, batch_number, self._reader)
        if resume_at is not None:
            return StageOutcome(self.stage, resume_at)

        batch = read_batch(
            self._reader,
            job,
            batch_number=batch_number,
            batch_size=self._config.batch_sizes.geocoding,
        )
        skipped = job.duplicates.skipped_rows() if job.duplicates is not None else frozenset()
        results: list[GeocodingResult] = []
        pending: list[tuple[int, str]] = []

        for row_number, row in batch.numbered():
            if row_number in skipped:
                continue
            provided = extract_coordinates(row, mappings)
            if provided is not None:
                results.append(
                    GeocodingResult(
                        row_number=row_number,
                        latitude=provided[0],
                        longitude=provided[1],
                        confidence=PROVIDED_CONFIDENCE,
                        source=GeocodeSource.PROVIDED,
                    )
                )
                continue

            address = extract_address(row, mappings)
            if address is not None and self._geocoder is not None:
                pending.append((row_number, address))

        lookups: dict[str, GeocodeResult | None] = {}
        if pending and self._geocoder is not None:
            lookups = self._geocoder.geocode_many(list(dict.fromkeys(address for _, address in pending)))

        for row_number, address in pending:
            found = lookups.get(address)
            if found is None or found.confidence < self._min_confidence:
                log.debug("No geocoding match for row %s of job %s", row_number, job.id)
                continue
            results.append(
                GeocodingResult(
                    row_number=row_number,
                    latitude=found.latitude,
                    longitude=found.longitude,
                    confidence=found.confidence,
                    source=GeocodeSource.GEOCODED,
                    formatted_address=found.formatted_address,
                )
            )

        job.merge_geocoding_results(results)
        job.progress = job.progress.with_batch(batch_number, processed=batch.offset + len(batch.rows))
        log.info(
            "Geocoded batch %s of job %s: resolved=%s, addresses_looked_up=%s",
            batch_number,
            job.id,
            len(results),
            len(lookups),
        )
        if batch.has_more:
            return StageOutcome(self.stage, batch_number + 1)
        return StageOutcome(ImportStage.CREATE_EVENTS)
