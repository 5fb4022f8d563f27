"""
Sales pipeline stage catalog.

Stages live in the shared top-level ``pipelineStages`` collection, one
document per stage keyed by the stage id. ``order`` is kept dense: after
every batch write the stages are numbered 0..n-1.
"""

from typing import List, Sequence

import structlog

from clientdesk.core.exceptions import InvalidArgumentError
from clientdesk.core.models import DEFAULT_PIPELINE_STAGES, PipelineStage
from clientdesk.data.document_store import Query
from clientdesk.data.mapping import map_snapshot
from clientdesk.services.base import NotifyingService

logger = structlog.get_logger(__name__)

STAGES_COLLECTION = "pipelineStages"


def renumber(stages: Sequence[PipelineStage]) -> List[PipelineStage]:
    """Sort by ``order`` and renumber from 0 without gaps."""
    ordered = sorted(stages, key=lambda s: s.order)
    return [stage.model_copy(update={"order": index}) for index, stage in enumerate(ordered)]


class PipelineService(NotifyingService):
    """Read and maintain the pipeline stages deals move through."""

    entity_label = "Pipeline stages"

    def _path(self, stage_id: str) -> str:
        if not stage_id:
            raise InvalidArgumentError("Stage id is required")
        return f"{STAGES_COLLECTION}/{stage_id}"

    async def stages(self) -> List[PipelineStage]:
        """Stored stages in pipeline order."""
        documents = await self.store.query(Query(STAGES_COLLECTION).ordered("order"))
        return map_snapshot(documents, PipelineStage, self.policy)

    async def stages_or_defaults(self) -> List[PipelineStage]:
        return await self.stages() or list(DEFAULT_PIPELINE_STAGES)

    async def save_stage(self, stage: PipelineStage) -> None:
        """Create or update one stage; stored fields not on ``stage`` are kept."""
        path = self._path(stage.id)
        async with self.mutation("saved", stage_id=stage.id):
            existing = await self.store.get(path)
            data = {**(existing.data if existing else {}), **stage.to_store_data()}
            await self.store.set(path, data)

    async def delete_stage(self, stage_id: str) -> None:
        """Remove a stage; the remaining order is left as is."""
        path = self._path(stage_id)
        async with self.mutation("deleted", stage_id=stage_id):
            await self.store.delete(path)

    async def _write_all(self, stages: Sequence[PipelineStage]) -> None:
        for stage in stages:
            await self.store.set(self._path(stage.id), stage.to_store_data())

    async def save_all(self, stages: Sequence[PipelineStage]) -> List[PipelineStage]:
        """
        Write every given stage with a dense ``order``.

        Returns:
            The stages as written
        """
        ordered = renumber(stages)
        async with self.mutation("saved", count=len(ordered)):
            await self._write_all(ordered)
        return ordered

    async def reorder(self, stage_ids: Sequence[str]) -> List[PipelineStage]:
        """
        Put the stored stages into the order of ``stage_ids``.

        Unknown ids are skipped. Stored stages missing from ``stage_ids`` keep
        their relative order and move to the end.
        """
        async with self.mutation("reordered", count=len(stage_ids)):
            current = await self.stages()
            by_id = {stage.id: stage for stage in current}

            ordered: List[PipelineStage] = []
            for stage_id in stage_ids:
                stage = by_id.pop(stage_id, None)
                if stage is None:
                    logger.warning("Unknown stage in new order", stage_id=stage_id)
                    continue
                ordered.append(stage)
            leftovers = [stage for stage in current if stage.id in by_id]
            if leftovers:
                logger.warning(
                    "Stages missing from new order moved to the end",
                    stage_ids=[stage.id for stage in leftovers],
                )
            ordered = [
                stage.model_copy(update={"order": index})
                for index, stage in enumerate(ordered + leftovers)
            ]
            await self._write_all(ordered)
        return ordered

    async def initialize_defaults(self) -> bool:
        """
        Store the default catalog when no stages exist yet.

        Returns:
            True if the defaults were written
        """
        if await self.stages():
            logger.info("Pipeline stages already exist; skipping initialization")
            return False
        async with self.mutation("initialized", count=len(DEFAULT_PIPELINE_STAGES)):
            await self._write_all(renumber(DEFAULT_PIPELINE_STAGES))
        return True
