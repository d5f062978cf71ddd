"""stock_batch.models -- ORM models for batch job persistence."""

from stock_batch.models.batch import BatchItemModel, BatchJobModel, JobScheduleModel

__all__ = [
    "BatchItemModel",
    "BatchJobModel",
    "JobScheduleModel",
]
