from rfqflow.queue.dispatcher import TaskDispatcher
from rfqflow.queue.interface import JobQueue
from rfqflow.queue.memory import InMemoryJobQueue
from rfqflow.queue.messages import FinishedJob, JobCounts, StageJob, make_job_id
from rfqflow.queue.processor import StageWorker
from rfqflow.queue.sqlite import SqliteJobQueue

__all__ = [
    "FinishedJob",
    "InMemoryJobQueue",
    "JobCounts",
    "JobQueue",
    "SqliteJobQueue",
    "StageJob",
    "StageWorker",
    "TaskDispatcher",
    "make_job_id",
]
