"""
Background jobs for Ofie Assistant.

- TaskQueue: in-process delayed task queue with a worker pool
- ResponsePipeline: answers user messages in assistant conversations
- FollowupScheduler / FollowupWorker: delayed re-engagement messages
"""

from .followup import FOLLOWUP_TASK, FollowupKind, FollowupScheduler, FollowupTask, FollowupWorker
from .queue import QueuedTask, TaskQueue
from .response_job import RESPONSE_TASK, PipelineError, ResponsePipeline

__all__ = [
    "FOLLOWUP_TASK",
    "RESPONSE_TASK",
    "FollowupKind",
    "FollowupScheduler",
    "FollowupTask",
    "FollowupWorker",
    "PipelineError",
    "QueuedTask",
    "ResponsePipeline",
    "TaskQueue",
]
