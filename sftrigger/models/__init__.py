from sftrigger.models.base import Base
from sftrigger.models.checkpoints import TriggerCheckpoint
from sftrigger.models.runs import PollRun
from sftrigger.models.triggers import TriggerDefinition

__all__ = [
    "Base",
    "TriggerCheckpoint",
    "PollRun",
    "TriggerDefinition",
]
