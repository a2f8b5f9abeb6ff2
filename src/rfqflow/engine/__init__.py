from rfqflow.engine.engine import Engine
from rfqflow.engine.orchestrator import Orchestrator
from rfqflow.engine.resilience import StageBulkheads
from rfqflow.engine.state_machine import ExecutionHistory, ExecutionManager, ExecutionView

__all__ = [
    "Engine",
    "ExecutionHistory",
    "ExecutionManager",
    "ExecutionView",
    "Orchestrator",
    "StageBulkheads",
]
