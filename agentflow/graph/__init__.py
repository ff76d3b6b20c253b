# Graph package
from agentflow.graph.builder import build_graph
from agentflow.graph.executor import RunOptions, RunResult, WorkflowExecutor
from agentflow.graph.state import AgentState, Message

__all__ = ["build_graph", "AgentState", "Message", "RunOptions", "RunResult", "WorkflowExecutor"]
