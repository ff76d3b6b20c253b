from agentflow.llm.invoker import AIInvoker, ChatOpenAIInvoker, Completion
from agentflow.llm.retry import invoke_with_retry

__all__ = ["AIInvoker", "ChatOpenAIInvoker", "Completion", "invoke_with_retry"]
