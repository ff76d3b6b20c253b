"""Exception hierarchy for the workflow engine.

Only FatalRunError is ever visible to the executor; every other class is
handled at the node boundary and turned into a failure increment or a
degraded branch.
"""


class AgentFlowError(Exception):
    """Base class for all workflow errors."""


class TransientInvocationError(AgentFlowError):
    """An external call failed or timed out and may succeed on retry."""


class ClassificationError(AgentFlowError):
    """The query classifier could not produce a result."""


class CacheError(AgentFlowError):
    """Embedding or similarity comparison failed; callers treat it as a miss."""


class RetrievalError(AgentFlowError):
    """A retrieval source could not be fetched or parsed."""


class UtilityError(AgentFlowError):
    """A domain utility operation returned no usable result."""


class FatalRunError(AgentFlowError):
    """The run cannot complete (escaped exception, step bound or wall-clock budget)."""


class RunCancelledError(AgentFlowError):
    """The caller cancelled the run before it finished."""
