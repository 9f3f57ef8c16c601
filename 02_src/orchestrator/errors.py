"""Exception hierarchy for the orchestrator."""

from typing import Any


class OrchestratorError(Exception):
    """Base class for all orchestrator errors."""


# Routing / dispatch


class RecipientNotFound(OrchestratorError):
    """A direct message matched no agent id, type, name or sink."""

    def __init__(self, target: str):
        super().__init__(f"Target agent not found: {target}")
        self.target = target


class UnknownAction(OrchestratorError):
    """An agent received an action it does not implement or is not allowed to run."""

    def __init__(self, agent: str, action: str):
        super().__init__(f"Unknown action for {agent}: {action}")
        self.agent = agent
        self.action = action


# Locking


class LockHeld(OrchestratorError):
    """The resource is already locked by another holder."""

    def __init__(self, resource_key: str):
        super().__init__(f"Record is locked: {resource_key}")
        self.resource_key = resource_key


class LockNotOwned(OrchestratorError):
    """The caller tried to renew a lock it does not hold."""

    def __init__(self, resource_key: str, holder_id: str):
        super().__init__(f"Lock {resource_key} is not held by {holder_id}")
        self.resource_key = resource_key
        self.holder_id = holder_id


# Workflows


class UnknownWorkflow(OrchestratorError):
    """No workflow is registered under the requested name."""


class UnresolvedReference(OrchestratorError):
    """A `$results.<step>` reference points at a step with no results."""

    def __init__(self, reference: str, step_name: str):
        super().__init__(
            f"Unresolved reference {reference}: step '{step_name}' has no results"
        )
        self.reference = reference
        self.step_name = step_name


class StepFailed(OrchestratorError):
    """A non-optional workflow step failed and aborted the run."""

    def __init__(self, step_name: str, cause: BaseException, run: Any = None):
        super().__init__(f"Workflow failed at step {step_name}: {cause}")
        self.step_name = step_name
        self.cause = cause
        self.run = run


# Task runner / budget


class RetryableTransport(OrchestratorError):
    """Transient task-runner failure (timeout, connection reset, rate limit)."""

    def __init__(self, message: str, attempts: int = 1):
        super().__init__(message)
        self.attempts = attempts


class FatalTaskError(OrchestratorError):
    """Task-runner failure that retrying will not fix."""


class BudgetExceeded(OrchestratorError):
    """Accumulated usage cost went past the configured ceiling."""

    def __init__(self, total_cost: float, max_cost: float):
        super().__init__(
            f"Budget exceeded: ${total_cost:.4f} spent, limit is ${max_cost:.4f}"
        )
        self.total_cost = total_cost
        self.max_cost = max_cost


# Tasks / parallel execution


class InvalidTransition(OrchestratorError):
    """Attempt to move a task out of a terminal status."""


class ParallelExecutionError(OrchestratorError):
    """One or more parallel subtasks failed."""

    def __init__(self, message: str, failed: list[Any]):
        super().__init__(message)
        self.failed = failed
