"""Base contract enforcement utilities.

The require() function is the single enforcement mechanism for all contracts.
It enforces semantic invariants of the training pipeline.
"""

from typing import Type

from pixtrain.contracts.failure import ContractViolation


def require(condition: bool, message: str, error: Type[Exception] = ContractViolation) -> None:
    """Enforce a pipeline contract.

    This is called at stage boundaries to verify the preceding stage
    produced the guaranteed invariants. It is fail-fast: no recovery,
    no fallback, no silence.

    Parameters
    ----------
    condition : bool
        The invariant that must be true. If False, ``error`` is raised.

    message : str
        Error message explaining the contract violation (for debugging).

    error : type, optional
        Exception class to raise. ContractViolation by default;
        ConsistencyError for label problems, ConfigurationError for
        settings that cannot work.

    Raises
    ------
    ContractViolation
        If condition is False. This indicates a bug in pipeline logic.

    Examples
    --------
    >>> require(table.n_samples > 0, "Sample contract: empty table")
    >>> require(dense, "Label map is not dense", ConsistencyError)
    """
    if not condition:
        raise error(message)
