"""Centralized failure policy for the training session.

Contracts fail fast, loud, and once. Every failure the coordinator has to
tell apart is one of the exception types below.
"""


class ConfigurationError(ValueError):
    """Raised when the session cannot be set up as requested.

    No feature operator, no classifier, an unknown classifier kind, or a
    combination of settings that cannot work together. Surfaced to the
    user; training is not attempted.
    """
    pass


class ContractViolation(RuntimeError):
    """Raised when a pipeline contract is violated.

    This indicates a bug in pipeline logic, not bad user input. It means a
    stage did not produce the invariants it promised.

    Key distinction:
    - ValueError / ConfigurationError: User/config error
    - ContractViolation: Pipeline bug (programmer error)
    - NoSamples: not an error at all, the assembler returns None
    """
    pass


class ConsistencyError(ContractViolation):
    """Raised when labels and the label map disagree.

    Non-dense label indices, or test labels outside the fitted label map.
    The training run is aborted and the previous model stays active.
    """
    pass
