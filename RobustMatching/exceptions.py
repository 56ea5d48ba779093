"""
Exception types raised by the robust matching pipeline.
"""


class RobustMatchingError(Exception):
    """Base class for all robust matching errors"""


class InsufficientCorrespondences(RobustMatchingError):
    """Too few point pairs reached geometric verification"""

    def __init__(self, found: int, required: int = 8):
        self.found = found
        self.required = required
        super().__init__(
            f"Insufficient correspondences for fundamental matrix estimation: "
            f"found {found}, need at least {required}"
        )


class DegenerateGeometry(RobustMatchingError):
    """The estimator could not produce a usable fundamental matrix"""


class ConfigurationError(RobustMatchingError, ValueError):
    """Invalid policy or collaborator configuration"""
