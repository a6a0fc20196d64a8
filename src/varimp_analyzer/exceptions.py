"""
Error types raised by the variable importance analysis
"""


class VarImpError(Exception):
    """Base class for all analysis errors"""


class InvalidInput(VarImpError, ValueError):
    """Malformed arguments: empty dataset, missing column, bad option"""


class IncompatibleLoss(VarImpError):
    """The loss function could not be evaluated on an actual/predicted pair"""


class Cancelled(VarImpError):
    """The caller aborted an in-flight importance computation"""
