"""Exception types raised by the fold-change pipeline.

Every error names the pipeline stage that failed so that a caller can tell a
bad input table apart from a model that cannot be fit.
"""


class QPCRAnalysisError(ValueError):
    """Base class for all pipeline failures."""

    stage = "analysis"

    def __init__(self, message: str, stage: str = None):
        if stage is not None:
            self.stage = stage
        self.message = message
        super().__init__(f"[{self.stage}] {message}")


class ConfigurationError(QPCRAnalysisError):
    stage = "configuration"


class InputShapeError(QPCRAnalysisError):
    """The input table does not have the layout the pipeline expects."""

    stage = "normalization"


class ModelFitError(QPCRAnalysisError):
    """A linear model could not be fit to the transformed data."""

    stage = "fitting"


class ContrastError(QPCRAnalysisError):
    stage = "contrast computation"
