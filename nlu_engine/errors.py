"""Error taxonomy for the NLU training engine"""


class NLUEngineError(Exception):
    """Base class for every engine error"""


class InvalidInputError(NLUEngineError):
    """Input rejected by validation; the caller must correct it"""


class NotFoundError(NLUEngineError):
    """A requested intent or document does not exist"""


class RangeResolutionError(NLUEngineError):
    """A character range does not align to token boundaries"""


class ToolingError(NLUEngineError):
    """The tokenizer/vectorizer failed or returned malformed data"""


class StageError(NLUEngineError):
    """A training stage failed"""
    
    def __init__(self, stage: str, cause: BaseException):
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause
        self.__cause__ = cause
