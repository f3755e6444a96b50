"""Typed conversion errors raised in strict mode"""


class ConversionError(Exception):
    """Base error; `stage` names the pipeline step that failed."""

    def __init__(self, message: str, stage: str = "convert"):
        super().__init__(message)
        self.stage = stage


class InputError(ConversionError):
    """Input is not a string or is empty."""

    def __init__(self, message: str):
        super().__init__(message, stage="input")


class AnnotationParseError(ConversionError):
    """Malformed annotation attributes. Recorded as a warning, never raised by the engine."""

    def __init__(self, message: str):
        super().__init__(message, stage="annotations")


class FenceResolutionExhausted(ConversionError):
    """Container fences nested deeper than the pass cap. Recorded as a warning."""

    def __init__(self, message: str):
        super().__init__(message, stage="fences")


class SchemaMappingError(ConversionError):
    """A node type with no mapping in the requested direction."""

    def __init__(self, message: str, stage: str = "build"):
        super().__init__(message, stage=stage)


class FrontmatterParseError(ConversionError):
    """Frontmatter block is not valid YAML or not a mapping."""

    def __init__(self, message: str):
        super().__init__(message, stage="frontmatter")
