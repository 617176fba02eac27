"""
Error taxonomy for the paper generation core

Every error carries a short machine-readable ``code`` that callers branch on,
and a human-readable message that ends up in GenerationStatus.error.
"""


class PaperGenError(Exception):
    """Base class for all domain errors"""

    code = "paper_generation_error"
    status_code = 400

    def __init__(self, message: str = None):
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class ConfigurationError(PaperGenError):
    """Service is misconfigured (e.g. missing API key)"""

    code = "configuration_error"
    status_code = 500


class EmptySourceTextError(PaperGenError):
    """Source text is empty or unreadable"""

    code = "empty_source_text"


class InsufficientContentError(PaperGenError):
    """Source text is too short to generate questions from"""

    code = "insufficient_content"


class NoSectionsConfiguredError(PaperGenError):
    """No sections configured. Please configure at least one section before generating."""

    code = "no_sections_configured"


class InvalidConfigError(PaperGenError):
    """Paper configuration is malformed"""

    code = "invalid_config"


class UnsupportedFileTypeError(PaperGenError):
    """File type is not supported"""

    code = "unsupported_file_type"
    status_code = 415


class GeneratorError(PaperGenError):
    """AI generator call failed"""

    code = "generator_error"
    status_code = 502


class GenerationTimeoutError(PaperGenError):
    """Paper generation exceeded its deadline"""

    code = "generation_timeout"
    status_code = 504


class PaperNotFoundError(PaperGenError):
    """Paper not found"""

    code = "paper_not_found"
    status_code = 404


class VersionNotFoundError(PaperGenError):
    """Version not found"""

    code = "version_not_found"
    status_code = 404


class GenerationInProgressError(PaperGenError):
    """A generation is already running for this paper"""

    code = "generation_in_progress"
    status_code = 409


class VersionConflictError(PaperGenError):
    """Concurrent version append detected"""

    code = "version_conflict"
    status_code = 409


class ImmutableVersionError(PaperGenError):
    """Stored paper versions cannot be modified"""

    code = "immutable_version"
    status_code = 409
