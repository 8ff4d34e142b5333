"""Exception taxonomy for the CopperEgg writer.

Only InvalidConfiguration escapes the writer. Every other error is caught at
the narrowest boundary that can recover, counted, and logged.
"""


class CopperEggError(Exception):
    """Base class for all writer errors."""


class InvalidConfiguration(CopperEggError, ValueError):
    """Raised from start() when the settings cannot be used."""


class CatalogParseError(CopperEggError):
    """The bundled metric-group/dashboard catalog could not be read."""


class ReconcileError(CopperEggError):
    """A catalog entry could not be created or updated on the sink."""


class ClassificationError(CopperEggError):
    """A raw sample carried a value that cannot be converted to a number."""


class UploadError(CopperEggError):
    """A samples document could not be delivered to the sink.

    ``fatal`` marks transport failures, after which the remaining batches of
    the same group are not attempted.
    """

    def __init__(self, message: str, *, fatal: bool = False) -> None:
        super().__init__(message)
        self.fatal = fatal
