"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for failures that abort the current entity phase."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for phase failures that cannot be recovered per record."""

    error_code = "STAGE_ERROR"


class PrerequisiteError(PipelineError):
    """Raised when an earlier phase or entity type has not produced its output."""

    error_code = "PREREQUISITE_MISSING"


class SchemaNotFound(PipelineError):
    """Raised when the dump has no CREATE TABLE statement for a table."""

    error_code = "SCHEMA_NOT_FOUND"

    def __init__(self, table: str) -> None:
        super().__init__(f"No CREATE TABLE statement for `{table}` in dump")
        self.table = table


class DestinationError(StageError):
    error_code = "DESTINATION_ERROR"


class MappingConflictError(PipelineError):
    """Raised when a legacy id is mapped twice to different new ids."""

    error_code = "MAPPING_CONFLICT"


class RecordError(Exception):
    """Base class for per-record failures that become skips."""

    error_code = "RECORD_ERROR"


class RowMappingError(RecordError):
    error_code = "ROW_MAPPING_ERROR"


class UnresolvedReferenceError(RecordError):
    error_code = "UNRESOLVED_REFERENCE"
