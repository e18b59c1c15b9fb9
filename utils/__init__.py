from utils.exceptions import (
    StudioError,
    ErrorKind,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    UpstreamError,
    FetchError,
    FetchTimeoutError,
    StorageError,
    CascadeExhaustedError,
    BatchFailureError,
)
from utils.log_config import get_logger
from utils.retry import retry
