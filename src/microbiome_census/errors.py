# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
import warnings
from typing import Iterable

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("microbiome_census")

# ==================================== EXCEPTIONS ==================================== #

class DataIntegrityError(ValueError):
    """Raised when a sample or taxon referenced in one table is absent from another."""
    pass


class EmptySelectionWarning(UserWarning):
    """Issued when a filter or taxonomic query matches nothing."""
    pass

# ==================================== FUNCTIONS ===================================== #

def _preview(ids: Iterable, n: int = 5) -> str:
    ids = sorted(map(str, ids))
    return f"{ids[:n]}{'...' if len(ids) > n else ''}"


def raise_missing_join(what: str, missing: Iterable, source: str, target: str) -> None:
    """Log and raise a :class:`DataIntegrityError` for ids missing from a join."""
    missing = list(missing)
    message = (
        f"{len(missing)} {what} in {source} missing from {target}: {_preview(missing)}"
    )
    logger.error(message)
    raise DataIntegrityError(message)


def warn_empty_selection(message: str) -> None:
    """Emit an :class:`EmptySelectionWarning` and mirror it to the package log."""
    logger.warning(message)
    warnings.warn(message, EmptySelectionWarning, stacklevel=3)
