# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Union

# Third-Party Imports
import pandas as pd
from biom import Table

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.errors import warn_empty_selection
from microbiome_census.utils.table_conversion import table_to_df

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("microbiome_census")

# ================================ TABLE FILTERING =================================== #

def filter(
    table: Union[dict, Table, pd.DataFrame],
    min_count: float = constants.DEFAULT_MIN_COUNT,
    min_samples: int = constants.DEFAULT_MIN_SAMPLES,
    min_sample_counts: float = constants.DEFAULT_MIN_SAMPLE_COUNTS,
) -> pd.DataFrame:
    """Filter features and samples.

    Applies two-step filtering:
    1. Feature filtering (min_count and min_samples)
    2. Sample filtering (min_sample_counts)

    Args:
        table:             Input table (samples × features).
        min_count:         Minimum total abundance for feature retention.
        min_samples:       Minimum samples where feature must appear.
        min_sample_counts: Minimum total abundance per sample.

    Returns:
        Filtered copy of the table.
    """
    table = filter_features(table, min_count, min_samples)
    table = filter_samples(table, min_sample_counts)
    return table


def filter_features(
    table: Union[dict, Table, pd.DataFrame],
    min_count: float = constants.DEFAULT_MIN_COUNT,
    min_samples: int = constants.DEFAULT_MIN_SAMPLES
) -> pd.DataFrame:
    """Prune low-count and low-prevalence features.

    Args:
        table:       Input table (samples × features).
        min_count:   Minimum total abundance across samples.
        min_samples: Minimum samples where feature must be non-zero.

    Returns:
        New DataFrame holding only the retained features.
    """
    df = table_to_df(table)
    totals = df.sum(axis=0)
    prevalence = (df > 0).sum(axis=0)
    feature_mask = (totals >= min_count) & (prevalence >= min_samples)

    filtered = df.loc[:, feature_mask].copy()
    logger.info(
        f"Feature filter kept {filtered.shape[1]}/{df.shape[1]} features "
        f"(min_count={min_count}, min_samples={min_samples})"
    )
    if filtered.shape[1] == 0:
        warn_empty_selection(
            f"No features passed filtering (min_count={min_count}, "
            f"min_samples={min_samples})"
        )
    return filtered


def filter_samples(
    table: Union[dict, Table, pd.DataFrame],
    min_counts: float = constants.DEFAULT_MIN_SAMPLE_COUNTS
) -> pd.DataFrame:
    """Filter samples based on minimum total abundance.

    Args:
        table:      Input table (samples × features).
        min_counts: Minimum total abundance per sample.

    Returns:
        New DataFrame holding only the retained samples.
    """
    df = table_to_df(table)
    sample_sums = df.sum(axis=1)
    filtered = df.loc[sample_sums >= min_counts].copy()
    dropped = df.shape[0] - filtered.shape[0]
    if dropped:
        logger.info(f"Dropped {dropped} samples with total < {min_counts}")
    if filtered.shape[0] == 0:
        warn_empty_selection(f"No samples passed filtering (min_counts={min_counts})")
    return filtered


def presence_absence(table: Union[dict, Table, pd.DataFrame]) -> pd.DataFrame:
    """Convert abundance table to presence/absence (binary 0/1)."""
    df = table_to_df(table)
    return (df > 0).astype(int)
