# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table
from skbio.stats.composition import clr as CLR

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.errors import raise_missing_join
from microbiome_census.utils.table_conversion import table_to_df

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger("microbiome_census")

# ========================== TABLE NORMALIZATION & TRANSFORM ========================= #

def normalize(
    table: Union[dict, Table, pd.DataFrame],
    axis: int = 1
) -> pd.DataFrame:
    """Normalize table to relative abundance (total-sum scaling).

    Args:
        table: Input table (samples × features).
        axis:  Normalization axis (0=features, 1=samples).

    Returns:
        Normalized DataFrame. Rows (or columns) summing to zero stay zero.

    Raises:
        ValueError: For invalid axis values.
    """
    if axis not in (0, 1):
        raise ValueError(f"Invalid axis: {axis}. Must be 0 (features) or 1 (samples)")

    df = table_to_df(table).astype(float)
    if axis == 1:
        totals = df.sum(axis=1).replace(0, np.nan)
        return df.div(totals, axis=0).fillna(0.0)
    totals = df.sum(axis=0).replace(0, np.nan)
    return df.div(totals, axis=1).fillna(0.0)


def clr(
    table: Union[dict, Table, pd.DataFrame],
    pseudocount: float = constants.DEFAULT_PSEUDOCOUNT
) -> pd.DataFrame:
    """Apply centered log-ratio (CLR) transformation to table.

    Args:
        table:       Input table (samples × features).
        pseudocount: Small value to add to avoid log(0).

    Returns:
        CLR-transformed DataFrame (samples × features).
    """
    df = table_to_df(table).astype(float)
    if (df.values < 0).any():
        raise ValueError("CLR requires non-negative abundances")
    clr_data = CLR(df.values + pseudocount)
    return pd.DataFrame(clr_data, index=df.index, columns=df.columns)


def collapse_taxonomy(
    table: Union[dict, Table, pd.DataFrame],
    taxonomy: pd.DataFrame,
    rank: str = constants.DEFAULT_COMPOSITION_RANK
) -> pd.DataFrame:
    """Sum features that share the same value at a taxonomic rank.

    Args:
        table:    Input table (samples × features).
        taxonomy: Taxonomy DataFrame indexed by feature ID with rank columns.
        rank:     Rank to collapse to (e.g. 'Phylum').

    Returns:
        DataFrame of samples × rank values. Features without an assignment at
        ``rank`` are pooled under 'Unclassified'.

    Raises:
        ValueError:         If ``rank`` is not a taxonomy column.
        DataIntegrityError: If a feature has no taxonomy entry.
    """
    if rank not in taxonomy.columns:
        raise ValueError(
            f"Rank '{rank}' not found in taxonomy. Available: "
            f"{[c for c in taxonomy.columns if c in constants.TAXONOMY_RANKS]}"
        )
    df = table_to_df(table)
    missing = df.columns.difference(taxonomy.index)
    if len(missing):
        raise_missing_join("taxa", missing, "abundance table", "taxonomy table")

    labels = (
        taxonomy.loc[df.columns, rank]
        .fillna(constants.UNCLASSIFIED)
        .replace('', constants.UNCLASSIFIED)
    )
    collapsed = df.T.groupby(labels.values, sort=True).sum().T
    collapsed.columns.name = rank
    logger.debug(f"Collapsed {df.shape[1]} features to {collapsed.shape[1]} {rank} groups")
    return collapsed
