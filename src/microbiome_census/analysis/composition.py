# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Dict, Union

# Third-Party Imports
import pandas as pd
from biom import Table

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.utils.table_processing import collapse_taxonomy, normalize
from microbiome_census.utils.taxonomy_utils import Taxonomy, as_taxonomy

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

# ==================================== FUNCTIONS ===================================== #

def relative_abundance_by_rank(
    table: Union[Dict, Table, pd.DataFrame],
    taxonomy: Union[Taxonomy, pd.DataFrame],
    rank: str = constants.DEFAULT_COMPOSITION_RANK,
    top_n: int = constants.DEFAULT_TOP_N
) -> pd.DataFrame:
    """
    Relative abundance of each taxon at ``rank`` per sample.

    Args:
        table:    Abundance table (samples × features).
        taxonomy: Taxonomy covering every feature in ``table``.
        rank:     Rank to collapse to.
        top_n:    Number of taxa (by mean relative abundance) to keep; the rest
                  are summed into 'Other'. ``None`` or 0 keeps everything.

    Returns:
        Samples × taxa DataFrame whose rows sum to 1 (or 0 for empty samples),
        columns ordered by decreasing mean abundance with 'Other' last.
    """
    taxonomy = as_taxonomy(taxonomy)
    collapsed = collapse_taxonomy(table, taxonomy.taxonomy, rank)
    rel = normalize(collapsed, axis=1)

    order = rel.mean(axis=0).sort_values(ascending=False, kind='mergesort').index
    rel = rel[order]
    if top_n and rel.shape[1] > top_n:
        kept = rel.iloc[:, :top_n].copy()
        kept[constants.OTHER_LABEL] = rel.iloc[:, top_n:].sum(axis=1)
        rel = kept
        logger.debug(
            f"Kept top {top_n} of {len(order)} {rank} taxa; "
            f"remaining folded into '{constants.OTHER_LABEL}'"
        )
    rel.columns.name = rank
    return rel


def mean_abundance_by_group(
    rel_df: pd.DataFrame,
    metadata: pd.DataFrame,
    group_column: str = constants.DEFAULT_GROUP_COLUMN
) -> pd.DataFrame:
    """
    Mean relative abundance per metadata group.

    Args:
        rel_df:       Relative abundance table (samples × taxa).
        metadata:     Sample metadata indexed by sample ID.
        group_column: Metadata column to group by.

    Returns:
        Groups × taxa DataFrame. Samples without a group value are ignored.
    """
    if group_column not in metadata.columns:
        raise ValueError(f"Column '{group_column}' not found in metadata")
    groups = metadata[group_column].reindex(rel_df.index)
    missing = groups.isna().sum()
    if missing:
        logger.warning(f"{missing} samples have no '{group_column}' value and are ignored")
    means = rel_df.groupby(groups.values, sort=True).mean()
    means.index.name = group_column
    return means
