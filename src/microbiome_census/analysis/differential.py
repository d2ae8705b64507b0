# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Dict, List, Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table
from scipy.stats import kruskal
from statsmodels.stats.multitest import multipletests

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.utils.table_conversion import table_to_df

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

# ==================================== FUNCTIONS ===================================== #

def merge_table_with_meta(
    table: pd.DataFrame,
    metadata: pd.DataFrame,
    group_column: str
) -> pd.DataFrame:
    """
    Attach the grouping column to the abundance table, keeping shared samples.

    Raises:
        ValueError: If the column is missing or no samples are shared.
    """
    if group_column not in metadata.columns:
        raise ValueError(f"Column '{group_column}' not found in metadata")
    groups = metadata[group_column].copy()
    groups.index = groups.index.astype(str)
    table = table.copy()
    table.index = table.index.astype(str)
    merged = table.join(groups.rename('__group__'), how='inner')
    merged = merged.dropna(subset=['__group__'])
    if merged.empty:
        raise ValueError("No common samples between table and metadata")
    return merged


def kruskal_features(
    table: Union[Dict, Table, pd.DataFrame],
    metadata: pd.DataFrame,
    group_column: str = constants.DEFAULT_GROUP_COLUMN,
    alpha: float = constants.DEFAULT_FDR_ALPHA,
    method: str = constants.DEFAULT_FDR_METHOD,
    group_column_values: Optional[List[Union[bool, int, str]]] = None
) -> pd.DataFrame:
    """
    Kruskal-Wallis H-test per feature with multiple-testing correction.

    Features whose values are identical in every sample, or that are observed
    in fewer than two groups, are not tested.

    Args:
        table:               Abundance table (samples × features).
        metadata:            Sample metadata DataFrame.
        group_column:        Metadata column containing group labels.
        alpha:               Family-wise error / FDR level.
        method:              Correction method passed to ``multipletests``.
        group_column_values: Groups to compare (None = all groups).

    Returns:
        DataFrame with one row per tested feature (feature, h_statistic,
        p_value, q_value, epsilon_squared, groups_tested, significant), sorted
        by q-value.
    """
    columns = [
        'feature', 'h_statistic', 'p_value', 'q_value', 'epsilon_squared',
        'groups_tested', 'significant'
    ]
    merged = merge_table_with_meta(table_to_df(table), metadata, group_column)
    features = merged.columns.drop('__group__')

    if group_column_values is None:
        group_column_values = sorted(merged['__group__'].unique().tolist(), key=str)
    if len(group_column_values) < 2:
        raise ValueError(
            f"Grouping column '{group_column}' must contain at least 2 groups"
        )

    results = []
    skipped = 0
    for feature in features:
        values = merged[feature].astype(float)
        if np.allclose(values.values, values.values[0]):
            skipped += 1
            continue

        groups = []
        for group_value in group_column_values:
            group_data = values[merged['__group__'] == group_value].dropna()
            if len(group_data) > 0:
                groups.append(group_data.values)
        if len(groups) < 2:
            skipped += 1
            continue

        h_stat, p_val = kruskal(*groups)
        n_total = sum(len(g) for g in groups)
        results.append({
            'feature': feature,
            'h_statistic': float(h_stat),
            'p_value': float(p_val),
            'epsilon_squared': float(h_stat / (n_total - 1)),
            'groups_tested': len(groups)
        })

    if skipped:
        logger.debug(f"Skipped {skipped} features that could not be tested")

    results_df = pd.DataFrame(results)
    if results_df.empty:
        logger.warning(f"No features could be tested for '{group_column}'")
        return pd.DataFrame(columns=columns)

    reject, q_values, _, _ = multipletests(
        results_df['p_value'].values, alpha=alpha, method=method
    )
    results_df['q_value'] = q_values
    results_df['significant'] = reject
    results_df = results_df.sort_values(
        ['q_value', 'p_value'], kind='mergesort'
    ).reset_index(drop=True)

    logger.info(
        f"{int(results_df['significant'].sum())}/{len(results_df)} features "
        f"differ by '{group_column}' ({method}, alpha={alpha})"
    )
    return results_df[columns]
