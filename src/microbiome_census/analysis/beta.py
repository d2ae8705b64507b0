# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Any, Dict, Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table
from skbio.stats.distance import DistanceMatrix, permanova as PERMANOVA
from skbio.stats.ordination import OrdinationResults, pcoa as PCoA
from sklearn.metrics import pairwise_distances

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.utils.table_conversion import table_to_df
from microbiome_census.utils.table_processing import clr

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

# ================================== CONSTANTS ======================================= #

SUPPORTED_BETA_METRICS = {'braycurtis', 'jaccard', 'aitchison', 'euclidean'}

# =============================== HELPER FUNCTIONS ==================================== #

def validate_min_samples(df: pd.DataFrame, min_samples: int = 2) -> None:
    """Validate that the input contains sufficient samples for analysis.

    Raises:
        ValueError: If number of samples is less than required minimum
    """
    if len(df) < min_samples:
        raise ValueError(f"At least {min_samples} samples required, got {len(df)}")


def _drop_empty_samples(df: pd.DataFrame) -> pd.DataFrame:
    totals = df.sum(axis=1)
    empty = totals.index[totals == 0]
    if len(empty):
        logger.warning(
            f"Dropped {len(empty)} samples with zero total abundance: "
            f"{list(map(str, empty[:5]))}"
        )
    return df.loc[totals > 0]

# =============================== CORE FUNCTIONALITY ================================== #

def validate_distance_matrix(dm: DistanceMatrix) -> DistanceMatrix:
    """Validate a distance matrix before ordination or testing.

    Checks that the matrix holds no NaNs, is symmetric and is not degenerate
    (all distances zero), and forces an exactly symmetric matrix with a zero
    diagonal.

    Args:
        dm: Input DistanceMatrix object

    Returns:
        Cleaned DistanceMatrix

    Raises:
        ValueError: For invalid distance matrices
    """
    dm_data = dm.data.copy()

    if np.isnan(dm_data).any():
        raise ValueError("Distance matrix contains NaN values")

    if not np.allclose(dm_data, dm_data.T, atol=1e-8):
        raise ValueError("Distance matrix is not symmetric")
    dm_data = (dm_data + dm_data.T) / 2

    if dm_data.size > 1 and np.allclose(dm_data, 0.0):
        raise ValueError("Distance matrix is degenerate (all distances are zero)")

    np.fill_diagonal(dm_data, 0.0)
    return DistanceMatrix(dm_data, ids=dm.ids)


def distance_matrix(
    table: Union[Dict, Table, pd.DataFrame],
    metric: str = constants.DEFAULT_METRIC,
    pseudocount: float = constants.DEFAULT_PSEUDOCOUNT
) -> DistanceMatrix:
    """Compute pairwise distances between samples.

    'braycurtis' is computed on relative abundances, 'jaccard' on
    presence/absence, 'aitchison' as the Euclidean distance between CLR
    transformed profiles and 'euclidean' on the raw values.

    Args:
        table:       Input table (samples × features).
        metric:      Distance metric to use.
        pseudocount: Pseudocount added before the CLR for 'aitchison'.

    Returns:
        DistanceMatrix with string sample IDs.

    Raises:
        ValueError: For unsupported metrics, or input containing NaN or infinite
            values.
    """
    if metric not in SUPPORTED_BETA_METRICS:
        raise ValueError(
            f"Unsupported beta diversity metric: '{metric}'. "
            f"Use any of {sorted(SUPPORTED_BETA_METRICS)}"
        )
    df = table_to_df(table).astype(float)

    if np.isnan(df.values).any():
        raise ValueError("Input data contains NaN values")
    if np.isinf(df.values).any():
        raise ValueError("Input data contains infinite values")

    df = _drop_empty_samples(df)
    validate_min_samples(df, min_samples=2)
    sample_ids = [str(i) for i in df.index]

    if metric == 'aitchison':
        data = clr(df, pseudocount=pseudocount).values
        dist_array = pairwise_distances(data, metric='euclidean')
    elif metric == 'jaccard':
        dist_array = pairwise_distances(df.values > 0, metric='jaccard')
    elif metric == 'braycurtis':
        rel = df.div(df.sum(axis=1), axis=0)
        dist_array = pairwise_distances(rel.values, metric='braycurtis')
    else:
        dist_array = pairwise_distances(df.values, metric='euclidean')

    dist_array = (dist_array + dist_array.T) / 2
    np.fill_diagonal(dist_array, 0.0)
    logger.debug(f"Computed {metric} distances for {len(sample_ids)} samples")
    return DistanceMatrix(dist_array, ids=sample_ids)


def pcoa(
    dm: DistanceMatrix,
    n_dimensions: Optional[int] = constants.DEFAULT_N_PCOA
) -> OrdinationResults:
    """Principal Coordinate Analysis of a distance matrix.

    Args:
        dm:           Distance matrix between samples.
        n_dimensions: Number of axes to keep; capped at n_samples - 1.

    Returns:
        OrdinationResults whose sample coordinates and proportions explained
        are labelled PCo1, PCo2, ...

    Raises:
        ValueError: For fewer than 3 samples or invalid distance matrices.
    """
    if dm.shape[0] < 3:
        raise ValueError(f"PCoA requires at least 3 samples, got {dm.shape[0]}")
    dm = validate_distance_matrix(dm)

    max_dims = dm.shape[0] - 1
    n_dimensions = min(n_dimensions, max_dims) if n_dimensions else max_dims

    pcoa_result = PCoA(dm, number_of_dimensions=n_dimensions)

    comp_names = [f"PCo{i+1}" for i in range(pcoa_result.samples.shape[1])]
    pcoa_result.samples.columns = comp_names
    pcoa_result.proportion_explained.index = comp_names
    pcoa_result.eigvals.index = comp_names
    return pcoa_result


def permanova(
    dm: DistanceMatrix,
    metadata: pd.DataFrame,
    group_column: str,
    permutations: int = constants.DEFAULT_PERMUTATIONS
) -> Dict[str, Any]:
    """PERMANOVA test for differences in community composition between groups.

    Samples in ``dm`` without a value in ``group_column`` are excluded. R² is
    derived from the pseudo-F statistic as F(k-1) / (F(k-1) + (N-k)).

    Args:
        dm:           Distance matrix between samples.
        metadata:     Sample metadata indexed by sample ID.
        group_column: Metadata column holding the grouping.
        permutations: Number of permutations.

    Returns:
        Dictionary with the pseudo-F statistic, p-value, R², sample size and
        number of groups.

    Raises:
        ValueError: If the grouping column is missing or defines fewer than 2
            groups.
    """
    if group_column not in metadata.columns:
        raise ValueError(f"Column '{group_column}' not found in metadata")

    grouping = metadata[group_column].copy()
    grouping.index = grouping.index.astype(str)
    grouping = grouping.reindex(list(dm.ids)).dropna()
    if len(grouping) < len(dm.ids):
        logger.warning(
            f"{len(dm.ids) - len(grouping)} samples have no '{group_column}' "
            "value and are excluded from PERMANOVA"
        )
    if grouping.nunique() < 2:
        raise ValueError(
            f"Grouping column '{group_column}' must contain at least 2 groups"
        )

    sub_dm = dm.filter(grouping.index.tolist())
    result = PERMANOVA(sub_dm, grouping.astype(str), permutations=permutations)

    f_stat = float(result['test statistic'])
    n = int(result['sample size'])
    k = int(result['number of groups'])
    r_squared = f_stat * (k - 1) / (f_stat * (k - 1) + (n - k)) if n > k else np.nan

    logger.info(
        f"PERMANOVA on '{group_column}': F={f_stat:.3f}, "
        f"p={float(result['p-value']):.4f}, R²={r_squared:.3f}"
    )
    return {
        'test': 'PERMANOVA',
        'group_column': group_column,
        'statistic': f_stat,
        'p_value': float(result['p-value']),
        'r_squared': float(r_squared),
        'n': n,
        'groups': k,
        'permutations': permutations
    }
