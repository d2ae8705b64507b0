# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Dict, List, Optional, Union

# Third-Party Imports
import numpy as np
import pandas as pd
import statsmodels.api as sm
from biom import Table
from scipy.stats import f_oneway, kruskal
from skbio.diversity import alpha

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.utils.table_conversion import table_to_df

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

# ================================= DEFAULT VALUES =================================== #

SUPPORTED_ALPHA_METRICS = [
    'shannon', 'simpson', 'observed_features', 'chao1', 'pielou_evenness',
    'berger_parker_dominance'
]
INTEGER_METRICS = {'chao1'}

# ==================================== FUNCTIONS ===================================== #

def _is_integer_counts(values: np.ndarray) -> bool:
    return np.allclose(values, np.round(values), atol=1e-5)


def alpha_diversity(
    table: Union[Dict, Table, pd.DataFrame],
    metrics: List[str] = constants.DEFAULT_ALPHA_METRICS
) -> pd.DataFrame:
    """
    Calculate alpha diversity metrics for each sample.

    Args:
        table:   Input abundance table (samples x features).
        metrics: List of alpha diversity metrics to compute.

    Returns:
        DataFrame with alpha diversity values (samples x metrics). Samples with a
        zero total get NaN for every metric except 'observed_features'.

    Raises:
        ValueError: For unsupported metrics.
    """
    unsupported = [m for m in metrics if m not in SUPPORTED_ALPHA_METRICS]
    if unsupported:
        raise ValueError(
            f"Unsupported alpha diversity metrics: {unsupported}. "
            f"Use any of {SUPPORTED_ALPHA_METRICS}"
        )

    df = table_to_df(table).astype(float)
    results = pd.DataFrame(index=df.index)
    warned_metrics = set()

    def calculate_metric(metric: str, values: np.ndarray) -> float:
        """Helper function to compute a single metric for a sample"""
        total = values.sum()
        non_zero = int((values > 0).sum())
        if metric == 'observed_features':
            return non_zero
        if total == 0:
            return np.nan

        if metric in INTEGER_METRICS and not _is_integer_counts(values):
            if metric not in warned_metrics:
                logger.warning(
                    f"Non-integer values detected for {metric}. "
                    "Requires integer counts. Returning NaN."
                )
                warned_metrics.add(metric)
            return np.nan

        if metric == 'shannon':
            return alpha.shannon(values, base=np.e)
        elif metric == 'simpson':
            return alpha.simpson(values)
        elif metric == 'chao1':
            return alpha.chao1(np.round(values).astype(int))
        elif metric == 'pielou_evenness':
            return (
                alpha.shannon(values, base=np.e) / np.log(non_zero)
                if non_zero > 1 else np.nan
            )
        elif metric == 'berger_parker_dominance':
            return values.max() / total

    for metric in metrics:
        results[metric] = [
            calculate_metric(metric, df.loc[sample].values) for sample in df.index
        ]
    return results


def _merge_with_meta(
    alpha_df: pd.DataFrame,
    metadata: pd.DataFrame,
    column: str
) -> pd.DataFrame:
    if column not in metadata.columns:
        raise ValueError(f"Column '{column}' not found in metadata")
    merged = alpha_df.join(metadata[[column]], how='inner')
    if merged.empty:
        raise ValueError("No common samples between alpha diversity and metadata")
    if len(merged) < len(alpha_df):
        logger.warning(
            f"{len(alpha_df) - len(merged)} samples have no metadata and are ignored"
        )
    return merged


def analyze_alpha_diversity(
    alpha_diversity_df: pd.DataFrame,
    metadata: pd.DataFrame,
    group_column: str = constants.DEFAULT_GROUP_COLUMN,
    parametric: bool = False
) -> pd.DataFrame:
    """
    Test alpha diversity metrics for differences between metadata groups.

    Non-parametric mode runs Kruskal-Wallis with epsilon-squared effect size;
    parametric mode runs one-way ANOVA with eta-squared effect size. Errors
    raised by the tests propagate.

    Args:
        alpha_diversity_df: DataFrame from alpha_diversity() (samples x metrics).
        metadata:           Metadata DataFrame (must include group_column).
        group_column:       Metadata column containing group labels.
        parametric:         Use parametric tests (False for non-parametric).

    Returns:
        DataFrame with statistical results (metric, test, statistic, p-value,
        effect_size, groups, n).
    """
    merged = _merge_with_meta(alpha_diversity_df, metadata, group_column)
    groups = sorted(merged[group_column].dropna().unique(), key=str)
    if len(groups) < 2:
        raise ValueError(
            f"Grouping column '{group_column}' must contain at least 2 groups"
        )

    results = []
    for metric in alpha_diversity_df.columns:
        group_data = []
        for group in groups:
            group_vals = merged.loc[merged[group_column] == group, metric].dropna()
            if len(group_vals) == 0:
                logger.warning(f"No data for {metric} in group '{group}'")
                continue
            group_data.append(group_vals.values)

        if len(group_data) < 2:
            logger.warning(f"Insufficient groups for {metric} - skipping")
            continue

        all_values = np.concatenate(group_data)
        if np.allclose(all_values, all_values[0]):
            logger.warning(f"All values identical for {metric} - skipping")
            continue

        n_total = len(all_values)
        if parametric:
            stat, p_val = f_oneway(*group_data)
            test_name = "ANOVA"
            grand_mean = np.mean(all_values)
            ss_between = sum(len(g) * (np.mean(g) - grand_mean) ** 2 for g in group_data)
            ss_total = np.sum((all_values - grand_mean) ** 2)
            effect_size = ss_between / ss_total if ss_total != 0 else 0.0
        else:
            stat, p_val = kruskal(*group_data)
            test_name = "Kruskal-Wallis"
            effect_size = stat / ((n_total ** 2 - 1) / (n_total + 1))

        results.append({
            'metric': metric,
            'test': test_name,
            'statistic': float(stat),
            'p_value': float(p_val),
            'effect_size': float(effect_size),
            'groups': len(group_data),
            'n': n_total
        })

    return pd.DataFrame(
        results,
        columns=['metric', 'test', 'statistic', 'p_value', 'effect_size', 'groups', 'n']
    )


def alpha_regression(
    alpha_diversity_df: pd.DataFrame,
    metadata: pd.DataFrame,
    covariate: str,
    metrics: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Ordinary least squares regression of each alpha metric on a numeric covariate.

    Args:
        alpha_diversity_df: DataFrame from alpha_diversity() (samples x metrics).
        metadata:           Metadata DataFrame containing ``covariate``.
        covariate:          Numeric metadata column (e.g. age, BMI).
        metrics:            Metrics to regress (default: all columns).

    Returns:
        DataFrame with one row per metric: slope, intercept, r_squared, p_value, n.
    """
    merged = _merge_with_meta(alpha_diversity_df, metadata, covariate)
    merged[covariate] = pd.to_numeric(merged[covariate], errors='raise')
    metrics = metrics or list(alpha_diversity_df.columns)

    results = []
    for metric in metrics:
        data = merged[[metric, covariate]].dropna()
        X = sm.add_constant(data[covariate].astype(float), has_constant='add')
        model = sm.OLS(data[metric].astype(float), X).fit()
        results.append({
            'metric': metric,
            'covariate': covariate,
            'slope': float(model.params[covariate]),
            'intercept': float(model.params['const']),
            'r_squared': float(model.rsquared),
            'p_value': float(model.pvalues[covariate]),
            'n': int(model.nobs)
        })
        logger.debug(
            f"{metric} ~ {covariate}: slope={results[-1]['slope']:.4g}, "
            f"p={results[-1]['p_value']:.3g}"
        )
    return pd.DataFrame(results)
