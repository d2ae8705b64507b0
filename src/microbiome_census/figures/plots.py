# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from typing import Dict, List, Optional, Union

# Third Party Imports
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from skbio.stats.ordination import OrdinationResults

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census.analysis.taxon_groups import MEASURED, TaxonGroupSums
from microbiome_census.figures.figures import (
    PlotStyle, add_sample_size_annotation, apply_common_layout, continuous_color_map,
    create_color_mapping
)

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

# =============================== HELPER FUNCTIONS ==================================== #

def _validate_metadata(metadata: pd.DataFrame, required_cols: List[str]) -> None:
    """
    Validate presence of required columns in metadata.

    Raises:
        ValueError: If any required columns are missing.
    """
    missing = [col for col in required_cols if col and col not in metadata.columns]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")


def _prepare_visualization_data(
    data: pd.DataFrame,
    metadata: pd.DataFrame,
    columns: List[str]
) -> pd.DataFrame:
    """
    Join per-sample values with the metadata columns needed for plotting.

    Raises:
        ValueError: If no common samples exist between datasets
    """
    _validate_metadata(metadata, columns)
    data = data.copy()
    data.index = data.index.astype(str)
    meta = metadata[[c for c in dict.fromkeys(columns) if c]].copy()
    meta.index = meta.index.astype(str)
    merged = data.join(meta, how='inner')
    if merged.empty:
        raise ValueError("No common samples between data and metadata")
    if len(merged) < len(data):
        logger.debug(f"{len(data) - len(merged)} samples lack metadata and are not plotted")
    return merged


def _pretty(label: str) -> str:
    return str(label).replace('_', ' ').title()

# ==================================== FIGURES ======================================= #

def create_alpha_diversity_boxplot(
    alpha_df: pd.DataFrame,
    metadata: pd.DataFrame,
    group_column: str,
    metric: str,
    style: PlotStyle,
    stats: Optional[Dict] = None,
    add_points: bool = True
) -> go.Figure:
    """
    Boxplot of one alpha diversity metric per metadata group.

    Args:
        alpha_df:     DataFrame of alpha diversity metrics (samples × metrics).
        metadata:     Sample metadata DataFrame.
        group_column: Column in metadata defining groups.
        metric:       Alpha diversity metric to plot.
        style:        Plot style.
        stats:        Optional test result row (as returned by
                      ``analyze_alpha_diversity``) to annotate.
        add_points:   Overlay individual samples.

    Returns:
        Plotly Figure object
    """
    if metric not in alpha_df.columns:
        raise ValueError(f"Metric '{metric}' not found in alpha diversity table")
    merged = _prepare_visualization_data(alpha_df[[metric]], metadata, [group_column])
    merged = merged.dropna(subset=[metric, group_column])

    colordict = create_color_mapping(merged[group_column], style.palette)
    fig = go.Figure()
    for group in sorted(merged[group_column].astype(str).unique()):
        group_data = merged.loc[merged[group_column].astype(str) == group, metric]
        fig.add_trace(go.Box(
            y=group_data,
            name=group,
            boxpoints='all' if add_points else False,
            jitter=0.3,
            pointpos=-1.8,
            marker=dict(size=style.marker_size // 2, color=colordict[group]),
            line=dict(color=colordict[group]),
            showlegend=False
        ))

    fig = apply_common_layout(
        fig, style, _pretty(group_column), _pretty(metric),
        f"{_pretty(metric)} by '{group_column}'"
    )
    fig.update_layout(showlegend=False)
    if stats:
        fig.add_annotation(
            text=(
                f"{stats['test']}: p = {stats['p_value']:.3g}, "
                f"effect size = {stats['effect_size']:.3f}"
            ),
            xref="paper", yref="paper",
            x=0.01, y=0.99,
            xanchor="left", yanchor="top",
            showarrow=False,
            font=dict(size=style.font_size, color="black"),
        )
    return add_sample_size_annotation(fig, len(merged), style)


def create_ordination_plot(
    ordination: Union[OrdinationResults, pd.DataFrame],
    metadata: pd.DataFrame,
    color_col: str,
    style: PlotStyle,
    symbol_col: Optional[str] = None,
    x_col: str = 'PCo1',
    y_col: str = 'PCo2',
    title: Optional[str] = None
) -> go.Figure:
    """
    Scatter plot of samples on two ordination axes.

    Numeric ``color_col`` values are drawn on a continuous colour scale;
    anything else is treated as categorical.

    Args:
        ordination: OrdinationResults from ``pcoa`` or a samples × axes DataFrame.
        metadata:   Sample metadata DataFrame.
        color_col:  Column to use for point colouring.
        style:      Plot style.
        symbol_col: Optional column to use for point symbols.
        x_col:      Axis plotted horizontally.
        y_col:      Axis plotted vertically.
        title:      Plot title.

    Returns:
        Plotly Figure object
    """
    if isinstance(ordination, OrdinationResults):
        components = ordination.samples
        explained = ordination.proportion_explained
    else:
        components, explained = ordination, None
    for col in (x_col, y_col):
        if col not in components.columns:
            raise ValueError(f"Axis '{col}' not found in ordination")

    merged = _prepare_visualization_data(
        components[[x_col, y_col]], metadata, [color_col, symbol_col]
    )

    def axis_title(col: str) -> str:
        if explained is not None and col in explained.index:
            return f"{col} ({100 * explained[col]:.1f}%)"
        return col

    hover = [c for c in (color_col, symbol_col) if c]
    if pd.api.types.is_numeric_dtype(merged[color_col]):
        fig = go.Figure(go.Scatter(
            x=merged[x_col],
            y=merged[y_col],
            mode='markers',
            text=merged.index,
            marker=dict(
                size=style.marker_size,
                color=continuous_color_map(merged[color_col], style.continuous_colormap),
                opacity=style.opacity
            ),
            showlegend=False
        ))
    else:
        merged[color_col] = merged[color_col].astype(str)
        colordict = create_color_mapping(merged[color_col], style.palette)
        fig = px.scatter(
            merged.reset_index(),
            x=x_col,
            y=y_col,
            color=color_col,
            symbol=symbol_col,
            color_discrete_map=colordict,
            category_orders={color_col: list(colordict)},
            hover_data=hover,
            opacity=style.opacity
        )
        fig.update_traces(marker=dict(size=style.marker_size))

    fig = apply_common_layout(
        fig, style, axis_title(x_col), axis_title(y_col),
        title or f"Ordination coloured by '{color_col}'"
    )
    return add_sample_size_annotation(fig, len(merged), style)


def create_relative_abundance_barplot(
    rel_df: pd.DataFrame,
    style: PlotStyle,
    metadata: Optional[pd.DataFrame] = None,
    group_column: Optional[str] = None,
    title: Optional[str] = None
) -> go.Figure:
    """
    Stacked bar chart of relative abundances, one bar per sample (or group).

    Args:
        rel_df:       Relative abundances (samples × taxa), e.g. from
                      ``relative_abundance_by_rank``.
        style:        Plot style.
        metadata:     If given with ``group_column``, samples are ordered by
                      group.
        group_column: Metadata column used to order samples.
        title:        Plot title.

    Returns:
        Plotly Figure object
    """
    data = rel_df.copy()
    data.index = data.index.astype(str)
    x_title = 'Sample'
    if metadata is not None and group_column:
        merged = _prepare_visualization_data(data, metadata, [group_column])
        merged = merged.sort_values(group_column, kind='mergesort')
        data = merged.drop(columns=[group_column])
        x_title = f"Sample (ordered by '{group_column}')"

    colordict = create_color_mapping(data.columns, style.palette)
    fig = go.Figure()
    for taxon in data.columns:
        fig.add_trace(go.Bar(
            x=data.index,
            y=data[taxon],
            name=str(taxon),
            marker_color=colordict[str(taxon)]
        ))
    fig.update_layout(barmode='stack')
    fig = apply_common_layout(
        fig, style, x_title, 'Relative Abundance',
        title or f"Relative abundance ({rel_df.columns.name or 'taxa'})"
    )
    fig.update_yaxes(range=[0, 1])
    return fig


def create_taxon_group_plot(
    sums: TaxonGroupSums,
    style: PlotStyle,
    title: Optional[str] = None
) -> go.Figure:
    """
    Per-subject trajectories of taxon group sums across timepoints.

    Each subject contributes one line per group; timepoints at which the
    subject was not sampled are left out rather than drawn as 0.

    Args:
        sums:  Output of ``aggregate_taxon_groups``.
        style: Plot style.
        title: Plot title.

    Returns:
        Plotly Figure object
    """
    long_df = sums.to_long()
    long_df = long_df[long_df['status'] == MEASURED]
    colordict = create_color_mapping(sums.groups, style.palette)
    timepoints = [str(tp) for tp in sums.timepoints]

    fig = go.Figure()
    shown = set()
    for (group, subject), rows in long_df.groupby(['group', 'subject'], sort=True):
        group = str(group)
        fig.add_trace(go.Scatter(
            x=rows['timepoint'].astype(str),
            y=rows['abundance'],
            mode='lines+markers',
            name=group,
            legendgroup=group,
            showlegend=group not in shown,
            text=[str(subject)] * len(rows),
            hovertemplate="%{text}: %{y}<extra>" + group + "</extra>",
            line=dict(color=colordict[group], width=style.line_width),
            marker=dict(size=style.marker_size),
            opacity=style.opacity
        ))
        shown.add(group)

    fig = apply_common_layout(
        fig, style, 'Timepoint', 'Abundance',
        title or f"{sums.rank} abundance by timepoint"
    )
    fig.update_xaxes(categoryorder='array', categoryarray=timepoints)
    return fig
