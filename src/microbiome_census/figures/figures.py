# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

# Third Party Imports
import colorcet as cc
import matplotlib
import matplotlib.colors as mcolors
import numpy as np
import pandas as pd
import plotly.graph_objects as go

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

# ================================= GLOBAL VARIABLES ================================= #

largecolorset = list(
    cc.glasbey + cc.glasbey_light + cc.glasbey_warm + cc.glasbey_cool + cc.glasbey_dark
)
STATIC_FORMATS = {"png", "jpg", "jpeg", "pdf", "svg", "eps"}

# ==================================== CLASSES ======================================= #

@dataclass(frozen=True)
class PlotStyle:
    """
    Visual settings handed to every figure function.

    Nothing is registered with ``plotly.io.templates``; each figure builds its
    own template from the style it is given.
    """
    font_family: str = constants.DEFAULT_FONT_FAMILY
    title_font_family: str = constants.DEFAULT_TITLE_FONT_FAMILY
    font_size: int = constants.DEFAULT_FONT_SIZE
    title_font_size: int = constants.DEFAULT_TITLE_FONT_SIZE
    width: int = constants.DEFAULT_WIDTH
    height: int = constants.DEFAULT_HEIGHT
    palette: Tuple[str, ...] = field(default_factory=lambda: tuple(largecolorset))
    continuous_colormap: str = 'viridis'
    line_width: int = 2
    marker_size: int = 10
    opacity: float = 0.8
    show_legend: bool = True

    @classmethod
    def from_config(cls, plot_config: Optional[Dict] = None) -> "PlotStyle":
        """Build a style from the ``plots`` config section; unknown keys are ignored."""
        plot_config = plot_config or {}
        style = cls()
        known = {
            k: v for k, v in plot_config.items()
            if k in cls.__dataclass_fields__ and k != 'palette'
        }
        if plot_config.get('palette'):
            known['palette'] = tuple(plot_config['palette'])
        return replace(style, **known)

# ==================================== FUNCTIONS ===================================== #

def build_template(style: PlotStyle) -> go.layout.Template:
    """Plotly layout template for ``style``."""
    axis = {
        'showgrid': False,
        'zeroline': False,
        'showline': True,
        'linewidth': style.line_width,
        'linecolor': 'black',
        'automargin': True,
        'mirror': True
    }
    return go.layout.Template(
        layout={
            'title': {
                'font': {
                    'family': style.title_font_family,
                    'size': style.title_font_size,
                    'color': '#000'
                }
            },
            'font': {
                'family': style.font_family,
                'size': style.font_size,
                'color': '#000'
            },
            'paper_bgcolor': 'rgba(0, 0, 0, 0)',  # Transparent
            'plot_bgcolor': '#fff',
            'colorway': list(style.palette),
            'xaxis': axis,
            'yaxis': axis
        }
    )


def create_color_mapping(
    values: Iterable,
    palette: Optional[List[str]] = None
) -> Dict[str, str]:
    """
    Map each distinct category to a colour.

    Categories are sorted by their string form, so the mapping only depends on
    the set of values and not on their order.

    Args:
        values:  Category labels (NaN is ignored).
        palette: Colours to cycle through (default: glasbey set).

    Returns:
        Dictionary of {category (str): colour}.
    """
    palette = list(palette or largecolorset)
    categories = sorted({str(v) for v in pd.Series(list(values)).dropna()})
    return {c: palette[i % len(palette)] for i, c in enumerate(categories)}


def continuous_color_map(
    values: pd.Series,
    colormap: str = 'viridis'
) -> List[str]:
    """
    RGBA colour strings for numeric values, NaN mapped to transparent.

    Raises:
        ValueError: If ``values`` is not numeric.
    """
    if not pd.api.types.is_numeric_dtype(values):
        message = f"Continuous colours require numeric data, got '{values.dtype}'"
        logger.error(message)
        raise ValueError(message)
    cmap = matplotlib.colormaps[colormap]
    norm = mcolors.Normalize(vmin=values.min(), vmax=values.max())
    colors = []
    for value in values:
        if np.isnan(value):
            colors.append('rgba(0, 0, 0, 0)')
            continue
        r, g, b, a = cmap(norm(value))
        colors.append(f'rgba({int(r * 255)}, {int(g * 255)}, {int(b * 255)}, {a})')
    return colors


def plot_legend(
    color_dict: Dict[str, str],
    style: PlotStyle,
    max_height: int = 600  # pixels before wrapping to another column
) -> go.Figure:
    """
    Creates a standalone Plotly legend from a dictionary of labels and colours.

    Args:
        color_dict: Dictionary with labels as keys and colours as values.
        style:      Plot style.
        max_height: Maximum pixel height before creating additional columns.

    Returns:
        Plotly Figure object containing only the legend
    """
    if not color_dict:
        return go.Figure()

    items = list(color_dict.items())
    n = len(items)

    row_height = 30  # pixels per row
    max_rows = max(1, min(n, max_height // row_height))
    n_cols = (n + max_rows - 1) // max_rows
    n_rows = min(n, max_rows)

    fig = go.Figure()
    for label, color in items:
        fig.add_trace(
            go.Scatter(
                x=[None],
                y=[None],
                mode='markers',
                marker=dict(color=color, size=15),
                name=str(label),
                showlegend=True
            )
        )

    fig.update_layout(
        legend=dict(
            title=None,
            orientation='v',
            itemsizing='constant',
            itemwidth=30,
            traceorder='normal',
            bordercolor='black',
            borderwidth=1
        ),
        template=build_template(style),
        width=200 * n_cols,
        height=row_height * n_rows + 100,
        margin=dict(l=0, r=0, t=0, b=0)
    )
    fig.update_xaxes(showgrid=False, showticklabels=False, zeroline=False, showline=False)
    fig.update_yaxes(showgrid=False, showticklabels=False, zeroline=False, showline=False)
    return fig


def apply_common_layout(
    fig: go.Figure,
    style: PlotStyle,
    x_title: str,
    y_title: str,
    title: Optional[str] = None
) -> go.Figure:
    """
    Apply the style's template, size and axis titles to a figure.
    """
    layout_updates = {
        'template': build_template(style),
        'height': style.height,
        'width': style.width,
        'showlegend': style.show_legend,
        'xaxis_title': x_title,
        'yaxis_title': y_title
    }
    if title:
        layout_updates.update({'title_text': title, 'title_x': 0.5})
    fig.update_layout(**layout_updates)
    return fig


def add_sample_size_annotation(fig: go.Figure, n: int, style: PlotStyle) -> go.Figure:
    fig.add_annotation(
        text=f"n = {n}",
        xref="paper", yref="paper",
        x=0.99, y=0.01,                    # bottom-right corner
        xanchor="right", yanchor="bottom",
        showarrow=False,
        font=dict(size=style.font_size, color="black"),
        bgcolor="rgba(255,255,255,0.4)",
    )
    return fig


def plotly_show_and_save(
    fig: go.Figure,
    output_path: Optional[Union[str, Path]] = None,
    save_as: List[str] = constants.DEFAULT_SAVE_AS,
    show: bool = False,
    scale: int = 3,
    **write_kwargs
) -> List[Path]:
    """
    Save a Plotly figure to HTML and/or static formats and optionally display it.

    Args:
        fig:            Plotly Figure object to be saved/displayed.
        output_path:    Base output path. Format-specific extensions are appended
                        (e.g. 'plot' becomes 'plot.html'); the directory is
                        created if needed.
        save_as:        Formats to save ('html', 'png', 'svg', 'pdf', ...).
        show:           Whether to display the figure.
        scale:          Scale factor for raster outputs.
        **write_kwargs: Extra args forwarded to ``fig.write_image`` /
                        ``fig.write_html``.

    Returns:
        Paths written.

    Raises:
        ValueError: For unknown formats.

    Notes:
        Static formats need the kaleido package (``pip install .[export]``);
        export errors are logged and re-raised.
    """
    unknown = set(save_as) - STATIC_FORMATS - {'html'}
    if unknown:
        raise ValueError(f"Unsupported figure formats: {sorted(unknown)}")

    written = []
    if output_path:
        base = Path(output_path).expanduser().resolve()
        base.parent.mkdir(parents=True, exist_ok=True)
        stem = str(base)
        for ext in list(STATIC_FORMATS) + ['html']:
            stem = stem.removesuffix(f'.{ext}')

        for ext in sorted(STATIC_FORMATS.intersection(save_as)):
            target = Path(f"{stem}.{ext}")
            try:
                fig.write_image(str(target), format=ext, scale=scale, **write_kwargs)
            except (ValueError, RuntimeError, ImportError) as e:
                logger.error(
                    f"Failed to save figure to '{target}': {e}. "
                    "Make sure the export engine is installed "
                    "(e.g. `pip install -U kaleido`)."
                )
                raise
            logger.debug(f"Saved figure to '{target}'.")
            written.append(target)

        if 'html' in save_as:
            target = Path(f"{stem}.html")
            fig.write_html(str(target), include_plotlyjs='cdn', **write_kwargs)
            logger.debug(f"Saved figure to '{target}'.")
            written.append(target)

    if show:
        fig.show()
    return written
