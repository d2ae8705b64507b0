"""
Tests for plot styling and figure construction.
"""

import pandas as pd
import plotly.io as pio
import pytest

from microbiome_census.analysis.alpha import alpha_diversity, analyze_alpha_diversity
from microbiome_census.analysis.beta import distance_matrix, pcoa
from microbiome_census.analysis.composition import relative_abundance_by_rank
from microbiome_census.analysis.taxon_groups import aggregate_taxon_groups
from microbiome_census.figures.figures import (
    PlotStyle, build_template, continuous_color_map, create_color_mapping, plot_legend,
    plotly_show_and_save
)
from microbiome_census.figures.plots import (
    create_alpha_diversity_boxplot, create_ordination_plot,
    create_relative_abundance_barplot, create_taxon_group_plot
)


@pytest.fixture
def style():
    return PlotStyle(font_size=12, width=600, height=400)


def test_build_template_uses_style(style):
    template = build_template(style)
    assert template.layout.font.size == 12
    assert template.layout.font.family == style.font_family


def test_plot_style_from_config():
    style = PlotStyle.from_config({'font_size': 30, 'palette': ['#000', '#fff'], 'bogus': 1})
    assert style.font_size == 30
    assert style.palette == ('#000', '#fff')
    assert style.width == PlotStyle().width


def test_color_mapping_is_order_independent():
    forward = create_color_mapping(['Pre', 'Post', 'Pre', None])
    backward = create_color_mapping(['Post', 'Pre'])
    assert forward == backward
    assert set(forward) == {'Pre', 'Post'}


def test_color_mapping_cycles_palette():
    mapping = create_color_mapping(['a', 'b', 'c'], palette=['red', 'blue'])
    assert mapping == {'a': 'red', 'b': 'blue', 'c': 'red'}


def test_continuous_color_map_rejects_text():
    with pytest.raises(ValueError):
        continuous_color_map(pd.Series(['a', 'b']))


def test_plot_legend(style):
    fig = plot_legend({'Pre': 'red', 'Post': 'blue'}, style)
    assert [trace.name for trace in fig.data] == ['Pre', 'Post']


def test_figures_do_not_change_global_template(cohort, style):
    default_before = pio.templates.default
    table, taxonomy, metadata = cohort

    alpha_df = alpha_diversity(table, metrics=['shannon'])
    stats = analyze_alpha_diversity(alpha_df, metadata, 'timepoint')
    box = create_alpha_diversity_boxplot(
        alpha_df, metadata, 'timepoint', 'shannon', style,
        stats=stats.iloc[0].to_dict()
    )
    assert len(box.data) == 2

    ordination = pcoa(distance_matrix(table))
    scatter = create_ordination_plot(ordination, metadata, 'timepoint', style)
    assert scatter.layout.xaxis.title.text.startswith('PCo1 (')
    numeric = create_ordination_plot(ordination, metadata, 'age', style)
    assert len(numeric.data) == 1

    rel = relative_abundance_by_rank(table, taxonomy, rank='Phylum')
    bars = create_relative_abundance_barplot(rel, style, metadata, 'timepoint')
    assert len(bars.data) == rel.shape[1]
    assert bars.layout.barmode == 'stack'

    sums = aggregate_taxon_groups(table, taxonomy, metadata)
    lines = create_taxon_group_plot(sums, style)
    # one trace per subject and group
    assert len(lines.data) == 4 * 2

    assert pio.templates.default == default_before
    assert box.layout.width == 600


def test_ordination_plot_unknown_axis(cohort, style):
    table, _, metadata = cohort
    with pytest.raises(ValueError, match='PCo9'):
        create_ordination_plot(pcoa(distance_matrix(table)), metadata, 'timepoint', style, y_col='PCo9')


def test_plotly_show_and_save_html(tmp_path, style):
    fig = plot_legend({'Pre': 'red'}, style)
    written = plotly_show_and_save(fig, tmp_path / 'figs' / 'legend.html', save_as=['html'])
    assert written == [(tmp_path / 'figs' / 'legend.html').resolve()]
    assert written[0].exists()


def test_plotly_show_and_save_unknown_format(tmp_path, style):
    with pytest.raises(ValueError, match='gif'):
        plotly_show_and_save(plot_legend({}, style), tmp_path / 'x', save_as=['gif'])
