"""
Tests for the per-subject, per-timepoint taxon group aggregator.
"""

import math
import warnings

import numpy as np
import pandas as pd
import pytest

from microbiome_census.analysis.taxon_groups import (
    ABSENT, MEASURED, aggregate_taxon_group, aggregate_taxon_groups, group_ratio,
    paired_timepoint_test
)
from microbiome_census.errors import DataIntegrityError, EmptySelectionWarning


def _aggregate(table, taxonomy, metadata, **kwargs):
    kwargs.setdefault('rank', 'Phylum')
    kwargs.setdefault('values', ['Firmicutes', 'Bacteroidota'])
    return aggregate_taxon_groups(table, taxonomy, metadata, **kwargs)


def test_worked_example(table, taxonomy, metadata):
    sums = _aggregate(table, taxonomy, metadata)
    assert sums.get('S1', 'Pre', 'Firmicutes') == 13
    assert sums.get('S1', 'Pre', 'Bacteroidota') == 5


def test_sums_match_hand_computed_cells(table, taxonomy, metadata):
    frame = _aggregate(table, taxonomy, metadata).to_frame()

    expected = pd.DataFrame(
        {
            'Pre_Firmicutes': [13.0, 6.0],
            'Pre_Bacteroidota': [5.0, 2.0],
            'Post_Firmicutes': [5.0, 0.0],
            'Post_Bacteroidota': [8.0, 0.0],
        },
        index=pd.Index(['S1', 'S2'], name='subject'),
    )
    pd.testing.assert_frame_equal(frame, expected)


def test_each_group_summed_from_its_own_taxa(table, taxonomy, metadata):
    sums = _aggregate(table, taxonomy, metadata)
    # Post Bacteroidota must not repeat the Post Firmicutes value
    assert sums.get('S1', 'Post', 'Firmicutes') == 5
    assert sums.get('S1', 'Post', 'Bacteroidota') == 8


def test_aggregation_is_idempotent(table, taxonomy, metadata):
    table_before = table.copy()
    first = _aggregate(table, taxonomy, metadata).to_frame(with_status=True)
    second = _aggregate(table, taxonomy, metadata).to_frame(with_status=True)
    pd.testing.assert_frame_equal(first, second)
    pd.testing.assert_frame_equal(table, table_before)


def test_absent_timepoint_is_distinguishable_from_measured_zero(table, taxonomy, metadata):
    sums = _aggregate(table, taxonomy, metadata, values=['Firmicutes', 'Proteobacteria'])

    # S2 has no Post sample: zero by absence
    assert sums.get('S2', 'Post', 'Firmicutes') == 0
    assert not sums.is_measured('S2', 'Post')

    # S1 Post was sampled but has no Proteobacteria: measured zero
    assert sums.get('S1', 'Post', 'Proteobacteria') == 0
    assert sums.is_measured('S1', 'Post')

    frame = sums.to_frame(with_status=True)
    assert frame.loc['S2', 'Post_status'] == ABSENT
    assert frame.loc['S1', 'Post_status'] == MEASURED
    assert list(frame.columns) == [
        'Pre_Firmicutes', 'Pre_Proteobacteria', 'Pre_status',
        'Post_Firmicutes', 'Post_Proteobacteria', 'Post_status',
    ]


def test_long_format(table, taxonomy, metadata):
    long_df = _aggregate(table, taxonomy, metadata).to_long()
    assert len(long_df) == 2 * 2 * 2
    row = long_df[
        (long_df['subject'] == 'S2') & (long_df['timepoint'] == 'Post')
        & (long_df['group'] == 'Bacteroidota')
    ].iloc[0]
    assert row['abundance'] == 0
    assert row['status'] == ABSENT


def test_group_without_taxa_warns_and_sums_to_zero(table, taxonomy, metadata):
    with pytest.warns(EmptySelectionWarning, match='Actinobacteriota'):
        sums = _aggregate(table, taxonomy, metadata, values=['Actinobacteriota'])

    assert sums.empty_groups == ('Actinobacteriota',)
    assert (sums.to_frame().values == 0).all()


def test_matching_groups_do_not_warn(table, taxonomy, metadata):
    with warnings.catch_warnings():
        warnings.simplefilter('error', EmptySelectionWarning)
        _aggregate(table, taxonomy, metadata)


def test_sample_missing_from_table_raises(table, taxonomy, metadata):
    extra = pd.DataFrame(
        {'subject': ['S3'], 'timepoint': ['Pre']},
        index=pd.Index(['S3_Pre'], name='sample_id'),
    )
    with pytest.raises(DataIntegrityError, match='S3_Pre'):
        _aggregate(table, taxonomy, pd.concat([metadata, extra]))


def test_sample_missing_from_metadata_raises(table, taxonomy, metadata):
    with pytest.raises(DataIntegrityError, match='S2_Pre'):
        _aggregate(table, taxonomy, metadata.drop(index='S2_Pre'))


def test_duplicate_metadata_sample_raises(table, taxonomy, metadata):
    doubled = pd.concat([metadata, metadata.loc[['S1_Pre']]])
    with pytest.raises(DataIntegrityError, match='S1_Pre'):
        _aggregate(table, taxonomy, doubled, values=['Firmicutes'])


def test_taxon_missing_from_taxonomy_raises(table, taxonomy, metadata):
    table = table.assign(E=[1, 1, 1])
    with pytest.raises(DataIntegrityError, match='taxa'):
        _aggregate(table, taxonomy, metadata)


def test_missing_metadata_column_raises(table, taxonomy, metadata):
    with pytest.raises(DataIntegrityError, match='subject'):
        _aggregate(table, taxonomy, metadata.drop(columns='subject'))


def test_data_integrity_error_is_a_value_error():
    assert issubclass(DataIntegrityError, ValueError)


def test_timepoints_default_to_metadata_values(table, taxonomy, metadata):
    sums = _aggregate(table, taxonomy, metadata, timepoints=None)
    assert sums.timepoints == ('Post', 'Pre')


def test_single_group_form(table, taxonomy, metadata):
    sums = aggregate_taxon_group(table, taxonomy, metadata, rank='Class', value='Bacilli')
    assert sums.columns == ['Pre_Bacilli', 'Post_Bacilli']
    assert sums.get('S1', 'Pre', 'Bacilli') == 10


def test_group_ratio(table, taxonomy, metadata):
    ratios = group_ratio(_aggregate(table, taxonomy, metadata), 'Firmicutes', 'Bacteroidota')

    assert ratios.loc['S1', 'Pre'] == pytest.approx(13 / 5)
    assert ratios.loc['S1', 'Post'] == pytest.approx(5 / 8)
    assert ratios.loc['S2', 'Pre'] == pytest.approx(3.0)
    assert math.isnan(ratios.loc['S2', 'Post'])


def test_group_ratio_unknown_group(table, taxonomy, metadata):
    with pytest.raises(ValueError, match='Actinobacteriota'):
        group_ratio(_aggregate(table, taxonomy, metadata), 'Actinobacteriota', 'Bacteroidota')


def test_paired_timepoint_test():
    ratios = pd.DataFrame(
        {
            'Pre': [1.0, 2.0, 3.0, 4.0, 5.0, 6.0, np.nan],
            'Post': [1.5, 2.7, 3.9, 5.2, 6.6, 8.1, 2.0],
        },
        index=[f"P{i}" for i in range(7)],
    )
    result = paired_timepoint_test(ratios, 'Pre', 'Post')

    assert result['n_pairs'] == 6
    assert result['statistic'] == 0
    assert result['p_value'] == pytest.approx(0.03125)
    assert result['median_Pre'] == pytest.approx(3.5)


def test_paired_timepoint_test_unknown_timepoint():
    ratios = pd.DataFrame({'Pre': [1.0], 'Post': [2.0]})
    with pytest.raises(ValueError, match='Week4'):
        paired_timepoint_test(ratios, 'Pre', 'Week4')
