"""
Tests for table conversion, normalisation, filtering, taxonomy parsing and the
census snapshot.
"""

import numpy as np
import pandas as pd
import pytest
from biom import Table

from microbiome_census import constants
from microbiome_census.census import CensusData
from microbiome_census.errors import DataIntegrityError, EmptySelectionWarning
from microbiome_census.utils.table_conversion import table_to_df, to_biom
from microbiome_census.utils.table_filtering import (
    filter as filter_table, filter_features, filter_samples, presence_absence
)
from microbiome_census.utils.table_processing import clr, collapse_taxonomy, normalize
from microbiome_census.utils.taxonomy_utils import Taxonomy, as_taxonomy


# ---------------------------------- conversion ---------------------------------- #

def test_biom_round_trip_orientation(table):
    biom_table = to_biom(table)
    assert isinstance(biom_table, Table)
    # BIOM is features × samples
    assert biom_table.shape == (4, 3)
    df = table_to_df(biom_table)
    assert list(df.index) == list(table.index)
    assert df.loc['S1_Pre', 'A'] == 10


def test_table_to_df_rejects_unknown_types():
    with pytest.raises(TypeError):
        table_to_df([[1, 2], [3, 4]])

# ------------------------------- transformations -------------------------------- #

def test_normalize_rows_sum_to_one(table):
    rel = normalize(table)
    np.testing.assert_allclose(rel.sum(axis=1).values, 1.0)
    assert rel.loc['S1_Pre', 'A'] == pytest.approx(0.5)


def test_normalize_keeps_empty_samples_at_zero(table):
    table = pd.concat([table, pd.DataFrame([[0, 0, 0, 0]], index=['Empty'], columns=table.columns)])
    rel = normalize(table)
    assert (rel.loc['Empty'] == 0).all()


def test_normalize_invalid_axis(table):
    with pytest.raises(ValueError):
        normalize(table, axis=2)


def test_clr_rows_are_centred(table):
    transformed = clr(table)
    np.testing.assert_allclose(transformed.sum(axis=1).values, 0.0, atol=1e-10)
    assert list(transformed.columns) == list(table.columns)


def test_clr_rejects_negative_values(table):
    with pytest.raises(ValueError):
        clr(table - 100)


def test_collapse_taxonomy(table, taxonomy):
    phyla = collapse_taxonomy(table, taxonomy.taxonomy, 'Phylum')
    assert sorted(phyla.columns) == ['Bacteroidota', 'Firmicutes', 'Proteobacteria']
    assert phyla.loc['S1_Pre', 'Firmicutes'] == 13
    assert phyla.columns.name == 'Phylum'


def test_collapse_pools_missing_ranks_as_unclassified(table, taxonomy):
    genera = collapse_taxonomy(table, taxonomy.taxonomy, 'Genus')
    # D has no genus assignment
    assert genera.loc['S2_Pre', constants.UNCLASSIFIED] == 7


def test_collapse_unknown_rank(table, taxonomy):
    with pytest.raises(ValueError):
        collapse_taxonomy(table, taxonomy.taxonomy, 'Strain')


def test_collapse_missing_taxon(table, taxonomy):
    with pytest.raises(DataIntegrityError):
        collapse_taxonomy(table.assign(E=1), taxonomy.taxonomy, 'Phylum')

# ---------------------------------- filtering ----------------------------------- #

def test_filter_features(table):
    filtered = filter_features(table, min_count=10, min_samples=2)
    # D totals 9
    assert list(filtered.columns) == ['A', 'B', 'C']
    assert table.shape == (3, 4)


def test_filter_samples(table):
    filtered = filter_samples(table, min_counts=15)
    assert list(filtered.index) == ['S1_Pre', 'S2_Pre']


def test_filter_to_nothing_warns(table):
    with pytest.warns(EmptySelectionWarning):
        filtered = filter_table(table, min_count=1000)
    assert filtered.shape[1] == 0


def test_presence_absence(table):
    pa = presence_absence(table)
    assert pa.loc['S2_Pre', 'A'] == 0
    assert pa.loc['S2_Pre', 'B'] == 1

# ---------------------------------- taxonomy ------------------------------------ #

def test_parse_silva_string(taxonomy):
    row = taxonomy.taxonomy.loc['A']
    assert row['Kingdom'] == 'Bacteria'
    assert row['Phylum'] == 'Firmicutes'
    assert row['Genus'] == 'Lactobacillus'
    assert 'taxstring' not in taxonomy.taxonomy.columns


def test_parse_greengenes_prefixes_and_empty_levels():
    tax = Taxonomy.from_strings({'X': 'k__Bacteria; p__Firmicutes; c__; o__'})
    row = tax.taxonomy.loc['X']
    assert row['Kingdom'] == 'Bacteria'
    assert pd.isna(row["Class"])


def test_unassigned_is_unclassified_at_every_rank():
    tax = Taxonomy.from_strings({'U': 'Unassigned'})
    assert (tax.ranks.loc['U'] == constants.UNCLASSIFIED).all()


def test_select(taxonomy):
    assert taxonomy.select('Phylum', 'Firmicutes') == ['A', 'C']
    assert taxonomy.select('Phylum', 'Chloroflexi') == []
    with pytest.raises(ValueError):
        taxonomy.select('Subphylum', 'Firmicutes')


def test_as_taxonomy_from_rank_columns():
    df = pd.DataFrame(
        {'domain': ['Bacteria'], 'phylum': ['Firmicutes'], 'genus': ['Blautia']},
        index=['A'],
    )
    tax = as_taxonomy(df)
    assert tax.taxonomy.loc['A', 'Kingdom'] == 'Bacteria'
    assert tax.select('Genus', 'Blautia') == ['A']


def test_duplicate_feature_ids_rejected():
    df = pd.DataFrame({r: ['x', 'y'] for r in constants.TAXONOMY_RANKS}, index=['A', 'A'])
    with pytest.raises(ValueError, match='Duplicate'):
        Taxonomy(df)

# ------------------------------- census snapshot -------------------------------- #

def test_census_validate(table, taxonomy, metadata):
    census = CensusData(table=table, taxonomy=taxonomy, metadata=metadata).validate()
    assert list(census.samples) == ['S1_Pre', 'S1_Post', 'S2_Pre']
    assert list(census.taxa) == ['A', 'B', 'C', 'D']


def test_census_validate_missing_sample(table, taxonomy, metadata):
    census = CensusData(table=table.drop(index='S2_Pre'), taxonomy=taxonomy, metadata=metadata)
    with pytest.raises(DataIntegrityError, match='S2_Pre'):
        census.validate()


def test_census_validate_duplicate_metadata_sample(table, taxonomy, metadata):
    census = CensusData(
        table=table, taxonomy=taxonomy, metadata=pd.concat([metadata, metadata.loc[['S1_Pre']]])
    )
    with pytest.raises(DataIntegrityError, match='Duplicate sample IDs in metadata'):
        census.validate()


def test_census_validate_negative_values(table, taxonomy, metadata):
    census = CensusData(table=table - 5, taxonomy=taxonomy, metadata=metadata)
    with pytest.raises(ValueError, match='negative'):
        census.validate()


def test_census_prune_returns_new_snapshot(table, taxonomy, metadata):
    census = CensusData(table=table, taxonomy=taxonomy, metadata=metadata)
    pruned = census.prune(min_count=10, min_samples=1, min_sample_counts=10)

    assert pruned is not census
    assert list(pruned.samples) == ["S1_Pre", "S1_Post"]
    assert list(pruned.taxa) == ["A", "B", "C"]
    assert list(pruned.metadata.index) == ["S1_Pre", "S1_Post"]
    assert census.table.shape == (3, 4)


def test_census_collapse_and_relative_abundance(table, taxonomy, metadata):
    census = CensusData(table=table, taxonomy=taxonomy, metadata=metadata)
    assert census.collapse('Phylum').loc['S1_Pre', 'Bacteroidota'] == 5
    np.testing.assert_allclose(census.relative_abundance().sum(axis=1).values, 1.0)
