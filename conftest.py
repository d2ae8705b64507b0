"""
Shared fixtures: a small census with two subjects sampled before and after.
"""

import pandas as pd
import pytest

from microbiome_census.utils.taxonomy_utils import Taxonomy


@pytest.fixture
def taxonomy():
    return Taxonomy.from_strings({
        'A': 'd__Bacteria; p__Firmicutes; c__Bacilli; o__Lactobacillales; '
             'f__Lactobacillaceae; g__Lactobacillus',
        'B': 'd__Bacteria; p__Bacteroidota; c__Bacteroidia; o__Bacteroidales; '
             'f__Bacteroidaceae; g__Bacteroides',
        'C': 'd__Bacteria; p__Firmicutes; c__Clostridia; o__Oscillospirales; '
             'f__Ruminococcaceae; g__Faecalibacterium',
        'D': 'd__Bacteria; p__Proteobacteria; c__Gammaproteobacteria',
    })


@pytest.fixture
def table():
    # samples × taxa; S2 was never sampled after
    return pd.DataFrame(
        {
            'A': [10, 4, 0],
            'B': [5, 8, 2],
            'C': [3, 1, 6],
            'D': [2, 0, 7],
        },
        index=['S1_Pre', 'S1_Post', 'S2_Pre'],
    )


@pytest.fixture
def metadata():
    return pd.DataFrame(
        {
            'subject': ['S1', 'S1', 'S2'],
            'timepoint': ['Pre', 'Post', 'Pre'],
        },
        index=pd.Index(['S1_Pre', 'S1_Post', 'S2_Pre'], name='sample_id'),
    )


@pytest.fixture
def cohort():
    """Four subjects sampled Pre and Post, with a Post shift towards Firmicutes."""
    samples, rows, meta = [], [], []
    pre = [
        [20, 30, 5, 10, 1, 0],
        [18, 25, 7, 12, 0, 2],
        [25, 35, 4, 9, 3, 1],
        [15, 28, 6, 14, 1, 1],
    ]
    post = [
        [40, 12, 15, 5, 0, 1],
        [35, 10, 20, 6, 2, 0],
        [50, 15, 12, 4, 1, 2],
        [38, 9, 18, 7, 0, 1],
    ]
    for i, (before, after) in enumerate(zip(pre, post), start=1):
        for tp, counts in (('Pre', before), ('Post', after)):
            sample = f"P{i}_{tp}"
            samples.append(sample)
            rows.append(counts)
            meta.append({'subject': f"P{i}", 'timepoint': tp, 'age': 30 + 2 * i})

    table = pd.DataFrame(rows, index=samples, columns=['A', 'B', 'C', 'D', 'E', 'F'])
    metadata = pd.DataFrame(meta, index=pd.Index(samples, name='sample_id'))
    taxonomy = Taxonomy.from_strings({
        'A': 'd__Bacteria; p__Firmicutes; c__Bacilli; o__Lactobacillales; '
             'f__Lactobacillaceae; g__Lactobacillus',
        'B': 'd__Bacteria; p__Bacteroidota; c__Bacteroidia; o__Bacteroidales; '
             'f__Bacteroidaceae; g__Bacteroides',
        'C': 'd__Bacteria; p__Firmicutes; c__Clostridia; o__Oscillospirales; '
             'f__Ruminococcaceae; g__Faecalibacterium',
        'D': 'd__Bacteria; p__Bacteroidota; c__Bacteroidia; o__Bacteroidales; '
             'f__Prevotellaceae; g__Prevotella',
        'E': 'd__Bacteria; p__Proteobacteria; c__Gammaproteobacteria; '
             'o__Enterobacterales; f__Enterobacteriaceae; g__Escherichia-Shigella',
        'F': 'Unassigned',
    })
    return table, taxonomy, metadata
