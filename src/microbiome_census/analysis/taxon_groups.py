# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

# Third-Party Imports
import numpy as np
import pandas as pd
from biom import Table
from scipy.stats import wilcoxon

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.errors import (
    DataIntegrityError, raise_missing_join, warn_empty_selection
)
from microbiome_census.utils.table_conversion import table_to_df
from microbiome_census.utils.taxonomy_utils import Taxonomy, as_taxonomy

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

MEASURED = 'measured'
ABSENT = 'absent'


def column_name(timepoint: Any, group: str) -> str:
    """Timepoint-qualified group name, e.g. ('Pre', 'Firmicutes') → 'Pre_Firmicutes'."""
    return f"{timepoint}_{group}"

# ==================================== CLASSES ======================================= #

@dataclass(frozen=True, eq=False)
class TaxonGroupSums:
    """
    Per-subject, per-timepoint abundance sums of one or more taxonomic groups.

    Attributes:
        rank:         Taxonomic rank the groups were selected at.
        groups:       Group names (values at ``rank``).
        timepoints:   Timepoint labels, in comparison order.
        sums:         {subject: {'<timepoint>_<group>': sum}}.
        measured:     {subject: {timepoint: bool}}; False means the subject had no
                      sample at that timepoint and its sums are 0 by absence.
        empty_groups: Groups that matched no taxa (all sums are 0).
    """
    rank: str
    groups: Tuple[str, ...]
    timepoints: Tuple[Any, ...]
    sums: Dict[Any, Dict[str, float]]
    measured: Dict[Any, Dict[Any, bool]]
    empty_groups: Tuple[str, ...] = ()

    @property
    def subjects(self) -> List[Any]:
        return list(self.sums.keys())

    @property
    def columns(self) -> List[str]:
        return [column_name(tp, g) for tp in self.timepoints for g in self.groups]

    def get(self, subject: Any, timepoint: Any, group: str) -> float:
        return self.sums[subject][column_name(timepoint, group)]

    def is_measured(self, subject: Any, timepoint: Any) -> bool:
        return self.measured[subject][timepoint]

    def to_frame(self, with_status: bool = False) -> pd.DataFrame:
        """
        Subjects × '<timepoint>_<group>' DataFrame. With ``with_status`` a
        '<timepoint>_status' column ('measured' / 'absent') follows each timepoint.
        """
        frame = pd.DataFrame.from_dict(self.sums, orient='index')
        frame = frame.reindex(index=self.subjects, columns=self.columns).astype(float)
        if with_status:
            ordered = []
            for tp in self.timepoints:
                status_col = f"{tp}_status"
                frame[status_col] = [
                    MEASURED if self.measured[s][tp] else ABSENT for s in self.subjects
                ]
                ordered += [column_name(tp, g) for g in self.groups] + [status_col]
            frame = frame[ordered]
        frame.index.name = 'subject'
        return frame

    def to_long(self) -> pd.DataFrame:
        """One row per (subject, timepoint, group)."""
        rows = [
            {
                'subject': subject,
                'timepoint': tp,
                'group': group,
                'abundance': self.sums[subject][column_name(tp, group)],
                'status': MEASURED if self.measured[subject][tp] else ABSENT,
            }
            for subject in self.subjects
            for tp in self.timepoints
            for group in self.groups
        ]
        return pd.DataFrame(
            rows, columns=['subject', 'timepoint', 'group', 'abundance', 'status']
        )

# =============================== HELPER FUNCTIONS ==================================== #

def _check_inputs(
    table: pd.DataFrame,
    taxonomy: Taxonomy,
    metadata: pd.DataFrame,
    rank: str,
    required_columns: Sequence[str]
) -> None:
    missing_cols = [c for c in required_columns if c not in metadata.columns]
    if missing_cols:
        message = f"Metadata is missing required columns: {missing_cols}"
        logger.error(message)
        raise DataIntegrityError(message)
    if rank not in constants.TAXONOMY_RANKS:
        raise DataIntegrityError(
            f"Unknown rank '{rank}'. Use one of {constants.TAXONOMY_RANKS}"
        )
    for name, index in (("abundance table", table.index), ("metadata", metadata.index)):
        if index.duplicated().any():
            dupes = index[index.duplicated()].unique().tolist()
            message = f"Duplicate sample IDs in {name}: {dupes[:5]}"
            logger.error(message)
            raise DataIntegrityError(message)

    missing_from_table = metadata.index.difference(table.index)
    if len(missing_from_table):
        raise_missing_join("samples", missing_from_table, "metadata", "abundance table")
    missing_from_meta = table.index.difference(metadata.index)
    if len(missing_from_meta):
        raise_missing_join("samples", missing_from_meta, "abundance table", "metadata")
    missing_taxa = table.columns.difference(taxonomy.taxonomy.index)
    if len(missing_taxa):
        raise_missing_join("taxa", missing_taxa, "abundance table", "taxonomy table")


def _string_index(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.index = df.index.astype(str)
    return df

# =============================== CORE FUNCTIONALITY ================================== #

def aggregate_taxon_groups(
    table: Union[Dict, Table, pd.DataFrame],
    taxonomy: Union[Taxonomy, pd.DataFrame],
    metadata: pd.DataFrame,
    rank: str = constants.DEFAULT_GROUP_RANK,
    values: Iterable[str] = constants.DEFAULT_GROUP_VALUES,
    timepoints: Optional[Iterable[Any]] = constants.DEFAULT_TIMEPOINTS,
    subject_column: str = constants.DEFAULT_SUBJECT_COLUMN,
    timepoint_column: str = constants.DEFAULT_TIMEPOINT_COLUMN
) -> TaxonGroupSums:
    """
    Sum abundances of taxonomic groups per subject and timepoint.

    For every subject and timepoint, the abundances of the samples belonging to
    that subject/timepoint pair are summed over the taxa whose classification at
    ``rank`` equals each group value. Each group is summed from its own taxa.

    Note:
        Post_Bacteroidota is summed from Bacteroidota taxa. Earlier Pre/Post ratio
        tables filled that column with the Post_Firmicutes sums, so their values
        for it will not match these.

    Args:
        table:            Abundance table (samples × taxa).
        taxonomy:         Taxonomy (or DataFrame with rank columns) covering every
                          taxon in ``table``.
        metadata:         Sample metadata indexed by sample ID.
        rank:             Taxonomic rank to select at (e.g. 'Phylum').
        values:           Group values at ``rank`` (e.g. ['Firmicutes']).
        timepoints:       Timepoint labels to report; None uses every timepoint
                          present in the metadata, sorted.
        subject_column:   Metadata column identifying the subject.
        timepoint_column: Metadata column identifying the timepoint.

    Returns:
        TaxonGroupSums. A subject without a sample at a timepoint gets 0 for that
        timepoint and is marked as not measured.

    Raises:
        DataIntegrityError: If a sample ID is duplicated, a sample is in the
            metadata but not the table (or vice versa), a taxon has no taxonomy
            entry, or a required metadata column is missing.

    Warns:
        EmptySelectionWarning: For each group value that matches no taxa.
    """
    df = _string_index(table_to_df(table))
    meta = _string_index(metadata)
    tax = as_taxonomy(taxonomy)
    values = list(dict.fromkeys(values))
    if not values:
        raise ValueError("At least one group value is required")

    _check_inputs(df, tax, meta, rank, [subject_column, timepoint_column])

    meta = meta[[subject_column, timepoint_column]]
    unassigned = meta[subject_column].isna() | meta[timepoint_column].isna()
    if unassigned.any():
        logger.warning(
            f"Ignoring {int(unassigned.sum())} samples without a subject or timepoint"
        )
        meta = meta[~unassigned]

    if timepoints is None:
        timepoints = sorted(meta[timepoint_column].unique(), key=str)
    timepoints = list(timepoints)

    # Group totals per sample
    empty_groups = []
    group_totals = {}
    for value in values:
        taxa = [t for t in tax.select(rank, value) if t in df.columns]
        if not taxa:
            empty_groups.append(value)
            warn_empty_selection(
                f"No taxa matched {rank} '{value}'; its sums are all zero"
            )
        logger.debug(f"{rank} '{value}': {len(taxa)} taxa selected")
        group_totals[value] = df[taxa].sum(axis=1).astype(float)
    group_totals = pd.DataFrame(group_totals, index=df.index, columns=values)

    pair_sizes = meta.groupby([subject_column, timepoint_column]).size()
    duplicated_pairs = pair_sizes[pair_sizes > 1]
    if len(duplicated_pairs):
        logger.warning(
            f"{len(duplicated_pairs)} subject/timepoint pairs have more than one "
            f"sample; their abundances are summed: "
            f"{duplicated_pairs.index.tolist()[:5]}"
        )

    summed = (
        group_totals.join(meta, how='inner')
        .groupby([subject_column, timepoint_column])[values]
        .sum()
    )

    subjects = sorted(meta[subject_column].unique(), key=str)
    observed_pairs = set(summed.index)
    sums = {
        subject: {
            column_name(tp, value): (
                float(summed.loc[(subject, tp), value])
                if (subject, tp) in observed_pairs else 0.0
            )
            for tp in timepoints
            for value in values
        }
        for subject in subjects
    }
    measured = {
        subject: {tp: (subject, tp) in observed_pairs for tp in timepoints}
        for subject in subjects
    }

    n_absent = sum(not flag for m in measured.values() for flag in m.values())
    if n_absent:
        logger.info(
            f"{n_absent} subject/timepoint pairs have no sample; reported as 0 "
            f"with status '{ABSENT}'"
        )

    return TaxonGroupSums(
        rank=rank,
        groups=tuple(values),
        timepoints=tuple(timepoints),
        sums=sums,
        measured=measured,
        empty_groups=tuple(empty_groups)
    )


def aggregate_taxon_group(
    table: Union[Dict, Table, pd.DataFrame],
    taxonomy: Union[Taxonomy, pd.DataFrame],
    metadata: pd.DataFrame,
    rank: str,
    value: str,
    timepoints: Optional[Iterable[Any]] = constants.DEFAULT_TIMEPOINTS,
    subject_column: str = constants.DEFAULT_SUBJECT_COLUMN,
    timepoint_column: str = constants.DEFAULT_TIMEPOINT_COLUMN
) -> TaxonGroupSums:
    """Single-group form of :func:`aggregate_taxon_groups`."""
    return aggregate_taxon_groups(
        table, taxonomy, metadata, rank=rank, values=[value], timepoints=timepoints,
        subject_column=subject_column, timepoint_column=timepoint_column
    )


def group_ratio(
    sums: TaxonGroupSums,
    numerator: str,
    denominator: str
) -> pd.DataFrame:
    """
    Ratio of two aggregated groups per subject and timepoint
    (e.g. Firmicutes/Bacteroidota).

    Returns:
        Subjects × timepoints DataFrame. Absent pairs and zero denominators are NaN.
    """
    for group in (numerator, denominator):
        if group not in sums.groups:
            raise ValueError(
                f"Group '{group}' was not aggregated. Available: {list(sums.groups)}"
            )

    def _ratio(subject, tp):
        if not sums.is_measured(subject, tp):
            return np.nan
        den = sums.get(subject, tp, denominator)
        if den == 0:
            logger.debug(f"Zero {denominator} for subject '{subject}' at '{tp}'")
            return np.nan
        return sums.get(subject, tp, numerator) / den

    ratios = pd.DataFrame(
        {tp: [_ratio(s, tp) for s in sums.subjects] for tp in sums.timepoints},
        index=pd.Index(sums.subjects, name='subject')
    )
    ratios.columns.name = f"{numerator}/{denominator}"
    return ratios


def paired_timepoint_test(
    ratios: pd.DataFrame,
    before: Any,
    after: Any
) -> Dict[str, Any]:
    """
    Wilcoxon signed-rank test of a per-subject value between two timepoints.

    Only subjects with finite values at both timepoints are paired. Errors from
    the test itself (e.g. too few pairs) propagate to the caller.
    """
    for tp in (before, after):
        if tp not in ratios.columns:
            raise ValueError(f"Timepoint '{tp}' not in {list(ratios.columns)}")

    paired = ratios[[before, after]].replace([np.inf, -np.inf], np.nan).dropna()
    logger.debug(f"Paired comparison '{before}' vs '{after}': {len(paired)} subjects")
    stat, p_val = wilcoxon(paired[before].values, paired[after].values)
    return {
        'comparison': f"{before}_vs_{after}",
        'test': 'Wilcoxon signed-rank',
        'statistic': float(stat),
        'p_value': float(p_val),
        'n_pairs': int(len(paired)),
        f'median_{before}': float(paired[before].median()),
        f'median_{after}': float(paired[after].median()),
    }
