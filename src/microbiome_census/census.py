# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict

# Third-Party Imports
import pandas as pd

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.errors import DataIntegrityError, raise_missing_join
from microbiome_census.utils.io import (
    import_metadata_tsv, import_table, import_taxonomy
)
from microbiome_census.utils.table_conversion import table_to_df
from microbiome_census.utils.table_filtering import filter as filter_table
from microbiome_census.utils.table_processing import collapse_taxonomy, normalize
from microbiome_census.utils.taxonomy_utils import Taxonomy, as_taxonomy

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

# ==================================== CLASSES ======================================= #

@dataclass(frozen=True, eq=False)
class CensusData:
    """
    Immutable snapshot of a microbiome census.

    Attributes:
        table:    Abundance table (samples × taxa).
        taxonomy: Taxonomy with one entry per taxon.
        metadata: Sample metadata indexed by sample ID.

    Derivations (pruning, normalising, collapsing) return new objects and leave
    the snapshot untouched.
    """
    table: pd.DataFrame
    taxonomy: Taxonomy
    metadata: pd.DataFrame

    def __post_init__(self):
        object.__setattr__(self, 'table', table_to_df(self.table))
        object.__setattr__(self, 'taxonomy', as_taxonomy(self.taxonomy))

    @property
    def samples(self) -> pd.Index:
        return self.table.index

    @property
    def taxa(self) -> pd.Index:
        return self.table.columns

    def validate(self) -> "CensusData":
        """
        Check the joins between the three tables.

        Raises:
            DataIntegrityError: If a sample ID is duplicated, is in the metadata
                but not the table (or vice versa), or a taxon has no taxonomy entry.
        """
        table_samples = pd.Index(self.table.index.astype(str))
        meta_samples = pd.Index(self.metadata.index.astype(str))

        for name, samples in (("abundance table", table_samples), ("metadata", meta_samples)):
            if samples.duplicated().any():
                dupes = samples[samples.duplicated()].unique().tolist()
                message = f"Duplicate sample IDs in {name}: {dupes[:5]}"
                logger.error(message)
                raise DataIntegrityError(message)
        missing_from_table = meta_samples.difference(table_samples)
        if len(missing_from_table):
            raise_missing_join("samples", missing_from_table, "metadata", "abundance table")
        missing_from_meta = table_samples.difference(meta_samples)
        if len(missing_from_meta):
            raise_missing_join("samples", missing_from_meta, "abundance table", "metadata")
        missing_taxa = self.table.columns.difference(self.taxonomy.taxonomy.index)
        if len(missing_taxa):
            raise_missing_join("taxa", missing_taxa, "abundance table", "taxonomy table")
        if (self.table.values < 0).any():
            raise ValueError("Abundance table contains negative values")

        logger.info(
            f"Census snapshot: {self.table.shape[0]} samples × "
            f"{self.table.shape[1]} taxa"
        )
        return self

    def prune(
        self,
        min_count: float = constants.DEFAULT_MIN_COUNT,
        min_samples: int = constants.DEFAULT_MIN_SAMPLES,
        min_sample_counts: float = constants.DEFAULT_MIN_SAMPLE_COUNTS
    ) -> "CensusData":
        """Return a new snapshot without low-count taxa and empty samples."""
        table = filter_table(table=self.table, min_count=min_count,
                             min_samples=min_samples, min_sample_counts=min_sample_counts)
        metadata = self.metadata.loc[self.metadata.index.isin(table.index)]
        return replace(self, table=table, metadata=metadata.copy())

    def relative_abundance(self) -> pd.DataFrame:
        return normalize(self.table, axis=1)

    def collapse(self, rank: str = constants.DEFAULT_COMPOSITION_RANK) -> pd.DataFrame:
        return collapse_taxonomy(self.table, self.taxonomy.taxonomy, rank)

# ==================================== FUNCTIONS ===================================== #

def load_census(config: Dict) -> CensusData:
    """
    Load table, taxonomy and metadata named in the ``data`` config section.

    Expected keys: ``table``, ``taxonomy``, ``metadata`` and optionally
    ``sample_id_column``.
    """
    data_config = config.get('data', {})
    for key in ('table', 'taxonomy', 'metadata'):
        if not data_config.get(key):
            raise ValueError(f"Config 'data' section is missing '{key}'")

    logger.info("Loading census tables...")
    table = import_table(Path(data_config['table']))
    taxonomy = import_taxonomy(Path(data_config['taxonomy']))
    metadata = import_metadata_tsv(
        Path(data_config['metadata']),
        data_config.get('sample_id_column', constants.DEFAULT_META_ID_COLUMN)
    )
    return CensusData(table=table, taxonomy=taxonomy, metadata=metadata).validate()
