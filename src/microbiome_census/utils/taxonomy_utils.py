# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Dict, List, Optional, Union

# Third-Party Imports
import pandas as pd

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

# ================================== TAXONOMY CLASS ================================== #

class Taxonomy:
    """
    Handler for taxonomic classification data.

    Attributes:
        taxonomy (pd.DataFrame): Parsed taxonomy data indexed by feature ID with
            columns:
            - taxonomy:   Raw taxonomy string (when parsed from strings)
            - confidence: Classification confidence score (when available)
            - Kingdom … Species: One column per taxonomic rank
    """

    def __init__(self, taxonomy: pd.DataFrame) -> None:
        missing = [r for r in constants.TAXONOMY_RANKS if r not in taxonomy.columns]
        if missing:
            raise ValueError(f"Taxonomy is missing rank columns: {missing}")
        if taxonomy.index.duplicated().any():
            dupes = taxonomy.index[taxonomy.index.duplicated()].unique().tolist()
            raise ValueError(f"Duplicate feature IDs in taxonomy: {dupes[:5]}")
        self.taxonomy: pd.DataFrame = taxonomy

    @classmethod
    def from_tsv(cls, tsv_path: Union[str, Path]) -> "Taxonomy":
        """
        Initialize Taxonomy object from a QIIME2 taxonomy TSV.

        Args:
            tsv_path: Path to taxonomy TSV with 'Feature ID' and 'Taxon' columns.
        """
        df = pd.read_csv(Path(tsv_path), sep='\t', dtype=str)
        # QIIME2 metadata directives (e.g. '#q2:types') are not data rows
        df = df[~df.iloc[:, 0].astype(str).str.startswith('#')]
        df = df.rename(columns={
            'Feature ID': 'id',
            'Taxon': 'taxonomy',
            'Consensus': 'confidence',
            'Confidence': 'confidence'
        }).set_index('id')
        return cls.from_strings(df['taxonomy'], confidence=df.get('confidence'))

    @classmethod
    def from_strings(
        cls,
        strings: Union[pd.Series, Dict[str, str]],
        confidence: Optional[pd.Series] = None
    ) -> "Taxonomy":
        """
        Build a Taxonomy from raw ``d__X; p__Y; ...`` strings keyed by feature ID.
        """
        strings = pd.Series(strings, dtype=object)
        df = pd.DataFrame({'taxonomy': strings})
        if confidence is not None:
            df['confidence'] = pd.to_numeric(confidence, errors='coerce')
        parsed = df['taxonomy'].map(cls._parse_levels)
        for rank in constants.TAXONOMY_RANKS:
            df[rank] = parsed.map(lambda levels: levels.get(rank))
        df.index.name = 'id'
        return cls(df)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "Taxonomy":
        """
        Wrap a DataFrame that already has one column per rank. Rank columns are
        matched case-insensitively and 'Domain' is accepted for 'Kingdom'.
        """
        rename = {}
        for col in df.columns:
            key = str(col).strip().capitalize()
            if key == 'Domain':
                key = 'Kingdom'
            if key in constants.TAXONOMY_RANKS:
                rename[col] = key
        df = df.rename(columns=rename).copy()
        for rank in constants.TAXONOMY_RANKS:
            if rank not in df.columns:
                df[rank] = None
        return cls(df)

    @staticmethod
    def _parse_levels(taxonomy: Optional[str]) -> Dict[str, Optional[str]]:
        """
        Split a taxonomy string into {rank: name}.

        Unassigned features are 'Unclassified' at every rank; ranks that are
        absent or empty (e.g. 'g__') are omitted.
        """
        if not isinstance(taxonomy, str) or not taxonomy.strip():
            return {rank: constants.UNCLASSIFIED for rank in constants.TAXONOMY_RANKS}
        if taxonomy.strip() in constants.UNASSIGNED_LABELS:
            return {rank: constants.UNCLASSIFIED for rank in constants.TAXONOMY_RANKS}

        levels = {}
        for part in taxonomy.split(';'):
            part = part.strip()
            if len(part) < 3 or part[1:3] != '__':
                continue
            rank = constants.RANK_PREFIXES.get(part[0].lower())
            name = part[3:].strip()
            if rank and name:
                levels[rank] = name
        return levels

    def select(self, rank: str, value: str) -> List[str]:
        """
        Return the feature IDs whose classification at ``rank`` equals ``value``.

        Raises:
            ValueError: If ``rank`` is not a known taxonomic rank.
        """
        if rank not in constants.TAXONOMY_RANKS:
            raise ValueError(
                f"Unknown rank '{rank}'. Use one of {constants.TAXONOMY_RANKS}"
            )
        mask = self.taxonomy[rank] == value
        return self.taxonomy.index[mask].tolist()

    @property
    def ranks(self) -> pd.DataFrame:
        return self.taxonomy[constants.TAXONOMY_RANKS]

    def __len__(self) -> int:
        return len(self.taxonomy)


# ==================================== FUNCTIONS ===================================== #

def as_taxonomy(taxonomy: Union[Taxonomy, pd.DataFrame, pd.Series, Dict]) -> Taxonomy:
    """Coerce rank-column DataFrames or raw taxonomy strings to a Taxonomy."""
    if isinstance(taxonomy, Taxonomy):
        return taxonomy
    if isinstance(taxonomy, pd.DataFrame):
        if 'taxonomy' in taxonomy.columns and not any(
            r in taxonomy.columns for r in constants.TAXONOMY_RANKS
        ):
            return Taxonomy.from_strings(taxonomy['taxonomy'])
        return Taxonomy.from_dataframe(taxonomy)
    if isinstance(taxonomy, (pd.Series, dict)):
        return Taxonomy.from_strings(taxonomy)
    raise TypeError("Taxonomy must be a Taxonomy, DataFrame, Series or dict.")
