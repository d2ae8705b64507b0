# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Union

# Third-Party Imports
import pandas as pd
from biom import load_table

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.utils.table_conversion import table_to_df
from microbiome_census.utils.taxonomy_utils import Taxonomy

# ========================== INITIALIZATION & CONFIGURATION ========================== #

logger = logging.getLogger('microbiome_census')

# ================================= DEFAULT VALUES =================================== #

TABLE_HEADER_TOKENS = (
    "#OTU ID", "#OTUID", "#OTU_ID", "#Feature ID", "#FEATURE ID",
    "feature-id", "feature id", "OTU ID", "Feature ID"
)

# ==================================== FUNCTIONS ===================================== #

def import_table_biom(biom_path: Union[str, Path]) -> pd.DataFrame:
    """
    Load a BIOM table (HDF5 or JSON) as a samples × features DataFrame.

    Args:
        biom_path: Path to .biom file.
    """
    table = load_table(str(biom_path))
    logger.debug(
        f"Loaded BIOM table '{Path(biom_path).name}' with "
        f"{table.shape[0]} features × {table.shape[1]} samples"
    )
    return table_to_df(table)


def import_table_tsv(table_tsv: Union[str, Path]) -> pd.DataFrame:
    """
    Load a QIIME2-exported feature table (TSV) as a samples × features DataFrame.

    Handles the "# Constructed from biom file" preamble so that the header row
    beginning with "#OTU ID" is kept, and drops a trailing taxonomy column.
    """
    skiprows = 0
    with open(table_tsv, "r") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped:
                skiprows += 1
                continue
            if stripped.startswith("#") and not stripped.startswith(TABLE_HEADER_TOKENS):
                skiprows += 1
                continue
            break

    df = pd.read_csv(table_tsv, sep="\t", skiprows=skiprows, index_col=0, low_memory=False)
    if df.index.name:
        df.index.name = df.index.name.lstrip("#")
    df.columns = [str(c).lstrip("#") for c in df.columns]
    if len(df.columns) and df.columns[-1].lower().startswith("taxonomy"):
        df = df.iloc[:, :-1]
    df.index = df.index.astype(str)
    df = df.apply(pd.to_numeric, errors="raise")
    # features × samples on disk
    return df.T


def import_table(table_path: Union[str, Path]) -> pd.DataFrame:
    """Load a feature table from BIOM or TSV, dispatching on file extension."""
    table_path = Path(table_path)
    if table_path.suffix.lower() == '.biom':
        return import_table_biom(table_path)
    return import_table_tsv(table_path)


def import_taxonomy(tsv_path: Union[str, Path]) -> Taxonomy:
    """Load a QIIME2 taxonomy TSV into a :class:`Taxonomy`."""
    taxonomy = Taxonomy.from_tsv(tsv_path)
    logger.debug(f"Loaded taxonomy for {len(taxonomy)} features")
    return taxonomy


def import_metadata_tsv(
    tsv_path: Union[str, Path],
    sample_id_column: str = constants.DEFAULT_META_ID_COLUMN
) -> pd.DataFrame:
    """
    Load sample metadata indexed by sample ID.

    Args:
        tsv_path:         Path to metadata TSV.
        sample_id_column: Column holding sample IDs; the first column is used if
                          it is absent.

    Returns:
        Metadata DataFrame indexed by sample ID (string).
    """
    df = pd.read_csv(tsv_path, sep='\t', dtype=str)
    df.columns = [c.strip() for c in df.columns]

    id_col = sample_id_column if sample_id_column in df.columns else df.columns[0]
    if id_col != sample_id_column:
        logger.warning(
            f"Metadata has no '{sample_id_column}' column; using '{id_col}' for sample IDs"
        )
    # Drop QIIME2 '#q2:types' directive rows
    df = df[~df[id_col].astype(str).str.startswith('#')].copy()
    df[id_col] = df[id_col].astype(str).str.strip()
    df = df.set_index(id_col)
    df.index.name = 'sample_id'

    # Numeric covariates come back as numbers
    for col in df.columns:
        converted = pd.to_numeric(df[col], errors='coerce')
        if converted.notna().sum() == df[col].notna().sum() and df[col].notna().any():
            df[col] = converted
    return df
