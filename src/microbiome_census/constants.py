from pathlib import Path

# ==================================================================================== #
# PROGRESS BAR
# ==================================================================================== #
# See supported colors at: https://www.w3schools.com/colors/colors_x11.asp

# Total character width of the progress bar text
DEFAULT_PROGRESS_TEXT_N: int = 50
# Color of the progress bar description text
DEFAULT_DESCRIPTION_STYLE: str = "white"
# Width of the progress bar
DEFAULT_BAR_WIDTH: int = 40
# Color of the filled/complete portion of the progress bar
DEFAULT_BAR_COLUMN_COMPLETE_STYLE: str = "honeydew2"
# Color used when the progress bar is finished
DEFAULT_FINISHED_STYLE: str = "dark_cyan"
# Color of the percentage complete text (e.g., "85%")
DEFAULT_PROGRESS_PERCENTAGE_STYLE: str = "honeydew2"
# Color of the "X of Y complete" text (e.g., "3/5")
DEFAULT_M_OF_N_COMPLETE_STYLE: str = "honeydew2"
# Color of the time elapsed display
DEFAULT_TIME_ELAPSED_STYLE: str = "light_sky_blue1"

# ==================================================================================== #
# SETTINGS
# ==================================================================================== #
# Go up two levels
DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "references" / "config.yaml"
DEFAULT_LOG_DIR = Path("logs")

# ==================================================================================== #
# METADATA
# ==================================================================================== #
DEFAULT_META_ID_COLUMN = '#sampleid'
DEFAULT_SUBJECT_COLUMN = 'subject'
DEFAULT_TIMEPOINT_COLUMN = 'timepoint'
DEFAULT_TIMEPOINTS = ['Pre', 'Post']
DEFAULT_GROUP_COLUMN = DEFAULT_TIMEPOINT_COLUMN

# ==================================================================================== #
# TAXONOMY
# ==================================================================================== #
TAXONOMY_RANKS = [
    'Kingdom', 'Phylum', 'Class', 'Order', 'Family', 'Genus', 'Species'
]
# QIIME rank prefixes; SILVA/GTDB use 'd__' for the top rank
RANK_PREFIXES = {
    'd': 'Kingdom',
    'k': 'Kingdom',
    'p': 'Phylum',
    'c': 'Class',
    'o': 'Order',
    'f': 'Family',
    'g': 'Genus',
    's': 'Species'
}
UNCLASSIFIED = 'Unclassified'
UNASSIGNED_LABELS = ['Unassigned', 'Unclassified']

DEFAULT_GROUP_RANK = 'Phylum'
DEFAULT_GROUP_VALUES = ['Firmicutes', 'Bacteroidota']

# ==================================================================================== #
# FILTERING & TRANSFORMS
# ==================================================================================== #
DEFAULT_MIN_COUNT: int = 10
DEFAULT_MIN_SAMPLES: int = 1
DEFAULT_MIN_SAMPLE_COUNTS: int = 1
DEFAULT_PSEUDOCOUNT: float = 0.5

# ==================================================================================== #
# ALPHA DIVERSITY
# ==================================================================================== #
DEFAULT_ALPHA_METRICS = [
    'shannon', 'simpson', 'observed_features', 'chao1', 'pielou_evenness'
]

# ==================================================================================== #
# BETA DIVERSITY
# ==================================================================================== #
DEFAULT_METRIC = 'braycurtis'
DEFAULT_BETA_METRICS = ['braycurtis', 'jaccard', 'aitchison']
DEFAULT_N_PCOA = 3
DEFAULT_PERMUTATIONS = 999

# ==================================================================================== #
# COMPOSITION & DIFFERENTIAL ABUNDANCE
# ==================================================================================== #
DEFAULT_COMPOSITION_RANK = 'Phylum'
DEFAULT_TOP_N = 10
OTHER_LABEL = 'Other'

DEFAULT_DA_RANK = 'Genus'
DEFAULT_FDR_ALPHA = 0.05
DEFAULT_FDR_METHOD = 'fdr_bh'

# ==================================================================================== #
# FIGURES
# ==================================================================================== #
DEFAULT_HEIGHT = 800
DEFAULT_WIDTH = 1000
DEFAULT_FONT_FAMILY = 'Helvetica Neue, Helvetica, Sans-serif'
DEFAULT_TITLE_FONT_FAMILY = 'HelveticaNeue-CondensedBold, Helvetica, Sans-serif'
DEFAULT_FONT_SIZE = 18
DEFAULT_TITLE_FONT_SIZE = 26
DEFAULT_SAVE_AS = ['html']
