# ===================================== IMPORTS ====================================== #

# Standard Library Imports
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

# Third-Party Imports
import pandas as pd
import plotly.graph_objects as go

# ================================== LOCAL IMPORTS =================================== #

from microbiome_census import constants
from microbiome_census.analysis.alpha import (
    alpha_diversity, alpha_regression, analyze_alpha_diversity
)
from microbiome_census.analysis.beta import distance_matrix, pcoa, permanova
from microbiome_census.analysis.composition import (
    mean_abundance_by_group, relative_abundance_by_rank
)
from microbiome_census.analysis.differential import kruskal_features
from microbiome_census.analysis.taxon_groups import (
    aggregate_taxon_groups, group_ratio, paired_timepoint_test
)
from microbiome_census.census import CensusData
from microbiome_census.config import is_enabled
from microbiome_census.figures.figures import PlotStyle, plotly_show_and_save
from microbiome_census.figures.plots import (
    create_alpha_diversity_boxplot, create_ordination_plot,
    create_relative_abundance_barplot, create_taxon_group_plot
)
from microbiome_census.utils.progress import _format_task_desc, get_progress_bar
from microbiome_census.utils.table_processing import normalize

# ========================== INITIALISATION & CONFIGURATION ========================== #

logger = logging.getLogger("microbiome_census")

SECTIONS = [
    'alpha_diversity', 'beta_diversity', 'composition', 'taxon_groups',
    'differential_abundance'
]

# ==================================== CLASSES ======================================= #

class CensusWorkflow:
    """
    Runs the configured analyses on one census snapshot.

    Each analysis section is switched on by ``config[<section>]['enabled']``.
    Results are collected in ``self.results[<section>]``; when ``output_dir`` is
    given, tables are written there as TSV and figures in the formats listed
    under ``plots.save_as``.
    """
    def __init__(
        self,
        config: Dict,
        data: CensusData,
        output_dir: Optional[Union[str, Path]] = None
    ):
        self.config = config
        self.output_dir = Path(output_dir) if output_dir else None

        meta_config = self.config.get('metadata', {})
        self.subject_column = meta_config.get('subject_column', constants.DEFAULT_SUBJECT_COLUMN)
        self.timepoint_column = meta_config.get('timepoint_column', constants.DEFAULT_TIMEPOINT_COLUMN)
        self.timepoints = meta_config.get('timepoints', constants.DEFAULT_TIMEPOINTS)
        self.group_column = meta_config.get('group_column', constants.DEFAULT_GROUP_COLUMN)

        plot_config = self.config.get('plots', {})
        self.plots_enabled = plot_config.get('enabled', True)
        self.style = PlotStyle.from_config(plot_config.get('style'))
        self.save_as = plot_config.get('save_as', constants.DEFAULT_SAVE_AS)

        self.data = self._filter(data)
        self.results: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------ helpers ----------------------------------- #

    def _filter(self, data: CensusData) -> CensusData:
        filter_config = self.config.get('filtering', {})
        if not filter_config.get('enabled', False):
            return data
        return data.prune(
            min_count=filter_config.get('min_count', constants.DEFAULT_MIN_COUNT),
            min_samples=filter_config.get('min_samples', constants.DEFAULT_MIN_SAMPLES),
            min_sample_counts=filter_config.get(
                'min_sample_counts', constants.DEFAULT_MIN_SAMPLE_COUNTS
            )
        )

    def _section_dir(self, section: str) -> Optional[Path]:
        if self.output_dir is None:
            return None
        path = self.output_dir / section
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _save_table(self, df: pd.DataFrame, section: str, name: str, index: bool = True) -> None:
        section_dir = self._section_dir(section)
        if section_dir is not None:
            df.to_csv(section_dir / f"{name}.tsv", sep='\t', index=index)

    def _save_figure(self, fig: go.Figure, section: str, name: str) -> None:
        section_dir = self._section_dir(section)
        if section_dir is not None:
            plotly_show_and_save(fig, section_dir / name, save_as=self.save_as)

    def get_enabled_tasks(self) -> List[str]:
        return [s for s in SECTIONS if is_enabled(self.config, s)]

    # ----------------------------------- sections ----------------------------------- #

    def run_alpha(self) -> Dict[str, Any]:
        section = 'alpha_diversity'
        alpha_config = self.config.get(section, {})
        metrics = alpha_config.get('metrics', constants.DEFAULT_ALPHA_METRICS)
        group_column = alpha_config.get('group_column', self.group_column)

        alpha_df = alpha_diversity(self.data.table, metrics=metrics)
        stats_df = analyze_alpha_diversity(
            alpha_diversity_df=alpha_df,
            metadata=self.data.metadata,
            group_column=group_column,
            parametric=alpha_config.get('parametric', False)
        )
        storage = {'results': alpha_df, 'stats': stats_df}
        self._save_table(alpha_df, section, 'alpha_diversity')
        self._save_table(stats_df, section, f'stats_{group_column}', index=False)

        covariates = alpha_config.get('regression_covariates', [])
        if covariates:
            storage['regression'] = pd.concat(
                [alpha_regression(alpha_df, self.data.metadata, c) for c in covariates],
                ignore_index=True
            )
            self._save_table(storage['regression'], section, 'regression', index=False)

        if self.plots_enabled:
            storage['figures'] = {}
            stats_by_metric = stats_df.set_index('metric').to_dict(orient='index')
            for metric in metrics:
                if alpha_df[metric].isnull().all():
                    logger.warning(f"All values NaN for alpha metric '{metric}'; not plotted")
                    continue
                stats_row = stats_by_metric.get(metric)
                if stats_row is not None:
                    stats_row = {'metric': metric, **stats_row}
                fig = create_alpha_diversity_boxplot(
                    alpha_df, self.data.metadata, group_column, metric, self.style,
                    stats=stats_row,
                    add_points=alpha_config.get('add_points', True)
                )
                storage['figures'][metric] = fig
                self._save_figure(fig, section, f'{metric}_{group_column}')

        self.results[section] = storage
        return storage

    def run_beta(self) -> Dict[str, Any]:
        section = 'beta_diversity'
        beta_config = self.config.get(section, {})
        metrics = beta_config.get('metrics', constants.DEFAULT_BETA_METRICS)
        n_dimensions = beta_config.get('n_dimensions', constants.DEFAULT_N_PCOA)
        group_column = beta_config.get('group_column', self.group_column)
        color_columns = beta_config.get('color_columns', [group_column])

        storage = {}
        permanova_rows = []
        for metric in metrics:
            dm = distance_matrix(
                self.data.table, metric=metric,
                pseudocount=beta_config.get('pseudocount', constants.DEFAULT_PSEUDOCOUNT)
            )
            ordination = pcoa(dm, n_dimensions=n_dimensions)
            metric_storage = {'distance_matrix': dm, 'ordination': ordination}
            self._save_table(ordination.samples, section, f'pcoa_{metric}')

            if beta_config.get('permanova', True):
                result = permanova(
                    dm, self.data.metadata, group_column,
                    permutations=beta_config.get('permutations', constants.DEFAULT_PERMUTATIONS)
                )
                metric_storage['permanova'] = result
                permanova_rows.append({'metric': metric, **result})

            if self.plots_enabled and ordination.samples.shape[1] >= 2:
                metric_storage['figures'] = {}
                for color_col in color_columns:
                    fig = create_ordination_plot(
                        ordination, self.data.metadata, color_col, self.style,
                        symbol_col=beta_config.get('symbol_column'),
                        title=f"PCoA ({metric})"
                    )
                    metric_storage['figures'][color_col] = fig
                    self._save_figure(fig, section, f'pcoa_{metric}_{color_col}')
            storage[metric] = metric_storage

        if permanova_rows:
            storage['permanova'] = pd.DataFrame(permanova_rows)
            self._save_table(storage['permanova'], section, 'permanova', index=False)

        self.results[section] = storage
        return storage

    def run_composition(self) -> Dict[str, Any]:
        section = 'composition'
        comp_config = self.config.get(section, {})
        ranks = comp_config.get('ranks', [constants.DEFAULT_COMPOSITION_RANK])
        top_n = comp_config.get('top_n', constants.DEFAULT_TOP_N)
        group_column = comp_config.get('group_column', self.group_column)

        storage = {}
        for rank in ranks:
            rel_df = relative_abundance_by_rank(
                self.data.table, self.data.taxonomy, rank=rank, top_n=top_n
            )
            means = mean_abundance_by_group(rel_df, self.data.metadata, group_column)
            rank_storage = {'relative_abundance': rel_df, 'group_means': means}
            self._save_table(rel_df, section, f'relative_abundance_{rank.lower()}')
            self._save_table(means, section, f'mean_{rank.lower()}_by_{group_column}')

            if self.plots_enabled:
                fig = create_relative_abundance_barplot(
                    rel_df, self.style, metadata=self.data.metadata,
                    group_column=group_column
                )
                rank_storage['figure'] = fig
                self._save_figure(fig, section, f'relative_abundance_{rank.lower()}')
            storage[rank] = rank_storage

        self.results[section] = storage
        return storage

    def run_taxon_groups(self) -> Dict[str, Any]:
        section = 'taxon_groups'
        group_config = self.config.get(section, {})
        rank = group_config.get('rank', constants.DEFAULT_GROUP_RANK)

        sums = aggregate_taxon_groups(
            self.data.table, self.data.taxonomy, self.data.metadata,
            rank=rank,
            values=group_config.get('values', constants.DEFAULT_GROUP_VALUES),
            timepoints=self.timepoints,
            subject_column=self.subject_column,
            timepoint_column=self.timepoint_column
        )
        storage = {'sums': sums}
        self._save_table(
            sums.to_frame(with_status=group_config.get('include_status', True)),
            section, f'{rank.lower()}_sums'
        )

        ratio_config = group_config.get('ratio', {})
        if ratio_config.get('enabled', False):
            numerator = ratio_config['numerator']
            denominator = ratio_config['denominator']
            ratios = group_ratio(sums, numerator, denominator)
            storage['ratios'] = ratios
            self._save_table(ratios, section, f'ratio_{numerator}_{denominator}')

            paired_config = group_config.get('paired_test', {})
            if paired_config.get('enabled', False):
                before = paired_config.get('before', sums.timepoints[0])
                after = paired_config.get('after', sums.timepoints[-1])
                test = paired_timepoint_test(ratios, before, after)
                storage['paired_test'] = test
                self._save_table(pd.DataFrame([test]), section, 'paired_test', index=False)
                logger.info(
                    f"{numerator}/{denominator} {before} vs {after}: "
                    f"p={test['p_value']:.4g} (n={test['n_pairs']})"
                )

        if self.plots_enabled:
            fig = create_taxon_group_plot(sums, self.style)
            storage['figure'] = fig
            self._save_figure(fig, section, f'{rank.lower()}_by_timepoint')

        self.results[section] = storage
        return storage

    def run_differential(self) -> Dict[str, Any]:
        section = 'differential_abundance'
        da_config = self.config.get(section, {})
        rank = da_config.get('rank', constants.DEFAULT_DA_RANK)
        group_column = da_config.get('group_column', self.group_column)

        table = self.data.collapse(rank) if rank else self.data.table
        if da_config.get('relative', True):
            table = normalize(table, axis=1)
        results = kruskal_features(
            table, self.data.metadata, group_column,
            alpha=da_config.get('alpha', constants.DEFAULT_FDR_ALPHA),
            method=da_config.get('method', constants.DEFAULT_FDR_METHOD)
        )
        storage = {'results': results}
        self._save_table(
            results, section, f'kruskal_{(rank or "feature").lower()}_{group_column}',
            index=False
        )
        self.results[section] = storage
        return storage

    # ------------------------------------- driver ------------------------------------ #

    def run(self) -> Dict[str, Dict[str, Any]]:
        """Run every enabled section in order, logging and re-raising failures."""
        runners: Dict[str, Callable[[], Dict[str, Any]]] = {
            'alpha_diversity': self.run_alpha,
            'beta_diversity': self.run_beta,
            'composition': self.run_composition,
            'taxon_groups': self.run_taxon_groups,
            'differential_abundance': self.run_differential,
        }
        tasks = self.get_enabled_tasks()
        if not tasks:
            logger.warning("No analysis sections are enabled in the configuration")
            return self.results

        with get_progress_bar() as progress:
            desc = "Running census analyses"
            task = progress.add_task(_format_task_desc(desc), total=len(tasks))
            for section in tasks:
                progress.update(
                    task, description=_format_task_desc(section.replace('_', ' ').title())
                )
                try:
                    runners[section]()
                except Exception as e:
                    logger.error(f"{section.replace('_', ' ').title()} failed: {e}")
                    raise
                finally:
                    progress.update(task, advance=1)
            progress.update(task, description=_format_task_desc(desc))
        return self.results
