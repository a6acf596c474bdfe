import logging
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from enmeval.config import load_config
from enmeval.data.loaders import annotate_points, load_points, raster_band_names, load_environmental_variables
from enmeval.evaluation.nulls import ENMNull, enm_nulls
from enmeval.evaluation.tuning import ENMEvaluation, enm_evaluate
from enmeval.metadata.rmm import build_rmm, rmm_missing_fields, rmm_to_json
from enmeval.tracking import configure_tracking, log_evaluation_to_mlflow, log_nulls_to_mlflow
from enmeval.utils.io import load_pickle, save_pickle
from enmeval.utils.logging_utils import setup_logging
from enmeval.viz.plots import plot_null_histograms, plot_tuning_results

app = typer.Typer(
    name="enmeval",
    help="Tuning, evaluation and null-model testing of species distribution models",
    add_completion=False,
)
logger = logging.getLogger(__name__)


def _load_annotated(path: Path, env_raster_path: Optional[Path], labels, x_col: str, y_col: str, crs: str):
    points = load_points(path, x_col=x_col, y_col=y_col, crs=crs)
    if env_raster_path is not None:
        points = annotate_points(points, env_raster_path, labels=labels)
    return points


def _load_evaluation(path: Path) -> ENMEvaluation:
    e = load_pickle(path)
    if not isinstance(e, ENMEvaluation):
        raise typer.BadParameter(f"{path} does not hold tuning results")
    return e


@app.command()
def tune(
    occs_path: Annotated[
        Path,
        typer.Option(
            help="Path to occurrence points (CSV with coordinate columns, Parquet or any vector format).",
            exists=True, readable=True, resolve_path=True,
        ),
    ],
    bg_path: Annotated[
        Path,
        typer.Option(
            help="Path to background points.",
            exists=True, readable=True, resolve_path=True,
        ),
    ],
    env_raster_path: Annotated[
        Optional[Path],
        typer.Option(
            help="Optional multi-band environmental raster used to annotate the points. "
                 "Without it, predictor columns must already be present.",
            exists=True, readable=True, resolve_path=True,
        ),
    ] = None,
    occs_testing_path: Annotated[
        Optional[Path],
        typer.Option(
            help="Testing occurrences for the 'testing' partition method.",
            exists=True, readable=True, resolve_path=True,
        ),
    ] = None,
    config_path: Annotated[
        Optional[Path],
        typer.Option(help="Run configuration YAML. Defaults to config/default.yaml.", resolve_path=True),
    ] = None,
    output_dir: Annotated[
        Path,
        typer.Option(help="Directory for the results.", file_okay=False, dir_okay=True, resolve_path=True),
    ] = Path("outputs/enmeval"),
    plot: Annotated[bool, typer.Option(help="Save a plot of the tuning results.")] = True,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Hide progress bars.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False,
) -> None:
    """Tune and evaluate a model over the configured grid of settings."""
    setup_logging(verbose=verbose)
    config = load_config(config_path)
    cfg = config.evaluate

    labels = None
    if env_raster_path is not None:
        labels = raster_band_names(load_environmental_variables(env_raster_path))
    occs = _load_annotated(occs_path, env_raster_path, labels, cfg.x_col, cfg.y_col, cfg.crs)
    bg = _load_annotated(bg_path, env_raster_path, labels, cfg.x_col, cfg.y_col, cfg.crs)
    occs_testing = None
    if occs_testing_path is not None:
        occs_testing = _load_annotated(occs_testing_path, env_raster_path, labels, cfg.x_col, cfg.y_col, cfg.crs)

    predictors = cfg.predictors or labels
    e = enm_evaluate(
        occs=occs,
        bg=bg,
        algorithm=cfg.algorithm,
        tune_args=cfg.tune_args,
        partitions=cfg.partitions,
        partition_settings=cfg.partition_settings,
        occs_testing=occs_testing,
        predictors=predictors,
        taxon_name=cfg.taxon_name,
        clamp=cfg.clamp,
        abs_auc_diff=cfg.abs_auc_diff,
        n_jobs=cfg.n_jobs,
        random_state=cfg.random_state,
        quiet=quiet,
    )

    output_dir.mkdir(parents=True, exist_ok=True)
    save_pickle(e, output_dir / "evaluation.pkl")
    e.results.to_csv(output_dir / "results.csv", index=False)
    e.results_partitions.to_csv(output_dir / "results_partitions.csv", index=False)
    if plot:
        plot_tuning_results(e, output_dir / "tuning_results.png")
    if config.tracking.enabled:
        configure_tracking(config.tracking.tracking_uri, config.tracking.experiment_name)
        log_evaluation_to_mlflow(e)

    best = e.select()
    logger.info(f"Optimal settings: {', '.join(best['tune_args'])}")
    typer.echo(e.results.round(3).to_string(index=False))


@app.command()
def rmm(
    evaluation_path: Annotated[
        Path,
        typer.Option(help="Pickled tuning results from `enmeval tune`.", exists=True, readable=True, resolve_path=True),
    ],
    output_path: Annotated[
        Path,
        typer.Option(help="Path for the metadata JSON.", resolve_path=True),
    ] = Path("outputs/enmeval/rmm.json"),
    env_raster_path: Annotated[
        Optional[Path],
        typer.Option(help="Environmental raster, used to describe the predictor data.", exists=True, readable=True, resolve_path=True),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False,
) -> None:
    """Write range model metadata for a tuning run."""
    setup_logging(verbose=verbose)
    e = _load_evaluation(evaluation_path)
    metadata = build_rmm(e, envs=env_raster_path)
    rmm_to_json(metadata, output_path)
    missing = rmm_missing_fields(metadata)
    if missing:
        logger.info(f"{len(missing)} metadata fields left empty")
        logger.debug(f"Empty fields: {missing}")


@app.command()
def nulls(
    evaluation_path: Annotated[
        Path,
        typer.Option(help="Pickled tuning results from `enmeval tune`.", exists=True, readable=True, resolve_path=True),
    ],
    config_path: Annotated[
        Optional[Path],
        typer.Option(help="Run configuration YAML. Defaults to config/default.yaml.", resolve_path=True),
    ] = None,
    output_dir: Annotated[
        Path,
        typer.Option(help="Directory for the null-model results.", file_okay=False, dir_okay=True, resolve_path=True),
    ] = Path("outputs/enmeval/nulls"),
    no_iter: Annotated[
        Optional[int],
        typer.Option(help="Number of null iterations. Overrides the configuration."),
    ] = None,
    quiet: Annotated[bool, typer.Option("--quiet", "-q", help="Hide progress bars.")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False,
) -> None:
    """Test the significance of a tuned model against null models."""
    setup_logging(verbose=verbose)
    config = load_config(config_path)
    cfg = config.nulls
    e = _load_evaluation(evaluation_path)

    null = enm_nulls(
        e,
        mod_settings=cfg.mod_settings,
        no_iter=no_iter or cfg.no_iter,
        eval_stats=cfg.eval_stats,
        n_jobs=cfg.n_jobs,
        random_state=cfg.random_state,
        quiet=quiet,
    )

    output_dir.mkdir(parents=True, exist_ok=True)
    save_pickle(null, output_dir / "nulls.pkl")
    null.null_results.to_csv(output_dir / "null_results.csv")
    null.null_results_partitions.to_csv(output_dir / "null_results_partitions.csv", index=False)
    null.null_emp_results.to_csv(output_dir / "null_emp_results.csv")
    if config.tracking.enabled:
        configure_tracking(config.tracking.tracking_uri, config.tracking.experiment_name)
        log_nulls_to_mlflow(null)

    typer.echo(null.null_emp_results.round(3).to_string())


@app.command("plot-nulls")
def plot_nulls(
    nulls_path: Annotated[
        Path,
        typer.Option(help="Pickled null-model results from `enmeval nulls`.", exists=True, readable=True, resolve_path=True),
    ],
    output_path: Annotated[
        Path,
        typer.Option(help="Path for the figure.", resolve_path=True),
    ] = Path("outputs/enmeval/nulls/null_histograms.png"),
    dpi: Annotated[int, typer.Option(help="DPI for the saved figure.")] = 150,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable verbose logging.")] = False,
) -> None:
    """Plot null distributions against the empirical statistics."""
    setup_logging(verbose=verbose)
    null = load_pickle(nulls_path)
    if not isinstance(null, ENMNull):
        raise typer.BadParameter(f"{nulls_path} does not hold null-model results")
    plot_null_histograms(null, output_path, dpi=dpi)


if __name__ == "__main__":
    app()
