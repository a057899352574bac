# src/vantage/definitions.py
"""
Definition files.

A definition file is a plain Python module living under the playground's
load path (experiments) or its `metrics/` subdirectory (metrics). It is
executed with these names injected:

    playground   the Playground loading the file
    loading      the LoadingGuard shared by both registries
    ab_test      define_ab_test bound to `playground`
    metric       define_metric bound to `playground`

Example (experiments/checkout_button.py):

    ab_test(
        "Checkout Button",
        alternatives=("green", "orange"),
        metrics=("signups",),
        description="Colour of the checkout button",
    )

Outside a definition file, the module-level `ab_test` and `metric` helpers
define against the default playground.
"""

from __future__ import annotations

import functools
import logging
import runpy
from pathlib import Path
from typing import TYPE_CHECKING, Any, Iterable, Optional, Sequence

from vantage.experiment import Experiment
from vantage.metric import Metric
from vantage.registry import LoadingGuard

if TYPE_CHECKING:
    from vantage.playground import Playground

logger = logging.getLogger(__name__)


def definition_globals(playground: "Playground", guard: LoadingGuard) -> dict[str, Any]:
    return {
        "playground": playground,
        "loading": guard,
        "ab_test": functools.partial(define_ab_test, playground),
        "metric": functools.partial(define_metric, playground),
    }


def load_definition_file(playground: "Playground", guard: LoadingGuard, path: Path) -> None:
    """Execute one definition file. Errors raised by the file propagate unchanged."""
    logger.debug("Executing definition file %s", path)
    runpy.run_path(str(path), init_globals=definition_globals(playground, guard))


def define_metric(
    playground: "Playground",
    name: str,
    *,
    description: Optional[str] = None,
    id: Optional[str] = None,
) -> Metric:
    metric = Metric(playground, name, id=id, description=description)
    return playground.metrics_registry.register(metric.id, metric)


def define_ab_test(
    playground: "Playground",
    name: str,
    *,
    alternatives: Sequence[Any] = (False, True),
    metrics: Iterable[str] = (),
    description: Optional[str] = None,
    id: Optional[str] = None,
) -> Experiment:
    """
    Register an A/B test, persist its creation time and hook it to the
    conversion metrics named in `metrics`.
    """
    experiment = Experiment(
        playground,
        name,
        id=id,
        alternatives=alternatives,
        description=description,
    )
    playground.experiments_registry.register(experiment.id, experiment)

    for metric_id in metrics:
        metric = playground.metric(str(metric_id))
        metric.hook(experiment.track_conversion)
        experiment.metric_ids.append(metric.id)

    experiment.save()
    return experiment


def ab_test(name: str, **kwargs: Any) -> Experiment:
    from vantage.playground import get_playground

    return define_ab_test(get_playground(), name, **kwargs)


def metric(name: str, **kwargs: Any) -> Metric:
    from vantage.playground import get_playground

    return define_metric(get_playground(), name, **kwargs)
