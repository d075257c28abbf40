"""
Horizon Tournament - progressive elimination of multi-horizon forecasters.

Narrows a cohort of probabilistic forecasters through four phases and ends
in a per-horizon composite ranking. Pure, synchronous computation over
round scores supplied by an external scorer.

Modules:
    horizons - Horizon enumeration and total per-horizon mappings
    errors - Engine exception types
    records - RoundScore records, log loss and per-model state
    state - ModelStateManager, the only mutable store
    stats - Numeric helpers (means, variances, medians, ranks)
    config - Threshold dataclasses, config loading and validation
    phase0 - Sanity filter
    phase1 - Competence filter (cohort percentile ranks)
    phase2 - Stability and regret filter
    validity - Per-horizon validity gates
    qualification - Qualification mask (prevalence margin / top percent)
    timing - Time-to-pivot analytics
    phase3 - Composite ranking
    runner - Phase sequencing and run summaries
    leaderboard - Per-horizon leaderboards
    profiles - Cross-horizon model quality profiles
    separability - Metric separability analysis
    quintiles - Quintile calibration buckets
    ledger - JSONL round ledger reader
    cli - Command-line interface entrypoints
"""

from . import horizons
from . import errors
from . import records
from . import state
from . import stats
from . import config
from . import phase0
from . import phase1
from . import phase2
from . import validity
from . import qualification
from . import timing
from . import phase3
from . import runner
from . import leaderboard
from . import profiles
from . import separability
from . import quintiles
from . import ledger
from . import cli

__version__ = "1.0.0"
