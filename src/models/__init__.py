# Models module exports — re-export from the canonical source
from src.models.history import (
    RawSeries,
    SeriesCatalog,
    Observation,
    MetricResult,
    DecodedReport,
)
