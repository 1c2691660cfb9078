from .models import Metric, Sample
from .store import Series, SeriesStore

__all__ = ['Metric', 'Sample', 'Series', 'SeriesStore']
