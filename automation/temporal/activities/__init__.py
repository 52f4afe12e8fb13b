"""
Activities do Temporal.

As activities são métodos de instâncias montadas no start do worker, com
o Engine e o CadenceScheduler injetados.
"""
from .run import RunActivities
from .cadence import CadenceActivities

__all__ = [
    'RunActivities',
    'CadenceActivities',
]
