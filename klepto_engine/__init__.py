# klepto_engine - evolving forager/kleptoparasite agents on a toroidal landscape

from .config import Param, ConfigurationError
from .simulation import Simulation

__all__ = ['Param', 'ConfigurationError', 'Simulation']
