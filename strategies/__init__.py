"""Signal strategies and rotation pickers."""

from strategies.elder_ray import ElderRayStrategy
from strategies.kd_cross import KDCrossStrategy
from strategies.ma_alignment import MAAlignmentPicker

__all__ = ['ElderRayStrategy', 'KDCrossStrategy', 'MAAlignmentPicker']
