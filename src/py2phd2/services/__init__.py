"""
Services for py2phd2.

Typed wrappers over the PHD2 method catalogue, grouped by concern.
"""

from .equipment_service import EquipmentService
from .guide_settings_service import GuideSettingsService
from .guider_command_service import GuiderCommandService
from .star_image_service import StarImageService

__all__ = [
    'EquipmentService',
    'GuideSettingsService',
    'GuiderCommandService',
    'StarImageService',
]
