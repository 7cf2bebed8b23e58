"""Data models for PHD2 connection settings and guiding session state."""

from .connection import ConnectionConfig, ConnectionModel, ConnectionState, ConnectionStatus
from .guiding import (
    GuideStarInfo,
    GuideStats,
    PHD2Status,
    SettleProgress,
    StarImageData,
    StarLostInfo,
)

__all__ = [
    'ConnectionConfig',
    'ConnectionModel',
    'ConnectionState',
    'ConnectionStatus',
    'GuideStarInfo',
    'GuideStats',
    'PHD2Status',
    'SettleProgress',
    'StarImageData',
    'StarLostInfo',
]
