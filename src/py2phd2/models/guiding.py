"""Guiding session models.

Value objects describing what PHD2 has reported about the current guiding
session: derived RMS statistics, settle progress, star-loss details, the
current guide star and star image cutouts.
"""

import base64
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional

import numpy as np


@dataclass
class GuideStats:
    """Point-in-time RMS and peak guide error, in pixels."""
    rms_total: float = 0.0
    rms_ra: float = 0.0
    rms_dec: float = 0.0
    peak_ra: float = 0.0
    peak_dec: float = 0.0

    @classmethod
    def from_accumulators(cls, accum_ra, accum_dec) -> "GuideStats":
        """Build stats from the RA and Dec accumulators."""
        rms_ra = accum_ra.stdev()
        rms_dec = accum_dec.stdev()
        return cls(
            rms_total=float(np.hypot(rms_ra, rms_dec)),
            rms_ra=rms_ra,
            rms_dec=rms_dec,
            peak_ra=accum_ra.peak(),
            peak_dec=accum_dec.peak(),
        )

    def copy(self) -> "GuideStats":
        return replace(self)

    def to_dict(self) -> Dict[str, float]:
        return {
            'rms_total': self.rms_total,
            'rms_ra': self.rms_ra,
            'rms_dec': self.rms_dec,
            'peak_ra': self.peak_ra,
            'peak_dec': self.peak_dec,
        }


@dataclass(frozen=True)
class SettleProgress:
    """Settle record.

    While settling, ``done`` is False and distance/time fields describe the
    progress. Once PHD2 reports SettleDone, ``done`` is True and ``status``
    is 0 on success; ``error`` carries the failure reason otherwise.
    Records are immutable and replaced wholesale on every settle event.
    """
    done: bool = False
    distance: float = 0.0
    settle_px: float = 0.0
    time: float = 0.0
    settle_time: float = 0.0
    status: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'done': self.done,
            'distance': self.distance,
            'settle_px': self.settle_px,
            'time': self.time,
            'settle_time': self.settle_time,
            'status': self.status,
            'error': self.error,
        }


@dataclass(frozen=True)
class StarLostInfo:
    """Snapshot of the most recent StarLost event."""
    frame: int
    time: float
    star_mass: float
    snr: float
    avg_dist: float
    error_code: int
    status: str
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'frame': self.frame,
            'time': self.time,
            'star_mass': self.star_mass,
            'snr': self.snr,
            'avg_dist': self.avg_dist,
            'error_code': self.error_code,
            'status': self.status,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class GuideStarInfo:
    """Most recent per-frame quality of the guide star.

    Updated field by field, since a GuideStep event may report only a
    subset of SNR, HFD and StarMass.
    """
    snr: float = 0.0
    hfd: float = 0.0
    star_mass: float = 0.0
    last_update: Optional[datetime] = None

    def copy(self) -> "GuideStarInfo":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'snr': self.snr,
            'hfd': self.hfd,
            'star_mass': self.star_mass,
            'last_update': self.last_update.isoformat() if self.last_update else None,
        }


@dataclass(frozen=True)
class StarImageData:
    """Guide star cutout returned by get_star_image.

    ``pixels`` is the base64 encoding of little-endian 16-bit pixel values,
    row-major, exactly as PHD2 sends it.
    """
    frame: int
    width: int
    height: int
    star_pos_x: float
    star_pos_y: float
    pixels: str

    def decode_pixels(self) -> np.ndarray:
        """Decode the pixel payload into a (height, width) uint16 array."""
        raw = base64.b64decode(self.pixels)
        data = np.frombuffer(raw, dtype='<u2')
        return data.reshape((self.height, self.width))


@dataclass
class PHD2Status:
    """Complete status snapshot handed to callers."""
    app_state: str = "Stopped"
    avg_dist: float = 0.0
    stats: Optional[GuideStats] = None
    version: Optional[str] = None
    phd_subver: Optional[str] = None
    is_connected: bool = False
    is_guiding: bool = False
    is_settling: bool = False
    settle_progress: Optional[SettleProgress] = None
    last_star_lost: Optional[StarLostInfo] = None
    current_star: Optional[GuideStarInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'app_state': self.app_state,
            'avg_dist': self.avg_dist,
            'stats': self.stats.to_dict() if self.stats else None,
            'version': self.version,
            'phd_subver': self.phd_subver,
            'is_connected': self.is_connected,
            'is_guiding': self.is_guiding,
            'is_settling': self.is_settling,
            'settle_progress': self.settle_progress.to_dict() if self.settle_progress else None,
            'last_star_lost': self.last_star_lost.to_dict() if self.last_star_lost else None,
            'current_star': self.current_star.to_dict() if self.current_star else None,
        }
