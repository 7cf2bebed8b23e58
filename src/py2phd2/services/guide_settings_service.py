"""
PHD2 guiding parameter service.

Thin validate-then-call wrappers for PHD2's parameter getters and setters:
exposure, Dec guide mode, lock position and lock shift, guide algorithm
parameters, calibration, star detection thresholds, camera settings,
dithering and saturation.

Getters map a null answer (PHD2 sends null when no camera is connected or a
setting was never configured) to the default documented on each method.
Inputs with a closed domain are validated locally before anything is sent.
"""

from typing import Any, Dict, List, Optional, Tuple

from py2phd2.core.errors import ErrorCodes, ProtocolError, ValidationError
from py2phd2.services.guider_command_service import GuiderCommandService

DEC_GUIDE_MODES = ("Off", "Auto", "North", "South")
ALGO_AXES = ("ra", "x", "dec", "y")
LOCK_SHIFT_UNITS = ("arcsec/hr", "pixels/hr")
LOCK_SHIFT_AXES = ("RA/Dec", "X/Y")
DOWNSAMPLE_VALUES = ("Auto", "1", "2", "3")
DITHER_MODES = ("random", "spiral")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"not a boolean: {value!r}")


class GuideSettingsService(GuiderCommandService):
    """Getters and setters for PHD2 guiding parameters."""

    # ========== Exposure and Dec mode ==========

    def get_exposure(self) -> int:
        """Guide exposure in milliseconds."""
        return self._query("get_exposure", int)

    def set_exposure(self, exposure_ms: int) -> None:
        self._require_type(exposure_ms, int, "exposure_ms")
        self._require_range(exposure_ms, "exposure_ms", minimum=0)
        self._send("set_exposure", exposure_ms)

    def get_dec_guide_mode(self) -> str:
        return self._query("get_dec_guide_mode", str)

    def set_dec_guide_mode(self, mode: str) -> None:
        self._require_choice(mode, DEC_GUIDE_MODES, "Dec guide mode")
        self._send("set_dec_guide_mode", mode)

    def get_guide_output_enabled(self) -> bool:
        return self._query("get_guide_output_enabled", _to_bool)

    def set_guide_output_enabled(self, enabled: bool) -> None:
        self._require_type(enabled, bool, "enabled")
        self._send("set_guide_output_enabled", enabled)

    # ========== Lock position and lock shift ==========

    def get_lock_position(self) -> Optional[Tuple[float, float]]:
        """Lock position (x, y) in pixels, or None when no lock is set."""
        position = self._query("get_lock_position", list, default=None)
        if position is None:
            return None
        if len(position) != 2:
            raise ProtocolError(f"Unexpected lock position: {position!r}", method="get_lock_position",
                                error_code=ErrorCodes.INVALID_RESPONSE)
        return float(position[0]), float(position[1])

    def set_lock_position(self, x: float, y: float, exact: bool = True) -> None:
        """
        Set the lock position.

        With ``exact`` False PHD2 moves the lock to the nearest star
        instead of the exact pixel coordinate.
        """
        self._require_type(x, (int, float), "x")
        self._require_type(y, (int, float), "y")
        self._send("set_lock_position", [x, y, exact])

    def get_lock_shift_enabled(self) -> bool:
        return self._query("get_lock_shift_enabled", _to_bool, default=False)

    def set_lock_shift_enabled(self, enabled: bool) -> None:
        self._require_type(enabled, bool, "enabled")
        self._send("set_lock_shift_enabled", enabled)

    def get_lock_shift_params(self) -> Dict[str, Any]:
        return self._query("get_lock_shift_params", dict, default={})

    def set_lock_shift_params(self, x_rate: float, y_rate: float,
                              units: str = "arcsec/hr", axes: str = "RA/Dec") -> None:
        self._require_choice(units, LOCK_SHIFT_UNITS, "units")
        self._require_choice(axes, LOCK_SHIFT_AXES, "axes")
        self._send("set_lock_shift_params", {
            "rate": [x_rate, y_rate],
            "units": units,
            "axes": axes,
        })

    # ========== Guide algorithm parameters ==========

    def _normalize_axis(self, axis: str) -> str:
        if not isinstance(axis, str):
            raise ValidationError(f"Invalid axis: {axis}", field_name="axis")
        axis = axis.lower()
        self._require_choice(axis, ALGO_AXES, "axis")
        return axis

    def get_algo_param_names(self, axis: str) -> List[str]:
        axis = self._normalize_axis(axis)
        names = self._query("get_algo_param_names", list, default=[], params=axis)
        return [str(name) for name in names]

    def get_algo_param(self, axis: str, name: str) -> float:
        axis = self._normalize_axis(axis)
        return self._query("get_algo_param", float, params=[axis, name])

    def set_algo_param(self, axis: str, name: str, value: float) -> None:
        """Set a guide algorithm parameter; the value is rounded to 3 decimals."""
        axis = self._normalize_axis(axis)
        self._require_type(value, (int, float), "value")
        rounded = round(float(value), 3)
        self.logger.debug(f"set_algo_param axis={axis} name={name} value={value!r} rounded={rounded}")
        self._send("set_algo_param", [axis, name, rounded])

    def get_guide_algorithm_ra(self) -> str:
        """Default "None"."""
        return self._query("get_guide_algorithm_ra", str, default="None")

    def set_guide_algorithm_ra(self, algorithm: str) -> None:
        self._send("set_guide_algorithm_ra", {"algorithm": algorithm})

    def get_guide_algorithm_dec(self) -> str:
        """Default "None"."""
        return self._query("get_guide_algorithm_dec", str, default="None")

    def set_guide_algorithm_dec(self, algorithm: str) -> None:
        self._send("set_guide_algorithm_dec", {"algorithm": algorithm})

    def get_variable_delay_settings(self) -> Dict[str, Any]:
        return self._query("get_variable_delay_settings", dict, default={})

    def set_variable_delay_settings(self, enabled: bool, short_delay_seconds: int,
                                    long_delay_seconds: int) -> None:
        self._require_type(enabled, bool, "enabled")
        self._require_range(short_delay_seconds, "short_delay_seconds", minimum=0)
        self._require_range(long_delay_seconds, "long_delay_seconds", minimum=0)
        self._send("set_variable_delay_settings", {
            "Enabled": enabled,
            "ShortDelaySeconds": short_delay_seconds,
            "LongDelaySeconds": long_delay_seconds,
        })

    # ========== Optics and calibration ==========

    def get_pixel_scale(self) -> float:
        """
        Pixel scale in arc-seconds per pixel.

        Raises:
            ProtocolError: If PHD2 has no pixel scale (no camera connected
                or focal length not configured)
        """
        return self._query("get_pixel_scale", float)

    def get_focal_length(self) -> int:
        return self._query("get_focal_length", int)

    def set_focal_length(self, focal_length: int) -> None:
        self._require_type(focal_length, int, "focal_length")
        self._require_range(focal_length, "focal_length", minimum=0)
        self._send("set_focal_length", focal_length)

    def get_calibration_step(self) -> int:
        return self._query("get_calibration_step", int)

    def set_calibration_step(self, step: int) -> None:
        self._require_type(step, int, "step")
        self._require_range(step, "step", minimum=1)
        self._send("set_calibration_step", step)

    def clear_mount_calibration(self) -> None:
        self._send("clear_mount_calibration")
        self.logger.info("Cleared mount calibration")

    def get_auto_restore_calibration(self) -> bool:
        return self._query("get_auto_restore_calibration", _to_bool, default=False)

    def set_auto_restore_calibration(self, enabled: bool) -> None:
        self._send("set_auto_restore_calibration", bool(enabled))

    def get_assume_dec_orthogonal(self) -> bool:
        return self._query("get_assume_dec_orthogonal", _to_bool, default=False)

    def set_assume_dec_orthogonal(self, enabled: bool) -> None:
        self._send("set_assume_dec_orthogonal", bool(enabled))

    def get_use_dec_compensation(self) -> bool:
        return self._query("get_use_dec_compensation", _to_bool, default=False)

    def set_use_dec_compensation(self, enabled: bool) -> None:
        self._send("set_use_dec_compensation", bool(enabled))

    def get_reverse_dec_on_flip(self) -> bool:
        return self._query("get_reverse_dec_on_flip", _to_bool, default=False)

    def set_reverse_dec_on_flip(self, enabled: bool) -> None:
        self._send("set_reverse_dec_on_flip", bool(enabled))

    def get_fast_recenter_enabled(self) -> bool:
        return self._query("get_fast_recenter_enabled", _to_bool, default=False)

    def set_fast_recenter_enabled(self, enabled: bool) -> None:
        self._send("set_fast_recenter_enabled", bool(enabled))

    def get_mount_guide_output_enabled(self) -> bool:
        return self._query("get_mount_guide_output_enabled", _to_bool, default=False)

    def set_mount_guide_output_enabled(self, enabled: bool) -> None:
        self._send("set_mount_guide_output_enabled", bool(enabled))

    # ========== Star detection ==========

    def get_search_region(self) -> int:
        """Search region in pixels, default 0."""
        return self._query("get_search_region", int, default=0)

    def set_search_region(self, pixels: int) -> None:
        self._require_type(pixels, int, "pixels")
        self._require_range(pixels, "pixels", minimum=1)
        self._send("set_search_region", pixels)

    def get_min_star_hfd(self) -> float:
        return self._query("get_min_star_hfd", float, default=0.0)

    def set_min_star_hfd(self, hfd: float) -> None:
        self._require_range(hfd, "hfd", minimum=0.0)
        self._send("set_min_star_hfd", hfd)

    def get_max_star_hfd(self) -> float:
        return self._query("get_max_star_hfd", float, default=0.0)

    def set_max_star_hfd(self, hfd: float) -> None:
        self._require_range(hfd, "hfd", minimum=0.0)
        self._send("set_max_star_hfd", hfd)

    def get_beep_for_lost_star(self) -> bool:
        return self._query("get_beep_for_lost_star", _to_bool, default=False)

    def set_beep_for_lost_star(self, enabled: bool) -> None:
        self._send("set_beep_for_lost_star", bool(enabled))

    def get_mass_change_threshold_enabled(self) -> bool:
        return self._query("get_mass_change_threshold_enabled", _to_bool, default=False)

    def set_mass_change_threshold_enabled(self, enabled: bool) -> None:
        self._send("set_mass_change_threshold_enabled", bool(enabled))

    def get_mass_change_threshold(self) -> float:
        return self._query("get_mass_change_threshold", float, default=0.0)

    def set_mass_change_threshold(self, threshold: float) -> None:
        self._require_range(threshold, "threshold", minimum=0.0)
        self._send("set_mass_change_threshold", threshold)

    def get_af_min_star_snr(self) -> float:
        return self._query("get_af_min_star_snr", float, default=0.0)

    def set_af_min_star_snr(self, snr: float) -> None:
        self._require_range(snr, "snr", minimum=0.0)
        self._send("set_af_min_star_snr", snr)

    def get_use_multiple_stars(self) -> bool:
        return self._query("get_use_multiple_stars", _to_bool, default=False)

    def set_use_multiple_stars(self, enabled: bool) -> None:
        self._send("set_use_multiple_stars", bool(enabled))

    def get_auto_select_downsample(self) -> str:
        """Downsample for star auto-selection, default "Auto"."""
        return self._query("get_auto_select_downsample", str, default="Auto")

    def set_auto_select_downsample(self, value: str) -> None:
        self._require_choice(value, DOWNSAMPLE_VALUES, "downsample value")
        self._send("set_auto_select_downsample", value)

    def get_always_scale_images(self) -> bool:
        return self._query("get_always_scale_images", _to_bool, default=False)

    def set_always_scale_images(self, enabled: bool) -> None:
        self._send("set_always_scale_images", bool(enabled))

    # ========== Camera ==========

    def get_camera_gain(self) -> int:
        return self._query("get_camera_gain", int, default=0)

    def set_camera_gain(self, gain: int) -> None:
        self._require_type(gain, int, "gain")
        self._require_range(gain, "gain", minimum=0, maximum=100)
        self._send("set_camera_gain", {"gain": gain})

    def get_camera_cooler_on(self) -> bool:
        return self._query("get_camera_cooler_on", _to_bool, default=False)

    def set_camera_cooler_on(self, enabled: bool) -> None:
        self._send("set_camera_cooler_on", {"enabled": bool(enabled)})

    def get_camera_temperature_setpoint(self) -> float:
        return self._query("get_camera_temperature_setpoint", float, default=0.0)

    def set_camera_temperature_setpoint(self, temperature: float) -> None:
        self._require_type(temperature, (int, float), "temperature")
        self._send("set_camera_temperature_setpoint", {"temperature": temperature})

    def get_camera_use_subframes(self) -> bool:
        return self._query("get_camera_use_subframes", _to_bool, default=False)

    def set_camera_use_subframes(self, enabled: bool) -> None:
        self._send("set_camera_use_subframes", {"enabled": bool(enabled)})

    def get_camera_binning(self) -> int:
        return self._query("get_camera_binning", int, default=0)

    def set_camera_binning(self, binning: int) -> None:
        self._require_type(binning, int, "binning")
        self._require_range(binning, "binning", minimum=1)
        self._send("set_camera_binning", {"binning": binning})

    def get_auto_exposure_min(self) -> float:
        return self._query("get_auto_exposure_min", float, default=0.0)

    def set_auto_exposure_min(self, exposure: float) -> None:
        self._require_range(exposure, "exposure", minimum=0.0)
        self._send("set_auto_exposure_min", {"exposure": exposure})

    def get_auto_exposure_max(self) -> float:
        return self._query("get_auto_exposure_max", float, default=0.0)

    def set_auto_exposure_max(self, exposure: float) -> None:
        self._require_range(exposure, "exposure", minimum=0.0)
        self._send("set_auto_exposure_max", {"exposure": exposure})

    def get_auto_exposure_target_snr(self) -> float:
        return self._query("get_auto_exposure_target_snr", float, default=0.0)

    def set_auto_exposure_target_snr(self, snr: float) -> None:
        self._require_range(snr, "snr", minimum=0.0)
        self._send("set_auto_exposure_target_snr", {"target_snr": snr})

    # ========== Dithering ==========

    def get_dither_mode(self) -> str:
        """Dither mode, default "random"."""
        return self._query("get_dither_mode", str, default="random")

    def set_dither_mode(self, mode: str) -> None:
        self._require_choice(mode, DITHER_MODES, "dither mode")
        self._send("set_dither_mode", {"mode": mode})

    def get_dither_ra_only(self) -> bool:
        return self._query("get_dither_ra_only", _to_bool, default=False)

    def set_dither_ra_only(self, ra_only: bool) -> None:
        self._send("set_dither_ra_only", {"ra_only": bool(ra_only)})

    def get_dither_scale(self) -> float:
        """Dither scale factor, default 1.0."""
        return self._query("get_dither_scale", float, default=1.0)

    def set_dither_scale(self, scale: float) -> None:
        self._require_range(scale, "scale", minimum=0.0)
        self._send("set_dither_scale", {"scale": scale})

    # ========== Saturation ==========

    def get_saturation_by_adu(self) -> bool:
        return self._query("get_saturation_by_adu", _to_bool, default=False)

    def set_saturation_by_adu(self, by_adu: bool, adu_value: Optional[int] = None) -> None:
        """The ADU value is only sent when saturation is detected by ADU."""
        param: Dict[str, Any] = {"by_adu": bool(by_adu)}
        if by_adu and adu_value is not None:
            self._require_type(adu_value, int, "adu_value")
            self._require_range(adu_value, "adu_value", minimum=0, maximum=65535)
            param["adu_value"] = adu_value
        self._send("set_saturation_by_adu", param)

    def get_saturation_adu_value(self) -> int:
        return self._query("get_saturation_adu_value", int, default=0)

    def set_saturation_adu_value(self, adu_value: int) -> None:
        self._require_type(adu_value, int, "adu_value")
        self._require_range(adu_value, "adu_value", minimum=0, maximum=65535)
        self._send("set_saturation_adu_value", {"adu_value": adu_value})
