"""
Star selection and image retrieval from PHD2.
"""

from typing import List, Optional, Sequence, Tuple

from py2phd2.core.errors import ErrorCodes, ProtocolError, ValidationError
from py2phd2.models.guiding import StarImageData
from py2phd2.services.guider_command_service import GuiderCommandService

MIN_STAR_IMAGE_SIZE = 15


class StarImageService(GuiderCommandService):
    """Guide star selection, star cutouts and full-frame saves."""

    def find_star(self, roi: Optional[Sequence[int]] = None) -> Tuple[float, float]:
        """
        Auto-select a guide star.

        Args:
            roi: Optional region of interest as [x, y, width, height]

        Returns:
            Lock position (x, y) of the selected star

        Raises:
            ValidationError: If roi is not four integers
            ProtocolError: If PHD2 does not answer with a position
        """
        params = None
        if roi is not None:
            roi = list(roi)
            if len(roi) != 4 or not all(isinstance(v, int) and not isinstance(v, bool) for v in roi):
                raise ValidationError(
                    f"ROI must be four integers [x, y, width, height], got {roi}",
                    field_name="roi"
                )
            params = {"roi": roi}

        self.client.check_connected()
        result = self.client.call("find_star", params)

        if not isinstance(result, list) or len(result) != 2:
            raise ProtocolError(f"find_star returned unexpected result: {result!r}", method="find_star",
                                error_code=ErrorCodes.INVALID_RESPONSE)

        x, y = float(result[0]), float(result[1])
        self.logger.info(f"Selected guide star at ({x:.1f}, {y:.1f})")
        return x, y

    def get_star_image(self, size: Optional[int] = None) -> StarImageData:
        """
        Fetch the guide star cutout.

        Args:
            size: Requested cutout size in pixels, raised to at least 15

        Raises:
            ProtocolError: If PHD2 has no star image (no star selected)
        """
        params: List[int] = []
        if size is not None:
            self._require_type(size, int, "size")
            params = [max(MIN_STAR_IMAGE_SIZE, size)]

        self.client.check_connected()
        result = self.client.call("get_star_image", params or None)

        if result is None:
            raise ProtocolError("get_star_image returned no image", method="get_star_image")

        try:
            star_pos = result["star_pos"]
            return StarImageData(
                frame=int(result["frame"]),
                width=int(result["width"]),
                height=int(result["height"]),
                star_pos_x=float(star_pos[0]),
                star_pos_y=float(star_pos[1]),
                pixels=str(result["pixels"]),
            )
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProtocolError(
                f"Malformed get_star_image result: {e}",
                method="get_star_image",
                error_code=ErrorCodes.INVALID_RESPONSE,
                cause=e
            )

    def save_image(self) -> str:
        """
        Save the current guide camera frame as a FITS file.

        Returns:
            Path of the saved file on the PHD2 host
        """
        self.client.check_connected()
        result = self.client.call("save_image")

        filename = result.get("filename") if isinstance(result, dict) else None
        if not filename:
            raise ProtocolError("save_image returned no filename", method="save_image")

        self.logger.info(f"PHD2 saved image to {filename}")
        return str(filename)
