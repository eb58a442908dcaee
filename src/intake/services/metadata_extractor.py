import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, NamedTuple, Optional, Sequence, Tuple

import piexif

from intake.config import ExtractionConfig
from intake.errors import ExtractionError
from intake.models.ids import new_photo_id
from intake.models.photo import GeoPoint, Photo, PhotoBlob
from intake.utils.image import compress_image, write_preview
from intake.utils.performance import PerformanceMonitor

logger = logging.getLogger(__name__)


class SourceFile(NamedTuple):
    content: bytes
    file_name: str
    content_type: str = "image/jpeg"


ExtractedPhoto = Tuple[Photo, PhotoBlob]


class MetadataExtractor:
    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        default_utc_offset_minutes: int = 0,
        preview_dir: Optional[str] = None,
    ):
        self.config = config or ExtractionConfig()
        self.default_tz = timezone(timedelta(minutes=default_utc_offset_minutes))
        self.preview_dir = preview_dir

    async def extract(self, content: bytes, file_name: str, content_type: str = "image/jpeg") -> ExtractedPhoto:
        """
        Reads GPS and capture time, shrinks the image and writes a preview.

        Never raises for a bad photo: without readable EXIF it simply has no
        GPS and no timestamp and ends up in the orphan pool.
        """
        photo_id = new_photo_id()

        try:
            exif = self._load_exif(content)
            gps = self._get_gps_from_exif(exif)
            timestamp = self._parse_datetime_from_exif(exif)
            orientation = exif.get("0th", {}).get(piexif.ImageIFD.Orientation)
        except ExtractionError as e:
            logger.warning(f"EXIF extraction failed for {file_name}: {e}")
            gps, timestamp, orientation = None, None, None

        cfg = self.config
        payload, compressed = await asyncio.to_thread(
            compress_image, content, cfg.max_dimension, cfg.jpeg_quality, cfg.compress_threshold_bytes
        )
        preview_path = await asyncio.to_thread(write_preview, payload, cfg.preview_size, self.preview_dir)

        photo = Photo(
            id=photo_id,
            original_name=file_name,
            gps=gps,
            timestamp=timestamp,
            orientation=orientation,
        )
        blob = PhotoBlob(
            payload=payload,
            content_type="image/jpeg" if compressed else content_type,
            preview_path=preview_path,
        )
        return photo, blob

    async def extract_batch(
        self,
        files: Sequence[SourceFile],
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> List[ExtractedPhoto]:
        """Extract in small batches, yielding to the event loop between them."""
        results: List[ExtractedPhoto] = []
        batch_size = self.config.batch_size
        total = len(files)

        with PerformanceMonitor("extraction") as monitor:
            for i in range(0, total, batch_size):
                batch = files[i:i + batch_size]
                results.extend(await asyncio.gather(*(self.extract(*f) for f in batch)))

                if on_progress is not None:
                    on_progress((i + len(batch)) / total * 100)
                await asyncio.sleep(0)

        with_gps = sum(1 for photo, _ in results if photo.has_gps)
        logger.info(monitor.report(count=total))
        logger.info(f"Extracted {total} photos ({with_gps} with GPS).")
        return results

    def _load_exif(self, content: bytes) -> dict:
        try:
            return piexif.load(content)
        except Exception as e:
            raise ExtractionError(f"Failed to load EXIF: {e}") from e

    def _rational_to_float(self, value: Any) -> Optional[float]:
        try:
            num, den = value
            if den == 0:
                return None
            return float(num) / float(den)
        except (TypeError, ValueError):
            return None

    def _dms_to_degrees(self, dms: Any, ref: Any) -> Optional[float]:
        if not dms or len(dms) != 3:
            return None
        parts = [self._rational_to_float(v) for v in dms]
        if any(p is None for p in parts):
            return None
        degrees, minutes, seconds = parts
        value = degrees + (minutes / 60.0) + (seconds / 3600.0)

        if isinstance(ref, bytes):
            ref = ref.decode(errors="ignore")
        if isinstance(ref, str) and ref.strip().upper() in ("S", "W"):
            return -value
        return value

    def _get_gps_from_exif(self, exif: dict) -> Optional[GeoPoint]:
        gps = exif.get("GPS") or {}
        lat = self._dms_to_degrees(gps.get(piexif.GPSIFD.GPSLatitude), gps.get(piexif.GPSIFD.GPSLatitudeRef))
        lon = self._dms_to_degrees(gps.get(piexif.GPSIFD.GPSLongitude), gps.get(piexif.GPSIFD.GPSLongitudeRef))
        if lat is None or lon is None:
            return None

        # (0, 0) usually means the GPS fix never happened
        if lat == 0.0 and lon == 0.0:
            return None
        if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
            logger.warning(f"Ignoring out of range GPS ({lat}, {lon})")
            return None
        return GeoPoint(lat=lat, lon=lon)

    def _parse_datetime_from_exif(self, exif: dict) -> Optional[float]:
        exif_exif = exif.get("Exif", {})
        candidates = (
            (exif_exif.get(piexif.ExifIFD.DateTimeOriginal), piexif.ExifIFD.SubSecTimeOriginal,
             piexif.ExifIFD.OffsetTimeOriginal),
            (exif_exif.get(piexif.ExifIFD.DateTimeDigitized), piexif.ExifIFD.SubSecTimeDigitized,
             piexif.ExifIFD.OffsetTimeDigitized),
            (exif.get("0th", {}).get(piexif.ImageIFD.DateTime), piexif.ExifIFD.SubSecTime,
             piexif.ExifIFD.OffsetTime),
        )
        for dt_bytes, subsec_tag, offset_tag in candidates:
            if not dt_bytes:
                continue
            try:
                base_dt = datetime.strptime(dt_bytes.decode().strip("\x00 "), "%Y:%m:%d %H:%M:%S")
            except (UnicodeDecodeError, ValueError):
                continue

            microseconds = 0
            subsec_bytes = exif_exif.get(subsec_tag)
            if subsec_bytes:
                try:
                    microseconds = int(subsec_bytes.decode().strip("\x00 ").ljust(6, "0")[:6])
                except (UnicodeDecodeError, ValueError):
                    microseconds = 0

            tz = self._parse_offset(exif_exif.get(offset_tag)) or self.default_tz
            return base_dt.replace(microsecond=microseconds, tzinfo=tz).timestamp()
        return None

    def _parse_offset(self, offset_bytes: Optional[bytes]) -> Optional[timezone]:
        # "+05:30" style
        if not offset_bytes:
            return None
        try:
            offset_str = offset_bytes.decode().strip("\x00 ")
            sign = -1 if offset_str[0] == "-" else 1
            h = int(offset_str[1:3])
            m = int(offset_str[4:6])
        except (UnicodeDecodeError, ValueError, IndexError):
            logger.warning(f"Invalid OffsetTime format: {offset_bytes!r}")
            return None
        return timezone(sign * timedelta(hours=h, minutes=m))
