from dataclasses import dataclass, field
from typing import Tuple


@dataclass
class GroupingConfig:
    radius_m: float = 50.0
    max_photos_per_incident: int = 5


@dataclass
class ExtractionConfig:
    batch_size: int = 5
    # Photos under this size are uploaded as-is
    compress_threshold_bytes: int = 200 * 1024
    max_dimension: int = 1280
    jpeg_quality: int = 80
    preview_size: Tuple[int, int] = (320, 320)


@dataclass
class SubmissionConfig:
    concurrency: int = 1


@dataclass
class IntakeConfig:
    grouping: GroupingConfig = field(default_factory=GroupingConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    submission: SubmissionConfig = field(default_factory=SubmissionConfig)
