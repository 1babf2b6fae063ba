"""
Mask Worker - Async Preset Application
======================================
QThread worker that watermarks one photo with every configured preset.

Workflow:
1. Decode the source photo (bytes or file) to RGB, honoring EXIF orientation
2. For each preset:
   a. Apply the mask to a fresh copy of the decoded photo
   b. Encode the result as JPEG
3. Emit progress signals during processing
4. Emit finished signal with results (one per preset, in preset order)

A failing preset yields a failed MaskResult; the remaining presets still run
against the untouched source photo.
"""

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Tuple, Union

from PIL import Image, ImageOps
from PyQt6.QtCore import QThread, pyqtSignal

from photomask.core import FontBundle, NamedPreset, apply_preset

log = logging.getLogger(__name__)


def decode_photo(source: Union[bytes, str, Path]) -> Image.Image:
    """
    Decode a photo from raw bytes or a file path.

    Returns:
        RGB image with EXIF orientation applied.
    """
    if isinstance(source, (bytes, bytearray)):
        image = Image.open(io.BytesIO(source))
    else:
        image = Image.open(source)

    with image:
        image = ImageOps.exif_transpose(image)
        return image.convert("RGB")


def encode_jpeg(image: Image.Image, quality: int = 90) -> bytes:
    """Encode ``image`` as JPEG bytes; alpha is flattened onto white."""
    if image.mode == "RGBA":
        flattened = Image.new("RGB", image.size, (255, 255, 255))
        flattened.paste(image, mask=image.split()[3])
        image = flattened
    elif image.mode != "RGB":
        image = image.convert("RGB")

    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


@dataclass
class MaskJob:
    """Everything needed to watermark one photo."""
    presets: List[NamedPreset] = field(default_factory=list)
    source_bytes: Optional[bytes] = None
    source_path: Optional[Path] = None
    jpeg_quality: int = 90
    fonts: Optional[FontBundle] = None


@dataclass
class MaskResult:
    """Result of applying a single preset."""
    name: str
    preset: Optional[NamedPreset] = None
    data: Optional[bytes] = None  # JPEG
    size: Optional[Tuple[int, int]] = None
    success: bool = False
    error_message: str = ""


class MaskWorker(QThread):
    """
    Worker thread applying mask presets to a photo.

    Signals:
        progress(int, int, str): (current, total, preset_name)
        preset_completed(MaskResult): Emitted when each preset is processed
        finished_all(list[MaskResult]): Emitted when all presets are done
        error(str): Emitted on critical errors
    """

    # Signals
    progress = pyqtSignal(int, int, str)  # current, total, preset name
    preset_completed = pyqtSignal(object)  # MaskResult
    finished_all = pyqtSignal(list)  # List[MaskResult]
    error = pyqtSignal(str)  # Error message

    def __init__(self, job: MaskJob, parent=None):
        """
        Initialize the mask worker.

        Args:
            job: MaskJob with the photo and presets.
            parent: Optional parent QObject.
        """
        super().__init__(parent)
        self.job = job
        self._is_cancelled = False

    def cancel(self):
        """Request cancellation before the next preset."""
        self._is_cancelled = True

    def _load_source(self) -> Image.Image:
        if self.job.source_bytes is not None:
            return decode_photo(self.job.source_bytes)
        if self.job.source_path is not None:
            return decode_photo(self.job.source_path)
        raise ValueError("No photo to process")

    def _process_preset(self, source: Image.Image, preset: NamedPreset) -> MaskResult:
        """
        Apply one preset and encode the result.

        Args:
            source: Decoded photo; never modified.
            preset: Preset to apply.

        Returns:
            MaskResult with processing outcome.
        """
        result = MaskResult(name=preset.name, preset=preset)

        try:
            masked = apply_preset(source, preset, self.job.fonts)
            result.data = encode_jpeg(masked, self.job.jpeg_quality)
            result.size = masked.size
            result.success = True
            log.info("Preset %r done (%d bytes)", preset.name, len(result.data))

        except Exception as e:
            result.success = False
            result.error_message = str(e)
            log.exception("Preset %r failed", preset.name)

        return result

    def run(self):
        """
        Main worker execution.

        Decodes the photo once, then processes every preset and emits progress.
        """
        results: List[MaskResult] = []
        total = len(self.job.presets)

        if total == 0:
            self.error.emit("No presets configured")
            self.finished_all.emit(results)
            return

        try:
            source = self._load_source()
        except Exception as e:
            log.exception("Cannot decode photo")
            self.error.emit(f"Cannot decode photo: {e}")
            self.finished_all.emit(results)
            return

        try:
            for idx, preset in enumerate(self.job.presets):
                if self._is_cancelled:
                    break

                self.progress.emit(idx + 1, total, preset.name)

                result = self._process_preset(source, preset)
                results.append(result)

                self.preset_completed.emit(result)

        except Exception as e:
            self.error.emit(f"Critical error: {e}")
            log.exception("Mask worker failed")

        finally:
            source.close()

        self.finished_all.emit(results)
