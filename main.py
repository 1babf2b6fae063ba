"""
PhotoMask - Main Entry Point
============================
Watermarks a photo with every configured mask preset.

Usage:
    python main.py photo.jpg -o out/ --env dev

Architecture:
    - Model: photomask/core/ (pure mask engine)
    - Worker: photomask/workers/ (QThread, keeps rendering off the event loop)
    - Controller: This file (signal/slot connections, file output)

Output:
    One JPEG per preset, named ``<photo stem>_<preset name>.jpg``.
    With ``--dump-svg`` the preset's vector document is written next to it.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QCoreApplication

from photomask import __app_name__, __version__
from photomask.config import Config, load_config, slugify
from photomask.core import ConfigError, FontBundle, NamedPreset, RenderError, build_mask_document
from photomask.workers import MaskJob, MaskResult, MaskWorker

log = logging.getLogger("photomask")


class MaskController:
    """
    Controller class that connects worker signals to file output.

    Responsibilities:
    - Create and start the mask worker
    - Write each finished preset to the output directory
    - Quit the event loop and remember the exit status when done
    """

    def __init__(
            self,
            app: QCoreApplication,
            config: Config,
            photo_path: Path,
            output_dir: Path,
            presets: list[NamedPreset],
            fonts: FontBundle,
            dump_svg: bool = False
    ):
        self.app = app
        self.config = config
        self.photo_path = photo_path
        self.output_dir = output_dir
        self.preset_count = len(presets)
        self.dump_svg = dump_svg
        self.exit_code = 0

        # Worker reference (to prevent garbage collection)
        self._worker: Optional[MaskWorker] = None

        job = MaskJob(
            presets=presets,
            source_path=photo_path,
            jpeg_quality=config.output.jpeg_quality,
            fonts=fonts,
        )
        self._worker = MaskWorker(job)
        self._worker.progress.connect(self._on_progress)
        self._worker.preset_completed.connect(self._on_preset_completed)
        self._worker.finished_all.connect(self._on_finished)
        self._worker.error.connect(self._on_error)

    def start(self):
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._worker.start()

    def _output_path(self, name: str, suffix: str) -> Path:
        separator = self.config.output.suffix_separator
        return self.output_dir / f"{self.photo_path.stem}{separator}{slugify(name)}{suffix}"

    def _on_progress(self, current: int, total: int, name: str):
        log.info("Applying preset %d/%d: %s", current, total, name)

    def _on_preset_completed(self, result: MaskResult):
        if not result.success:
            log.error("Preset %r failed: %s", result.name, result.error_message)
            self.exit_code = 1
            return

        output_path = self._output_path(result.name, ".jpg")
        output_path.write_bytes(result.data)
        log.info("Wrote %s", output_path)

        if self.dump_svg:
            width, height = result.size
            document = build_mask_document(result.preset.preset, width, height)
            svg_path = self._output_path(result.name, ".svg")
            svg_path.write_text(document.to_svg(), encoding="utf-8")
            log.info("Wrote %s", svg_path)

    def _on_error(self, error_message: str):
        log.error(error_message)
        self.exit_code = 1

    def _on_finished(self, results: list):
        done = sum(1 for r in results if r.success)
        log.info("Finished: %d/%d presets succeeded", done, self.preset_count)
        if done < self.preset_count:
            self.exit_code = 1

        self._worker.wait()
        self.app.exit(self.exit_code)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photomask",
        description="Apply watermark mask presets to a photo.",
    )
    parser.add_argument("photo", type=Path, help="Photo to watermark")
    parser.add_argument("-o", "--output-dir", type=Path, default=Path("output"),
                        help="Directory for the results (default: ./output)")
    parser.add_argument("--env", dest="environment",
                        help="Config environment (default: $ENVIRONMENT)")
    parser.add_argument("--config-dir", type=Path,
                        help="Directory with default.toml / <env>.toml (default: ./config)")
    parser.add_argument("--preset", action="append", dest="preset_names", metavar="NAME",
                        help="Only apply this preset (repeatable)")
    parser.add_argument("--dump-svg", action="store_true",
                        help="Also write each mask as an SVG document")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors")
    parser.add_argument("--version", action="version", version=f"{__app_name__} {__version__}")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)

    # Configure logging
    if args.quiet:
        level = logging.ERROR
    elif args.verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if not args.photo.is_file():
        log.error("Photo not found: %s", args.photo)
        return 2

    try:
        config = load_config(args.environment, args.config_dir)
        fonts = config.font_bundle()
    except (ConfigError, RenderError) as e:
        log.error("Loading config has failed: %s", e)
        return 2

    presets = config.masks.presets
    if args.preset_names:
        unknown = set(args.preset_names) - {p.name for p in presets}
        if unknown:
            log.error("Unknown presets: %s", ", ".join(sorted(unknown)))
            return 2
        presets = [p for p in presets if p.name in args.preset_names]

    # Create application (event loop for worker signals)
    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName(__app_name__)
    app.setApplicationVersion(__version__)

    controller = MaskController(
        app, config, args.photo, args.output_dir, presets, fonts, dump_svg=args.dump_svg
    )
    controller.start()

    # Run event loop
    return app.exec()


if __name__ == "__main__":
    sys.exit(main())
