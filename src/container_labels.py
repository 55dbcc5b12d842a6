"""
Printable labels for opened containers.

Each container instance gets a Code-128 label sized for the station's
thermal printer (65 x 35 mm at 203 DPI by default). The instance id is
encoded in the barcode; the id and the container type are printed under it
so the box can be identified by eye as well.
"""

import io
from pathlib import Path
from typing import List

import barcode
from barcode.writer import ImageWriter
from PIL import Image, ImageDraw, ImageFont

from exceptions import ReconcilerError
from logger import get_logger
from models import ContainerInstance
from settings import ReconcilerSettings

logger = get_logger(__name__)

# Space under the barcode for two text lines
TEXT_AREA_HEIGHT = 80


def _mm_to_px(mm: float, dpi: int) -> int:
    return int((mm / 25.4) * dpi)


def _load_fonts(size: int):
    try:
        return ImageFont.truetype("arial.ttf", size), ImageFont.truetype("arialbd.ttf", size)
    except IOError:
        logger.warning("Arial fonts not found, falling back to default font")
        font = ImageFont.load_default()
        return font, font


class LabelGenerator:
    """
    Renders container labels as PNG files.

    Attributes:
        output_dir (Path): Where label files are written
        dpi / width_px / height_px: Label geometry
    """

    def __init__(self, output_dir, settings: ReconcilerSettings = None):
        settings = settings or ReconcilerSettings()
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.dpi = settings.label_dpi
        self.width_px = _mm_to_px(settings.label_width_mm, self.dpi)
        self.height_px = _mm_to_px(settings.label_height_mm, self.dpi)
        self.font, self.font_bold = _load_fonts(settings.label_font_size)

    def render(self, instance: ContainerInstance) -> Image.Image:
        """Build the label image for one container."""
        code128 = barcode.get_barcode_class('code128')
        buffer = io.BytesIO()
        code128(instance.instance_id, writer=ImageWriter()).write(buffer, {
            'module_height': 15.0,
            'write_text': False,
            'quiet_zone': 2,
        })
        buffer.seek(0)
        barcode_img = Image.open(buffer)

        bar_height = max(self.height_px - TEXT_AREA_HEIGHT, 1)
        aspect_ratio = barcode_img.width / barcode_img.height
        bar_width = min(int(bar_height * aspect_ratio), self.width_px)
        barcode_img = barcode_img.resize((bar_width, bar_height), Image.LANCZOS)

        label = Image.new('RGB', (self.width_px, self.height_px), 'white')
        label.paste(barcode_img, ((self.width_px - bar_width) // 2, 0))

        draw = ImageDraw.Draw(label)
        y = bar_height + 5
        for text, font in ((instance.instance_id, self.font), (instance.container_type, self.font_bold)):
            bbox = draw.textbbox((0, 0), text, font=font)
            x = (self.width_px - (bbox[2] - bbox[0])) / 2
            draw.text((x, y), text, font=font, fill='black')
            y += (bbox[3] - bbox[1]) + 5

        return label

    def generate(self, instance: ContainerInstance) -> Path:
        """
        Write the label PNG for a container.

        Returns:
            Path of the written file

        Raises:
            ReconcilerError: If the label cannot be rendered or saved
        """
        path = self.output_dir / f"{instance.instance_id}.png"
        try:
            self.render(instance).save(path)
        except Exception as e:
            logger.error(f"Error generating label for {instance.instance_id}: {e}", exc_info=True)
            raise ReconcilerError(f"Error generating label for {instance.instance_id}: {e}") from e
        logger.info(f"Label written: {path.name}")
        return path

    def generate_all(self, instances: List[ContainerInstance]) -> List[Path]:
        return [self.generate(instance) for instance in instances]
