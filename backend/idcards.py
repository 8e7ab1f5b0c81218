import io
import logging
import math
import os
import zipfile
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

import qrcode
from PIL import Image, ImageDraw
from pypdf import PdfReader, PdfWriter
from qrcode.constants import ERROR_CORRECT_H
from reportlab.lib.colors import HexColor, white
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas as pdf_canvas

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).parent

QR_BASE_URL = os.environ.get("QR_BASE_URL", "https://checkin.hackoverflow4.tech").rstrip("/")
ID_CARD_TEMPLATE = os.environ.get("ID_CARD_TEMPLATE", str(ROOT_DIR / "assets" / "id_card_template.pdf"))
ID_CARD_FONT = os.environ.get("ID_CARD_FONT", str(ROOT_DIR / "assets" / "HO.ttf"))

# Template artboard is 226.77 x 283.46 CSS px (96 DPI)
PX_TO_MM = 25.4 / 96
TEMPLATE_WIDTH_MM = 226.77 * PX_TO_MM
TEMPLATE_HEIGHT_MM = 283.46 * PX_TO_MM

NAME_X_OFFSET_MM = 0
NAME_Y_MM = 68.5
NAME_FONT_SIZE = 10
NAME_MIN_FONT_SIZE = 5
NAME_LINE_SPACING_MM = 5
NAME_MAX_WIDTH_RATIO = 0.85

QR_SIZE_MM = 15
QR_X_OFFSET_MM = 0
QR_Y_MM = 48
QR_PIXELS = 512
QR_MARGIN_MODULES = 2
QR_CORNER_RATIO = 0.35
BRAND_GRADIENT = [
    (0.0, "#FCB216"),
    (0.35, "#E85D24"),
    (0.7, "#D91B57"),
    (1.0, "#63205F"),
]

FALLBACK_FONT = "Helvetica-Bold"
CUSTOM_FONT_NAME = "HO"
CARD_BACKGROUND = "#0F0F0F"

RASTER_SUFFIXES = {".png", ".jpg", ".jpeg"}


def build_checkin_url(participant_id: str) -> str:
    if not participant_id or not str(participant_id).strip():
        raise ValueError("Invalid participant ID")
    return f"{QR_BASE_URL}/checkin/{str(participant_id).strip()}"


def extract_participant_id(scanned: str) -> str:
    """Resolve a scanned QR payload to a participant id.

    Accepts the full check-in URL or a bare id.
    """
    raw = (scanned or "").strip()
    prefix = f"{QR_BASE_URL}/checkin/"
    if raw.startswith(prefix):
        remainder = raw[len(prefix):]
        return remainder.split("/")[0].split("?")[0].strip()
    return raw


def _hex_to_rgb(value: str) -> Tuple[int, int, int]:
    value = value.lstrip("#")
    return int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16)


def _gradient_color(t: float) -> Tuple[int, int, int]:
    for (start, start_hex), (end, end_hex) in zip(BRAND_GRADIENT, BRAND_GRADIENT[1:]):
        if t <= end:
            span = (t - start) / (end - start) if end > start else 0.0
            a = _hex_to_rgb(start_hex)
            b = _hex_to_rgb(end_hex)
            return tuple(round(a[i] + (b[i] - a[i]) * span) for i in range(3))
    return _hex_to_rgb(BRAND_GRADIENT[-1][1])


def _diagonal_gradient(size: int) -> Image.Image:
    steps = 2 * size - 1
    strip = Image.new("RGB", (steps, 1))
    strip.putdata([_gradient_color(i / (steps - 1)) for i in range(steps)])
    gradient = Image.new("RGB", (size, size))
    for y in range(size):
        gradient.paste(strip.crop((y, 0, y + size, 1)), (0, y))
    return gradient


def _qr_matrix(data: str) -> List[List[bool]]:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, border=0)
    qr.add_data(data)
    qr.make(fit=True)
    return qr.get_matrix()


def _styled_qr(data: str, size: int = QR_PIXELS) -> Image.Image:
    matrix = _qr_matrix(data)
    count = len(matrix)
    module = size / (count + QR_MARGIN_MODULES * 2)
    offset = module * QR_MARGIN_MODULES
    radius = module * QR_CORNER_RATIO

    mask = Image.new("L", (size, size), 0)
    draw = ImageDraw.Draw(mask)
    for row, cells in enumerate(matrix):
        for col, filled in enumerate(cells):
            if filled:
                x = offset + col * module
                y = offset + row * module
                draw.rounded_rectangle((x, y, x + module, y + module), radius=radius, fill=255)

    image = Image.new("RGBA", (size, size), (0, 0, 0, 0))
    image.paste(_diagonal_gradient(size), (0, 0), mask)
    return image


def _plain_qr(data: str, size: int = QR_PIXELS) -> Image.Image:
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_H, border=1)
    qr.add_data(data)
    qr.make(fit=True)
    image = qr.make_image(fill_color="black", back_color="white").convert("RGB")
    return image.resize((size, size), Image.NEAREST)


def generate_qr_image(participant_id: str) -> Image.Image:
    url = build_checkin_url(participant_id)
    try:
        return _styled_qr(url)
    except Exception as exc:
        logger.warning("Styled QR failed for %s, using plain QR: %s", participant_id, exc)
        return _plain_qr(url)


def generate_qr_png(participant_id: str) -> bytes:
    output = io.BytesIO()
    generate_qr_image(participant_id).save(output, format="PNG")
    return output.getvalue()


def _name_font() -> str:
    if CUSTOM_FONT_NAME in pdfmetrics.getRegisteredFontNames():
        return CUSTOM_FONT_NAME
    if ID_CARD_FONT and Path(ID_CARD_FONT).is_file():
        try:
            pdfmetrics.registerFont(TTFont(CUSTOM_FONT_NAME, ID_CARD_FONT))
            return CUSTOM_FONT_NAME
        except Exception as exc:
            logger.warning("Could not load ID card font %s: %s", ID_CARD_FONT, exc)
    return FALLBACK_FONT


def split_name(name: str) -> List[str]:
    words = name.strip().upper().split()
    if len(words) > 2:
        half = math.ceil(len(words) / 2)
        return [" ".join(words[:half]), " ".join(words[half:])]
    return [" ".join(words)]


def _fit_font_size(lines: List[str], font: str, max_width: float) -> float:
    size = float(NAME_FONT_SIZE)
    while size > NAME_MIN_FONT_SIZE and any(pdfmetrics.stringWidth(line, font, size) > max_width for line in lines):
        size -= 0.5
    return size


def _template_kind(path: Optional[str]) -> Optional[str]:
    if not path or not Path(path).is_file():
        return None
    suffix = Path(path).suffix.lower()
    if suffix == ".pdf":
        return "pdf"
    if suffix in RASTER_SUFFIXES:
        return "raster"
    return None


def _page_size(template: Optional[str], kind: Optional[str]) -> Tuple[float, float]:
    if kind == "pdf":
        page = PdfReader(template).pages[0]
        return float(page.mediabox.width), float(page.mediabox.height)
    return TEMPLATE_WIDTH_MM * mm, TEMPLATE_HEIGHT_MM * mm


def _draw_qr(card, participant_id: str, width: float, height: float) -> None:
    qr_x = (width - QR_SIZE_MM * mm) / 2 + QR_X_OFFSET_MM * mm
    qr_y = height - (QR_Y_MM + QR_SIZE_MM) * mm
    try:
        reader = ImageReader(generate_qr_image(participant_id))
        card.drawImage(reader, qr_x, qr_y, width=QR_SIZE_MM * mm, height=QR_SIZE_MM * mm, mask="auto")
    except Exception as exc:
        logger.warning("QR code unavailable for %s: %s", participant_id, exc)
        card.setStrokeColor(HexColor("#C8C8C8"))
        card.setFillColor(HexColor("#969696"))
        card.rect(qr_x, qr_y, QR_SIZE_MM * mm, QR_SIZE_MM * mm, stroke=1, fill=0)
        center_x = width / 2 + QR_X_OFFSET_MM * mm
        card.setFont("Helvetica", 8)
        card.drawCentredString(center_x, height - (QR_Y_MM + QR_SIZE_MM / 2 - 1) * mm, "QR CODE")
        card.setFont("Helvetica", 5)
        card.drawCentredString(center_x, height - (QR_Y_MM + QR_SIZE_MM / 2 + 2) * mm, "ERROR")


def _draw_overlay(buffer: io.BytesIO, card_data: Mapping[str, str], width: float, height: float, background: Optional[str]) -> None:
    card = pdf_canvas.Canvas(buffer, pagesize=(width, height))
    card.setTitle(f"ID Card - {card_data.get('name', '')}")

    if background == "none":
        card.setFillColor(HexColor(CARD_BACKGROUND))
        card.rect(0, 0, width, height, stroke=0, fill=1)
    elif background:
        card.drawImage(ImageReader(background), 0, 0, width=width, height=height)

    font = _name_font()
    lines = split_name(card_data.get("name", ""))
    size = _fit_font_size(lines, font, width * NAME_MAX_WIDTH_RATIO)
    center_x = width / 2 + NAME_X_OFFSET_MM * mm
    card.setFillColor(white)
    card.setFont(font, size)
    for index, line in enumerate(lines):
        baseline = height - (NAME_Y_MM + index * NAME_LINE_SPACING_MM) * mm
        card.drawCentredString(center_x, baseline, line)

    _draw_qr(card, card_data.get("participant_id", ""), width, height)
    card.showPage()
    card.save()


def generate_card_pdf(card_data: Mapping[str, str], template: Optional[str] = None) -> bytes:
    """Render one ID card and return the PDF bytes.

    A PDF template stays vector: the name and QR overlay is merged onto its
    first page. A PNG/JPEG template is drawn as the page background, and
    without any template the card gets a plain dark background.
    """
    template = template if template is not None else ID_CARD_TEMPLATE
    kind = _template_kind(template)
    width, height = _page_size(template, kind)

    overlay = io.BytesIO()
    if kind == "raster":
        background = template
    elif kind == "pdf":
        background = None
    else:
        background = "none"
    _draw_overlay(overlay, card_data, width, height, background)

    if kind != "pdf":
        return overlay.getvalue()

    overlay.seek(0)
    base_page = PdfReader(template).pages[0]
    base_page.merge_page(PdfReader(overlay).pages[0])
    writer = PdfWriter()
    writer.add_page(base_page)
    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()


def card_filename(card_data: Mapping[str, str]) -> str:
    safe_name = "_".join(str(card_data.get("name", "")).split())
    return f"{safe_name}_{card_data.get('participant_id', '')}.pdf"


def generate_cards_zip(cards: Iterable[Mapping[str, str]], template: Optional[str] = None) -> Tuple[bytes, Dict[str, int]]:
    generated = 0
    failed = 0
    output = io.BytesIO()
    with zipfile.ZipFile(output, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for card_data in cards:
            try:
                archive.writestr(card_filename(card_data), generate_card_pdf(card_data, template=template))
                generated += 1
            except Exception as exc:
                failed += 1
                logger.error("Skipping ID card for %s: %s", card_data.get("participant_id"), exc)
    return output.getvalue(), {"generated": generated, "failed": failed}
