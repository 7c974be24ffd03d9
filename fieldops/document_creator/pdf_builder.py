"""
Build the printable service report: header, classification, location, photos,
equipment checklist, remarks and the signature block.
"""
import base64
import io
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import unquote

import httpx
import structlog
from PIL import Image as PILImage, UnidentifiedImageError
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from ..storage.local_provider import LocalStorageProvider
from ..storage.provider import StorageProvider
from ..workflow.checklist import ChecklistSchema, DEFAULT_SCHEMA, remark_key, value_key

logger = structlog.get_logger(__name__)

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"
MARGIN = 40
LINE = 14

STATUS_LABELS = {"ok": "OK", "issue": "Issue", "na": "N/A"}
STATUS_COLORS = {"ok": colors.HexColor("#15803d"), "issue": colors.HexColor("#b91c1c"), "na": colors.HexColor("#6b7280")}


def _image_reader(data: Optional[bytes]) -> Optional[ImageReader]:
    if not data:
        return None
    try:
        im = PILImage.open(io.BytesIO(data))
        if im.mode in ("RGBA", "P", "LA"):
            im = im.convert("RGB")
        buf = io.BytesIO()
        im.save(buf, format="JPEG", quality=85)
        buf.seek(0)
        return ImageReader(buf)
    except (UnidentifiedImageError, OSError):
        return None


def _data_url_bytes(value: Optional[str]) -> Optional[bytes]:
    """Signatures are stored as data URLs (data:image/png;base64,...)."""
    if not value or not value.startswith("data:") or "," not in value:
        return None
    try:
        return base64.b64decode(value.split(",", 1)[1])
    except ValueError:
        return None


def _read_image_url(url: Optional[str], storage: Optional[StorageProvider]) -> Optional[bytes]:
    if not url:
        return None
    if isinstance(storage, LocalStorageProvider) and "/files/local/" in url:
        return storage.read(unquote(url.split("/files/local/", 1)[1]))
    try:
        r = httpx.get(url, timeout=15.0)
        r.raise_for_status()
        return r.content
    except httpx.HTTPError as e:
        logger.warning("pdf_image_fetch_failed", url=url, error=str(e))
        return None


class _Page:
    def __init__(self, c: canvas.Canvas):
        self.c = c
        self.width, self.height = A4
        self.y = self.height - MARGIN

    def ensure(self, needed: float) -> None:
        if self.y - needed < MARGIN:
            self.c.showPage()
            self.y = self.height - MARGIN

    def heading(self, text: str) -> None:
        self.ensure(LINE * 3)
        self.y -= LINE * 0.5
        self.c.setFillColor(colors.HexColor("#1f2937"))
        self.c.rect(MARGIN, self.y - 4, self.width - 2 * MARGIN, LINE + 4, fill=1, stroke=0)
        self.c.setFillColor(colors.white)
        self.c.setFont(FONT_BOLD, 10)
        self.c.drawString(MARGIN + 6, self.y, text)
        self.c.setFillColor(colors.black)
        self.y -= LINE * 1.5

    def pairs(self, rows: List[tuple]) -> None:
        col_w = (self.width - 2 * MARGIN) / 2
        for i in range(0, len(rows), 2):
            self.ensure(LINE)
            for j, (label, value) in enumerate(rows[i:i + 2]):
                x = MARGIN + j * col_w
                self.c.setFont(FONT_BOLD, 9)
                self.c.drawString(x, self.y, f"{label}:")
                self.c.setFont(FONT, 9)
                self.c.drawString(x + 95, self.y, _text(value)[:48])
            self.y -= LINE

    def paragraph(self, label: str, text: Optional[str]) -> None:
        self.ensure(LINE * 2)
        self.c.setFont(FONT_BOLD, 9)
        self.c.drawString(MARGIN, self.y, f"{label}:")
        self.y -= LINE
        self.c.setFont(FONT, 9)
        for line in _wrap(_text(text), 105):
            self.ensure(LINE)
            self.c.drawString(MARGIN + 10, self.y, line)
            self.y -= LINE


def _text(value: Any) -> str:
    if value is None or value == "":
        return "-"
    return str(value)


def _wrap(text: str, width: int) -> List[str]:
    lines = []
    for raw in text.splitlines() or [""]:
        while len(raw) > width:
            cut = raw.rfind(" ", 0, width)
            cut = cut if cut > 0 else width
            lines.append(raw[:cut])
            raw = raw[cut:].lstrip()
        lines.append(raw)
    return lines


def build_report_pdf(
    report: Mapping[str, Any],
    storage: Optional[StorageProvider] = None,
    schema: ChecklistSchema = DEFAULT_SCHEMA,
) -> bytes:
    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=A4)
    c.setTitle(f"Service Report {report.get('complaint_no') or ''}")
    page = _Page(c)

    c.setFont(FONT_BOLD, 16)
    c.drawString(MARGIN, page.y, "Field Service Report")
    c.setFont(FONT, 10)
    c.drawRightString(page.width - MARGIN, page.y, _text(report.get("complaint_no")))
    page.y -= LINE * 1.5
    c.setFont(FONT, 9)
    status = report.get("status") or "draft"
    approval = report.get("approval_status") or "pending"
    c.drawString(MARGIN, page.y, f"Status: {status}    Approval: {approval}")
    page.y -= LINE

    page.heading("Basic Information")
    page.pairs([
        ("Complaint Type", report.get("complaint_type")),
        ("System Type", report.get("system_type")),
        ("Project Phase", report.get("project_phase")),
        ("Zone", report.get("zone")),
        ("Date", report.get("date")),
    ])

    page.heading("Location Details")
    page.pairs([
        ("RFP No", report.get("rfp_no")),
        ("Location", report.get("location")),
        ("Ward No", report.get("ward_no")),
        ("PS Limits", report.get("ps_limits")),
        ("Pole ID", report.get("pole_id")),
        ("JB Sl No", report.get("jb_sl_no")),
        ("Site Lat/Lng", _coords(report.get("location_latitude"), report.get("location_longitude"))),
        ("GPS Lat/Lng", _coords(report.get("latitude"), report.get("longitude"))),
    ])

    photos = [
        ("Before", report.get("before_image_url")),
        ("After", report.get("after_image_url")),
        ("UPS Input", report.get("ups_input_image_url")),
        ("UPS Output", report.get("ups_output_image_url")),
        ("Thermistor", report.get("thermistor_image_url")),
    ] + [(f"Raw Power {i + 1}", url) for i, url in enumerate(report.get("raw_power_supply_images") or [])]
    photos = [(label, url) for label, url in photos if url]
    if photos:
        page.heading("Photos")
        _draw_photos(page, photos, storage)

    page.heading("Equipment Checklist")
    _draw_checklist(page, report, schema)

    page.heading("Report Content")
    page.paragraph("Nature of Complaint", report.get("nature_of_complaint"))
    page.paragraph("Field Team Remarks", report.get("field_team_remarks"))
    page.paragraph("Customer Feedback", report.get("customer_feedback"))

    page.heading("Signatures")
    _draw_signatures(page, report)

    c.showPage()
    c.save()
    return buf.getvalue()


def _coords(lat, lng) -> str:
    if lat is None or lng is None:
        return "-"
    return f"{float(lat):.6f}, {float(lng):.6f}"


def _draw_photos(page: _Page, photos: List[tuple], storage: Optional[StorageProvider]) -> None:
    thumb_w, thumb_h = 160, 120
    per_row = 3
    for i in range(0, len(photos), per_row):
        page.ensure(thumb_h + LINE * 2)
        for j, (label, url) in enumerate(photos[i:i + per_row]):
            x = MARGIN + j * (thumb_w + 12)
            page.c.setFont(FONT_BOLD, 8)
            page.c.drawString(x, page.y, label)
            reader = _image_reader(_read_image_url(url, storage))
            if reader is not None:
                page.c.drawImage(reader, x, page.y - thumb_h - 4, width=thumb_w, height=thumb_h, preserveAspectRatio=True, anchor="sw")
            else:
                page.c.setFont(FONT, 7)
                page.c.drawString(x, page.y - LINE, "(image unavailable)")
        page.y -= thumb_h + LINE * 2


def _draw_checklist(page: _Page, report: Mapping[str, Any], schema: ChecklistSchema) -> None:
    data: Dict[str, Dict[str, str]] = report.get("checklist_data") or {}
    remarks: Dict[str, Any] = report.get("equipment_remarks") or {}
    for section in schema.sections:
        page.ensure(LINE * 2)
        page.c.setFont(FONT_BOLD, 9)
        title = section.name
        if section.has_temperature and report.get("jb_temperature") is not None:
            title = f"{title} (Temperature: {report.get('jb_temperature')} C)"
        page.c.drawString(MARGIN, page.y, title)
        page.y -= LINE
        for item in section.items:
            page.ensure(LINE)
            status = (data.get(section.name) or {}).get(item, "ok")
            page.c.setFont(FONT, 8)
            page.c.setFillColor(colors.black)
            page.c.drawString(MARGIN + 10, page.y, item)
            page.c.setFillColor(STATUS_COLORS.get(status, colors.black))
            page.c.drawString(MARGIN + 200, page.y, STATUS_LABELS.get(status, status))
            page.c.setFillColor(colors.black)
            notes = []
            if section.value_required and remarks.get(value_key(section.name, item)) is not None:
                notes.append(f"Value: {remarks.get(value_key(section.name, item))}")
            if status == "issue" and remarks.get(remark_key(section.name, item)):
                notes.append(str(remarks.get(remark_key(section.name, item))))
            if notes:
                page.c.drawString(MARGIN + 250, page.y, " | ".join(notes)[:60])
            page.y -= LINE * 0.9
        page.y -= LINE * 0.3


def _draw_signatures(page: _Page, report: Mapping[str, Any]) -> None:
    page.ensure(110)
    col_w = (page.width - 2 * MARGIN) / 2
    blocks = [
        ("Technician", report.get("tech_engineer"), report.get("tech_mobile"), report.get("tech_signature")),
        ("Team Leader", report.get("tl_name"), report.get("tl_mobile"), report.get("tl_signature")),
    ]
    top = page.y
    for i, (role, name, mobile, signature) in enumerate(blocks):
        x = MARGIN + i * col_w
        y = top
        page.c.setFont(FONT_BOLD, 9)
        page.c.drawString(x, y, role)
        reader = _image_reader(_data_url_bytes(signature))
        if reader is not None:
            page.c.drawImage(reader, x, y - 64, width=150, height=56, preserveAspectRatio=True, anchor="sw")
        page.c.line(x, y - 68, x + 180, y - 68)
        page.c.setFont(FONT, 8)
        page.c.drawString(x, y - 80, f"Name: {_text(name)}")
        page.c.drawString(x, y - 92, f"Mobile: {_text(mobile)}")
    page.y = top - 100
    if report.get("approval_status") == "reject" and report.get("rejection_remarks"):
        page.paragraph("Rejection Remarks", report.get("rejection_remarks"))
    if report.get("approval_notes"):
        page.paragraph("Approval Notes", report.get("approval_notes"))
