from __future__ import annotations
from typing import Optional, Callable, Tuple

from PIL import Image
from PySide6.QtCore import Qt, QPoint, QRectF
from PySide6.QtGui import QPainter, QImage, QPixmap, QColor, QPen
from PySide6.QtWidgets import QWidget


def pil_rgba_to_qimage(img: Image.Image) -> QImage:
    img = img.convert("RGBA")
    w, h = img.size
    data = img.tobytes("raw", "RGBA")
    qimg = QImage(data, w, h, QImage.Format_RGBA8888)
    # Important: keep a copy because Python-owned bytes may be freed
    return qimg.copy()


class CanvasWidget(QWidget):
    """
    Shows the mask / preview / result frame with view zoom and pan.
    Implements the render surface protocol (paint, dimensions).
    Supports:
      - left-click: on_click (activates the replace tool)
      - left-drag: move replacement (on_drag_begin, on_drag(dx, dy) in canvas px, on_drag_end)
      - wheel: view zoom
      - ctrl+wheel: replacement zoom (calls on_scale(factor))
      - middle-drag: pan view
      - file drop: on_drop_file(path)
    """
    CLICK_SLOP_PX = 3

    def __init__(
        self,
        on_click: Callable[[], None],
        on_drag_begin: Callable[[], None],
        on_drag: Callable[[float, float], None],
        on_drag_end: Callable[[], None],
        on_scale: Callable[[float], None],
        on_drop_file: Optional[Callable[[str], None]] = None,
        parent: Optional[QWidget] = None,
    ):
        super().__init__(parent)
        self.setMouseTracking(True)
        self.setFocusPolicy(Qt.StrongFocus)
        self.setMinimumSize(320, 320)

        self._frame: Optional[QImage] = None
        self._out_size: Tuple[int, int] = (0, 0)
        self.hint_text = "Drop a PNG mask here or File → Open Mask…"

        # View transform (zoom 1.0 == fit to widget)
        self._view_zoom = 1.0
        self._view_pan_x = 0.0
        self._view_pan_y = 0.0

        # Interaction
        self._dragging_left = False
        self._dragging_mid = False
        self._press_pos = QPoint()
        self._last_pos = QPoint()
        self._moved_beyond_slop = False

        self._on_click = on_click
        self._on_drag_begin = on_drag_begin
        self._on_drag = on_drag
        self._on_drag_end = on_drag_end
        self._on_scale = on_scale
        self._on_drop_file = on_drop_file

        self.setAcceptDrops(True)

    # ---------------------------
    # Render surface
    # ---------------------------
    def paint(self, pixels: Optional[Image.Image]) -> None:
        if pixels is None:
            self._frame = None
            self._out_size = (0, 0)
        else:
            new_size = pixels.size
            if new_size != self._out_size:
                self.reset_view()
            self._frame = pil_rgba_to_qimage(pixels)
            self._out_size = new_size
        self.update()

    def dimensions(self) -> Tuple[int, int]:
        return self._out_size

    def reset_view(self) -> None:
        self._view_zoom = 1.0
        self._view_pan_x = 0.0
        self._view_pan_y = 0.0
        self.update()

    # ---------------------------
    # Geometry
    # ---------------------------
    def _display_scale(self) -> float:
        out_w, out_h = self._out_size
        if out_w <= 0 or out_h <= 0:
            return 1.0
        # Letterbox the frame into the widget, never upscaling past 1:1
        fit = min((self.width() - 20) / float(out_w), (self.height() - 40) / float(out_h), 1.0)
        return max(0.01, fit) * self._view_zoom

    def _frame_rect(self) -> QRectF:
        out_w, out_h = self._out_size
        scale = self._display_scale()
        draw_w = out_w * scale
        draw_h = out_h * scale
        cx = self.width() * 0.5 + self._view_pan_x
        cy = self.height() * 0.5 + self._view_pan_y
        return QRectF(cx - draw_w * 0.5, cy - draw_h * 0.5, draw_w, draw_h)

    # ---------------------------
    # Painting
    # ---------------------------
    def paintEvent(self, _) -> None:
        p = QPainter(self)
        p.setRenderHint(QPainter.Antialiasing, True)

        # Background
        p.fillRect(self.rect(), QColor(30, 30, 30))

        if self._frame is None:
            p.setPen(QPen(QColor(220, 220, 220)))
            p.drawText(self.rect(), Qt.AlignCenter, self.hint_text)
            return

        r = self._frame_rect()

        # Checkerboard underlay (to visualize transparency)
        self._draw_checkerboard(p, r, int(16 * self._view_zoom))

        pm = QPixmap.fromImage(self._frame)
        p.drawPixmap(int(r.left()), int(r.top()), int(r.width()), int(r.height()), pm)

        # Frame border
        p.setPen(QPen(QColor(240, 240, 240), 1))
        p.drawRect(r)

        # Help overlay
        p.setPen(QPen(QColor(220, 220, 220)))
        msg = "Click: replace tool | Left-drag: move replacement | Ctrl+Wheel: replacement zoom | Wheel: view zoom"
        p.drawText(10, self.height() - 10, msg)

    def _draw_checkerboard(self, p: QPainter, r: QRectF, cell: int) -> None:
        if cell < 4:
            cell = 4
        c1 = QColor(60, 60, 60)
        c2 = QColor(90, 90, 90)

        x0 = int(r.left())
        y0 = int(r.top())
        x1 = int(r.right())
        y1 = int(r.bottom())

        for y in range(y0, y1, cell):
            for x in range(x0, x1, cell):
                use_c1 = ((x // cell) + (y // cell)) % 2 == 0
                p.fillRect(x, y, min(cell, x1 - x), min(cell, y1 - y), c1 if use_c1 else c2)

    # ---------------------------
    # Input
    # ---------------------------
    def wheelEvent(self, e) -> None:
        delta = e.angleDelta().y()
        if delta == 0:
            return

        factor = 1.1 if delta > 0 else (1.0 / 1.1)
        if e.modifiers() & Qt.ControlModifier:
            self._on_scale(factor)
            e.accept()
            return

        self._view_zoom = max(0.05, min(20.0, self._view_zoom * factor))
        self.update()
        e.accept()

    def mousePressEvent(self, e) -> None:
        self._last_pos = e.position().toPoint()
        self._press_pos = self._last_pos

        if e.button() == Qt.LeftButton:
            self._dragging_left = True
            self._moved_beyond_slop = False
            self._on_drag_begin()
        elif e.button() == Qt.MiddleButton:
            self._dragging_mid = True

    def mouseMoveEvent(self, e) -> None:
        pos = e.position().toPoint()
        dx = pos.x() - self._last_pos.x()
        dy = pos.y() - self._last_pos.y()
        self._last_pos = pos

        if self._dragging_left:
            if (pos - self._press_pos).manhattanLength() > self.CLICK_SLOP_PX:
                self._moved_beyond_slop = True
            # Convert widget pixels to canvas pixels based on display scale
            scale = self._display_scale()
            if scale > 1e-6 and (dx or dy):
                self._on_drag(dx / scale, dy / scale)
        elif self._dragging_mid:
            self._view_pan_x += dx
            self._view_pan_y += dy
            self.update()

    def mouseReleaseEvent(self, e) -> None:
        if e.button() == Qt.LeftButton and self._dragging_left:
            self._dragging_left = False
            self._on_drag_end()
            if not self._moved_beyond_slop and self._frame is not None:
                if self._frame_rect().contains(e.position()):
                    self._on_click()
        elif e.button() == Qt.MiddleButton:
            self._dragging_mid = False

    # ---------------------------
    # Drag & drop support
    # ---------------------------
    def dragEnterEvent(self, e) -> None:
        if self._on_drop_file is not None and e.mimeData().hasUrls():
            e.acceptProposedAction()

    def dropEvent(self, e) -> None:
        urls = e.mimeData().urls()
        if not urls or self._on_drop_file is None:
            return
        path = urls[0].toLocalFile()
        if path:
            self._on_drop_file(path)
