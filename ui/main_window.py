from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

from PySide6.QtCore import Qt
from PySide6.QtGui import QAction, QKeySequence, QIcon, QPixmap
from PySide6.QtWidgets import (
    QMainWindow, QWidget, QFileDialog, QVBoxLayout, QHBoxLayout, QLabel,
    QSlider, QCheckBox, QPushButton, QMessageBox, QDockWidget, QDoubleSpinBox,
    QGroupBox, QScrollArea
)

from core.compositor import make_thumbnail
from core.config import AppConfig
from core.errors import (
    DecodeError, IllegalTransition, InvalidScale, NothingToExport, ShapeMaskError, ValidationError,
)
from core.io import (
    default_export_name, format_file_size, load_mask_file, load_replacement_file, save_export,
)
from core.state import WorkflowState
from core.workflow import WorkflowStateMachine
from ui.canvas_widget import CanvasWidget, pil_rgba_to_qimage

logger = logging.getLogger(__name__)

STATUS_TEXT = {
    WorkflowState.INITIAL: "Waiting for a mask image…",
    WorkflowState.MASK_LOADED: "Mask loaded. Click the image to start replacing.",
    WorkflowState.TOOL_ACTIVE: "Replace tool open. Choose the image to put inside the mask.",
    WorkflowState.PROCESSING: "Drag to position, adjust scale, then Apply.",
    WorkflowState.COMPLETED: "Replacement applied. Download the result or click the image to replace again.",
}


class MainWindow(QMainWindow):
    def __init__(self, config: Optional[AppConfig] = None, logo_path: Optional[Path] = None):
        super().__init__()
        self._logo_path = logo_path or Path(__file__).resolve().parent.parent / "assets" / "Logo.png"
        if self._logo_path.exists():
            self.setWindowIcon(QIcon(str(self._logo_path)))
        self.setWindowTitle("ShapeMask")

        self.config = config or AppConfig()
        self._mask_path: Optional[Path] = None
        self._last_dir = ""

        # Central
        self.canvas = CanvasWidget(
            on_click=self._on_canvas_clicked,
            on_drag_begin=self._on_drag_begin,
            on_drag=self._on_drag,
            on_drag_end=self._on_drag_end,
            on_scale=self._on_wheel_scale,
            on_drop_file=self._on_file_dropped,
        )

        central = QWidget()
        lay = QVBoxLayout()
        lay.addWidget(self.canvas)
        central.setLayout(lay)
        self.setCentralWidget(central)

        self.workflow = WorkflowStateMachine(surface=self.canvas, config=self.config)
        self.workflow.add_listener(self._on_state_changed)

        # Menu
        self._build_menu()

        # Right-side controls dock
        self._build_controls_dock()

        self.setAcceptDrops(True)
        self.resize(1200, 800)
        self._on_state_changed(self.workflow.state)

    # ---------------------------
    # Menu / Actions
    # ---------------------------
    def _build_menu(self) -> None:
        open_act = QAction("Open Mask…", self)
        open_act.setShortcut(QKeySequence.StandardKey.Open)
        open_act.triggered.connect(self.open_mask)

        self._act_replace = QAction("Choose Replacement…", self)
        self._act_replace.triggered.connect(self.choose_replacement)

        self._act_download = QAction("Download Result…", self)
        self._act_download.setShortcut(QKeySequence.StandardKey.Save)
        self._act_download.triggered.connect(self.download_result)

        self._act_reset = QAction("Reset", self)
        self._act_reset.triggered.connect(self.reset_app)

        reset_view = QAction("Reset View", self)
        reset_view.triggered.connect(self.canvas.reset_view)

        fit_act = QAction("Fit Replacement to Mask", self)
        fit_act.setShortcut("F")
        fit_act.triggered.connect(self._fit)

        center_act = QAction("Center Replacement", self)
        center_act.setShortcut("C")
        center_act.triggered.connect(self._center)

        quit_act = QAction("Quit", self)
        quit_act.setShortcut(QKeySequence.StandardKey.Quit)
        quit_act.triggered.connect(self.close)

        mfile = self.menuBar().addMenu("File")
        mfile.addAction(open_act)
        mfile.addAction(self._act_replace)
        mfile.addAction(self._act_download)
        mfile.addSeparator()
        mfile.addAction(self._act_reset)
        mfile.addSeparator()
        mfile.addAction(quit_act)

        mview = self.menuBar().addMenu("View")
        mview.addAction(reset_view)
        mview.addAction(fit_act)
        mview.addAction(center_act)

    def keyPressEvent(self, e) -> None:
        if e.key() == Qt.Key_Escape and self.workflow.state in (WorkflowState.TOOL_ACTIVE, WorkflowState.PROCESSING):
            self.cancel_replacement()
            e.accept()
            return
        super().keyPressEvent(e)

    # ---------------------------
    # Controls dock
    # ---------------------------
    def _build_controls_dock(self) -> None:
        dock = QDockWidget("Controls", self)
        dock.setAllowedAreas(Qt.LeftDockWidgetArea | Qt.RightDockWidgetArea)

        scroll = QScrollArea()
        scroll.setWidgetResizable(True)
        panel = QWidget()
        v = QVBoxLayout(panel)

        if self._logo_path.exists():
            logo_label = QLabel()
            logo_label.setAlignment(Qt.AlignCenter)
            logo_pm = QPixmap(str(self._logo_path))
            if not logo_pm.isNull():
                logo_label.setPixmap(logo_pm.scaled(180, 64, Qt.KeepAspectRatio, Qt.SmoothTransformation))
                v.addWidget(logo_label)

        g_mask, gl_mask = self._make_group("Mask")
        self.open_mask_btn = QPushButton("Open Mask…")
        self.open_mask_btn.clicked.connect(self.open_mask)
        gl_mask.addWidget(self.open_mask_btn)
        self.mask_name_lbl = QLabel()
        self.mask_dims_lbl = QLabel()
        self.mask_bytes_lbl = QLabel()
        gl_mask.addWidget(self.mask_name_lbl)
        gl_mask.addWidget(self.mask_dims_lbl)
        gl_mask.addWidget(self.mask_bytes_lbl)
        ctl_row = QHBoxLayout()
        self.reset_btn = QPushButton("Reset")
        self.reset_btn.clicked.connect(self.reset_app)
        ctl_row.addWidget(self.reset_btn)
        self.download_btn = QPushButton("Download")
        self.download_btn.clicked.connect(self.download_result)
        ctl_row.addWidget(self.download_btn)
        gl_mask.addLayout(ctl_row)
        v.addWidget(g_mask)

        self.replace_group, gl_rep = self._make_group("Replace")
        self.choose_btn = QPushButton("Choose Replacement…")
        self.choose_btn.clicked.connect(self.choose_replacement)
        gl_rep.addWidget(self.choose_btn)

        thumbs_row = QHBoxLayout()
        self.original_thumb = QLabel()
        self.result_thumb = QLabel()
        for lbl in (self.original_thumb, self.result_thumb):
            lbl.setAlignment(Qt.AlignCenter)
            lbl.setFixedSize(self.config.thumbnail_size, self.config.thumbnail_size)
            thumbs_row.addWidget(lbl)
        self.thumbs = QWidget()
        self.thumbs.setLayout(thumbs_row)
        gl_rep.addWidget(self.thumbs)

        scale_row = QHBoxLayout()
        self.scale_slider = QSlider(Qt.Horizontal)
        self.scale_slider.setRange(max(1, int(round(self.config.min_scale * 100))), int(round(self.config.max_scale * 100)))
        self.scale_slider.valueChanged.connect(self._on_scale_slider_changed)
        scale_row.addWidget(self.scale_slider, 1)
        self.scale_spin = QDoubleSpinBox()
        self.scale_spin.setRange(self.config.min_scale * 100.0, self.config.max_scale * 100.0)
        self.scale_spin.setDecimals(1)
        self.scale_spin.setSingleStep(1.0)
        self.scale_spin.setSuffix("%")
        self.scale_spin.valueChanged.connect(self._on_scale_spin_changed)
        scale_row.addWidget(self.scale_spin)
        self._add_labeled_row(gl_rep, "Scale", None)
        gl_rep.addLayout(scale_row)

        tx_btn_row = QHBoxLayout()
        self.fit_btn = QPushButton("Fit")
        self.fit_btn.clicked.connect(self._fit)
        tx_btn_row.addWidget(self.fit_btn)
        self.center_btn = QPushButton("Center")
        self.center_btn.clicked.connect(self._center)
        tx_btn_row.addWidget(self.center_btn)
        gl_rep.addLayout(tx_btn_row)

        self.ghost_slider = QSlider(Qt.Horizontal)
        self.ghost_slider.setRange(0, 100)
        self.ghost_slider.setValue(int(round(self.config.ghost_opacity * 100)))
        self.ghost_slider.valueChanged.connect(self._on_ghost_changed)
        self._add_labeled_row(gl_rep, "Outside opacity", self.ghost_slider)

        self.hq_chk = QCheckBox("High quality resample")
        self.hq_chk.setChecked(self.config.high_quality_resample)
        self.hq_chk.toggled.connect(self._on_resample_changed)
        gl_rep.addWidget(self.hq_chk)
        self.nearest_chk = QCheckBox("Nearest neighbor")
        self.nearest_chk.setChecked(self.config.nearest_neighbor)
        self.nearest_chk.toggled.connect(self._on_resample_changed)
        gl_rep.addWidget(self.nearest_chk)

        apply_row = QHBoxLayout()
        self.apply_btn = QPushButton("Apply")
        self.apply_btn.clicked.connect(self.apply_replacement)
        apply_row.addWidget(self.apply_btn)
        self.cancel_btn = QPushButton("Cancel")
        self.cancel_btn.clicked.connect(self.cancel_replacement)
        apply_row.addWidget(self.cancel_btn)
        gl_rep.addLayout(apply_row)
        v.addWidget(self.replace_group)

        v.addStretch(1)
        scroll.setWidget(panel)
        dock.setWidget(scroll)
        self.addDockWidget(Qt.RightDockWidgetArea, dock)

    def _make_group(self, title: str) -> tuple[QGroupBox, QVBoxLayout]:
        g = QGroupBox(title)
        gl = QVBoxLayout()
        g.setLayout(gl)
        return g, gl

    def _add_labeled_row(self, layout: QVBoxLayout, label: str, widget: Optional[QWidget]) -> None:
        row = QHBoxLayout()
        row.addWidget(QLabel(label))
        if widget is not None:
            row.addWidget(widget, 1)
        layout.addLayout(row)

    # ---------------------------
    # File IO
    # ---------------------------
    def open_mask(self) -> None:
        path, _ = QFileDialog.getOpenFileName(self, "Open Mask", self._last_dir, "PNG (*.png)")
        if not path:
            return
        self._load_mask_path(path)

    def choose_replacement(self) -> None:
        if self.workflow.state in (WorkflowState.MASK_LOADED, WorkflowState.COMPLETED):
            self.workflow.activate_tool()
        if self.workflow.state not in (WorkflowState.TOOL_ACTIVE, WorkflowState.PROCESSING):
            return
        path, _ = QFileDialog.getOpenFileName(
            self, "Choose Replacement", self._last_dir, "Images (*.png *.jpg *.jpeg *.gif *.webp)"
        )
        if not path:
            return
        self._load_replacement_path(path)

    def _load_mask_path(self, path: str) -> None:
        if self.workflow.state is not WorkflowState.INITIAL:
            answer = QMessageBox.question(self, "Replace mask", "Loading a new mask resets everything. Continue?")
            if answer != QMessageBox.Yes:
                return
        try:
            mask = load_mask_file(path, self.config)
        except (ValidationError, DecodeError, OSError) as e:
            logger.warning("Mask load failed: %s", e)
            QMessageBox.critical(self, "Open mask failed", str(e))
            return

        self.workflow.reset()
        self.result_thumb.clear()
        self.workflow.load_mask(mask)
        self._mask_path = Path(path)
        self._last_dir = str(self._mask_path.parent)
        self.mask_name_lbl.setText(f"File: {self._mask_path.name}")
        self.mask_dims_lbl.setText(f"Size: {mask.width} × {mask.height}")
        self.mask_bytes_lbl.setText(f"Bytes: {format_file_size(self._mask_path.stat().st_size)}")
        self.original_thumb.setPixmap(QPixmap.fromImage(pil_rgba_to_qimage(make_thumbnail(mask, self.config.thumbnail_size))))

    def _load_replacement_path(self, path: str) -> None:
        try:
            replacement = load_replacement_file(path, self.config)
            self.workflow.load_replacement(replacement)
        except (ValidationError, DecodeError, OSError) as e:
            logger.warning("Replacement load failed: %s", e)
            QMessageBox.critical(self, "Open replacement failed", str(e))
            return
        except ShapeMaskError as e:
            logger.error("Replacement rejected: %s", e)
            QMessageBox.warning(self, "Replacement rejected", str(e))
            return
        self._last_dir = str(Path(path).parent)
        self._sync_transform_controls()

    def download_result(self) -> None:
        try:
            image = self.workflow.export_image()
        except NothingToExport as e:
            QMessageBox.information(self, "Nothing to download", str(e))
            return

        start = str(Path(self._last_dir) / default_export_name()) if self._last_dir else default_export_name()
        path, _ = QFileDialog.getSaveFileName(
            self, "Download Result", start, "PNG (*.png);;JPG (*.jpg *.jpeg);;WEBP (*.webp)"
        )
        if not path:
            return
        try:
            save_export(path, image)
        except (OSError, ValueError) as e:
            logger.error("Export failed: %s", e)
            QMessageBox.critical(self, "Download failed", str(e))
            return
        self.statusBar().showMessage(f"Saved {Path(path).name}", 3000)

    def _on_file_dropped(self, path: str) -> None:
        state = self.workflow.state
        if state is WorkflowState.INITIAL:
            self._load_mask_path(path)
            return
        if state in (WorkflowState.MASK_LOADED, WorkflowState.COMPLETED):
            self.workflow.activate_tool()
        self._load_replacement_path(path)

    # ---------------------------
    # Workflow
    # ---------------------------
    def apply_replacement(self) -> None:
        try:
            final = self.workflow.commit()
        except ShapeMaskError as e:
            logger.error("Commit failed: %s", e)
            QMessageBox.critical(self, "Apply failed", str(e))
            return
        self.result_thumb.setPixmap(QPixmap.fromImage(pil_rgba_to_qimage(make_thumbnail(final, self.config.thumbnail_size))))

    def cancel_replacement(self) -> None:
        try:
            self.workflow.cancel()
        except IllegalTransition as e:
            logger.debug("Cancel ignored: %s", e)

    def reset_app(self) -> None:
        if self.workflow.state is WorkflowState.INITIAL:
            return
        answer = QMessageBox.question(self, "Reset", "Reset everything?")
        if answer != QMessageBox.Yes:
            return
        self.workflow.reset()
        self._mask_path = None
        for lbl in (self.mask_name_lbl, self.mask_dims_lbl, self.mask_bytes_lbl):
            lbl.clear()
        self.original_thumb.clear()
        self.result_thumb.clear()
        self.canvas.reset_view()

    def _on_state_changed(self, state: WorkflowState) -> None:
        has_mask = self.workflow.mask is not None
        editing = state is WorkflowState.PROCESSING
        tool_open = state in (WorkflowState.TOOL_ACTIVE, WorkflowState.PROCESSING)

        self.replace_group.setVisible(tool_open)
        self.thumbs.setVisible(editing)
        for w in (self.scale_slider, self.scale_spin, self.fit_btn, self.center_btn, self.apply_btn):
            w.setEnabled(editing)
        self.reset_btn.setEnabled(has_mask)
        self.download_btn.setEnabled(has_mask)
        self._act_download.setEnabled(has_mask)
        self._act_reset.setEnabled(has_mask)
        self._act_replace.setEnabled(has_mask)
        self._sync_transform_controls()
        self.statusBar().showMessage(STATUS_TEXT[state])

    # ---------------------------
    # Canvas interactions
    # ---------------------------
    def _on_canvas_clicked(self) -> None:
        if self.workflow.state in (WorkflowState.MASK_LOADED, WorkflowState.COMPLETED):
            self.workflow.activate_tool()

    def _on_drag_begin(self) -> None:
        self.workflow.begin_drag()

    def _on_drag(self, dx_canvas_px: float, dy_canvas_px: float) -> None:
        if self.workflow.drag_by(dx_canvas_px, dy_canvas_px):
            self._update_status()

    def _on_drag_end(self) -> None:
        self.workflow.end_drag()
        self._update_result_thumb()

    def _on_wheel_scale(self, factor: float) -> None:
        if self.workflow.scale_by(factor):
            self._sync_transform_controls()

    def _set_scale_percent(self, pct: float) -> None:
        try:
            changed = self.workflow.set_scale(float(pct) / 100.0)
        except InvalidScale as e:
            logger.warning("Scale rejected: %s", e)
            self._sync_transform_controls()
            return
        if changed:
            self._sync_transform_controls()

    def _on_scale_slider_changed(self, v: int) -> None:
        self._set_scale_percent(v)

    def _on_scale_spin_changed(self, v: float) -> None:
        self._set_scale_percent(v)

    def _fit(self) -> None:
        if self.workflow.fit():
            self._sync_transform_controls()

    def _center(self) -> None:
        if self.workflow.center():
            self._sync_transform_controls()

    def _on_ghost_changed(self, v: int) -> None:
        self.config = self.workflow.update_config(ghost_opacity=v / 100.0)

    def _on_resample_changed(self, _) -> None:
        self.config = self.workflow.update_config(
            high_quality_resample=self.hq_chk.isChecked(),
            nearest_neighbor=self.nearest_chk.isChecked(),
        )
        self._update_result_thumb()

    # ---------------------------
    # UI sync
    # ---------------------------
    def _sync_transform_controls(self) -> None:
        pct = self.workflow.transform.scale * 100.0
        self.scale_slider.blockSignals(True)
        self.scale_slider.setValue(int(round(pct)))
        self.scale_slider.blockSignals(False)
        self.scale_spin.blockSignals(True)
        self.scale_spin.setValue(pct)
        self.scale_spin.blockSignals(False)
        self._update_result_thumb()
        self._update_status()

    def _update_result_thumb(self) -> None:
        preview = self.workflow.preview
        if preview is None:
            return
        thumb = make_thumbnail(preview, self.config.thumbnail_size)
        self.result_thumb.setPixmap(QPixmap.fromImage(pil_rgba_to_qimage(thumb)))

    def _update_status(self) -> None:
        state = self.workflow.state
        if state is not WorkflowState.PROCESSING:
            return
        mask = self.workflow.mask
        repl = self.workflow.replacement
        t = self.workflow.transform
        msg = (
            f"Mask: {mask.width}x{mask.height} | Replacement: {repl.width}x{repl.height} | "
            f"Scale: {t.scale * 100:.1f}% | Offset: ({t.offset_x:.1f}, {t.offset_y:.1f})"
        )
        self.statusBar().showMessage(msg)
