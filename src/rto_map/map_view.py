"""
Map rendering for district boundaries and RTO markers.

Provides:
- Path styles per theme (default, hover, click, current district, placeholder)
- The MapRenderer interface the interaction layer draws through
- PlotlyMapRenderer, a plotly tile-map figure kept in sync with the map state
- Tooltip text for hovered districts
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import plotly.graph_objects as go

from .boundaries import BoundaryFeature
from .config import DISTRICT_ZOOM, get_state_view

logger = logging.getLogger(__name__)

LatLon = Tuple[float, float]


@dataclass(frozen=True)
class PathStyle:
    fill_color: str
    fill_opacity: float
    color: str
    weight: float


@dataclass(frozen=True)
class MapTheme:
    name: str
    basemap: str
    styles: Dict[str, PathStyle]
    marker_current: str
    marker_active: str
    marker_inactive: str
    notice_background: str
    text_color: str

    def style(self, role: str) -> PathStyle:
        return self.styles.get(role, self.styles['default'])


STYLE_ROLES = ('default', 'hover', 'click', 'current', 'current_hover', 'placeholder')

THEMES: Dict[str, MapTheme] = {
    'light': MapTheme(
        name='light',
        basemap='carto-positron',
        styles={
            'default': PathStyle('#60a5fa', 0.25, '#3b82f6', 2),
            'hover': PathStyle('#2563eb', 0.4, '#1d4ed8', 3),
            'click': PathStyle('#16a34a', 0.5, '#15803d', 4),
            'current': PathStyle('#7c3aed', 0.5, '#6d28d9', 4),
            'current_hover': PathStyle('#6d28d9', 0.6, '#5b21b6', 5),
            'placeholder': PathStyle('#9ca3af', 0.2, '#6b7280', 1),
        },
        marker_current='#ef4444',
        marker_active='#3b82f6',
        marker_inactive='#9ca3af',
        notice_background='#fef3c7',
        text_color='#1f2937',
    ),
    'dark': MapTheme(
        name='dark',
        basemap='carto-darkmatter',
        styles={
            'default': PathStyle('#1e40af', 0.35, '#60a5fa', 2),
            'hover': PathStyle('#3b82f6', 0.5, '#93c5fd', 3),
            'click': PathStyle('#22c55e', 0.55, '#4ade80', 4),
            'current': PathStyle('#8b5cf6', 0.55, '#a78bfa', 4),
            'current_hover': PathStyle('#a78bfa', 0.65, '#c4b5fd', 5),
            'placeholder': PathStyle('#4b5563', 0.3, '#9ca3af', 1),
        },
        marker_current='#f87171',
        marker_active='#60a5fa',
        marker_inactive='#6b7280',
        notice_background='#78350f',
        text_color='#f3f4f6',
    ),
}
DEFAULT_THEME = 'light'


def get_theme(name: str) -> MapTheme:
    theme = THEMES.get(name)
    if theme is None:
        logger.warning(f"Unknown theme '{name}', using {DEFAULT_THEME}")
        theme = THEMES[DEFAULT_THEME]
    return theme


def hex_to_rgba(hex_color: str, alpha: float) -> str:
    value = hex_color.lstrip('#')
    if len(value) == 3:
        value = ''.join(c * 2 for c in value)
    r, g, b = (int(value[i:i + 2], 16) for i in (0, 2, 4))
    return f"rgba({r}, {g}, {b}, {alpha})"


def build_tooltip_lines(
    district: str,
    territory: str,
    record_count: int,
    is_current: bool = False,
    interactive: bool = True,
) -> List[str]:
    """Tooltip content for a hovered district."""
    lines = [f"{district} ({territory})" if territory else district]
    if is_current:
        lines.append("Current district")
    if interactive and record_count > 0:
        plural = '' if record_count == 1 else 's'
        lines.append(f"Click to explore {record_count} RTO{plural}")
    return lines


class MapRenderer(ABC):
    """Drawing surface used by the interactive map."""

    @abstractmethod
    def draw_boundary(self, district: str, feature: BoundaryFeature, style: PathStyle) -> None:
        ...

    @abstractmethod
    def draw_placeholder(self, district: str, center: LatLon, style: PathStyle, message: str) -> None:
        ...

    @abstractmethod
    def set_style(self, district: str, style: PathStyle) -> None:
        ...

    @abstractmethod
    def draw_markers(self, placements: Sequence, current_code: Optional[str], theme: MapTheme) -> None:
        ...

    @abstractmethod
    def clear_markers(self) -> None:
        ...

    @abstractmethod
    def show_tooltip(self, lines: List[str], position: Optional[LatLon]) -> None:
        ...

    @abstractmethod
    def move_tooltip(self, position: LatLon) -> None:
        ...

    @abstractmethod
    def hide_tooltip(self) -> None:
        ...

    @abstractmethod
    def show_notice(self, message: Optional[str]) -> None:
        ...

    @abstractmethod
    def set_theme(self, theme: MapTheme) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


MARKER_TRACE = '__markers__'
TOOLTIP_TRACE = '__tooltip__'


def _polygon_path(feature: BoundaryFeature) -> Tuple[List[Optional[float]], List[Optional[float]]]:
    """Flatten every ring into lon/lat lists separated by None."""
    lons: List[Optional[float]] = []
    lats: List[Optional[float]] = []
    for polygon in feature.polygons():
        for ring in polygon:
            for point in ring:
                if len(point) < 2:
                    continue
                lons.append(point[0])
                lats.append(point[1])
            lons.append(None)
            lats.append(None)
    return lons, lats


class PlotlyMapRenderer(MapRenderer):
    """
    Keeps a plotly tile-map figure in sync with the interactive map.

    Each district is one filled ``Scattermap`` trace; markers share one
    trace and the tooltip is a text trace positioned at the pointer.
    """

    def __init__(self, territory: str = '', theme: str = DEFAULT_THEME, height: int = 480,
                 center: Optional[LatLon] = None, zoom: Optional[float] = None):
        self.theme = get_theme(theme)
        view = get_state_view(territory)
        lat, lon = center or view['center']
        self.figure = go.Figure()
        self.figure.update_layout(
            height=height,
            margin=dict(l=0, r=0, t=0, b=0),
            showlegend=False,
            map=dict(
                style=self.theme.basemap,
                center=dict(lat=lat, lon=lon),
                zoom=zoom if zoom is not None else view['zoom'],
            ),
        )
        self._traces: Dict[str, int] = {}
        self.notice: Optional[str] = None
        self.tooltip_lines: List[str] = []
        self.tooltip_position: Optional[LatLon] = None

    def _trace(self, name: str):
        index = self._traces.get(name)
        return None if index is None else self.figure.data[index]

    def _upsert(self, name: str, trace) -> None:
        existing = self._trace(name)
        if existing is None:
            self.figure.add_trace(trace)
            self._traces[name] = len(self.figure.data) - 1
        else:
            props = trace.to_plotly_json()
            props.pop('type', None)
            existing.update(props)

    def draw_boundary(self, district: str, feature: BoundaryFeature, style: PathStyle) -> None:
        lons, lats = _polygon_path(feature)
        self._upsert(district, go.Scattermap(
            lon=lons,
            lat=lats,
            mode='lines',
            fill='toself',
            name=district,
            text=district,
            hoverinfo='text',
        ))
        self.set_style(district, style)

    def draw_placeholder(self, district: str, center: LatLon, style: PathStyle, message: str) -> None:
        lat, lon = center
        self._upsert(district, go.Scattermap(
            lon=[lon],
            lat=[lat],
            mode='markers',
            name=district,
            text=message,
            hoverinfo='text',
        ))
        self.set_style(district, style)
        self.figure.update_layout(map=dict(center=dict(lat=lat, lon=lon), zoom=DISTRICT_ZOOM))

    def set_style(self, district: str, style: PathStyle) -> None:
        trace = self._trace(district)
        if trace is None:
            return
        if trace.fill == 'toself':
            trace.update(
                fillcolor=hex_to_rgba(style.fill_color, style.fill_opacity),
                line=dict(color=style.color, width=style.weight),
            )
        else:
            trace.update(marker=dict(color=style.fill_color, size=8 + 2 * style.weight, opacity=min(1.0, style.fill_opacity + 0.3)))

    def draw_markers(self, placements: Sequence, current_code: Optional[str], theme: MapTheme) -> None:
        colors, sizes = [], []
        for placement in placements:
            record = placement.record
            if record.code == current_code:
                colors.append(theme.marker_current)
                sizes.append(16)
            elif not record.is_active:
                colors.append(theme.marker_inactive)
                sizes.append(12)
            else:
                colors.append(theme.marker_active)
                sizes.append(12)

        self._upsert(MARKER_TRACE, go.Scattermap(
            lat=[p.lat for p in placements],
            lon=[p.lon for p in placements],
            mode='markers+text',
            marker=dict(color=colors, size=sizes),
            text=[str(p.number) for p in placements],
            textposition='middle center',
            customdata=[p.record.code for p in placements],
            hovertext=[f"{p.record.code} • {p.record.city}" for p in placements],
            hoverinfo='text',
            name=MARKER_TRACE,
            visible=bool(placements),
        ))

    def clear_markers(self) -> None:
        trace = self._trace(MARKER_TRACE)
        if trace is not None:
            trace.update(lat=[], lon=[], text=[], customdata=[], hovertext=[], visible=False)

    def show_tooltip(self, lines: List[str], position: Optional[LatLon]) -> None:
        self.tooltip_lines = list(lines)
        if position is not None:
            self.tooltip_position = position
        lat, lon = self.tooltip_position or self._center()
        self._upsert(TOOLTIP_TRACE, go.Scattermap(
            lat=[lat],
            lon=[lon],
            mode='text',
            text=['<br>'.join(self.tooltip_lines)],
            textposition='top right',
            textfont=dict(color=self.theme.text_color),
            hoverinfo='skip',
            name=TOOLTIP_TRACE,
            visible=True,
        ))

    def move_tooltip(self, position: LatLon) -> None:
        self.tooltip_position = position
        trace = self._trace(TOOLTIP_TRACE)
        if trace is not None and trace.visible:
            trace.update(lat=[position[0]], lon=[position[1]])

    def hide_tooltip(self) -> None:
        self.tooltip_lines = []
        trace = self._trace(TOOLTIP_TRACE)
        if trace is not None:
            trace.update(visible=False)

    @property
    def tooltip_visible(self) -> bool:
        trace = self._trace(TOOLTIP_TRACE)
        return bool(trace is not None and trace.visible)

    def show_notice(self, message: Optional[str]) -> None:
        self.notice = message
        annotations = []
        if message:
            annotations.append(dict(
                text=message,
                x=0.01, y=0.99, xref='paper', yref='paper',
                xanchor='left', yanchor='top',
                showarrow=False,
                bgcolor=self.theme.notice_background,
                font=dict(color=self.theme.text_color, size=12),
            ))
        self.figure.update_layout(annotations=annotations)

    def set_theme(self, theme: MapTheme) -> None:
        self.theme = theme
        self.figure.update_layout(map=dict(style=theme.basemap))
        tooltip = self._trace(TOOLTIP_TRACE)
        if tooltip is not None:
            tooltip.update(textfont=dict(color=theme.text_color))
        if self.notice:
            self.show_notice(self.notice)

    def clear(self) -> None:
        self.figure.data = []
        self._traces.clear()
        self.tooltip_lines = []
        self.tooltip_position = None
        self.show_notice(None)

    def _center(self) -> LatLon:
        center = self.figure.layout.map.center
        return (center.lat, center.lon)

    def to_json(self) -> str:
        return self.figure.to_json()

    def write_json(self, path: Union[str, Path]) -> None:
        self.figure.write_json(str(path))
        logger.info(f"✅ Saved map figure: {path}")
